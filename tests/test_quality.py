"""Tests for intrinsic quality scoring."""

import pytest

from citation_engine.core.config import RankingConfig
from citation_engine.core.taxonomy import default_taxonomy
from citation_engine.scoring.quality import apply_quality, assess_quality, score_quality
from citation_engine.search.models import Citation

YEAR = 2025


@pytest.fixture(scope="module")
def taxonomy():
    return default_taxonomy()


# ── Factories ────────────────────────────────────────────────────────


def _cit(title="Outcomes in adults", **kw):
    return Citation(id=kw.pop("id", "c1"), title=title, **kw)


def _score(citation, taxonomy):
    return score_quality(citation, taxonomy, reference_year=YEAR)


# ── Individual Signals ───────────────────────────────────────────────


def test_no_signals_scores_zero(taxonomy):
    result = assess_quality(_cit(), taxonomy, reference_year=YEAR)
    assert result.score == 0
    assert result.contributions == []


def test_landmark_trial(taxonomy):
    result = assess_quality(_cit("Results of the ARISTOTLE study"), taxonomy, reference_year=YEAR)
    assert result.signals == ["landmark_trial"]
    assert result.landmarks == ["ARISTOTLE"]
    assert result.score == 100


@pytest.mark.parametrize(
    "title, landmarks",
    [
        (
            "EMPA-REG OUTCOME: empagliflozin and cardiovascular outcomes",
            ["EMPA-REG OUTCOME", "EMPA-REG"],
        ),
        ("Canagliflozin in the CANVAS Program", ["CANVAS Program", "CANVAS"]),
        ("DECLARE-TIMI 58 heart failure outcomes", ["DECLARE-TIMI 58", "DECLARE-TIMI"]),
        ("Sitagliptin in TECOS", ["TECOS"]),
    ],
)
def test_diabetes_outcome_trials_are_landmarks(taxonomy, title, landmarks):
    result = assess_quality(_cit(title), taxonomy, reference_year=YEAR)
    assert result.signals[0] == "landmark_trial"
    assert result.landmarks == landmarks
    assert result.score >= 100


def test_no_landmarks_listed_without_match(taxonomy):
    assert assess_quality(_cit(), taxonomy, reference_year=YEAR).landmarks == []


def test_guideline_flag(taxonomy):
    assert _score(_cit(is_guideline=True), taxonomy) == 80


def test_high_quality_evidence(taxonomy):
    assert _score(_cit("A systematic review of outcomes in adults"), taxonomy) == 70


def test_venue_matches_journal(taxonomy):
    assert _score(_cit(journal="The Lancet"), taxonomy) == 60


def test_topic_domain(taxonomy):
    result = assess_quality(_cit("Warfarin dosing in adults"), taxonomy, reference_year=YEAR)
    assert result.signals == ["topic:stroke_prevention"]
    assert result.score == 40


def test_imaging_domain_uses_own_bonus(taxonomy):
    result = assess_quality(
        _cit("Coronary artery calcium in adults"), taxonomy, reference_year=YEAR
    )
    assert result.contributions == [("topic:cardiovascular_imaging", 45)]


def test_named_intervention_adds_to_domain(taxonomy):
    result = assess_quality(_cit("Apixaban in adults"), taxonomy, reference_year=YEAR)
    assert result.signals == ["topic:stroke_prevention", "named_intervention"]
    assert result.score == 70


def test_comparative_language(taxonomy):
    assert _score(_cit("Outcomes versus baseline in adults"), taxonomy) == 25


@pytest.mark.parametrize("year, expected", [(2023, 20), (2020, 20), (2017, 10), (2015, 10), (2010, 0)])
def test_recency(taxonomy, year, expected):
    assert _score(_cit(year=year), taxonomy) == expected


def test_missing_year_gets_no_recency(taxonomy):
    assert _score(_cit(year=None), taxonomy) == 0


def test_recency_windows_from_config(taxonomy):
    config = RankingConfig(recent_window_years=2, older_window_years=4, reference_year=YEAR)
    assert score_quality(_cit(year=2022), taxonomy, config=config) == 10
    assert score_quality(_cit(year=2024), taxonomy, config=config) == 20


# ── Penalties ────────────────────────────────────────────────────────


def test_low_quality_penalty(taxonomy):
    assert _score(_cit("Case report in adults", journal="The Lancet"), taxonomy) == 10


def test_off_topic_penalty(taxonomy):
    assert _score(_cit("A mouse model of outcomes", journal="The Lancet"), taxonomy) == 30


def test_never_negative(taxonomy):
    result = assess_quality(_cit("Editorial: a mouse model"), taxonomy, reference_year=YEAR)
    assert sum(points for _, points in result.contributions) < 0
    assert result.score == 0


# ── Ordering ─────────────────────────────────────────────────────────


def test_signal_ladder(taxonomy):
    landmark = _score(_cit("Results of the ARISTOTLE study"), taxonomy)
    guideline = _score(_cit(is_guideline=True), taxonomy)
    evidence = _score(_cit("A systematic review of outcomes in adults"), taxonomy)
    venue = _score(_cit(journal="The Lancet"), taxonomy)
    topic = _score(_cit("Warfarin dosing in adults"), taxonomy)
    recent = _score(_cit(year=2024), taxonomy)
    older = _score(_cit(year=2017), taxonomy)
    assert landmark > guideline >= evidence > venue > topic > recent > older > 0


def test_score_ignores_other_fields(taxonomy):
    first = _cit("Warfarin dosing in adults", relevance_score=90, source="PubMed")
    second = _cit("Warfarin dosing in adults", relevance_score=0, source="OpenAlex")
    assert _score(first, taxonomy) == _score(second, taxonomy)


def test_deterministic(taxonomy):
    citation = _cit("ARISTOTLE: apixaban versus warfarin", journal="NEJM", year=2011)
    assert _score(citation, taxonomy) == _score(citation, taxonomy)


# ── Copies ───────────────────────────────────────────────────────────


def test_apply_quality_returns_copy(taxonomy):
    original = _cit("Results of the ARISTOTLE study")
    scored = apply_quality(original, taxonomy, reference_year=YEAR)
    assert scored.quality_score == 100
    assert original.quality_score == 0
