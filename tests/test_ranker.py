"""Tests for filtering, ranking, capping and source diversity."""

import pytest

from citation_engine.core.taxonomy import default_taxonomy
from citation_engine.ranking.ranker import (
    diversify,
    diversity_label,
    filter_very_low_quality,
    rank,
    rank_records,
)
from citation_engine.search.models import Citation


@pytest.fixture(scope="module")
def taxonomy():
    return default_taxonomy()


# ── Factories ────────────────────────────────────────────────────────


def _c(id, quality=0.0, relevance=0.0, year=None, source="PubMed", title=None, **kw):
    return Citation(
        id=id,
        title=title or f"Study {id}",
        quality_score=quality,
        relevance_score=relevance,
        year=year,
        source=source,
        **kw,
    )


# ── Filtering ────────────────────────────────────────────────────────


def test_very_low_quality_dropped(taxonomy):
    citations = [
        _c("a", title="Letter to editor: apixaban dosing"),
        _c("b", title="FDA adverse event reports for dabigatran"),
        _c("c", title="Drug ineffective reports"),
        _c("d", title="Dabigatran outcomes", journal="Conference abstract only"),
        _c("e", title="Case report of apixaban bleeding"),
    ]
    kept, dropped = filter_very_low_quality(citations, taxonomy)
    assert [c.id for c in kept] == ["e"]
    assert [c.id for c in dropped] == ["a", "b", "c", "d"]


# ── Ordering ─────────────────────────────────────────────────────────


def test_sorted_by_quality(taxonomy):
    ranked = rank([_c("a", 10), _c("b", 90), _c("c", 50)], taxonomy=taxonomy)
    assert [c.id for c in ranked] == ["b", "c", "a"]


def test_relevance_breaks_quality_ties(taxonomy):
    ranked = rank([_c("a", 50, 20), _c("b", 50, 80)], taxonomy=taxonomy)
    assert [c.id for c in ranked] == ["b", "a"]


def test_year_breaks_remaining_ties(taxonomy):
    citations = [_c("a", 50, 50, None), _c("b", 50, 50, 2015), _c("c", 50, 50, 2022)]
    ranked = rank(citations, taxonomy=taxonomy)
    assert [c.id for c in ranked] == ["c", "b", "a"]


def test_stable_for_equal_keys(taxonomy):
    citations = [_c(str(i), 50, 50, 2020) for i in range(5)]
    assert [c.id for c in rank(citations, taxonomy=taxonomy)] == ["0", "1", "2", "3", "4"]


# ── Cap ──────────────────────────────────────────────────────────────


def test_default_cap_is_twelve(taxonomy):
    citations = [_c(str(i), quality=i) for i in range(30)]
    ranked = rank(citations, taxonomy=taxonomy)
    assert len(ranked) == 12
    assert ranked[0].id == "29"


def test_custom_cap(taxonomy):
    citations = [_c(str(i)) for i in range(10)]
    result = rank_records(citations, max_results=5, taxonomy=taxonomy)
    assert len(result.ranked) == 5
    assert result.capped_out == 5


# ── Irrelevant Records ───────────────────────────────────────────────


def test_irrelevant_kept_by_default(taxonomy):
    citations = [
        _c("a", 50, relevance_category="irrelevant", relevance_warning="off topic"),
        _c("b", 40, 90, relevance_category="excellent"),
    ]
    assert [c.id for c in rank(citations, taxonomy=taxonomy)] == ["a", "b"]


def test_drop_irrelevant_option(taxonomy):
    citations = [
        _c("a", 50, relevance_category="irrelevant", relevance_warning="off topic"),
        _c("b", 40, 90, relevance_category="excellent"),
    ]
    result = rank_records(citations, taxonomy=taxonomy, drop_irrelevant=True)
    assert [c.id for c in result.ranked] == ["b"]
    assert [c.id for c in result.dropped_irrelevant] == ["a"]


# ── Empty Input ──────────────────────────────────────────────────────


def test_empty_input(taxonomy):
    assert rank([], taxonomy=taxonomy) == []
    result = rank_records([], taxonomy=taxonomy)
    assert result.stats["ranked_total"] == 0
    assert result.stats["capped_out"] == 0


def test_stats(taxonomy):
    citations = [_c(str(i), quality=i) for i in range(14)]
    citations.append(_c("x", title="Letter to editor"))
    result = rank_records(citations, taxonomy=taxonomy)
    assert result.stats == {
        "input_total": 15,
        "dropped_low_quality": 1,
        "dropped_irrelevant": 0,
        "capped_out": 2,
        "ranked_total": 12,
    }


# ── Diversity ────────────────────────────────────────────────────────


def test_grouped_by_first_appearance():
    citations = [
        _c("a", source="OpenAlex"),
        _c("b", source="PubMed"),
        _c("c", source="OpenAlex"),
        _c("d", source="Europe PMC"),
    ]
    diversity = diversify(citations)
    assert list(diversity.by_source) == ["OpenAlex", "PubMed", "Europe PMC"]
    assert [c.id for c in diversity.by_source["OpenAlex"]] == ["a", "c"]
    assert diversity.source_counts == {"OpenAlex": 2, "PubMed": 1, "Europe PMC": 1}
    assert diversity.source_diversity == 3
    assert diversity.label == "Drawn from 3 databases: OpenAlex, PubMed, Europe PMC"


def test_merged_sources_counted():
    citations = [_c("a", source="PubMed"), _c("b", source="OpenAlex")]
    diversity = diversify(citations, {"a": ["Europe PMC"]})
    assert list(diversity.by_source) == ["PubMed", "OpenAlex"]
    assert diversity.source_counts == {"PubMed": 1, "Europe PMC": 1, "OpenAlex": 1}
    assert diversity.source_diversity == 3
    assert diversity.label == "Drawn from 3 databases: PubMed, Europe PMC, OpenAlex"


def test_single_source_label():
    assert diversity_label(["PubMed"]) == "Drawn from 1 database: PubMed"


def test_empty_diversity():
    diversity = diversify([])
    assert diversity.by_source == {}
    assert diversity.source_diversity == 0
    assert diversity.label == "No sources"
