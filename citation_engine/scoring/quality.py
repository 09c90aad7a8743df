"""Intrinsic evidence-quality scoring.

The score answers "how good is this evidence in general" and never looks at
the user's question. Each signal contributes a fixed number of points from
the taxonomy's ``ScoringWeights``; penalties subtract, and the total is
floored at zero.
"""

import logging
from typing import Optional

from pydantic import BaseModel, Field

from citation_engine.core.config import RankingConfig
from citation_engine.core.taxonomy import (
    Taxonomy,
    contains_any,
    default_taxonomy,
    matched_phrases,
)
from citation_engine.search.models import Citation

logger = logging.getLogger(__name__)


class QualityAssessment(BaseModel):
    """Quality score plus the signals that produced it, in scoring order."""

    citation_id: str
    score: float
    contributions: list[tuple[str, float]]
    landmarks: list[str] = Field(default_factory=list)  # matched trial names

    @property
    def signals(self) -> list[str]:
        return [name for name, _ in self.contributions]


# ── Public API ───────────────────────────────────────────────────────


def score_quality(
    citation: Citation,
    taxonomy: Optional[Taxonomy] = None,
    reference_year: Optional[int] = None,
    config: Optional[RankingConfig] = None,
) -> float:
    return assess_quality(citation, taxonomy, reference_year, config).score


def assess_quality(
    citation: Citation,
    taxonomy: Optional[Taxonomy] = None,
    reference_year: Optional[int] = None,
    config: Optional[RankingConfig] = None,
) -> QualityAssessment:
    """Score one citation and keep a ledger of every contribution.

    ``reference_year`` overrides ``config.reference_year``; with neither,
    recency is measured from the current calendar year.
    """
    taxonomy = taxonomy or default_taxonomy()
    config = config or RankingConfig()
    if reference_year is None:
        reference_year = config.resolved_reference_year()

    w = taxonomy.weights
    text = citation.full_text
    contributions: list[tuple[str, float]] = []

    landmarks = matched_phrases(text, taxonomy.landmark_trials)
    if landmarks:
        contributions.append(("landmark_trial", w.landmark_trial))

    if citation.is_guideline or contains_any(text, taxonomy.guideline_keywords):
        contributions.append(("guideline", w.guideline))

    if contains_any(text, taxonomy.high_quality_evidence):
        contributions.append(("high_quality_evidence", w.high_quality_evidence))

    if contains_any(citation.journal, taxonomy.high_priority_sources):
        contributions.append(("venue", w.venue))

    for domain in taxonomy.topic_domains:
        if contains_any(text, domain.keywords()):
            bonus = domain.bonus if domain.bonus is not None else w.topic_domain
            contributions.append((f"topic:{domain.name}", bonus))

    if contains_any(text, taxonomy.named_interventions):
        contributions.append(("named_intervention", w.named_intervention))

    if citation.year is not None:
        age = reference_year - citation.year
        if age <= config.recent_window_years:
            contributions.append(("recent", w.recent))
        elif age <= config.older_window_years:
            contributions.append(("older_recent", w.older_recent))

    if contains_any(text, taxonomy.comparative_keywords):
        contributions.append(("comparative", w.comparative))

    if contains_any(text, taxonomy.low_quality_indicators):
        contributions.append(("low_quality_penalty", -w.low_quality_penalty))

    if contains_any(text, taxonomy.off_topic_content):
        contributions.append(("off_topic_penalty", -w.off_topic_penalty))

    score = max(0.0, float(sum(points for _, points in contributions)))
    logger.debug(
        "Quality %s: %.0f (%s)",
        citation.id,
        score,
        ", ".join(f"{name}{points:+.0f}" for name, points in contributions) or "no signals",
    )
    return QualityAssessment(
        citation_id=citation.id,
        score=score,
        contributions=contributions,
        landmarks=landmarks,
    )


def apply_quality(
    citation: Citation,
    taxonomy: Optional[Taxonomy] = None,
    reference_year: Optional[int] = None,
    config: Optional[RankingConfig] = None,
) -> Citation:
    """Return a copy of the citation with ``quality_score`` filled in."""
    score = score_quality(citation, taxonomy, reference_year, config)
    return citation.model_copy(update={"quality_score": score})
