"""Query-aware relevance scoring with priority-ordered topic detectors.

Rules are tried in order and the first one that applies decides the score:

1. hard exclusions (spurious keyword hits such as physics papers),
2. no query at all, which is neutral,
3. the first detector whose ``matches(query)`` is true.

Detectors are built from the taxonomy seeds; ``TermOverlapDetector`` is the
catch-all and always matches.
"""

import logging
import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from citation_engine.core.taxonomy import (
    ComparisonSeed,
    FocusedTopicSeed,
    Taxonomy,
    contains_any,
    default_taxonomy,
)
from citation_engine.search.models import Citation, RelevanceCategory

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50.0

_DEFAULT_WARNINGS = {
    "poor": "Only loosely related to the question; treat as background reading.",
    "irrelevant": "Does not address the question that was asked.",
}


class RelevanceResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0.0, le=100.0)
    category: RelevanceCategory
    warning: Optional[str] = None
    detector: str


def bucket(score: float) -> RelevanceCategory:
    """Map a 0-100 relevance score onto its category."""
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "moderate"
    if score >= 20:
        return "poor"
    return "irrelevant"


def _result(score: float, detector: str, warning: Optional[str] = None) -> RelevanceResult:
    category = bucket(score)
    if category in _DEFAULT_WARNINGS:
        warning = warning or _DEFAULT_WARNINGS[category]
    else:
        warning = None
    return RelevanceResult(score=score, category=category, warning=warning, detector=detector)


# ── Detectors ────────────────────────────────────────────────────────


class TopicDetector:
    """Base class for relevance heuristics.

    ``matches`` decides whether the detector owns a query; ``score`` rates
    one citation against it.
    """

    name = "detector"

    def matches(self, query: str) -> bool:
        raise NotImplementedError

    def score(self, citation: Citation, query: str = "") -> RelevanceResult:
        raise NotImplementedError


class ComparisonDetector(TopicDetector):
    """Queries contrasting two interventions, e.g. two drug classes."""

    def __init__(self, seed: ComparisonSeed):
        self.seed = seed
        self.name = f"comparison:{seed.name}"

    def matches(self, query: str) -> bool:
        return contains_any(query, self.seed.first.terms) and contains_any(
            query, self.seed.second.terms
        )

    def score(self, citation: Citation, query: str = "") -> RelevanceResult:
        seed = self.seed
        text = citation.title_abstract
        has_first = contains_any(text, seed.first.terms)
        has_second = contains_any(text, seed.second.terms)
        comparison = f"{seed.first.label} vs {seed.second.label}"

        if has_first and has_second:
            return _result(90, self.name)
        if contains_any(text, seed.background_terms):
            return _result(
                25,
                self.name,
                f"General study rather than a {comparison} class comparison.",
            )
        if has_first or has_second:
            return _result(55, self.name)
        if contains_any(text, seed.condition_terms):
            return _result(
                20,
                self.name,
                f"Covers the condition but neither {seed.first.label} nor {seed.second.label}.",
            )
        return _result(
            0, self.name, f"Mentions neither {seed.first.label} nor {seed.second.label}."
        )


class FocusedTopicDetector(TopicDetector):
    """Queries about one intervention for one condition."""

    def __init__(self, seed: FocusedTopicSeed):
        self.seed = seed
        self.name = f"focused:{seed.name}"

    def matches(self, query: str) -> bool:
        return contains_any(query, self.seed.intervention.terms) and contains_any(
            query, self.seed.condition.terms
        )

    def score(self, citation: Citation, query: str = "") -> RelevanceResult:
        seed = self.seed
        text = citation.title_abstract
        has_condition = contains_any(text, seed.condition.terms)
        has_intervention = contains_any(text, seed.intervention.terms)

        if has_condition and has_intervention:
            population = seed.population_terms
            if population and contains_any(query, population) and contains_any(text, population):
                return _result(95, self.name)
            return _result(90, self.name)
        if has_intervention:
            return _result(75, self.name)
        if has_condition:
            return _result(
                0,
                self.name,
                f"Discusses {seed.condition.label} but not {seed.intervention.label}; "
                f"background coverage is not evidence for the intervention.",
            )
        return _result(
            0,
            self.name,
            f"Mentions neither {seed.intervention.label} nor {seed.condition.label}.",
        )


_TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9\-]*")


def query_terms(query: str) -> list[str]:
    """Unique lowercase query terms longer than three characters, in order."""
    tokens = _TOKEN_RE.findall(query.lower())
    return list(dict.fromkeys(t for t in tokens if len(t) > 3))


class TermOverlapDetector(TopicDetector):
    """Generic fallback: share of query terms found in title and abstract."""

    name = "term_overlap"

    def matches(self, query: str) -> bool:
        return True

    def score(self, citation: Citation, query: str = "") -> RelevanceResult:
        terms = query_terms(query) or list(dict.fromkeys(_TOKEN_RE.findall(query.lower())))
        if not terms:
            return RelevanceResult(score=NEUTRAL_SCORE, category="unknown", detector=self.name)

        text = citation.title_abstract
        found = sum(1 for term in terms if contains_any(text, (term,)))
        fraction = found / len(terms)

        if fraction >= 0.7:
            return _result(75, self.name)
        if fraction >= 0.5:
            return _result(60, self.name)
        if fraction >= 0.3:
            return _result(45, self.name)
        if fraction > 0:
            return _result(25, self.name)
        return _result(0, self.name, "Shares no key terms with the question.")


def build_detectors(taxonomy: Optional[Taxonomy] = None) -> list[TopicDetector]:
    """Comparison detectors, then focused-topic detectors, then the fallback."""
    taxonomy = taxonomy or default_taxonomy()
    detectors: list[TopicDetector] = [ComparisonDetector(s) for s in taxonomy.comparisons]
    detectors.extend(FocusedTopicDetector(s) for s in taxonomy.focused_topics)
    detectors.append(TermOverlapDetector())
    return detectors


# ── Public API ───────────────────────────────────────────────────────


def score_relevance(
    citation: Citation,
    query: Optional[str],
    taxonomy: Optional[Taxonomy] = None,
    detectors: Optional[list[TopicDetector]] = None,
) -> RelevanceResult:
    """Rate how well one citation answers the query."""
    taxonomy = taxonomy or default_taxonomy()
    query = (query or "").strip()

    excluded = _hard_exclusion(citation, query, taxonomy)
    if excluded is not None:
        return excluded

    if not query:
        return RelevanceResult(score=NEUTRAL_SCORE, category="unknown", detector="none")

    if detectors is None:
        detectors = build_detectors(taxonomy)
    detector = next((d for d in detectors if d.matches(query)), None) or TermOverlapDetector()

    result = detector.score(citation, query)
    logger.debug(
        "Relevance %s: %.0f %s via %s", citation.id, result.score, result.category, detector.name
    )
    return result


def apply_relevance(
    citation: Citation,
    query: Optional[str],
    taxonomy: Optional[Taxonomy] = None,
    detectors: Optional[list[TopicDetector]] = None,
) -> Citation:
    """Return a copy of the citation carrying its relevance score, category and warning."""
    result = score_relevance(citation, query, taxonomy, detectors)
    return citation.model_copy(
        update={
            "relevance_score": result.score,
            "relevance_category": result.category,
            "relevance_warning": result.warning,
        }
    )


def _hard_exclusion(
    citation: Citation, query: str, taxonomy: Taxonomy
) -> RelevanceResult | None:
    text = citation.title_abstract
    for exclusion in taxonomy.hard_exclusions:
        if exclusion.applies_to(query) and contains_any(text, exclusion.patterns):
            logger.debug("Hard exclusion %s matched %s", exclusion.name, citation.id)
            return RelevanceResult(
                score=0.0,
                category="irrelevant",
                warning=exclusion.reason,
                detector=f"exclusion:{exclusion.name}",
            )
    return None
