"""Ranking convenience function: raw search records in, display bundle out."""

import logging
from collections.abc import Iterable
from typing import Any, Optional

from pydantic import BaseModel, Field

from citation_engine.analysis.gaps import Gap, detect_gaps, detect_topic
from citation_engine.analysis.report import QualityReport, generate_report
from citation_engine.core.config import RankingConfig
from citation_engine.core.taxonomy import Taxonomy
from citation_engine.ranking.ranker import diversify, rank_records
from citation_engine.scoring.quality import apply_quality
from citation_engine.scoring.relevance import apply_relevance, build_detectors
from citation_engine.search.models import Citation
from citation_engine.search.normalize import normalize_records

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = (
    "No citations could be matched to this question. The answer is based on "
    "established literature and major clinical trials; search PubMed directly "
    "for the latest primary studies."
)


class CitationBundle(BaseModel):
    ranked_citations: list[Citation]
    by_source: dict[str, list[Citation]]
    source_counts: dict[str, int]
    source_diversity: int
    diversity_label: str
    report: QualityReport
    gaps: list[Gap]
    detected_topic: Optional[str] = None
    stats: dict = Field(default_factory=dict)
    fallback_message: Optional[str] = None


def run_ranking(
    raw_records: Iterable[Any],
    query: str = "",
    topic_hint: Optional[str] = None,
    answer_context: str = "",
    config: Optional[RankingConfig] = None,
    taxonomy: Optional[Taxonomy] = None,
) -> CitationBundle:
    """Normalize, score, rank, diversify, detect gaps and report."""
    config = config or RankingConfig()
    taxonomy = taxonomy or config.load_taxonomy()
    reference_year = config.resolved_reference_year()

    normalized = normalize_records(raw_records, taxonomy)

    detectors = build_detectors(taxonomy)
    scored = [
        apply_relevance(
            apply_quality(c, taxonomy, reference_year, config), query, taxonomy, detectors
        )
        for c in normalized.citations
    ]
    logger.info("Scoring: %d citation(s) scored against %r", len(scored), query)

    ranking = rank_records(
        scored,
        max_results=config.max_results,
        taxonomy=taxonomy,
        drop_irrelevant=config.drop_irrelevant,
    )
    ranked = ranking.ranked
    diversity = diversify(ranked, normalized.merged_sources)

    topic_context = f"{answer_context} {' '.join(c.full_text for c in ranked)}"
    topic = topic_hint if topic_hint and taxonomy.expected_for(topic_hint) else None
    topic = topic or detect_topic(topic_context, taxonomy)
    gaps = detect_gaps(
        ranked,
        detected_topic=topic,
        context=answer_context,
        taxonomy=taxonomy,
        narrow_scope_threshold=config.narrow_scope_threshold,
    )
    report = generate_report(ranked, gaps, taxonomy, normalized.merged_sources)

    stats = {
        **normalized.stats,
        "dropped_low_quality": ranking.stats["dropped_low_quality"],
        "dropped_irrelevant": ranking.stats["dropped_irrelevant"],
        "capped_out": ranking.stats["capped_out"],
        "ranked_total": len(ranked),
        "gaps": len(gaps),
    }
    logger.info(
        "Ranking run complete: %d raw → %d ranked from %d source(s), %d gap(s)",
        stats["raw_total"],
        stats["ranked_total"],
        diversity.source_diversity,
        stats["gaps"],
    )

    return CitationBundle(
        ranked_citations=ranked,
        by_source=diversity.by_source,
        source_counts=diversity.source_counts,
        source_diversity=diversity.source_diversity,
        diversity_label=diversity.label,
        report=report,
        gaps=gaps,
        detected_topic=topic,
        stats=stats,
        fallback_message=None if ranked else FALLBACK_MESSAGE,
    )
