"""Filter, sort, cap and group scored citations for display."""

import logging
from typing import Optional

from pydantic import BaseModel

from citation_engine.core.taxonomy import Taxonomy, contains_any, default_taxonomy
from citation_engine.search.models import Citation

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 12


# ── Result Models ────────────────────────────────────────────────────


class RankResult(BaseModel):
    """Ranked citations plus what each step removed."""

    ranked: list[Citation]
    dropped_low_quality: list[Citation]
    dropped_irrelevant: list[Citation]
    capped_out: int
    stats: dict


class SourceDiversity(BaseModel):
    """Ranked citations grouped by the database that returned them."""

    by_source: dict[str, list[Citation]]
    source_counts: dict[str, int]
    source_diversity: int
    label: str


# ── Filtering ────────────────────────────────────────────────────────


def is_very_low_quality(citation: Citation, taxonomy: Optional[Taxonomy] = None) -> bool:
    taxonomy = taxonomy or default_taxonomy()
    return contains_any(f"{citation.title} {citation.journal}", taxonomy.very_low_quality)


def filter_very_low_quality(
    citations: list[Citation], taxonomy: Optional[Taxonomy] = None
) -> tuple[list[Citation], list[Citation]]:
    """Split citations into (kept, dropped) using the narrow very-low-quality list."""
    taxonomy = taxonomy or default_taxonomy()
    kept: list[Citation] = []
    dropped: list[Citation] = []
    for citation in citations:
        (dropped if is_very_low_quality(citation, taxonomy) else kept).append(citation)
    return kept, dropped


# ── Ranking ──────────────────────────────────────────────────────────


def sort_key(citation: Citation) -> tuple:
    """Quality desc, then relevance desc, then year desc with missing years last."""
    return (
        -citation.quality_score,
        -citation.relevance_score,
        citation.year is None,
        -(citation.year or 0),
    )


def rank(
    citations: list[Citation],
    max_results: int = DEFAULT_MAX_RESULTS,
    taxonomy: Optional[Taxonomy] = None,
    drop_irrelevant: bool = False,
) -> list[Citation]:
    return rank_records(citations, max_results, taxonomy, drop_irrelevant).ranked


def rank_records(
    citations: list[Citation],
    max_results: int = DEFAULT_MAX_RESULTS,
    taxonomy: Optional[Taxonomy] = None,
    drop_irrelevant: bool = False,
) -> RankResult:
    """Filter very-low-quality records, stable-sort, and cap.

    Irrelevant records are kept (with their warning) unless
    ``drop_irrelevant`` is set.
    """
    kept, dropped_low = filter_very_low_quality(list(citations or []), taxonomy)

    dropped_irrelevant: list[Citation] = []
    if drop_irrelevant:
        dropped_irrelevant = [c for c in kept if c.relevance_category == "irrelevant"]
        kept = [c for c in kept if c.relevance_category != "irrelevant"]

    ordered = sorted(kept, key=sort_key)
    ranked = ordered[:max_results]

    stats = {
        "input_total": len(kept) + len(dropped_low) + len(dropped_irrelevant),
        "dropped_low_quality": len(dropped_low),
        "dropped_irrelevant": len(dropped_irrelevant),
        "capped_out": len(ordered) - len(ranked),
        "ranked_total": len(ranked),
    }

    logger.info(
        "Ranking: %d in → %d ranked (%d very low quality, %d irrelevant, %d over cap of %d)",
        stats["input_total"],
        stats["ranked_total"],
        stats["dropped_low_quality"],
        stats["dropped_irrelevant"],
        stats["capped_out"],
        max_results,
    )

    return RankResult(
        ranked=ranked,
        dropped_low_quality=dropped_low,
        dropped_irrelevant=dropped_irrelevant,
        capped_out=stats["capped_out"],
        stats=stats,
    )


# ── Diversity ────────────────────────────────────────────────────────


def diversify(
    citations: list[Citation],
    merged_sources: Optional[dict[str, list[str]]] = None,
) -> SourceDiversity:
    """Group by source; groups appear in order of first appearance.

    ``by_source`` groups each citation under its canonical source only.
    Counts, diversity and the label also include the extra sources that
    deduplication merged into a citation (see ``NormalizeResult``).
    """
    merged_sources = merged_sources or {}
    by_source: dict[str, list[Citation]] = {}
    source_counts: dict[str, int] = {}
    for citation in citations:
        by_source.setdefault(citation.source, []).append(citation)
        for source in (citation.source, *merged_sources.get(citation.id, [])):
            source_counts[source] = source_counts.get(source, 0) + 1

    return SourceDiversity(
        by_source=by_source,
        source_counts=source_counts,
        source_diversity=len(source_counts),
        label=diversity_label(list(source_counts)),
    )


def diversity_label(sources: list[str]) -> str:
    if not sources:
        return "No sources"
    noun = "database" if len(sources) == 1 else "databases"
    return f"Drawn from {len(sources)} {noun}: {', '.join(sources)}"
