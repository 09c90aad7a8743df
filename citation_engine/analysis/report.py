"""Templated quality report over an already-ranked citation set."""

import logging
from typing import Literal, Optional

from pydantic import BaseModel, Field

from citation_engine.analysis.gaps import Gap
from citation_engine.core.taxonomy import Taxonomy, contains_any, default_taxonomy
from citation_engine.ranking.ranker import diversify
from citation_engine.search.models import Citation

logger = logging.getLogger(__name__)

EvidenceStrength = Literal["strong", "moderate", "limited"]

STRONG_THRESHOLD = 40
MODERATE_THRESHOLD = 25


class RelevanceNote(BaseModel):
    title: str
    category: str
    warning: str


class QualityReport(BaseModel):
    total_sources: int
    guidelines: int
    landmark_trials: int
    rcts: int
    high_impact_venues: int
    mean_quality: float
    evidence_strength: EvidenceStrength
    drug_class_coverage: dict[str, bool] = Field(default_factory=dict)
    relevance_warnings: list[RelevanceNote] = Field(default_factory=list)
    unmet_items: list[str] = Field(default_factory=list)
    source_counts: dict[str, int] = Field(default_factory=dict)
    source_diversity: int = 0
    taxonomy_fingerprint: str = ""

    @property
    def covered_drug_classes(self) -> list[str]:
        return [name for name, covered in self.drug_class_coverage.items() if covered]


def evidence_strength(mean_quality: float, total: int) -> EvidenceStrength:
    if total == 0:
        return "limited"
    if mean_quality >= STRONG_THRESHOLD:
        return "strong"
    if mean_quality >= MODERATE_THRESHOLD:
        return "moderate"
    return "limited"


def generate_report(
    citations: list[Citation],
    gaps: Optional[list[Gap]] = None,
    taxonomy: Optional[Taxonomy] = None,
    merged_sources: Optional[dict[str, list[str]]] = None,
) -> QualityReport:
    """Count evidence types in the ranked set and summarise it."""
    taxonomy = taxonomy or default_taxonomy()
    gaps = gaps or []

    guidelines = sum(
        1
        for c in citations
        if c.is_guideline or contains_any(f"{c.title} {c.journal}", taxonomy.guideline_keywords)
    )
    landmark = sum(1 for c in citations if contains_any(c.title, taxonomy.landmark_trials))
    rcts = sum(1 for c in citations if contains_any(c.title, taxonomy.rct_keywords))
    high_impact = sum(
        1 for c in citations if contains_any(c.journal, taxonomy.high_priority_sources)
    )

    total = len(citations)
    mean_quality = sum(c.quality_score for c in citations) / total if total else 0.0

    coverage = {
        name: any(contains_any(c.title_abstract, drugs) for c in citations)
        for name, drugs in taxonomy.drug_classes.items()
    }

    warnings = [
        RelevanceNote(title=c.title, category=c.relevance_category, warning=c.relevance_warning)
        for c in citations
        if c.relevance_category in ("poor", "irrelevant") and c.relevance_warning
    ]

    unmet = [g.missing_item for g in gaps if g.kind in ("trial", "guideline")]
    diversity = diversify(citations, merged_sources)

    report = QualityReport(
        total_sources=total,
        guidelines=guidelines,
        landmark_trials=landmark,
        rcts=rcts,
        high_impact_venues=high_impact,
        mean_quality=round(mean_quality, 2),
        evidence_strength=evidence_strength(mean_quality, total),
        drug_class_coverage=coverage,
        relevance_warnings=warnings,
        unmet_items=unmet,
        source_counts=diversity.source_counts,
        source_diversity=diversity.source_diversity,
        taxonomy_fingerprint=taxonomy.fingerprint(),
    )
    logger.info(
        "Report: %d sources, mean quality %.1f (%s), %d unmet item(s)",
        total,
        report.mean_quality,
        report.evidence_strength,
        len(unmet),
    )
    return report


# ── Rendering ────────────────────────────────────────────────────────

_STRENGTH_TEXT = {
    "strong": "Strong (guidelines and RCTs)",
    "moderate": "Moderate (mixed evidence quality)",
    "limited": "Limited (requires higher quality sources)",
}


def render_markdown(report: QualityReport) -> str:
    """Short markdown summary for the presentation layer."""
    lines = [
        "**Evidence Quality Summary**",
        f"- Clinical guidelines: {report.guidelines}",
        f"- Landmark trials: {report.landmark_trials}",
        f"- Randomized controlled trials: {report.rcts}",
        f"- High-impact journals: {report.high_impact_venues}",
        f"- Total sources: {report.total_sources}",
    ]
    if report.source_diversity:
        lines.append(
            f"- Databases: {report.source_diversity} ({', '.join(report.source_counts)})"
        )

    covered = report.covered_drug_classes
    drug_line = ", ".join(covered) if covered else "Limited drug specificity"
    lines += [
        "",
        f"**Drug coverage:** {drug_line}",
        f"**Evidence strength:** {_STRENGTH_TEXT[report.evidence_strength]}",
    ]

    if report.unmet_items:
        lines += ["", f"**Missing key evidence:** {', '.join(report.unmet_items)}"]

    if report.relevance_warnings:
        lines += ["", "**Relevance warnings:**"]
        for note in report.relevance_warnings:
            lines.append(f"- {note.title} ({note.category}): {note.warning}")

    return "\n".join(lines)
