"""Gap detection: expected landmark evidence the cited set does not cover.

Read-only. Gaps only add to the output; citations are never reordered or
removed here.
"""

import logging
from typing import Literal, Optional

from pydantic import BaseModel

from citation_engine.core.taxonomy import Taxonomy, contains_any, default_taxonomy
from citation_engine.search.models import Citation

logger = logging.getLogger(__name__)

GapKind = Literal[
    "trial", "guideline", "intervention_category", "scope", "evidence_synthesis"
]

_SYNTHESIS_STUDY_TYPES = ("Systematic Review", "Meta-Analysis")
_SYNTHESIS_PHRASES = ("systematic review", "meta-analysis", "meta analysis", "pooled analysis")


class Gap(BaseModel):
    missing_item: str
    rationale: str
    kind: GapKind
    pmid: Optional[str] = None


# ── Topic Detection ──────────────────────────────────────────────────


def detect_topic(context: str, taxonomy: Optional[Taxonomy] = None) -> Optional[str]:
    """First catalog topic whose trigger phrase appears in the context."""
    taxonomy = taxonomy or default_taxonomy()
    for entry in taxonomy.expected_evidence:
        if contains_any(context, entry.triggers):
            return entry.topic
    return None


def _resolve_topic(
    hint: Optional[str], context: str, taxonomy: Taxonomy
) -> Optional[str]:
    if hint and taxonomy.expected_for(hint) is not None:
        return hint
    if hint:
        logger.debug("Topic hint %r is not in the catalog; detecting instead", hint)
    return detect_topic(context, taxonomy)


# ── Public API ───────────────────────────────────────────────────────


def detect_gaps(
    records: list[Citation],
    detected_topic: Optional[str] = None,
    context: str = "",
    taxonomy: Optional[Taxonomy] = None,
    narrow_scope_threshold: int = 4,
) -> list[Gap]:
    """List expected trials, guidelines and intervention categories that are absent.

    Expected items are checked against the records only. Intervention
    categories count as covered when the answer text or any record
    mentions them.
    """
    taxonomy = taxonomy or default_taxonomy()
    record_text = " ".join(c.full_text for c in records)
    answer_text = f"{context or ''} {record_text}".strip()

    topic = _resolve_topic(detected_topic, answer_text, taxonomy)
    if topic is None:
        return []
    expected = taxonomy.expected_for(topic)

    gaps: list[Gap] = []
    for item in expected.items:
        if not contains_any(record_text, item.terms):
            gaps.append(
                Gap(
                    missing_item=item.name,
                    rationale=item.rationale,
                    kind=item.kind,
                    pmid=item.pmid,
                )
            )

    missing = [c for c in expected.categories if not contains_any(answer_text, c.keywords)]
    for category in missing:
        gaps.append(
            Gap(
                missing_item=category.name,
                rationale=f"No {category.name} evidence is cited or discussed.",
                kind="intervention_category",
            )
        )
    if expected.categories and len(missing) >= narrow_scope_threshold:
        gaps.append(
            Gap(
                missing_item="Narrow scope",
                rationale=(
                    f"{len(missing)} of {len(expected.categories)} intervention categories "
                    f"are not covered: {', '.join(c.name for c in missing)}."
                ),
                kind="scope",
            )
        )

    has_synthesis = any(c.study_type in _SYNTHESIS_STUDY_TYPES for c in records) or (
        contains_any(record_text, _SYNTHESIS_PHRASES)
    )
    if not has_synthesis:
        gaps.append(
            Gap(
                missing_item="Evidence synthesis",
                rationale="No systematic review or meta-analysis is cited to pool the trial evidence.",
                kind="evidence_synthesis",
            )
        )

    logger.info(
        "Gap detection (%s): %d gap(s), %d of %d categories missing",
        topic,
        len(gaps),
        len(missing),
        len(expected.categories),
    )
    return gaps
