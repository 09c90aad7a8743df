"""Normalize and deduplicate raw citation records from literature backends."""

import hashlib
import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from citation_engine.core.taxonomy import Taxonomy, contains_any, default_taxonomy
from citation_engine.search.models import KNOWN_SOURCES, STUDY_TYPES, Citation

logger = logging.getLogger(__name__)


# ── Result Model ─────────────────────────────────────────────────────


class NormalizeResult(BaseModel):
    """Result of normalizing one batch of raw records."""

    citations: list[Citation]
    duplicate_ids: list[str]  # ids of discarded later occurrences
    merged_sources: dict[str, list[str]] = Field(default_factory=dict)
    skipped: int
    stats: dict


# ── Public API ───────────────────────────────────────────────────────


def normalize(raw_records: Iterable[Any], taxonomy: Optional[Taxonomy] = None) -> list[Citation]:
    """Validate, coerce and deduplicate raw records, preserving input order."""
    return normalize_records(raw_records, taxonomy).citations


def normalize_records(
    raw_records: Iterable[Any],
    taxonomy: Optional[Taxonomy] = None,
) -> NormalizeResult:
    """Like ``normalize`` but also reports skipped records and duplicates.

    Malformed records are skipped, never raised. The first occurrence of
    each id wins; later ones are discarded, but a different source on a
    discarded duplicate is kept in ``merged_sources`` so diversity counts
    every database that returned the paper.
    """
    taxonomy = taxonomy or default_taxonomy()
    records = list(raw_records or [])

    kept: dict[str, Citation] = {}
    citations: list[Citation] = []
    duplicate_ids: list[str] = []
    merged_sources: dict[str, list[str]] = {}
    skipped = 0

    for position, raw in enumerate(records):
        citation = _parse_record(raw, position, taxonomy)
        if citation is None:
            skipped += 1
            continue
        first = kept.get(citation.id)
        if first is not None:
            duplicate_ids.append(citation.id)
            extra = merged_sources.setdefault(citation.id, [])
            if citation.source != first.source and citation.source not in extra:
                extra.append(citation.source)
            logger.debug("Duplicate record %d dropped (%s)", position, citation.id)
            continue
        kept[citation.id] = citation
        citations.append(citation)

    merged_sources = {cid: extra for cid, extra in merged_sources.items() if extra}

    stats = {
        "raw_total": len(records),
        "skipped": skipped,
        "duplicates_found": len(duplicate_ids),
        "unique_total": len(citations),
    }

    logger.info(
        "Normalization: %d raw → %d unique (%d skipped, %d duplicates removed)",
        stats["raw_total"],
        stats["unique_total"],
        stats["skipped"],
        stats["duplicates_found"],
    )

    return NormalizeResult(
        citations=citations,
        duplicate_ids=duplicate_ids,
        merged_sources=merged_sources,
        skipped=skipped,
        stats=stats,
    )


# ── Identity ─────────────────────────────────────────────────────────


def citation_id(
    pmid: Optional[str],
    doi: Optional[str],
    url: Optional[str],
    title: str,
    year: Optional[int],
) -> str:
    """Stable dedup key: pmid > doi > url > hash(title, year)."""
    if pmid:
        return f"pmid:{pmid}"
    if doi:
        return f"doi:{doi.lower()}"
    if url:
        return f"url:{url}"
    blob = f"{normalize_title(title)}|{year if year is not None else ''}".encode()
    return f"hash:{hashlib.sha256(blob).hexdigest()[:16]}"


# ── Record Parser ────────────────────────────────────────────────────


def _parse_record(raw: Any, position: int, taxonomy: Taxonomy) -> Citation | None:
    """Convert one raw backend record into a Citation, or None if unusable."""
    data = _as_dict(raw)
    if data is None:
        logger.warning(
            "Skipping record %d: unsupported type %s", position, type(raw).__name__
        )
        return None

    title = _clean_text(data.get("title"))
    if not title:
        logger.warning("Skipping record %d: missing title", position)
        return None

    abstract = _clean_text(
        _first(data, "abstract", "abstractText", "abstract_text", "summary", "briefSummary")
    )
    journal = _clean_text(_first(data, "journal", "venue", "journalTitle", "journal_title"))
    pmid = clean_pmid(_first(data, "pmid", "PMID"))
    doi = clean_doi(_first(data, "doi", "DOI"))
    url = _clean_text(data.get("url")) or None
    year = parse_year(
        _first(data, "year", "publicationYear", "publication_year", "publishedDate", "published_date")
    )
    source = normalize_source(data.get("source"))

    study_type = coerce_study_type(_first(data, "studyType", "study_type"))
    if study_type == "Unknown":
        study_type = infer_study_type(title, abstract, source)

    is_guideline = bool(_first(data, "isGuideline", "is_guideline")) or study_type == "Guideline"
    guideline_org = _clean_text(_first(data, "guidelineOrg", "guideline_org")) or None
    if is_guideline and guideline_org is None:
        guideline_org = taxonomy.guideline_org_for(f"{title} {journal}") or "Other"

    evidence_level = _first(data, "evidenceLevel", "evidence_level")
    if evidence_level not in ("High", "Moderate", "Low"):
        evidence_level = _EVIDENCE_BY_STUDY_TYPE.get(study_type, "Unknown")

    try:
        return Citation(
            id=citation_id(pmid, doi, url, title, year),
            title=title,
            authors=clean_authors(data.get("authors")),
            journal=journal,
            year=year,
            abstract=abstract,
            source=source,
            study_type=study_type,
            evidence_level=evidence_level,
            is_guideline=is_guideline,
            guideline_org=guideline_org,
            pmid=pmid,
            doi=doi,
            url=url,
        )
    except ValidationError as exc:
        logger.warning(
            "Skipping record %d (%s): %d validation error(s)",
            position,
            title[:50],
            exc.error_count(),
        )
        return None


def _as_dict(raw: Any) -> dict | None:
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, BaseModel):
        return raw.model_dump()
    if hasattr(raw, "__dict__") and not isinstance(raw, type):
        return dict(vars(raw))
    return None


def _first(data: dict, *keys: str) -> Any:
    """First present, non-empty value among keys."""
    for key in keys:
        value = data.get(key)
        if value not in (None, "", []):
            return value
    return None


# ── Field Cleaning ───────────────────────────────────────────────────

_JUNK_VALUES = {"[object object]", "undefined", "null", "none"}


def _clean_text(value: Any) -> str:
    """Collapse whitespace; unwrap single-item lists (CrossRef titles)."""
    if isinstance(value, (list, tuple)):
        value = next((v for v in value if isinstance(v, str) and v.strip()), None)
    if not isinstance(value, str):
        return ""
    text = _SPACE_RE.sub(" ", value).strip()
    if text.lower() in _JUNK_VALUES:
        return ""
    return text


def clean_pmid(value: Any) -> Optional[str]:
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    text = _clean_text(value)
    if not text:
        return None
    text = re.sub(r"^https?://pubmed\.ncbi\.nlm\.nih\.gov/", "", text, flags=re.I)
    text = re.sub(r"^pmid:\s*", "", text, flags=re.I)
    return text.strip("/ ") or None


def clean_doi(value: Any) -> Optional[str]:
    text = _clean_text(value)
    if not text:
        return None
    text = re.sub(r"^https?://(dx\.)?doi\.org/", "", text, flags=re.I)
    text = re.sub(r"^doi:\s*", "", text, flags=re.I)
    return text.strip() or None


_YEAR_RE = re.compile(r"\b(1[89]\d{2}|2[01]\d{2})\b")


def parse_year(value: Any) -> Optional[int]:
    """Year from an int or a date-like string such as "2021 Jan" or "2021-03-04"."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 1800 <= value <= 2199 else None
    if isinstance(value, str):
        match = _YEAR_RE.search(value)
        if match:
            return int(match.group(1))
    return None


def clean_authors(value: Any) -> list[str]:
    """Flatten backend author shapes into display names, dropping junk."""
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        return []

    authors: list[str] = []
    for author in value:
        name = ""
        if isinstance(author, str):
            name = author.replace("{", "").replace("}", "").replace('"', "")
        elif isinstance(author, Mapping):
            if isinstance(author.get("name"), str):
                name = author["name"]
            elif author.get("given") and author.get("family"):
                name = f"{author['given']} {author['family']}"
            elif author.get("first_name") and author.get("last_name"):
                name = f"{author['first_name']} {author['last_name']}"
        name = _clean_text(name)
        if len(name) > 1:
            authors.append(name)
    return authors


# ── Classification ───────────────────────────────────────────────────

_SOURCE_ALIASES = {
    "pubmed": "PubMed",
    "europepmc": "Europe PMC",
    "europe-pmc": "Europe PMC",
    "semantic-scholar": "Semantic Scholar",
    "semanticscholar": "Semantic Scholar",
    "biorxiv": "bioRxiv/medRxiv",
    "medrxiv": "bioRxiv/medRxiv",
    "clinicaltrials": "ClinicalTrials.gov",
    "clinical trials": "ClinicalTrials.gov",
    "guidelines": "Clinical Guidelines",
    "nih-reporter": "NIH RePORTER",
    "fda": "FDA Drug Labels",
    "faers": "FDA FAERS",
}


def normalize_source(value: Any) -> str:
    """Map a backend name onto the known source set, else "Unknown"."""
    if not isinstance(value, str) or not value.strip():
        return "Unknown"
    key = value.strip().lower()
    for known in KNOWN_SOURCES:
        if known.lower() == key:
            return known
    return _SOURCE_ALIASES.get(key, "Unknown")


_STUDY_TYPE_ALIASES = {
    "randomized controlled trial": "RCT",
    "randomised controlled trial": "RCT",
    "observational study": "Observational",
    "case report": "Case Study",
    "clinical guideline": "Guideline",
    "practice guideline": "Guideline",
    "fda recall": "FDA Label",
}


def coerce_study_type(value: Any) -> str:
    if not isinstance(value, str):
        return "Unknown"
    key = value.strip().lower()
    for known in STUDY_TYPES:
        if known.lower() == key:
            return known
    return _STUDY_TYPE_ALIASES.get(key, "Unknown")


_SOURCE_STUDY_TYPES = {
    "FDA Drug Labels": "FDA Label",
    "FDA Recalls": "FDA Label",
    "FDA FAERS": "FAERS Report",
    "Clinical Guidelines": "Guideline",
}

_GUIDELINE_TITLE_PHRASES = (
    "guideline",
    "practice guideline",
    "scientific statement",
    "consensus statement",
    "position statement",
)

# First match wins; meta-analyses of randomized trials stay meta-analyses.
_STUDY_TYPE_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Meta-Analysis", ("meta-analysis", "meta analysis", "network meta-analysis")),
    ("Systematic Review", ("systematic review",)),
    ("RCT", ("randomized", "randomised", "RCT")),
    ("Cohort Study", ("cohort",)),
    ("Case-Control Study", ("case-control", "case control")),
    ("Case Study", ("case report", "case series")),
    ("Observational", ("observational", "cross-sectional", "registry")),
)

_EVIDENCE_BY_STUDY_TYPE = {
    "Meta-Analysis": "High",
    "Systematic Review": "High",
    "RCT": "High",
    "Guideline": "High",
    "Cohort Study": "Moderate",
    "Case-Control Study": "Moderate",
    "Observational": "Moderate",
    "FDA Label": "Moderate",
    "Review": "Low",
    "Case Study": "Low",
    "FAERS Report": "Low",
}


def infer_study_type(title: str, abstract: str = "", source: str = "Unknown") -> str:
    """Best-effort study design from source and text."""
    if source in _SOURCE_STUDY_TYPES:
        return _SOURCE_STUDY_TYPES[source]
    if contains_any(title, _GUIDELINE_TITLE_PHRASES):
        return "Guideline"
    text = f"{title} {abstract}"
    for study_type, phrases in _STUDY_TYPE_RULES:
        if contains_any(text, phrases):
            return study_type
    if contains_any(title, ("review",)):
        return "Review"
    return "Unknown"


# ── Helpers ──────────────────────────────────────────────────────────


_PUNCT_RE = re.compile(r"[^\w\s]", re.UNICODE)
_SPACE_RE = re.compile(r"\s+")


def normalize_title(title: str) -> str:
    """Lowercase, strip punctuation, collapse whitespace."""
    t = title.lower()
    t = _PUNCT_RE.sub("", t)
    t = _SPACE_RE.sub(" ", t).strip()
    return t
