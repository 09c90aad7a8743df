"""Citation taxonomy: YAML parser, Pydantic models, phrase matching, and fingerprinting."""

import hashlib
import json
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_TAXONOMY_PATH = (
    Path(__file__).resolve().parent.parent / "taxonomies" / "cardiometabolic_v1.yaml"
)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


def _clean_phrases(v: list[str]) -> list[str]:
    cleaned = [p.strip() for p in v]
    if any(not p for p in cleaned):
        raise ValueError("Phrase lists must not contain empty entries")
    return cleaned


# ── Scoring Weights ──────────────────────────────────────────────────


class ScoringWeights(_Frozen):
    """Point values for each quality signal.

    Magnitudes are tunable; their relative order is not.
    """

    landmark_trial: float = 100
    guideline: float = 80
    high_quality_evidence: float = 70
    venue: float = 60
    topic_domain: float = 40
    named_intervention: float = 30
    comparative: float = 25
    recent: float = 20
    older_recent: float = 10
    low_quality_penalty: float = Field(default=50, ge=0)
    off_topic_penalty: float = Field(default=30, ge=0)

    @model_validator(mode="after")
    def preserves_signal_order(self) -> "ScoringWeights":
        ladder = [
            ("landmark_trial", self.landmark_trial),
            ("guideline", self.guideline),
            ("high_quality_evidence", self.high_quality_evidence),
            ("venue", self.venue),
            ("topic_domain", self.topic_domain),
            ("named_intervention", self.named_intervention),
            ("recent", self.recent),
            ("older_recent", self.older_recent),
        ]
        for (hi_name, hi), (lo_name, lo) in zip(ladder, ladder[1:]):
            # guideline and high-quality evidence may tie
            if hi_name == "guideline" and hi == lo:
                continue
            if hi <= lo:
                raise ValueError(f"{hi_name} ({hi}) must be > {lo_name} ({lo})")
        if self.older_recent < 0 or self.comparative < 0:
            raise ValueError("Bonuses must be non-negative")
        return self


# ── Topic Domains ────────────────────────────────────────────────────


class TopicDomain(_Frozen):
    """A clinical domain made of named keyword clusters."""

    name: str
    bonus: Optional[float] = None
    clusters: dict[str, list[str]]

    @field_validator("clusters")
    @classmethod
    def clusters_not_empty(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        if not v:
            raise ValueError("A topic domain needs at least one cluster")
        return {name: _clean_phrases(terms) for name, terms in v.items()}

    def keywords(self) -> list[str]:
        return [term for terms in self.clusters.values() for term in terms]


# ── Relevance Seeds ──────────────────────────────────────────────────


class HardExclusion(_Frozen):
    """Patterns that make a record irrelevant regardless of other matches.

    ``applies_when`` is a list of term groups; the exclusion is active only
    when every group has at least one term in the query. Empty means always.
    """

    name: str
    reason: str
    patterns: list[str] = Field(min_length=1)
    applies_when: list[list[str]] = Field(default_factory=list)

    @field_validator("patterns")
    @classmethod
    def clean_patterns(cls, v: list[str]) -> list[str]:
        return _clean_phrases(v)

    def applies_to(self, query: str) -> bool:
        return all(contains_any(query, group) for group in self.applies_when)


class TermGroup(_Frozen):
    label: str
    terms: list[str] = Field(min_length=1)


class ComparisonSeed(_Frozen):
    """Two comparable interventions (e.g. drug classes) a query may contrast."""

    name: str
    first: TermGroup
    second: TermGroup
    condition_terms: list[str] = Field(default_factory=list)
    background_terms: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def distinct_arms(self) -> "ComparisonSeed":
        if self.first.label.lower() == self.second.label.lower():
            raise ValueError(f"Comparison {self.name!r} needs two distinct arms")
        return self


class FocusedTopicSeed(_Frozen):
    """A condition + intervention pair a query may ask about."""

    name: str
    condition: TermGroup
    intervention: TermGroup
    population_terms: list[str] = Field(default_factory=list)


# ── Expected Evidence ────────────────────────────────────────────────


class ExpectedItem(_Frozen):
    """A trial or guideline a complete answer on a topic should cite."""

    name: str
    kind: Literal["trial", "guideline"]
    terms: list[str] = Field(min_length=1)
    rationale: str
    pmid: Optional[str] = None


class InterventionCategory(_Frozen):
    name: str
    keywords: list[str] = Field(min_length=1)


class ExpectedEvidence(_Frozen):
    """Expected landmark evidence and intervention categories for one topic."""

    topic: str
    triggers: list[str] = Field(min_length=1)
    items: list[ExpectedItem] = Field(default_factory=list)
    categories: list[InterventionCategory] = Field(default_factory=list)


# ── Taxonomy (top-level) ─────────────────────────────────────────────


class Taxonomy(_Frozen):
    """Top-level model for the static phrase catalogs used by every scorer."""

    name: str
    version: str
    weights: ScoringWeights = Field(default_factory=ScoringWeights)

    landmark_trials: list[str]
    guideline_keywords: list[str]
    guideline_bodies: dict[str, list[str]] = Field(default_factory=dict)
    high_priority_sources: list[str]
    high_quality_evidence: list[str]
    rct_keywords: list[str]
    low_quality_indicators: list[str]
    off_topic_content: list[str] = Field(default_factory=list)
    very_low_quality: list[str]
    named_interventions: list[str] = Field(default_factory=list)
    comparative_keywords: list[str] = Field(default_factory=list)
    drug_classes: dict[str, list[str]] = Field(default_factory=dict)

    topic_domains: list[TopicDomain] = Field(default_factory=list)
    hard_exclusions: list[HardExclusion] = Field(default_factory=list)
    comparisons: list[ComparisonSeed] = Field(default_factory=list)
    focused_topics: list[FocusedTopicSeed] = Field(default_factory=list)
    expected_evidence: list[ExpectedEvidence] = Field(default_factory=list)

    @field_validator(
        "landmark_trials",
        "guideline_keywords",
        "high_priority_sources",
        "high_quality_evidence",
        "rct_keywords",
        "low_quality_indicators",
        "very_low_quality",
    )
    @classmethod
    def required_phrases(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("Required phrase list is empty")
        return _clean_phrases(v)

    @field_validator("off_topic_content", "named_interventions", "comparative_keywords")
    @classmethod
    def optional_phrases(cls, v: list[str]) -> list[str]:
        return _clean_phrases(v)

    @model_validator(mode="after")
    def domain_bonus_in_band(self) -> "Taxonomy":
        w = self.weights
        for domain in self.topic_domains:
            if domain.bonus is not None and not (w.named_intervention < domain.bonus < w.venue):
                raise ValueError(
                    f"Domain {domain.name!r} bonus {domain.bonus} must sit between "
                    f"named_intervention ({w.named_intervention}) and venue ({w.venue})"
                )
        return self

    # ── Lookups ──────────────────────────────────────────────────

    def expected_for(self, topic: str) -> Optional[ExpectedEvidence]:
        for entry in self.expected_evidence:
            if entry.topic == topic:
                return entry
        return None

    def guideline_org_for(self, text: str) -> Optional[str]:
        """Short code of the first guideline body named in text, if any."""
        for code, names in self.guideline_bodies.items():
            if contains_any(text, names):
                return code
        return None

    # ── Fingerprint ──────────────────────────────────────────────

    def fingerprint(self) -> str:
        """SHA-256 of the whole taxonomy (canonical JSON)."""
        return _canonical_hash(self.model_dump())


# ── Phrase Matching ──────────────────────────────────────────────────


def _is_acronym(phrase: str) -> bool:
    return any(c.isalpha() for c in phrase) and phrase == phrase.upper()


def _phrase_regex(phrase: str) -> str:
    body = re.escape(phrase.strip()).replace(r"\ ", r"\s+")
    return body if _is_acronym(phrase) else f"(?i:{body})"


@lru_cache(maxsize=512)
def _compile(phrases: tuple[str, ...]) -> Optional[re.Pattern]:
    if not phrases:
        return None
    alternatives = "|".join(_phrase_regex(p) for p in phrases)
    return re.compile(rf"(?<![A-Za-z0-9])(?:{alternatives})(?i:e?s)?(?![A-Za-z0-9])")


def contains_any(text: Optional[str], phrases) -> bool:
    """True if any phrase occurs in text as a whole term.

    All-capital phrases (acronyms) match case-sensitively; the rest
    case-insensitively. A trailing plural "s"/"es" is tolerated.
    """
    if not text:
        return False
    pattern = _compile(tuple(phrases))
    return bool(pattern and pattern.search(text))


def matched_phrases(text: Optional[str], phrases) -> list[str]:
    """Phrases from the list that occur in text, in list order."""
    if not text:
        return []
    return [p for p in phrases if _compile((p,)).search(text)]


# ── Helpers ──────────────────────────────────────────────────────────


def _canonical_hash(data: dict) -> str:
    """Deterministic SHA-256 hash of a dict via sorted-key JSON."""
    blob = json.dumps(data, sort_keys=True, default=str).encode()
    return hashlib.sha256(blob).hexdigest()


def load_taxonomy(path: str | Path) -> Taxonomy:
    """Load a YAML taxonomy from disk and return a validated model."""
    path = Path(path)
    with open(path) as f:
        raw = yaml.safe_load(f)
    taxonomy = Taxonomy.model_validate(raw)
    logger.info(
        "Loaded taxonomy %s (v%s) from %s", taxonomy.name, taxonomy.version, path
    )
    return taxonomy


@lru_cache(maxsize=1)
def default_taxonomy() -> Taxonomy:
    """The shipped taxonomy, loaded once per process."""
    return load_taxonomy(DEFAULT_TAXONOMY_PATH)
