"""Shared data models for citation records."""

from typing import Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Source = Literal[
    "PubMed",
    "Europe PMC",
    "Semantic Scholar",
    "CrossRef",
    "OpenAlex",
    "DOAJ",
    "bioRxiv/medRxiv",
    "ClinicalTrials.gov",
    "Clinical Guidelines",
    "NIH RePORTER",
    "FDA Drug Labels",
    "FDA FAERS",
    "FDA Recalls",
    "Fallback",
    "Unknown",
]

StudyType = Literal[
    "RCT",
    "Meta-Analysis",
    "Systematic Review",
    "Guideline",
    "Observational",
    "Cohort Study",
    "Case-Control Study",
    "Case Study",
    "Review",
    "FDA Label",
    "FAERS Report",
    "Unknown",
]

EvidenceLevel = Literal["High", "Moderate", "Low", "Unknown"]

RelevanceCategory = Literal[
    "excellent", "good", "moderate", "poor", "irrelevant", "unknown"
]

KNOWN_SOURCES: tuple[str, ...] = get_args(Source)
STUDY_TYPES: tuple[str, ...] = get_args(StudyType)


class Citation(BaseModel):
    """A single normalized citation, plus the scores computed for it.

    Field names are snake_case; camelCase aliases (``studyType``,
    ``relevanceScore``...) are accepted on input and produced by
    ``model_dump(by_alias=True)``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str = Field(min_length=1)
    authors: list[str] = Field(default_factory=list)
    journal: str = ""
    year: Optional[int] = None
    abstract: str = ""

    source: Source = "Unknown"
    study_type: StudyType = "Unknown"
    evidence_level: EvidenceLevel = "Unknown"
    is_guideline: bool = False
    guideline_org: Optional[str] = None

    pmid: Optional[str] = None
    doi: Optional[str] = None
    url: Optional[str] = None

    quality_score: float = Field(default=0.0, ge=0.0)
    relevance_score: float = Field(default=0.0, ge=0.0, le=100.0)
    relevance_category: RelevanceCategory = "unknown"
    relevance_warning: Optional[str] = None

    @property
    def is_resolvable(self) -> bool:
        """True when the presentation layer can link to the record."""
        return bool(self.pmid or self.doi or self.url)

    @property
    def link(self) -> Optional[str]:
        """Best external link, or None. Never synthesizes identifiers."""
        if self.url:
            return self.url
        if self.doi:
            return f"https://doi.org/{self.doi}"
        if self.pmid:
            return f"https://pubmed.ncbi.nlm.nih.gov/{self.pmid}/"
        return None

    @property
    def full_text(self) -> str:
        """Title, journal and abstract joined for phrase matching."""
        return " ".join(part for part in (self.title, self.journal, self.abstract) if part)

    @property
    def title_abstract(self) -> str:
        return f"{self.title} {self.abstract}".strip()
