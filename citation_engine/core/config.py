"""Ranking configuration: tunable thresholds and the YAML loader."""

from datetime import date
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, model_validator

from citation_engine.core.taxonomy import Taxonomy, default_taxonomy, load_taxonomy


class RankingConfig(BaseModel):
    """Tunables for one ranking run."""

    max_results: int = Field(default=12, ge=1, description="Display cap for ranked citations")
    narrow_scope_threshold: int = Field(
        default=4, ge=1, description="Missing intervention categories that trigger a scope warning"
    )
    recent_window_years: int = Field(default=5, ge=0)
    older_window_years: int = Field(default=10, ge=0)
    reference_year: Optional[int] = Field(
        default=None, description="Year recency is measured from; defaults to the current year"
    )
    drop_irrelevant: bool = False
    taxonomy_path: Optional[Path] = None

    @model_validator(mode="after")
    def windows_ordered(self) -> "RankingConfig":
        if self.older_window_years <= self.recent_window_years:
            raise ValueError(
                f"older_window_years ({self.older_window_years}) must exceed "
                f"recent_window_years ({self.recent_window_years})"
            )
        return self

    def resolved_reference_year(self) -> int:
        return self.reference_year if self.reference_year is not None else date.today().year

    def load_taxonomy(self) -> Taxonomy:
        if self.taxonomy_path is None:
            return default_taxonomy()
        return load_taxonomy(self.taxonomy_path)


def load_ranking_config(path: str | Path) -> RankingConfig:
    """Load a YAML ranking config; relative taxonomy paths resolve next to it."""
    path = Path(path)
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    config = RankingConfig.model_validate(raw)
    if config.taxonomy_path is not None and not config.taxonomy_path.is_absolute():
        config = config.model_copy(
            update={"taxonomy_path": (path.parent / config.taxonomy_path).resolve()}
        )
    return config
