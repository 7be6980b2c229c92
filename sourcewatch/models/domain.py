"""
Domain models for sourcewatch.
These are the core business entities, independent of database representation.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================

class SourceKind(str, Enum):
    """How a monitored source is read."""
    FEED = "feed"  # RSS / Atom syndication document
    PAGE = "page"  # Ordinary HTML page scanned heuristically


class SweepTrigger(str, Enum):
    """What started a sweep."""
    SCHEDULED = "scheduled"  # Every due source
    MANUAL = "manual"  # One source, due filter bypassed


class Objective(str, Enum):
    """Communication objectives an organization can enable."""
    EDUCATION = "education"
    AWARENESS = "awareness"
    DONATIONS = "donations"
    NEWS = "news"
    SPECIES_INFO = "species-info"
    HABITAT_INFO = "habitat-info"
    ADVOCACY = "advocacy"
    VOLUNTEERING = "volunteering"


# =============================================================================
# Sources
# =============================================================================

class MonitoredSource(BaseModel):
    """An externally configured feed or page polled on an interval."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    url: str  # Canonical URL, unique across sources
    kind: SourceKind
    enabled: bool = True
    last_fetched_at: Optional[datetime] = None
    fetch_interval_hours: int = Field(default=24, gt=0)
    created_at: datetime


class DetectedFeed(BaseModel):
    """Outcome of classifying a URL at source creation time."""
    kind: SourceKind
    feed_url: str
    name: str


# =============================================================================
# Articles
# =============================================================================

class ArticleCandidate(BaseModel):
    """An article extracted and tagged during a sweep, before persistence."""
    source_id: str
    source_name: str
    title: str
    url: str
    published_at: Optional[datetime] = None
    excerpt: str = ""
    matched_keywords: list[str] = Field(default_factory=list)
    relevance_score: int = Field(default=0, ge=0, le=100)


class ExtractedArticle(BaseModel):
    """A persisted article. Only `promoted` changes after creation."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    source_id: str
    source_name: str
    title: str
    url: str
    published_at: Optional[datetime] = None
    fetched_at: datetime
    excerpt: str = ""
    matched_keywords: list[str] = Field(default_factory=list)
    relevance_score: int = Field(default=0, ge=0, le=100)
    promoted: bool = False


class AddResult(BaseModel):
    """Result of handing a candidate to the ingestion writer."""
    article: ExtractedArticle
    was_new: bool


# =============================================================================
# Organization profile
# =============================================================================

class OrganizationProfile(BaseModel):
    """Keyword profile consumed by the relevance tagger."""
    focus_areas: list[str] = Field(default_factory=list)
    preferred_terms: list[str] = Field(default_factory=list)
    # Plain strings so unknown objectives in stored profiles do not fail validation
    objectives: list[str] = Field(default_factory=list)


class TagResult(BaseModel):
    """Keywords matched in an article and the resulting relevance score."""
    matched_keywords: list[str] = Field(default_factory=list)
    relevance_score: int = Field(default=0, ge=0, le=100)


# =============================================================================
# Sweep results
# =============================================================================

class SourceResult(BaseModel):
    """Outcome of processing one source."""
    source_id: str
    source_name: str
    new_articles: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    def __str__(self) -> str:
        status = "✓" if self.success else "✗"
        return (
            f"{status} {self.source_name}: "
            f"new={self.new_articles}, errors={len(self.errors)}"
        )


class SweepResult(BaseModel):
    """Aggregated outcome of a sweep."""
    trigger: SweepTrigger
    sources_processed: int = 0
    total_new_articles: int = 0
    total_errors: int = 0
    per_source: list[SourceResult] = Field(default_factory=list)

    @classmethod
    def from_results(cls, trigger: SweepTrigger, results: list[SourceResult]) -> "SweepResult":
        return cls(
            trigger=trigger,
            sources_processed=len(results),
            total_new_articles=sum(r.new_articles for r in results),
            total_errors=sum(len(r.errors) for r in results),
            per_source=results,
        )
