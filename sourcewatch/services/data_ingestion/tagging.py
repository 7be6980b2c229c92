"""
Keyword relevance tagging against an organization profile.
"""

import logging
import re
from pathlib import Path
from typing import Union

from sourcewatch.models.domain import Objective, OrganizationProfile, TagResult

logger = logging.getLogger(__name__)

FOCUS_AREA_POINTS = 25
KEYWORD_POINTS = 15
MAX_SCORE = 100
MIN_KEYWORD_LENGTH = 2

# Seed terms added for each enabled objective
OBJECTIVE_KEYWORDS: dict[str, list[str]] = {
    Objective.EDUCATION.value: ["learn", "science", "research", "study", "discovery"],
    Objective.AWARENESS.value: ["campaign", "awareness", "impact", "threat", "crisis"],
    Objective.DONATIONS.value: ["donate", "support", "fund", "contribute", "sponsor"],
    Objective.NEWS.value: ["news", "update", "announcement", "milestone", "achievement"],
    Objective.SPECIES_INFO.value: ["species", "wildlife", "animal", "population", "habitat"],
    Objective.HABITAT_INFO.value: ["ecosystem", "habitat", "environment", "restoration", "conservation"],
    Objective.ADVOCACY.value: ["policy", "legislation", "advocate", "protect", "law"],
    Objective.VOLUNTEERING.value: ["volunteer", "join", "help", "community", "event"],
}


def _normalize(terms: list[str]) -> list[str]:
    """Lowercase, trim and dedupe keeping first occurrence; drop very short terms."""
    seen: list[str] = []
    for term in terms:
        term = (term or "").strip().lower()
        if len(term) >= MIN_KEYWORD_LENGTH and term not in seen:
            seen.append(term)
    return seen


def profile_keywords(profile: OrganizationProfile) -> list[str]:
    """All keywords a profile matches on, in scoring order."""
    keywords = list(profile.focus_areas) + list(profile.preferred_terms)
    for objective in profile.objectives:
        keywords.extend(OBJECTIVE_KEYWORDS.get(objective, []))
    return _normalize(keywords)


def _contains_word(text: str, keyword: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(keyword)}(?!\w)", text) is not None


def tag_article(title: str, excerpt: str, profile: OrganizationProfile) -> TagResult:
    """
    Score an article's relevance to a profile.

    Focus-area matches are worth 25 points and every other match 15; the
    total is clamped to 100.

    >>> tag_article("Protecting sea turtles", "", OrganizationProfile(focus_areas=["Sea Turtles"]))
    TagResult(matched_keywords=['sea turtles'], relevance_score=25)
    """
    text = f"{title} {excerpt}".lower()
    focus_areas = set(_normalize(profile.focus_areas))

    matched = [keyword for keyword in profile_keywords(profile) if _contains_word(text, keyword)]

    score = sum(FOCUS_AREA_POINTS if keyword in focus_areas else KEYWORD_POINTS for keyword in matched)
    return TagResult(matched_keywords=matched, relevance_score=min(MAX_SCORE, score))


def load_profile(path: Union[str, Path]) -> OrganizationProfile:
    """
    Read an organization profile from a JSON file.

    A missing file yields an empty profile, which scores every article 0.
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"Organization profile {path} not found; using an empty profile")
        return OrganizationProfile()
    return OrganizationProfile.model_validate_json(path.read_text(encoding="utf-8"))
