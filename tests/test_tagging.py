"""
Tests for relevance tagging.
"""

import json

from sourcewatch.models.domain import OrganizationProfile
from sourcewatch.services.data_ingestion.tagging import (
    OBJECTIVE_KEYWORDS,
    load_profile,
    profile_keywords,
    tag_article,
)


class TestTagArticle:
    """Tests for keyword matching and scoring."""

    def test_focus_area_match(self):
        profile = OrganizationProfile(focus_areas=["sea turtles"])

        result = tag_article("Protecting Sea Turtles on Florida beaches", "", profile)

        assert result.matched_keywords == ["sea turtles"]
        assert result.relevance_score == 25

    def test_preferred_term_scores_less(self):
        profile = OrganizationProfile(focus_areas=["otters"], preferred_terms=["river"])

        result = tag_article("River cleanup this weekend", "", profile)

        assert result.matched_keywords == ["river"]
        assert result.relevance_score == 15

    def test_excerpt_is_searched(self):
        profile = OrganizationProfile(focus_areas=["wetlands"])

        result = tag_article("Weekly update", "Restoring coastal wetlands.", profile)

        assert result.matched_keywords == ["wetlands"]

    def test_word_boundaries(self):
        """Keywords match whole words only."""
        profile = OrganizationProfile(preferred_terms=["law", "bat"])

        result = tag_article("Lawmakers debate combat training", "", profile)

        assert result.matched_keywords == []
        assert result.relevance_score == 0

    def test_keywords_with_punctuation(self):
        profile = OrganizationProfile(focus_areas=["c++", "u.s. fish"])

        result = tag_article("U.S. Fish and Wildlife grant", "Written in C++.", profile)

        assert result.matched_keywords == ["c++", "u.s. fish"]

    def test_objective_seed_terms(self):
        profile = OrganizationProfile(objectives=["volunteering"])

        result = tag_article("Volunteer beach day", "Join the community event", profile)

        assert result.matched_keywords == ["volunteer", "join", "community", "event"]
        assert result.relevance_score == 60

    def test_unknown_objective_ignored(self):
        profile = OrganizationProfile(objectives=["world-domination"])

        assert profile_keywords(profile) == []

    def test_score_clamped(self):
        profile = OrganizationProfile(focus_areas=["otter", "river", "beaver", "salmon", "heron"])

        result = tag_article("Otter, river, beaver, salmon and heron survey", "", profile)

        assert len(result.matched_keywords) == 5
        assert result.relevance_score == 100

    def test_normalization_and_dedup(self):
        """Keywords are trimmed and lowercased, deduplicated in first-seen order, and 1-char terms dropped."""
        profile = OrganizationProfile(
            focus_areas=["  Habitat ", "x"],
            preferred_terms=["habitat", "Species"],
            objectives=["species-info"],
        )

        keywords = profile_keywords(profile)

        assert keywords[:3] == ["habitat", "species", "wildlife"]
        assert keywords.count("habitat") == 1
        assert "x" not in keywords

    def test_duplicate_focus_term_scored_as_focus(self):
        profile = OrganizationProfile(focus_areas=["Habitat"], objectives=["habitat-info"])

        result = tag_article("Habitat restoration", "", profile)

        assert result.matched_keywords == ["habitat", "restoration"]
        assert result.relevance_score == 40

    def test_empty_profile(self):
        result = tag_article("Anything at all", "", OrganizationProfile())

        assert result.matched_keywords == []
        assert result.relevance_score == 0

    def test_all_objectives_have_seed_terms(self):
        assert len(OBJECTIVE_KEYWORDS) == 8
        assert all(len(terms) == 5 for terms in OBJECTIVE_KEYWORDS.values())


class TestLoadProfile:
    def test_load_from_json(self, tmp_path):
        path = tmp_path / "org_profile.json"
        path.write_text(json.dumps({
            "focus_areas": ["sea turtles"],
            "preferred_terms": ["nesting"],
            "objectives": ["education"],
        }))

        profile = load_profile(path)

        assert profile.focus_areas == ["sea turtles"]
        assert profile.objectives == ["education"]

    def test_missing_file_gives_empty_profile(self, tmp_path):
        profile = load_profile(tmp_path / "absent.json")

        assert profile == OrganizationProfile()
