"""
Unit tests for ComponentMatcherService.

Run: pytest tests/unit/test_component_matcher_service.py -v
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from models.component import Candidate, CatalogComponent
from models.matching import AIMatchResult, ComponentMatch, MatchingConfig, MatchResult, MatchType
from services.component_matcher_service import (
    ComponentMatcherService,
    combine_scores,
    string_similarity,
)
from tests.factories import ComponentFactory


class FakeSemanticMatcher:
    """Returns canned verdicts and records what it was asked."""

    def __init__(self, verdicts=None, error: Exception = None):
        self.verdicts = verdicts or []
        self.error = error
        self.calls = []

    def compare(self, candidate, components):
        self.calls.append((candidate, list(components)))
        if self.error:
            raise self.error
        return self.verdicts


def verdict(index: int, confidence: float, is_match: bool = True) -> AIMatchResult:
    return AIMatchResult(
        component_index=index,
        is_match=is_match,
        confidence=confidence,
        reasoning="same product",
    )


@pytest.fixture
def catalog(mock_supabase):
    rows = [
        ComponentFactory.create(
            id="cpu", team_id="team-a", name="S7-1500 CPU",
            manufacturer="Siemens", manufacturer_part_number="6ES7512-1DK01-0AB0",
        ),
        ComponentFactory.create(
            id="io", team_id="team-a", name="ET200SP IO module",
            manufacturer="Siemens", manufacturer_part_number="6ES7155-6AU01-0BN0",
        ),
        ComponentFactory.create(
            id="other-team", team_id="team-b", name="S7-1500 CPU",
            manufacturer="Siemens", manufacturer_part_number="6ES7512-1DK01-0AB0",
        ),
    ]
    mock_supabase.set_table_data("components", rows)
    return mock_supabase


def make_service(db, semantic=None) -> ComponentMatcherService:
    return ComponentMatcherService(db=db, semantic_matcher=semantic, config=MatchingConfig())


class TestScoring:
    """Tests for string_similarity() and combine_scores()"""

    def test_identical_after_normalization(self):
        assert string_similarity("6ES7 512-1DK01-0AB0", "6es75121dk010ab0") == 1.0

    def test_empty_side_scores_zero(self):
        assert string_similarity("", "") == 0.0
        assert string_similarity(None, "abc") == 0.0
        assert string_similarity("abc", "   ") == 0.0

    def test_symmetric_and_bounded(self):
        a, b = "Siemens", "SIEMENS AG"
        score = string_similarity(a, b)

        assert score == string_similarity(b, a)
        assert 0.0 <= score <= 1.0

    def test_combine_uses_weights(self):
        config = MatchingConfig()

        assert combine_scores(1.0, 1.0, 1.0, config) == 1.0
        assert combine_scores(1.0, 0.0, 0.0, config) == 0.5
        assert combine_scores(0.0, 1.0, 0.0, config) == 0.3
        assert combine_scores(0.0, 0.0, 1.0, config) == 0.2

    def test_combine_is_monotonic(self):
        config = MatchingConfig()
        low = combine_scores(0.4, 0.5, 0.6, config)

        assert combine_scores(0.5, 0.5, 0.6, config) >= low
        assert combine_scores(0.4, 0.6, 0.6, config) >= low
        assert combine_scores(0.4, 0.5, 0.7, config) >= low


class TestMatchingConfig:

    def test_defaults(self):
        config = MatchingConfig()

        assert (config.min_confidence, config.medium_confidence, config.high_confidence) == (0.6, 0.7, 0.9)
        assert config.ai_min_confidence == 0.85
        assert config.max_candidates == 3

    def test_weights_must_sum_to_one(self):
        with pytest.raises(PydanticValidationError):
            MatchingConfig(weight_part_number=0.6)

    def test_thresholds_must_be_ordered(self):
        with pytest.raises(PydanticValidationError):
            MatchingConfig(min_confidence=0.8, medium_confidence=0.7)


class TestMatchResultShape:

    def test_none_cannot_carry_matches(self):
        component = CatalogComponent(id="x")
        with pytest.raises(PydanticValidationError):
            MatchResult(
                match_type=MatchType.NONE,
                matches=[ComponentMatch(component=component, confidence=0.5, reasoning="")],
                candidate=Candidate(name="x"),
            )

    def test_exact_requires_full_confidence(self):
        component = CatalogComponent(id="x")
        with pytest.raises(PydanticValidationError):
            MatchResult(
                match_type=MatchType.EXACT,
                matches=[ComponentMatch(component=component, confidence=0.9, reasoning="")],
                candidate=Candidate(name="x"),
            )


class TestExactTier:
    """Tier 1: raw manufacturer + part number equality."""

    def test_exact_match(self, catalog):
        service = make_service(catalog)
        candidate = Candidate(name="CPU", manufacturer="Siemens", part_number="6ES7512-1DK01-0AB0")

        result = service.match_component(candidate, "team-a")

        assert result.match_type == MatchType.EXACT
        assert len(result.matches) == 1
        assert result.matches[0].component.id == "cpu"
        assert result.matches[0].confidence == 1.0

    def test_exact_is_scoped_to_team(self, catalog):
        service = make_service(catalog)
        candidate = Candidate(name="CPU", manufacturer="Siemens", part_number="6ES7512-1DK01-0AB0")

        result = service.match_component(candidate, "team-b")

        assert result.matches[0].component.id == "other-team"

    def test_exact_is_case_sensitive(self, catalog):
        """Case differences fall through to the fuzzy tier."""
        service = make_service(catalog)
        candidate = Candidate(name="S7-1500 CPU", manufacturer="SIEMENS", part_number="6es7512-1dk01-0ab0")

        result = service.match_component(candidate, "team-a")

        assert result.match_type == MatchType.FUZZY
        assert result.best.component.id == "cpu"

    def test_missing_manufacturer_skips_exact(self, catalog):
        service = make_service(catalog)
        candidate = Candidate(name="S7-1500 CPU", part_number="6ES7512-1DK01-0AB0")

        result = service.match_component(candidate, "team-a")

        assert result.match_type != MatchType.EXACT

    def test_store_failure_falls_through(self, catalog):
        catalog.fail_on("components", "select", nth=1)
        service = make_service(catalog)
        candidate = Candidate(name="S7-1500 CPU", manufacturer="Siemens", part_number="6ES7512-1DK01-0AB0")

        result = service.match_component(candidate, "team-a")

        assert result.match_type == MatchType.FUZZY
        assert result.best.component.id == "cpu"


class TestFuzzyTier:
    """Tier 2: weighted similarity."""

    def test_formatting_differences_are_high_confidence(self, catalog):
        service = make_service(catalog)
        candidate = Candidate(name="S7-1500 CPU", manufacturer="Siemens AG", part_number="6ES7 512-1DK01-0AB0")

        result = service.match_component(candidate, "team-a")

        assert result.match_type == MatchType.FUZZY
        assert result.best.component.id == "cpu"
        assert result.best.confidence >= 0.9
        assert result.best.reasoning.startswith("Fuzzy match:")

    def test_returns_at_most_three_sorted(self, mock_supabase):
        mock_supabase.set_table_data("components", [
            ComponentFactory.create(
                id=f"servo-{i}", team_id="team-a", name="Servo motor",
                manufacturer="Yaskawa", manufacturer_part_number="SGM7J-01A",
            )
            for i in range(5)
        ])
        service = make_service(mock_supabase)
        candidate = Candidate(name="Servo motor", manufacturer="Yaskawa", part_number="SGM7J 01A")

        result = service.match_component(candidate, "team-a")

        assert result.match_type == MatchType.FUZZY
        assert len(result.matches) == 3
        scores = [m.confidence for m in result.matches]
        assert scores == sorted(scores, reverse=True)

    def test_unrelated_candidate_is_none(self, catalog):
        service = make_service(catalog)
        candidate = Candidate(name="Gripper", manufacturer="Schunk", part_number="PGN-plus-P 80")

        result = service.match_component(candidate, "team-a")

        assert result.match_type == MatchType.NONE
        assert result.matches == []

    def test_empty_catalog_is_none(self, mock_supabase):
        service = make_service(mock_supabase)

        result = service.match_component(Candidate(name="Anything", part_number="X1"), "team-a")

        assert result.match_type == MatchType.NONE

    def test_fuzzy_query_failure_is_none(self, catalog):
        catalog.fail_on("components", "select")
        service = make_service(catalog)
        candidate = Candidate(name="S7-1500 CPU", manufacturer="Siemens", part_number="6ES7512-1DK01-0AB0")

        result = service.match_component(candidate, "team-a")

        assert result.match_type == MatchType.NONE


class TestSemanticTier:
    """Tier 3: medium-confidence candidates verified by the semantic matcher."""

    # Part number and name identical, manufacturer missing: 0.5 + 0.2 = 0.7
    MEDIUM = Candidate(name="S7-1500 CPU", part_number="6ES7512-1DK01-0AB0")

    def test_not_configured_gives_none(self, catalog):
        result = make_service(catalog).match_component(self.MEDIUM, "team-a")

        assert result.match_type == MatchType.NONE

    def test_confident_verdict_gives_ai_match(self, catalog):
        semantic = FakeSemanticMatcher([verdict(1, 0.92)])
        service = make_service(catalog, semantic)

        result = service.match_component(self.MEDIUM, "team-a")

        assert result.match_type == MatchType.AI
        assert result.best.component.id == "cpu"
        assert result.best.confidence == 0.92
        assert result.best.reasoning.startswith("AI verified:")
        assert len(semantic.calls[0][1]) <= 3

    def test_low_confidence_verdict_rejected(self, catalog):
        semantic = FakeSemanticMatcher([verdict(1, 0.8)])

        result = make_service(catalog, semantic).match_component(self.MEDIUM, "team-a")

        assert result.match_type == MatchType.NONE

    def test_non_match_verdict_rejected(self, catalog):
        semantic = FakeSemanticMatcher([verdict(1, 0.99, is_match=False)])

        result = make_service(catalog, semantic).match_component(self.MEDIUM, "team-a")

        assert result.match_type == MatchType.NONE

    def test_out_of_range_index_ignored(self, catalog):
        semantic = FakeSemanticMatcher([verdict(9, 0.99)])

        result = make_service(catalog, semantic).match_component(self.MEDIUM, "team-a")

        assert result.match_type == MatchType.NONE

    def test_semantic_failure_degrades_to_none(self, catalog):
        semantic = FakeSemanticMatcher(error=RuntimeError("api down"))

        result = make_service(catalog, semantic).match_component(self.MEDIUM, "team-a")

        assert result.match_type == MatchType.NONE

    def test_high_confidence_never_calls_semantic(self, catalog):
        semantic = FakeSemanticMatcher([verdict(1, 0.99)])
        candidate = Candidate(name="S7-1500 CPU", manufacturer="SIEMENS", part_number="6ES7 512-1DK01-0AB0")

        make_service(catalog, semantic).match_component(candidate, "team-a")

        assert semantic.calls == []

    def test_set_semantic_matcher(self, catalog):
        service = make_service(catalog)
        service.set_semantic_matcher(FakeSemanticMatcher([verdict(1, 0.9)]))

        assert service.match_component(self.MEDIUM, "team-a").match_type == MatchType.AI


class TestMatchComponents:

    def test_preserves_input_order(self, catalog):
        service = make_service(catalog)
        candidates = [
            Candidate(name="Unknown gadget", part_number="ZZZ-1"),
            Candidate(name="CPU", manufacturer="Siemens", part_number="6ES7512-1DK01-0AB0"),
        ]

        results = service.match_components(candidates, "team-a")

        assert [r.candidate.part_number for r in results] == ["ZZZ-1", "6ES7512-1DK01-0AB0"]
        assert results[0].match_type == MatchType.NONE
        assert results[1].match_type == MatchType.EXACT
