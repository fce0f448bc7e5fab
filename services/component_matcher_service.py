"""
Component matcher service.

Decides whether an extracted supplier-quote line is a component the team
already has. Three tiers, each tried only when the previous one is not
conclusive:

    1. Exact    - raw manufacturer + part number equality (cheap, deterministic)
    2. Fuzzy    - weighted similarity over normalized identifiers
    3. Semantic - Claude verifies medium-confidence fuzzy candidates

Tiers run strictly one after another per candidate. Store or API failures
inside a tier are logged and treated as "no matches from this tier"; the
matcher never raises to its caller.
"""

from typing import Optional, Protocol, Sequence

import structlog
from rapidfuzz import fuzz

from config import get_supabase_client, settings
from models.component import Candidate, CatalogComponent, component_from_row
from models.matching import (
    AIMatchResult,
    ComponentMatch,
    FuzzyMatchReason,
    FuzzyMatchResult,
    MatchingConfig,
    MatchResult,
    MatchType,
)
from utils.text_utils import normalize_identifier

logger = structlog.get_logger(__name__)


class SemanticMatcher(Protocol):
    """Anything that can judge candidates the way ClaudeMatchService does."""

    def compare(
        self,
        candidate: Candidate,
        components: Sequence[CatalogComponent],
    ) -> list[AIMatchResult]:
        ...


# ===================
# SCORING
# ===================

def string_similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Similarity of two identifiers in [0, 1] after normalization.

    An empty side scores 0 so that two missing part numbers never look
    alike.
    """
    left = normalize_identifier(a)
    right = normalize_identifier(b)
    if not left or not right:
        return 0.0
    return fuzz.ratio(left, right) / 100.0


def combine_scores(
    part_number_score: float,
    manufacturer_score: float,
    name_score: float,
    config: MatchingConfig,
) -> float:
    """Weighted sum; non-decreasing in each component score."""
    overall = (
        part_number_score * config.weight_part_number
        + manufacturer_score * config.weight_manufacturer
        + name_score * config.weight_name
    )
    return round(min(max(overall, 0.0), 1.0), 6)


def score_component(
    candidate: Candidate,
    component: CatalogComponent,
    config: MatchingConfig,
) -> FuzzyMatchReason:
    """Per-field and overall similarity between a candidate and a catalog row."""
    part_number_score = string_similarity(candidate.part_number, component.part_number)
    manufacturer_score = string_similarity(candidate.manufacturer, component.manufacturer)
    name_score = string_similarity(candidate.name, component.name)

    return FuzzyMatchReason(
        manufacturer_similarity=manufacturer_score,
        part_number_similarity=part_number_score,
        name_similarity=name_score,
        overall_score=combine_scores(part_number_score, manufacturer_score, name_score, config),
    )


class ComponentMatcherService:
    """
    Three-tier component identity resolution.

    Usage:
        matcher = ComponentMatcherService(semantic_matcher=ClaudeMatchService())
        result = matcher.match_component(candidate, team_id)
    """

    def __init__(
        self,
        db=None,
        semantic_matcher: Optional[SemanticMatcher] = None,
        config: Optional[MatchingConfig] = None,
    ):
        self.db = db or get_supabase_client()
        self.semantic_matcher = semantic_matcher
        self.config = config or MatchingConfig.from_settings(settings)
        self.table = "components"

    def set_semantic_matcher(self, semantic_matcher: Optional[SemanticMatcher]) -> None:
        """Swap the semantic collaborator (e.g. after a credential change)."""
        self.semantic_matcher = semantic_matcher
        logger.info("semantic_matcher_updated", configured=semantic_matcher is not None)

    # ===================
    # ENTRY POINTS
    # ===================

    def match_component(self, candidate: Candidate, team_id: str) -> MatchResult:
        """
        Resolve one candidate against the team's catalog.

        Args:
            candidate: Extracted component
            team_id: Team whose library is searched

        Returns:
            MatchResult; NONE is a normal outcome meaning "new component"
        """
        logger.debug("match_tier_exact", part_number=candidate.part_number)
        exact = self._exact_match(candidate, team_id)
        if exact is not None:
            logger.info("match_found", match_type="exact", component_id=exact.id)
            return MatchResult(
                match_type=MatchType.EXACT,
                matches=[ComponentMatch(
                    component=exact,
                    confidence=1.0,
                    reasoning="Exact match on manufacturer and part number",
                )],
                candidate=candidate,
            )

        logger.debug("match_tier_fuzzy", part_number=candidate.part_number)
        fuzzy_results = self._fuzzy_match(candidate, team_id)
        if not fuzzy_results:
            logger.info("match_not_found", reason="no_fuzzy_candidates")
            return self._no_match(candidate)

        best = fuzzy_results[0]
        top = fuzzy_results[:self.config.max_candidates]
        logger.debug("best_fuzzy_score", score=best.match_score, component_id=best.component.id)

        if best.match_score >= self.config.high_confidence:
            logger.info("match_found", match_type="fuzzy", score=best.match_score)
            return MatchResult(
                match_type=MatchType.FUZZY,
                matches=[
                    ComponentMatch(
                        component=r.component,
                        confidence=r.match_score,
                        reasoning=r.describe(),
                    )
                    for r in top
                ],
                candidate=candidate,
            )

        if best.match_score >= self.config.medium_confidence:
            logger.debug("match_tier_semantic", candidates=len(top))
            ai_match = self._semantic_match(candidate, [r.component for r in top])
            if ai_match is not None:
                logger.info(
                    "match_found",
                    match_type="ai",
                    component_id=ai_match.component.id,
                    confidence=ai_match.confidence,
                )
                return MatchResult(
                    match_type=MatchType.AI,
                    matches=[ai_match],
                    candidate=candidate,
                )

        logger.info("match_not_found", reason="no_confident_match", best_score=best.match_score)
        return self._no_match(candidate)

    def match_components(self, candidates: list[Candidate], team_id: str) -> list[MatchResult]:
        """Resolve candidates one at a time, in order."""
        results = []
        for candidate in candidates:
            results.append(self.match_component(candidate, team_id))

        logger.info(
            "batch_match_completed",
            total=len(results),
            matched=sum(1 for r in results if r.match_type != MatchType.NONE),
        )
        return results

    # ===================
    # TIERS
    # ===================

    def _exact_match(self, candidate: Candidate, team_id: str) -> Optional[CatalogComponent]:
        """
        Tier 1: raw, case-sensitive equality on manufacturer + part number.

        Skipped when either field is missing on the candidate.
        """
        if not candidate.manufacturer or not candidate.part_number:
            return None

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("team_id", team_id)
                .eq("manufacturer", candidate.manufacturer)
                .eq("manufacturer_part_number", candidate.part_number)
                .order("created_at")
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("exact_match_failed", error=str(e))
            return None

        if not result.data:
            return None
        return component_from_row(result.data[0])

    def _fuzzy_match(self, candidate: Candidate, team_id: str) -> list[FuzzyMatchResult]:
        """
        Tier 2: score every catalog row, keep those >= min confidence.

        Returns:
            Results sorted best first
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("team_id", team_id)
                .execute()
            )
        except Exception as e:
            logger.error("fuzzy_match_query_failed", error=str(e))
            return []

        candidates = []
        for row in result.data or []:
            component = component_from_row(row)
            reasons = score_component(candidate, component, self.config)
            if reasons.overall_score >= self.config.min_confidence:
                candidates.append(FuzzyMatchResult(
                    component=component,
                    match_score=reasons.overall_score,
                    match_reasons=reasons,
                ))

        candidates.sort(key=lambda r: r.match_score, reverse=True)
        return candidates

    def _semantic_match(
        self,
        candidate: Candidate,
        components: list[CatalogComponent],
    ) -> Optional[ComponentMatch]:
        """
        Tier 3: let the semantic collaborator verify the top fuzzy hits.

        Only verdicts with isMatch and confidence >= ai_min_confidence count;
        the highest-confidence one wins.
        """
        if self.semantic_matcher is None:
            logger.debug("semantic_matcher_not_configured")
            return None

        try:
            verdicts = self.semantic_matcher.compare(candidate, components)
        except Exception as e:
            logger.error("semantic_match_failed", error=str(e), error_type=type(e).__name__)
            return None

        accepted = [
            v for v in verdicts
            if v.is_match
            and v.confidence >= self.config.ai_min_confidence
            and 1 <= v.component_index <= len(components)
        ]
        if not accepted:
            return None

        best = max(accepted, key=lambda v: v.confidence)
        return ComponentMatch(
            component=components[best.component_index - 1],
            confidence=best.confidence,
            reasoning=f"AI verified: {best.reasoning}",
        )

    @staticmethod
    def _no_match(candidate: Candidate) -> MatchResult:
        return MatchResult(match_type=MatchType.NONE, matches=[], candidate=candidate)


# Singleton instance
_matcher_service: Optional[ComponentMatcherService] = None


def get_matcher_service() -> ComponentMatcherService:
    """Get or create ComponentMatcherService instance (wired to Claude)."""
    global _matcher_service
    if _matcher_service is None:
        from services.claude_match_service import ClaudeMatchService
        _matcher_service = ComponentMatcherService(semantic_matcher=ClaudeMatchService())
    return _matcher_service
