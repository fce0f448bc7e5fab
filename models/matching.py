"""
Component matching schemas.

MatchResult invariants:
    - matchType EXACT -> exactly one match with confidence 1.0
    - matchType NONE  -> empty match list
"""

from enum import Enum
from typing import Optional

from pydantic import Field, model_validator

from models.base import BaseSchema, CamelSchema
from models.component import Candidate, CatalogComponent


class MatchType(str, Enum):
    """Which tier produced the result."""
    EXACT = "exact"
    FUZZY = "fuzzy"
    AI = "ai"
    NONE = "none"


class AIRecommendation(str, Enum):
    """Semantic tier verdict."""
    SAME_COMPONENT = "same_component"
    DIFFERENT_COMPONENT = "different_component"
    UNCERTAIN = "uncertain"


class FuzzyMatchReason(BaseSchema):
    """Per-field similarity breakdown, each in [0, 1]."""
    manufacturer_similarity: float = Field(..., ge=0, le=1)
    part_number_similarity: float = Field(..., ge=0, le=1)
    name_similarity: float = Field(..., ge=0, le=1)
    overall_score: float = Field(..., ge=0, le=1)


class FuzzyMatchResult(BaseSchema):
    """A catalog row that cleared the minimum fuzzy score."""
    component: CatalogComponent
    match_score: float = Field(..., ge=0, le=1)
    match_reasons: FuzzyMatchReason

    def describe(self) -> str:
        """Human-readable per-field percentages."""
        r = self.match_reasons
        return (
            f"Fuzzy match: Manufacturer {r.manufacturer_similarity * 100:.0f}%, "
            f"PN {r.part_number_similarity * 100:.0f}%, "
            f"Name {r.name_similarity * 100:.0f}%"
        )


class AIMatchResult(CamelSchema):
    """
    One verdict from the semantic collaborator.

    component_index is 1-based into the candidates sent in the prompt.
    """
    component_index: int = Field(..., ge=1)
    is_match: bool
    confidence: float = Field(..., ge=0, le=1)
    reasoning: str = ""
    recommendation: AIRecommendation = AIRecommendation.UNCERTAIN


class ComponentMatch(BaseSchema):
    """A matched catalog component with confidence and explanation."""
    component: CatalogComponent
    confidence: float = Field(..., ge=0, le=1)
    reasoning: str


class MatchResult(BaseSchema):
    """Outcome of resolving one candidate against a catalog."""
    match_type: MatchType
    matches: list[ComponentMatch] = Field(default_factory=list)
    candidate: Candidate

    @model_validator(mode="after")
    def check_shape(self) -> "MatchResult":
        """Enforce the exact/none shape invariants."""
        if self.match_type == MatchType.EXACT:
            if len(self.matches) != 1 or self.matches[0].confidence != 1.0:
                raise ValueError("exact match must carry a single match with confidence 1.0")
        if self.match_type == MatchType.NONE and self.matches:
            raise ValueError("match type 'none' must have no matches")
        return self

    @property
    def best(self) -> Optional[ComponentMatch]:
        """Top-ranked match, if any."""
        return self.matches[0] if self.matches else None


# ===================
# CONFIGURATION
# ===================

class MatchingConfig(BaseSchema):
    """
    Fuzzy-tier weights and thresholds.

    Defaults come from settings; weights must sum to 1 so the overall score
    stays in [0, 1].
    """
    weight_part_number: float = Field(0.5, ge=0, le=1)
    weight_manufacturer: float = Field(0.3, ge=0, le=1)
    weight_name: float = Field(0.2, ge=0, le=1)
    high_confidence: float = Field(0.9, ge=0, le=1)
    medium_confidence: float = Field(0.7, ge=0, le=1)
    min_confidence: float = Field(0.6, ge=0, le=1)
    ai_min_confidence: float = Field(0.85, ge=0, le=1)
    max_candidates: int = Field(3, ge=1, le=10)

    @model_validator(mode="after")
    def check_consistency(self) -> "MatchingConfig":
        total = self.weight_part_number + self.weight_manufacturer + self.weight_name
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"match weights must sum to 1.0, got {total}")
        if not (self.min_confidence <= self.medium_confidence <= self.high_confidence):
            raise ValueError("thresholds must satisfy min <= medium <= high")
        return self

    @classmethod
    def from_settings(cls, s) -> "MatchingConfig":
        return cls(
            weight_part_number=s.match_weight_part_number,
            weight_manufacturer=s.match_weight_manufacturer,
            weight_name=s.match_weight_name,
            high_confidence=s.match_high_confidence,
            medium_confidence=s.match_medium_confidence,
            min_confidence=s.match_min_confidence,
            ai_min_confidence=s.ai_match_min_confidence,
            max_candidates=s.match_max_candidates,
        )


# ===================
# API REQUESTS
# ===================

class MatchRequest(BaseSchema):
    """Resolve one candidate within a team's catalog."""
    team_id: str
    candidate: Candidate


class BatchMatchRequest(BaseSchema):
    """Resolve several candidates sequentially."""
    team_id: str
    candidates: list[Candidate] = Field(..., min_length=1, max_length=500)
