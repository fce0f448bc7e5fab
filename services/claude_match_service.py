"""
Claude semantic match service.

Asks Claude whether an extracted component is the same physical product as
up to three library candidates. Used by the matcher's third tier only.

The service is constructed explicitly and handed to the matcher; call
update_credentials() when the API key changes.
"""

import json
import re
from typing import Optional, Sequence

import anthropic
import structlog
from pydantic import ValidationError as PydanticValidationError

from config import settings
from exceptions import SemanticMatchError
from models.component import Candidate, CatalogComponent
from models.matching import AIMatchResult

logger = structlog.get_logger(__name__)

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


class ClaudeMatchService:
    """
    Semantic component comparison via the Anthropic Messages API.

    Returns [] when not configured; raises SemanticMatchError when the API
    call itself fails so the caller can log and degrade.
    """

    PROMPT_TEMPLATE = """You are an expert in industrial automation components and robotics parts. Your task is to determine if components are the same physical product, even if described differently.

NEW COMPONENT from supplier quote:
- Name: {name}
- Manufacturer: {manufacturer}
- Part Number: {part_number}
- Description: {description}

EXISTING COMPONENTS in library (candidates):
{candidates}

For each existing component, analyze if it is the SAME physical product as the new component.

Consider:
- Different naming conventions (e.g., "PLC" vs "Controller", "חיישן" vs "Sensor")
- Manufacturer variations (e.g., "Siemens" vs "SIEMENS AG" vs "Siemens Ltd")
- Part number formatting (e.g., "6ES7512-1DK01-0AB0" vs "6ES7 512-1DK01-0AB0" vs "6ES75121DK010AB0")
- Language differences (Hebrew vs English, in either direction)
- Model variations within same product family
- Different descriptions for same product

Return ONLY a JSON array with this EXACT format:
[
  {{
    "componentIndex": 1,
    "isMatch": true,
    "confidence": 0.95,
    "reasoning": "Same part number with minor formatting difference",
    "recommendation": "same_component"
  }}
]

Do not include any other text, just the JSON array."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[anthropic.Anthropic] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ):
        """
        Args:
            api_key: Anthropic key (defaults to settings.anthropic_api_key)
            client: Pre-built client, mainly for tests
            model: Model name override
            max_tokens: Response token limit override
        """
        self.model = model or settings.semantic_match_model
        self.max_tokens = max_tokens or settings.semantic_match_max_tokens
        if client is not None:
            self.client = client
        else:
            self.client = None
            self.update_credentials(api_key or settings.anthropic_api_key)

    @property
    def available(self) -> bool:
        return self.client is not None

    def update_credentials(self, api_key: Optional[str]) -> None:
        """Rebuild the API client for a new key (None disables the tier)."""
        if api_key:
            self.client = anthropic.Anthropic(api_key=api_key)
            logger.info("semantic_match_client_configured", model=self.model)
        else:
            self.client = None
            logger.warning("semantic_match_client_not_configured")

    def build_prompt(
        self,
        candidate: Candidate,
        components: Sequence[CatalogComponent],
    ) -> str:
        """Render the comparison prompt; candidates are numbered from 1."""
        lines = []
        for i, c in enumerate(components, start=1):
            lines.append(
                f"{i}. Name: {c.name}\n"
                f"   Manufacturer: {c.manufacturer}\n"
                f"   Part Number: {c.part_number}\n"
                f"   Category: {c.category}\n"
                f"   Description: {c.description or 'None'}"
            )

        return self.PROMPT_TEMPLATE.format(
            name=candidate.name or "Unknown",
            manufacturer=candidate.manufacturer or "Unknown",
            part_number=candidate.part_number or "Unknown",
            description=candidate.description or "None",
            candidates="\n\n".join(lines),
        )

    def compare(
        self,
        candidate: Candidate,
        components: Sequence[CatalogComponent],
    ) -> list[AIMatchResult]:
        """
        Ask Claude to judge each candidate component.

        Args:
            candidate: The extracted component
            components: Library candidates (typically the top 3 fuzzy hits)

        Returns:
            Parsed verdicts; [] if unconfigured or the reply is unusable

        Raises:
            SemanticMatchError: If the API call fails
        """
        if not self.available or not components:
            return []

        prompt = self.build_prompt(candidate, components)

        logger.info(
            "semantic_match_started",
            candidates=len(components),
            part_number=candidate.part_number,
        )

        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0,
                messages=[{
                    "role": "user",
                    "content": prompt
                }]
            )
        except anthropic.APIError as e:
            logger.error("semantic_match_api_error", error=str(e))
            raise SemanticMatchError(f"Claude API error: {e}") from e

        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )
        results = self.parse_response(text, max_index=len(components))

        logger.info("semantic_match_completed", verdicts=len(results))
        return results

    @staticmethod
    def parse_response(response_text: str, max_index: int) -> list[AIMatchResult]:
        """
        Extract AIMatchResult entries from a reply.

        Tolerates markdown fences and surrounding prose. Entries that fail
        validation or point outside 1..max_index are dropped.
        """
        match = _JSON_ARRAY.search(response_text or "")
        if not match:
            logger.error("semantic_match_no_json", response_preview=(response_text or "")[:300])
            return []

        try:
            raw = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.error("semantic_match_json_invalid", error=str(e))
            return []

        if not isinstance(raw, list):
            return []

        results = []
        for entry in raw:
            try:
                result = AIMatchResult.model_validate(entry)
            except PydanticValidationError:
                logger.warning("semantic_match_entry_invalid", entry=str(entry)[:200])
                continue
            if result.component_index > max_index:
                logger.warning("semantic_match_index_out_of_range", index=result.component_index)
                continue
            results.append(result)
        return results
