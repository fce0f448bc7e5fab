"""
Unit tests for ClaudeMatchService.

The Anthropic client is replaced with a stub; no network calls.

Run: pytest tests/unit/test_claude_match_service.py -v
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import anthropic
import httpx
import pytest

from exceptions import SemanticMatchError
from models.component import Candidate, CatalogComponent
from models.matching import AIRecommendation
from services.claude_match_service import ClaudeMatchService


def stub_client(reply_text: str) -> MagicMock:
    client = MagicMock()
    client.messages.create.return_value = SimpleNamespace(
        content=[SimpleNamespace(type="text", text=reply_text)]
    )
    return client


CANDIDATE = Candidate(name="בקר S7-1500", manufacturer="SIEMENS AG", part_number="6ES75121DK010AB0")
COMPONENTS = [
    CatalogComponent(id="c1", name="S7-1500 CPU", manufacturer="Siemens", part_number="6ES7512-1DK01-0AB0"),
    CatalogComponent(id="c2", name="ET200SP", manufacturer="Siemens", part_number="6ES7155-6AU01-0BN0"),
]


class TestParseResponse:
    """Tests for ClaudeMatchService.parse_response()"""

    def test_plain_array(self):
        text = '[{"componentIndex": 1, "isMatch": true, "confidence": 0.95, "reasoning": "same", "recommendation": "same_component"}]'

        results = ClaudeMatchService.parse_response(text, max_index=2)

        assert len(results) == 1
        assert results[0].component_index == 1
        assert results[0].is_match is True
        assert results[0].recommendation == AIRecommendation.SAME_COMPONENT

    def test_markdown_fences_and_prose(self):
        text = 'Here you go:\n```json\n[{"componentIndex": 2, "isMatch": false, "confidence": 0.1}]\n```'

        results = ClaudeMatchService.parse_response(text, max_index=2)

        assert [r.component_index for r in results] == [2]

    def test_no_json_returns_empty(self):
        assert ClaudeMatchService.parse_response("I cannot decide", max_index=2) == []

    def test_invalid_json_returns_empty(self):
        assert ClaudeMatchService.parse_response("[{not json}]", max_index=2) == []

    def test_drops_invalid_and_out_of_range_entries(self):
        text = (
            '[{"componentIndex": 1, "isMatch": true, "confidence": 1.5},'
            ' {"componentIndex": 3, "isMatch": true, "confidence": 0.9},'
            ' {"componentIndex": 2, "isMatch": true, "confidence": 0.9}]'
        )

        results = ClaudeMatchService.parse_response(text, max_index=2)

        assert [r.component_index for r in results] == [2]


class TestCompare:
    """Tests for ClaudeMatchService.compare()"""

    def test_unconfigured_returns_empty(self):
        service = ClaudeMatchService(api_key=None)
        service.update_credentials(None)

        assert service.available is False
        assert service.compare(CANDIDATE, COMPONENTS) == []

    def test_sends_numbered_prompt(self):
        client = stub_client('[{"componentIndex": 1, "isMatch": true, "confidence": 0.93}]')
        service = ClaudeMatchService(client=client, model="test-model", max_tokens=500)

        results = service.compare(CANDIDATE, COMPONENTS)

        assert results[0].confidence == 0.93
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["max_tokens"] == 500
        prompt = kwargs["messages"][0]["content"]
        assert "1. Name: S7-1500 CPU" in prompt
        assert "2. Name: ET200SP" in prompt
        assert "SIEMENS AG" in prompt

    def test_no_components_skips_call(self):
        client = stub_client("[]")
        service = ClaudeMatchService(client=client)

        assert service.compare(CANDIDATE, []) == []
        client.messages.create.assert_not_called()

    def test_api_error_raises_semantic_match_error(self):
        client = MagicMock()
        client.messages.create.side_effect = anthropic.APIConnectionError(
            request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        )
        service = ClaudeMatchService(client=client)

        with pytest.raises(SemanticMatchError):
            service.compare(CANDIDATE, COMPONENTS)
