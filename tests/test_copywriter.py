"""
Copy Writer Tests

Run with:
    python -m pytest tests/test_copywriter.py -v
"""

import json
import os
import sys

import httpx
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import CopyConfig
from core.errors import ConfigurationError, TransportError, UpstreamContractError, ValidationError
from services.copywriter import CopyDraft, CopyWriter, parse_draft


def completion(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def writer(responses: list, requests: list, api_key: str = "sk-test") -> CopyWriter:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return responses.pop(0)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CopyWriter(CopyConfig(api_key=api_key, api_base="https://llm.test/v1"), client=client)


class TestGenerateCopy:
    """Chat completion request and reply handling."""

    @pytest.mark.asyncio
    async def test_generates_draft(self):
        requests: list = []
        reply = json.dumps({"script": "Open on steam", "caption": "Morning fuel", "hashtags": ["coffee", "#latte"]})
        draft = await writer([completion(reply)], requests).generate_copy("15s coffee shop ad")

        assert draft == CopyDraft(script="Open on steam", caption="Morning fuel", hashtags=["#coffee", "#latte"])

        request = requests[0]
        assert str(request.url) == "https://llm.test/v1/chat/completions"
        assert request.headers["authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "gpt-4o-mini"
        assert body["temperature"] == 0.7
        assert body["messages"][0]["role"] == "system"
        assert "15s coffee shop ad" in body["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_code_fenced_reply(self):
        reply = '```json\n{"script": "s", "caption": "c", "hashtags": ["a"]}\n```'
        draft = await writer([completion(reply)], []).generate_copy("idea")
        assert draft.hashtags == ["#a"]

    @pytest.mark.asyncio
    async def test_missing_key(self):
        requests: list = []
        with pytest.raises(ConfigurationError) as exc_info:
            await writer([], requests, api_key="").generate_copy("idea")
        assert str(exc_info.value) == "OPENAI_API_KEY missing"
        assert requests == []

    @pytest.mark.asyncio
    async def test_empty_prompt(self):
        with pytest.raises(ValidationError):
            await writer([], []).generate_copy("   ")

    @pytest.mark.asyncio
    async def test_http_error(self):
        requests: list = []
        with pytest.raises(TransportError) as exc_info:
            await writer([httpx.Response(401, text="invalid key")], requests).generate_copy("idea")
        assert exc_info.value.status_code == 401
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_unparseable_reply(self):
        with pytest.raises(UpstreamContractError):
            await writer([completion("Sure! Here is your copy.")], []).generate_copy("idea")


class TestParseDraft:
    """Reply parsing."""

    def test_missing_fields_default(self):
        assert parse_draft('{"caption": "only"}') == CopyDraft(caption="only")

    def test_empty_reply(self):
        assert parse_draft("") == CopyDraft()

    def test_non_list_hashtags(self):
        assert parse_draft('{"hashtags": "coffee"}').hashtags == []

    def test_non_object(self):
        with pytest.raises(UpstreamContractError):
            parse_draft('["a", "b"]')
