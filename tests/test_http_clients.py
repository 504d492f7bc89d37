"""Tests for the OpenAI generation client."""

import asyncio
import json

import pytest

from menu_planner.adapters.openai_generation_client import (
    OpenAIGenerationClient,
    parse_json_output,
)
from menu_planner.domain.errors import MalformedOutputError


class _FakeResponses:
    def __init__(self, output_text: str) -> None:
        self.output_text = output_text
        self.last_payload: dict[str, object] | None = None

    async def create(self, **kwargs):  # type: ignore[no-untyped-def]
        self.last_payload = kwargs
        return type("Resp", (), {"output_text": self.output_text})()


class _FakeEmbeddings:
    def __init__(self) -> None:
        self.last_payload: dict[str, object] | None = None

    async def create(self, **kwargs):  # type: ignore[no-untyped-def]
        self.last_payload = kwargs
        rows = [
            type("Item", (), {"index": 1, "embedding": [0.0, 1.0]})(),
            type("Item", (), {"index": 0, "embedding": [1.0, 0.0]})(),
        ]
        return type("Resp", (), {"data": rows})()


class _FakeOpenAI:
    def __init__(self, output_text: str = "{}") -> None:
        self.responses = _FakeResponses(output_text)
        self.embeddings = _FakeEmbeddings()
        self.closed = False

    async def close(self) -> None:
        self.closed = True


def test_complete_json_sends_strict_schema() -> None:
    fake = _FakeOpenAI(json.dumps({"meals": []}))
    client = OpenAIGenerationClient(
        client=fake, model="gpt-5.2", reasoning_effort="low"
    )

    result = asyncio.run(
        client.complete_json(
            prompt="Plan meals", schema={"type": "object"}, schema_name="daily_meals"
        )
    )

    payload = fake.responses.last_payload
    assert result == {"meals": []}
    assert payload is not None
    assert payload["model"] == "gpt-5.2"
    assert payload["text"]["format"]["name"] == "daily_meals"
    assert payload["text"]["format"]["strict"] is True
    assert payload["reasoning"] == {"effort": "low"}
    assert payload["store"] is False


def test_complete_json_omits_reasoning_when_unset() -> None:
    fake = _FakeOpenAI('{"ok": true}')
    client = OpenAIGenerationClient(client=fake, model="gpt-5.2")

    asyncio.run(
        client.complete_json(prompt="x", schema={"type": "object"}, schema_name="meal")
    )

    assert fake.responses.last_payload is not None
    assert "reasoning" not in fake.responses.last_payload


def test_embed_orders_vectors_by_index() -> None:
    fake = _FakeOpenAI()
    client = OpenAIGenerationClient(
        client=fake, model="gpt-5.2", embedding_model="text-embedding-3-small"
    )

    vectors = asyncio.run(client.embed(["たまねぎ", "ごはん"], 384))
    asyncio.run(client.close())

    assert vectors == [[1.0, 0.0], [0.0, 1.0]]
    assert fake.embeddings.last_payload == {
        "model": "text-embedding-3-small",
        "input": ["たまねぎ", "ごはん"],
        "dimensions": 384,
    }
    assert fake.closed


def test_parse_json_output_strips_code_fence() -> None:
    assert parse_json_output('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_output(' {"a": 2} ') == {"a": 2}


@pytest.mark.parametrize("output", [None, "", "   ", "not json", "[1, 2]"])
def test_parse_json_output_rejects_bad_output(output: str | None) -> None:
    with pytest.raises(MalformedOutputError):
        parse_json_output(output)
