"""OpenAI client for structured generation and embeddings."""

import json
import re
from dataclasses import dataclass

from openai import AsyncOpenAI

from menu_planner.domain.errors import MalformedOutputError
from menu_planner.services.generation import GenerationClient

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


@dataclass
class OpenAIGenerationClient(GenerationClient):
    """Generation client backed by the OpenAI Responses and Embeddings APIs."""

    client: AsyncOpenAI
    model: str
    reasoning_effort: str | None = None
    store: bool = False
    embedding_model: str = "text-embedding-3-small"

    @classmethod
    def create(  # noqa: PLR0913
        cls,
        api_key: str,
        model: str,
        reasoning_effort: str | None,
        store: bool,
        embedding_model: str,
    ) -> "OpenAIGenerationClient":
        """Create a client with its own OpenAI session."""
        return cls(
            client=AsyncOpenAI(api_key=api_key),
            model=model,
            reasoning_effort=reasoning_effort,
            store=store,
            embedding_model=embedding_model,
        )

    async def complete_json(
        self, *, prompt: str, schema: dict[str, object], schema_name: str
    ) -> dict[str, object]:
        """Call the Responses API with a strict JSON schema."""
        request_payload: dict[str, object] = {
            "model": self.model,
            "input": [
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": prompt}],
                }
            ],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": schema_name,
                    "strict": True,
                    "schema": schema,
                }
            },
            "store": self.store,
        }
        if self.reasoning_effort:
            request_payload["reasoning"] = {"effort": self.reasoning_effort}

        response = await self.client.responses.create(**request_payload)
        return parse_json_output(response.output_text)

    async def embed(self, texts: list[str], dimensions: int) -> list[list[float]]:
        """Embed texts, returning vectors in input order."""
        response = await self.client.embeddings.create(
            model=self.embedding_model,
            input=texts,
            dimensions=dimensions,
        )
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.client.close()


def parse_json_output(output_text: str | None) -> dict[str, object]:
    """Parse model output, tolerating a surrounding markdown code fence."""
    if not output_text or not output_text.strip():
        raise MalformedOutputError("OpenAI returned an empty response")
    text = output_text.strip()
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedOutputError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise MalformedOutputError("expected a JSON object")
    return payload
