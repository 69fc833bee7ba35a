"""
Meal plan generator: calls the OpenAI Responses API once per plan and
flattens whatever envelope comes back into a single text blob.

The envelope is either a flat ``output_text`` string or an ``output`` list
whose items are text chunks or messages carrying ``content`` chunks. Parsing
is split into a tagged union (parse_envelope) and a pure flatten step, so
neither needs the network to be tested.

No retries happen here: generation is not idempotent, and retrying is the
caller's decision.
"""

from typing import Any

import structlog
from openai import APIConnectionError, APIStatusError, APITimeoutError

from app.config import OpenAIConfig
from app.models.plan import (
    ChunkedEnvelope,
    RawCompletion,
    ResponseEnvelope,
    TextEnvelope,
    UnrecognizedEnvelope,
    UpstreamError,
)
from app.services.openai_client import get_openai_client

logger = structlog.get_logger(__name__)

TEXT_CHUNK_TYPE = "output_text"


def parse_envelope(payload: Any) -> ResponseEnvelope:
    """Classify a raw response payload into one of the known envelope shapes."""
    if isinstance(payload, dict):
        output_text = payload.get("output_text")
        if isinstance(output_text, str) and output_text.strip():
            return TextEnvelope(output_text=output_text)
        output = payload.get("output")
        if isinstance(output, list):
            return ChunkedEnvelope(output=output)
    return UnrecognizedEnvelope(payload=payload)


def _chunk_text(part: Any) -> str | None:
    if isinstance(part, dict) and part.get("type") == TEXT_CHUNK_TYPE:
        text = part.get("text")
        if isinstance(text, str):
            return text
    return None


def flatten_envelope(envelope: ResponseEnvelope) -> str:
    """Concatenate every text chunk in order, newline separated.

    Malformed items and non-text chunks are skipped.
    """
    if isinstance(envelope, TextEnvelope):
        return envelope.output_text
    if isinstance(envelope, UnrecognizedEnvelope):
        return ""

    chunks: list[str] = []
    for item in envelope.output:
        text = _chunk_text(item)
        if text is not None:
            chunks.append(text)
            continue
        content = item.get("content") if isinstance(item, dict) else None
        if isinstance(content, list):
            for part in content:
                text = _chunk_text(part)
                if text is not None:
                    chunks.append(text)
    return "\n".join(chunks).strip()


class MealPlanGenerator:
    """Sends the plan prompt to OpenAI and returns the raw text."""

    def __init__(
        self,
        openai_api_key: str,
        openai_config: OpenAIConfig | None = None,
        client=None,
    ):
        self.openai_config = openai_config or OpenAIConfig()
        self.client = client or get_openai_client(openai_api_key, max_retries=0)
        self.model = self.openai_config.model

    async def generate(self, prompt: str) -> RawCompletion | UpstreamError:
        params: dict[str, Any] = {"model": self.model, "input": prompt}
        if self.openai_config.max_output_tokens:
            params["max_output_tokens"] = self.openai_config.max_output_tokens

        try:
            response = await self.client.responses.create(**params)
        except APIStatusError as e:
            logger.warning("generation_upstream_status_error", status=e.status_code, model=self.model)
            return UpstreamError(status=e.status_code, detail=e.body)
        except APIConnectionError as e:
            logger.warning(
                "generation_upstream_unreachable",
                error=str(e),
                timed_out=isinstance(e, APITimeoutError),
            )
            return UpstreamError(
                status=None,
                detail={"message": str(e)},
                timed_out=isinstance(e, APITimeoutError),
            )

        payload = response.model_dump(mode="json") if hasattr(response, "model_dump") else response

        usage = payload.get("usage") if isinstance(payload, dict) else None
        if isinstance(usage, dict):
            logger.info(
                "generation_tokens",
                model=self.model,
                input_tokens=usage.get("input_tokens"),
                output_tokens=usage.get("output_tokens"),
            )

        envelope = parse_envelope(payload)
        text = flatten_envelope(envelope)
        if envelope.kind == "unrecognized":
            logger.warning("generation_envelope_unrecognized", model=self.model)

        return RawCompletion(text=text, envelope=envelope.kind)
