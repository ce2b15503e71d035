from __future__ import annotations

import json
import os
from typing import Any, Optional, Sequence

import httpx
import openai
from openai import AsyncOpenAI

from jobmatch.ai.errors import (
    CompletionAuthError,
    CompletionConfigError,
    CompletionError,
    CompletionInvalidResponse,
    CompletionRateLimited,
    CompletionRequestRejected,
)
from jobmatch.ai.types import ChatMessage


class OpenAIProvider:
    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: float = 60.0,
        temperature: float = 0.1,
        max_output_tokens: int = 8000,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._model = model
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._response_format = (os.getenv("OPENAI_RESPONSE_FORMAT") or "").strip().lower()
        key = (api_key or os.getenv("OPENAI_API_KEY") or "").strip()
        if not key:
            raise CompletionConfigError("OPENAI_API_KEY is missing")

        # Rate-limit retries happen in jobmatch.ai.retry.
        self._client = AsyncOpenAI(
            api_key=key,
            base_url=(base_url or os.getenv("OPENAI_BASE_URL") or None),
            timeout=timeout_s,
            max_retries=0,
            http_client=http_client,
        )

    def _format(self, schema: dict[str, Any], schema_name: str) -> dict[str, Any]:
        if self._response_format == "json":
            return {"type": "json_object"}
        return {
            "type": "json_schema",
            "json_schema": {"name": schema_name, "schema": schema, "strict": False},
        }

    async def complete_json(
        self,
        messages: Sequence[ChatMessage],
        *,
        schema: dict[str, Any],
        schema_name: str,
        temperature: float | None = None,
    ) -> dict[str, Any]:
        payload = [{"role": m.role, "content": m.content} for m in messages]
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=payload,
                temperature=self._temperature if temperature is None else temperature,
                response_format=self._format(schema, schema_name),
                max_tokens=self._max_output_tokens,
            )
        except openai.RateLimitError as exc:
            raise CompletionRateLimited(str(exc), status_code=exc.status_code) from exc
        except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
            raise CompletionAuthError(str(exc), status_code=exc.status_code) from exc
        except (openai.BadRequestError, openai.UnprocessableEntityError) as exc:
            raise CompletionRequestRejected(str(exc), status_code=exc.status_code) from exc
        except openai.APIStatusError as exc:
            if exc.status_code == 413:
                raise CompletionRequestRejected(str(exc), status_code=413) from exc
            raise CompletionError(str(exc), status_code=exc.status_code) from exc
        except openai.APIError as exc:
            raise CompletionError(str(exc)) from exc

        content = response.choices[0].message.content if response.choices else ""
        if not content:
            raise CompletionInvalidResponse("Completion service returned an empty response")
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as exc:
            raise CompletionInvalidResponse(f"Completion service returned invalid JSON: {exc}") from exc
        if not isinstance(parsed, dict):
            raise CompletionInvalidResponse("Completion service returned a non-object JSON payload")
        return parsed

