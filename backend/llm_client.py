# llm_client.py
from __future__ import annotations

from typing import Dict, List, Optional

import openai
from openai import AsyncOpenAI

import settings
from exceptions import RateLimited, TransportError, Unauthorized, UnexpectedResponse


def _llm_log(msg: str) -> None:
    print(f"[llm] {msg}")


def _retry_after(err: openai.APIStatusError, default: float = 60) -> float:
    try:
        raw = err.response.headers.get("retry-after")
        return float(raw) if raw is not None else default
    except (TypeError, ValueError):
        return default


class LLMClient:
    """
    Thin adapter over an OpenAI-compatible chat completions endpoint.
    One call in, raw assistant text out. Does not retry: the SDK's own
    retries are switched off and failures are classified into
    RateLimited / Unauthorized / UnexpectedResponse / TransportError.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = settings.OPENAI_API_KEY if api_key is None else api_key
        self.model = model or settings.OPENAI_MODEL
        self.base_url = base_url if base_url is not None else settings.OPENAI_BASE_URL
        self.timeout = timeout or settings.LLM_TIMEOUT
        self._client: Optional[AsyncOpenAI] = None

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    def _sdk(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    # ---------------- HTTP ----------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 1024,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        if not self.has_api_key:
            raise Unauthorized("No API key configured; set OPENAI_API_KEY in .env")

        messages: List[Dict[str, str]] = [{"role": "system", "content": system_prompt}]
        for turn in history or []:
            messages.append({"role": turn["role"], "content": turn["content"]})
        messages.append({"role": "user", "content": user_prompt})

        if settings.LOG_PROMPTS:
            _llm_log(f"model={self.model} max_tokens={max_tokens} turns={len(messages)} chars={len(user_prompt)}")

        try:
            resp = await self._sdk().chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=0.0,
            )
        except openai.RateLimitError as e:
            wait = _retry_after(e)
            _llm_log(f"rate limited (retry-after={wait}s)")
            raise RateLimited(retry_after=wait, original_error=e) from e
        except openai.AuthenticationError as e:
            _llm_log("authentication failed")
            raise Unauthorized(original_error=e) from e
        except openai.APIStatusError as e:
            _llm_log(f"backend error status={e.status_code}: {e.message}")
            raise UnexpectedResponse(e.status_code, e.message or "Completion failed", original_error=e) from e
        except openai.APIConnectionError as e:
            _llm_log(f"transport failure: {e!r}")
            raise TransportError(f"Could not reach completion service: {e}", original_error=e) from e

        content = None
        if resp.choices:
            content = resp.choices[0].message.content
        if not isinstance(content, str) or not content:
            raise UnexpectedResponse(200, "Unexpected response type")
        return content

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
