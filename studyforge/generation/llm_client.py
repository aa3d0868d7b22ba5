"""
OpenAI chat client shared by the generators and the enrichment job.

Model: gpt-4o-mini  (override with GPT_MODEL env var, e.g. "gpt-4o")

The client is constructed by whoever owns the process (API lifespan, worker
job) and passed in; tests hand in a fake with the same `complete` coroutine.
"""

import asyncio
import logging
import os
from typing import Optional

from openai import AsyncOpenAI

from studyforge.exceptions import LLMUnavailable

log = logging.getLogger(__name__)

# ── Model config ───────────────────────────────────────────────────────────────
GPT_MODEL = os.getenv("GPT_MODEL", "gpt-4o-mini")
LLM_MAX_RETRIES = 3
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000


class LLMClient:
    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = GPT_MODEL,
        max_retries: int = LLM_MAX_RETRIES,
        backoff_base: float = 1.0,
    ):
        if client is None:
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise RuntimeError(
                    "OPENAI_API_KEY is not set. Add it to your .env file."
                )
            client = AsyncOpenAI(api_key=api_key)
        self._client = client
        self.model = model
        self.max_retries = max_retries
        self.backoff_base = backoff_base

    async def complete(
        self,
        prompt: str,
        system: str,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        json_mode: bool = True,
    ) -> str:
        """
        Call Chat Completions and return the assistant message text.

        Transport errors and empty responses are retried with exponential
        backoff (1s, 2s, 4s ...). Raises LLMUnavailable once retries run out.
        """
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        last_error = "no attempts made"
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=temperature,
                    max_tokens=max_tokens,
                    **kwargs,
                )
                content = response.choices[0].message.content or ""
                if content.strip():
                    return content
                last_error = "empty response"
            except Exception as e:
                last_error = str(e)
            log.warning("LLM call failed (attempt %s/%s): %s", attempt, self.max_retries, last_error)
            if attempt < self.max_retries:
                await asyncio.sleep(self.backoff_base * (2 ** (attempt - 1)))

        raise LLMUnavailable(
            f"LLM request failed after {self.max_retries} attempts: {last_error}",
            attempts=self.max_retries,
        )
