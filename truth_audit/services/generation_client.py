"""
Generation client - bounded text generation calls for stages 2-4

Wraps AsyncOpenAI chat completions in JSON mode. Every call is bounded by
asyncio.wait_for; the client never raises for upstream failures, it reports
them on the GenerationResult so each stage can decide how to degrade.
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Optional, Dict, Any

from openai import AsyncOpenAI, OpenAIError

logger = logging.getLogger(__name__)


class MissingAPIKeyError(Exception):
    """Raised when a generation client is built without credentials."""


@dataclass
class GenerationResult:
    text: str = ""
    ok: bool = False
    error: Optional[str] = None
    timed_out: bool = False
    truncated: bool = False  # stopped on the token limit; text may be cut mid-JSON
    elapsed_ms: int = 0

    def meta(self) -> Dict[str, Any]:
        """Diagnostics persisted on the stage record."""
        return {
            "model_latency_ms": self.elapsed_ms,
            "timed_out": self.timed_out,
            "truncated": self.truncated,
        }


class GenerationClient:
    """
    Generator backed by OpenAI chat completions.

    Any object with the same `generate` coroutine can be injected into the
    supervisor instead (tests use a scripted one).
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        max_tokens: int = 2500,
        client: Optional[AsyncOpenAI] = None
    ):
        if client is None and not api_key:
            raise MissingAPIKeyError("OPENAI_API_KEY is not configured")
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate(
        self,
        prompt: str,
        schema: Optional[Dict[str, Any]] = None,
        timeout: float = 30.0
    ) -> GenerationResult:
        """
        Run one completion in JSON mode.

        Args:
            prompt: Full user prompt
            schema: JSON schema the response must follow (sent as instructions)
            timeout: Seconds before the call is abandoned

        Returns:
            GenerationResult; ok is False on timeout or upstream error
        """
        system_prompt = "You are a meticulous product auditor. Respond with JSON only."
        if schema:
            system_prompt += f"\nThe JSON must follow this schema:\n{json.dumps(schema)}"

        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": prompt}
                    ],
                    response_format={"type": "json_object"},
                    temperature=self.temperature,
                    max_tokens=self.max_tokens
                ),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            elapsed = int((time.monotonic() - started) * 1000)
            logger.warning(f"⏱️ Generation timed out after {timeout}s")
            return GenerationResult(ok=False, error="timeout", timed_out=True, elapsed_ms=elapsed)
        except OpenAIError as e:
            elapsed = int((time.monotonic() - started) * 1000)
            logger.error(f"❌ Generation failed: {e}")
            return GenerationResult(ok=False, error=str(e), elapsed_ms=elapsed)

        elapsed = int((time.monotonic() - started) * 1000)
        choice = response.choices[0]
        text = choice.message.content or ""
        truncated = choice.finish_reason == "length"

        logger.info(f"📥 Generation returned {len(text)} chars in {elapsed}ms"
                    f"{' (truncated)' if truncated else ''}")

        return GenerationResult(
            text=text,
            ok=bool(text),
            error=None if text else "empty response",
            truncated=truncated,
            elapsed_ms=elapsed
        )
