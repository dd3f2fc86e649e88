"""OpenAI-compatible chat completions client used as the classification oracle."""

import asyncio
import logging
from typing import Optional

import httpx

from feed_filter.config import Settings
from feed_filter.core import LLMClient, OracleError

logger = logging.getLogger(__name__)


class OpenAIClient(LLMClient):
    """Chat completions client implementation."""

    def __init__(self, settings: Settings) -> None:
        self.api_key = settings.openai_api_key
        self.base_url = settings.oracle.base_url.rstrip("/")
        self.model = settings.oracle.model
        self.max_tokens = settings.oracle.max_tokens
        self.temperature = settings.oracle.temperature
        self.timeout = settings.oracle.timeout
        self.max_retries = max(1, settings.oracle.max_retries)
        self.initial_retry_delay = settings.oracle.initial_retry_delay
        self.request_delay = settings.oracle.request_delay
        self._last_request_time = 0.0

    async def classify(self, system_prompt: str, user_prompt: str) -> str:
        """Send one system + user exchange and return the completion text."""
        if not self.api_key:
            raise OracleError(401, "OPENAI_API_KEY is not configured")

        await self._respect_request_delay()

        last_error: Optional[OracleError] = None

        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        f"{self.base_url}/chat/completions",
                        headers={
                            "Authorization": f"Bearer {self.api_key}",
                            "Content-Type": "application/json",
                        },
                        json={
                            "model": self.model,
                            "max_tokens": self.max_tokens,
                            "temperature": self.temperature,
                            "messages": [
                                {"role": "system", "content": system_prompt},
                                {"role": "user", "content": user_prompt},
                            ],
                        },
                    )
            except httpx.RequestError as e:
                last_error = OracleError(0, f"{type(e).__name__}: {e}")
                if attempt < self.max_retries - 1:
                    retry_delay = self.initial_retry_delay * (2 ** attempt)
                    logger.warning("Network error, retrying after %.1fs: %s", retry_delay, e)
                    await asyncio.sleep(retry_delay)
                    continue
                raise last_error from e

            self._last_request_time = asyncio.get_running_loop().time()

            if response.status_code == 200:
                return self._completion_text(response)

            last_error = OracleError(response.status_code, self._error_message(response))

            # Rate limit and server errors are transient
            if response.status_code == 429 or response.status_code >= 500:
                if attempt < self.max_retries - 1:
                    retry_delay = self._get_retry_delay(response, attempt)
                    logger.warning(
                        "Oracle returned %d, retrying after %.1fs (attempt %d/%d)",
                        response.status_code, retry_delay, attempt + 1, self.max_retries,
                    )
                    await asyncio.sleep(retry_delay)
                    continue

            raise last_error

        # Only reachable if every attempt was retried away
        raise last_error or OracleError(0, "Failed to call oracle after all retries")

    async def _respect_request_delay(self) -> None:
        """Ensure a minimum delay between requests."""
        if self.request_delay <= 0:
            return
        current_time = asyncio.get_running_loop().time()
        time_since_last_request = current_time - self._last_request_time
        if time_since_last_request < self.request_delay:
            await asyncio.sleep(self.request_delay - time_since_last_request)

    def _completion_text(self, response: httpx.Response) -> str:
        try:
            data = response.json()
            choices = data.get("choices") or []
            if not choices:
                return ""
            return choices[0].get("message", {}).get("content") or ""
        except (ValueError, AttributeError) as e:
            raise OracleError(response.status_code, f"Malformed completion payload: {e}") from e

    def _error_message(self, response: httpx.Response) -> str:
        """Pull the provider's error message, falling back to the reason phrase."""
        try:
            data = response.json()
            message = data.get("error", {}).get("message")
            if message:
                return str(message)
        except (ValueError, AttributeError):
            pass
        return response.reason_phrase or "Request failed"

    def _get_retry_delay(self, response: httpx.Response, attempt: int) -> float:
        """Calculate retry delay from response headers or use exponential backoff."""
        retry_after = response.headers.get("retry-after")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass

        return self.initial_retry_delay * (2 ** attempt)
