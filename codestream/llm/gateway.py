"""Streaming client for the Anthropic-compatible LLM gateway.

Sends one completion request with ``stream: true`` and reads the answer as
server-sent events with ``httpx-sse``; turning those into text is the chunk
decoder's job.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import httpx
from httpx_sse import aconnect_sse

from codestream.exceptions import ConfigurationError, LLMError
from codestream.settings import Settings, get_settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from httpx_sse import ServerSentEvent

logger = logging.getLogger(__name__)


def load_gateway_token(settings: Settings | None = None) -> str:
    """Resolve the gateway token.

    The ``llm_api_token`` setting wins; otherwise the JSON credentials file
    at ``llm_token_path`` is read for a ``token`` or ``accessToken`` key.

    Raises:
        ConfigurationError: If no token can be found.
    """
    settings = settings or get_settings()
    token = settings.llm_api_token.get_secret_value()
    if token:
        return token

    path = settings.llm_token_path.expanduser()
    try:
        credentials = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigurationError(
            f"No gateway token configured and credentials file {path} does not exist"
        ) from None
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Could not read credentials file {path}: {e}") from e

    if isinstance(credentials, dict):
        token = credentials.get("token") or credentials.get("accessToken")
    if not token:
        raise ConfigurationError(f"Credentials file {path} holds no 'token' or 'accessToken'")
    return str(token)


class GatewayClient:
    """Client for streamed completions through the LLM gateway.

    Args:
        settings: Application settings (defaults to ``get_settings()``).
        http_client: Optional pre-built ``httpx.AsyncClient`` (tests inject
            one backed by ``httpx.MockTransport``).
        token: Optional gateway token; resolved lazily when omitted.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        token: str | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._http_client = http_client
        self._token = token

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the shared ``httpx.AsyncClient``."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.llm_timeout_seconds, connect=10.0),
            )
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client and release connections."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def build_request_body(self, system_prompt: str, user_message: str) -> dict[str, Any]:
        return {
            "model": self.settings.llm_model,
            "max_tokens": self.settings.llm_max_tokens,
            "stream": True,
            "system": [{"type": "text", "text": system_prompt}] if system_prompt else [],
            "messages": [{"role": "user", "content": user_message}],
        }

    def _headers(self) -> dict[str, str]:
        if self._token is None:
            self._token = load_gateway_token(self.settings)
        return {
            "Authorization": self._token,
            "content-type": "application/json",
            "x-time-budget": str(self.settings.llm_time_budget_ms),
        }

    async def stream_completion(
        self,
        system_prompt: str,
        user_message: str,
    ) -> AsyncIterator[ServerSentEvent]:
        """Stream the provider's server-sent events for one completion.

        Yields:
            Each event as it arrives.

        Raises:
            LLMError: On a non-2xx response or a transport failure.
        """
        provider = self.settings.llm_provider
        url = f"{self.settings.llm_gateway_url.rstrip('/')}/messages"
        body = self.build_request_body(system_prompt, user_message)
        client = self._get_http_client()

        logger.info("Streaming completion from %s (model=%s)", url, body["model"])
        try:
            async with aconnect_sse(
                client,
                "POST",
                url,
                headers=self._headers(),
                json=body,
            ) as event_source:
                response = event_source.response
                if response.status_code >= 400:
                    detail = (await response.aread()).decode("utf-8", errors="replace")
                    raise LLMError(
                        f"Gateway returned HTTP {response.status_code}: {detail[:500]}",
                        provider=provider,
                        status_code=response.status_code,
                    )
                async for sse in event_source.aiter_sse():
                    yield sse
        except httpx.TimeoutException as e:
            raise LLMError(f"Gateway request timed out: {e}", provider=provider) from e
        except httpx.HTTPError as e:
            raise LLMError(f"Gateway request failed: {type(e).__name__}: {e}", provider=provider) from e
