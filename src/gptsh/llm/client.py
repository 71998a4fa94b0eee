"""Thin chat-completions client returning raw response text or a typed failure."""

from __future__ import annotations

import http.client
import json
import logging
from collections.abc import Sequence
from urllib import request
from urllib.error import HTTPError, URLError

from gptsh.agent.models import Completion, CompletionResult, ProviderError, ProviderErrorKind, Turn

DEFAULT_API_URL = "https://api.openai.com/v1/chat/completions"
LOGGER = logging.getLogger(__name__)

_AUTH_STATUSES = {401, 403}
_RATE_LIMIT_STATUS = 429


class LLMClient:
    """Small HTTP client for conversation-style model calls."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.timeout = timeout

    def complete(self, turns: Sequence[Turn]) -> CompletionResult:
        payload = self._build_payload(turns)
        body = json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        LOGGER.debug(
            "llm_request_prepared",
            extra={
                "api_url": self.api_url,
                "model": self.model,
                "payload_bytes": len(body),
                "turns": len(turns),
            },
        )

        req = request.Request(self.api_url, data=body, headers=headers, method="POST")
        try:
            with request.urlopen(req, timeout=self.timeout) as resp:  # noqa: S310
                raw_response = json.loads(resp.read().decode("utf-8"))
        except HTTPError as exc:
            body_excerpt = self._read_error_body_excerpt(exc)
            LOGGER.error(
                "llm_request_http_error",
                extra={
                    "api_url": self.api_url,
                    "model": self.model,
                    "http_status": exc.code,
                    "reason": exc.reason,
                    "response_excerpt": body_excerpt,
                },
            )
            details = f"Received non-success status code from API: HTTP {exc.code} {exc.reason}"
            if body_excerpt:
                details = f"{details}. Response body: {body_excerpt}"
            return ProviderError(kind=self._kind_for_status(exc.code), message=details)
        except URLError as exc:
            LOGGER.error(
                "llm_request_transport_error",
                extra={"api_url": self.api_url, "model": self.model, "reason": str(exc.reason)},
            )
            return ProviderError(
                kind=ProviderErrorKind.NETWORK_ERROR,
                message=f"Error communicating with API: {exc.reason}",
            )
        except TimeoutError:
            LOGGER.error(
                "llm_request_timeout",
                extra={
                    "api_url": self.api_url,
                    "model": self.model,
                    "timeout_seconds": self.timeout,
                },
            )
            return ProviderError(
                kind=ProviderErrorKind.NETWORK_ERROR,
                message=f"Model request timed out after {self.timeout:.1f}s",
            )
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            LOGGER.error(
                "llm_response_parse_error",
                extra={"api_url": self.api_url, "model": self.model, "error": str(exc)},
            )
            return ProviderError(
                kind=ProviderErrorKind.MALFORMED_RESPONSE,
                message=f"Failed to parse API response: {exc}",
            )
        except http.client.IncompleteRead as exc:
            LOGGER.error(
                "llm_response_truncated",
                extra={"api_url": self.api_url, "model": self.model, "received_bytes": len(exc.partial)},
            )
            return ProviderError(
                kind=ProviderErrorKind.MALFORMED_RESPONSE,
                message=f"API response ended early after {len(exc.partial)} bytes",
            )
        except http.client.HTTPException as exc:
            LOGGER.error(
                "llm_request_protocol_error",
                extra={"api_url": self.api_url, "model": self.model, "reason": repr(exc)},
            )
            return ProviderError(
                kind=ProviderErrorKind.NETWORK_ERROR,
                message=f"Error communicating with API: {exc!r}",
            )
        except OSError as exc:
            LOGGER.error(
                "llm_request_transport_error",
                extra={"api_url": self.api_url, "model": self.model, "reason": str(exc)},
            )
            return ProviderError(
                kind=ProviderErrorKind.NETWORK_ERROR,
                message=f"Error communicating with API: {exc}",
            )

        text = self._extract_message_content(raw_response)
        if text is None:
            LOGGER.error(
                "llm_response_missing_content",
                extra={"api_url": self.api_url, "model": self.model},
            )
            return ProviderError(
                kind=ProviderErrorKind.MALFORMED_RESPONSE,
                message="API response contains no message content.",
            )
        return Completion(text=text)

    def _build_payload(self, turns: Sequence[Turn]) -> dict[str, object]:
        return {
            "model": self.model,
            "messages": [turn.as_message() for turn in turns],
        }

    @staticmethod
    def _kind_for_status(status: int) -> ProviderErrorKind:
        if status in _AUTH_STATUSES:
            return ProviderErrorKind.AUTH_ERROR
        if status == _RATE_LIMIT_STATUS:
            return ProviderErrorKind.RATE_LIMITED
        return ProviderErrorKind.NETWORK_ERROR

    @staticmethod
    def _extract_message_content(payload: object) -> str | None:
        if not isinstance(payload, dict):
            return None
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return None
        first = choices[0]
        if not isinstance(first, dict):
            return None
        message = first.get("message")
        if not isinstance(message, dict):
            return None
        content = message.get("content")
        if not isinstance(content, str):
            return None
        return content

    @staticmethod
    def _read_error_body_excerpt(exc: HTTPError, *, max_chars: int = 500) -> str | None:
        if exc.fp is None:
            return None
        try:
            raw = exc.read()
        except OSError:
            return None

        if not raw:
            return None

        excerpt = raw.decode("utf-8", errors="replace").replace("\n", " ").strip()
        if len(excerpt) > max_chars:
            return f"{excerpt[:max_chars]}..."
        return excerpt
