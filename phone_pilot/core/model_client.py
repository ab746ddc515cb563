"""Client for OpenAI-compatible multimodal chat-completion endpoints.

Sends the conversation (system prompt, user turns with a base64 PNG
screenshot, previous assistant replies) to ``{base_url}/chat/completions``
and returns the text of the first choice.  Streaming is not used.

Transient failures (network errors and HTTP 5xx) are retried with
exponential back-off; client errors (4xx) and malformed responses are
not.  Every failure surfaces as ``ModelCallError``.

Dependencies: ``models.messages``, ``config.settings``, ``httpx``.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Sequence
from typing import Any, Protocol

import httpx

from phone_pilot.config.settings import Settings
from phone_pilot.core.cancellation import CancellationToken
from phone_pilot.models.messages import Message, Role

logger = logging.getLogger(__name__)


class ModelCallError(Exception):
    """Raised when a chat completion cannot be obtained.

    Attributes:
        status_code: HTTP status of the last attempt, if one was
            received.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ChatModel(Protocol):
    """What the step executor needs from a model client."""

    def chat_completion(
        self,
        messages: Sequence[Message],
        token: CancellationToken | None = None,
    ) -> str: ...


class ModelClient:
    """Synchronous chat-completion client.

    All configuration is injected via ``Settings``; there is no global
    state.

    Args:
        settings: Supplies the endpoint, model name, sampling
            parameters, timeout, and retry policy.
        api_key: Bearer token.  If empty, the environment variable
            named by ``settings.model_api_key_env`` is used.  Local
            servers often need no key, in which case no
            ``Authorization`` header is sent.
        base_url: Overrides ``settings.model_base_url``.
        model_name: Overrides ``settings.model_name``.
        extra_body: Extra top-level fields merged into every request.
    """

    def __init__(
        self,
        settings: Settings,
        api_key: str = "",
        base_url: str = "",
        model_name: str = "",
        extra_body: dict[str, Any] | None = None,
    ) -> None:
        self._settings = settings
        self._api_key: str = api_key or os.environ.get(settings.model_api_key_env, "")
        self._base_url = (base_url or settings.model_base_url).rstrip("/")
        self._model_name = model_name or settings.model_name
        self._extra_body = dict(extra_body or {})

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/chat/completions"

    @property
    def model_info(self) -> str:
        """Short description of the configured model for logs and UIs."""
        return f"Model: {self._model_name}, Endpoint: {self._base_url}"

    def build_payload(self, messages: Sequence[Message]) -> dict[str, Any]:
        """Build the request body for *messages*."""
        payload: dict[str, Any] = {
            "model": self._model_name,
            "messages": [m.to_api_dict() for m in messages],
            "max_tokens": self._settings.max_tokens,
            "temperature": self._settings.temperature,
            "top_p": self._settings.top_p,
            "frequency_penalty": self._settings.frequency_penalty,
            "stream": False,
        }
        payload.update(self._extra_body)
        return payload

    def chat_completion(
        self,
        messages: Sequence[Message],
        token: CancellationToken | None = None,
    ) -> str:
        """Send *messages* and return the reply text.

        Args:
            messages: The conversation, oldest turn first.
            token: When given, back-off sleeps wake early on
                cancellation and the call raises instead of retrying.

        Returns:
            ``choices[0].message.content`` of the response.

        Raises:
            ModelCallError: On transport errors after all retries,
                non-200 responses, or malformed response bodies.
            TaskCancelledError: If *token* is cancelled during
                back-off.
        """
        payload = self.build_payload(messages)
        headers = self._build_headers()
        timeout = httpx.Timeout(self._settings.api_timeout_seconds, connect=10.0)

        retries = max(1, self._settings.api_max_retries)
        last_error = ""
        last_status: int | None = None

        logger.debug(
            "Model request: %d message(s) to %s", len(messages), self.endpoint,
        )
        for attempt in range(retries):
            start_ns = time.monotonic_ns()
            try:
                with httpx.Client(timeout=timeout) as client:
                    http_resp = client.post(
                        self.endpoint,
                        headers=headers,
                        json=payload,
                    )
                elapsed_ms = (time.monotonic_ns() - start_ns) / 1_000_000

                if http_resp.status_code == 200:
                    logger.debug("Model responded in %.0f ms", elapsed_ms)
                    return self._extract_content(http_resp)

                last_status = http_resp.status_code
                last_error = f"HTTP {http_resp.status_code}: {http_resp.text[:200]}"
                logger.warning(
                    "Model call attempt %d/%d failed: %s",
                    attempt + 1,
                    retries,
                    last_error,
                )

                # Only retry on transient server errors.
                if http_resp.status_code < 500:
                    break

            except httpx.HTTPError as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                logger.warning(
                    "Model call attempt %d/%d error: %s",
                    attempt + 1,
                    retries,
                    last_error,
                )

            if attempt < retries - 1:
                self._backoff(attempt, token)

        raise ModelCallError(last_error or "Model call failed", status_code=last_status)

    def test_connection(self) -> bool:
        """Send a one-word prompt and report whether a reply came back."""
        try:
            self.chat_completion([Message(role=Role.USER, content="Hello")])
        except ModelCallError as exc:
            logger.error("Connection test failed: %s", exc)
            return False
        logger.info("Connection test successful (%s)", self.model_info)
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build_headers(self) -> dict[str, str]:
        headers = {"content-type": "application/json"}
        if self._api_key:
            headers["authorization"] = f"Bearer {self._api_key}"
        return headers

    def _backoff(self, attempt: int, token: CancellationToken | None) -> None:
        delay = self._settings.api_backoff_base_seconds * (2**attempt)
        if token is None:
            time.sleep(delay)
            return
        if not token.sleep(delay):
            token.raise_if_cancelled("model retry back-off")

    @staticmethod
    def _extract_content(http_resp: httpx.Response) -> str:
        """Pull ``choices[0].message.content`` out of a 200 response.

        Raises:
            ModelCallError: If the body is not JSON or lacks the field.
        """
        try:
            body = http_resp.json()
        except ValueError as exc:
            raise ModelCallError(f"Response is not JSON: {exc}") from exc

        choices = body.get("choices") if isinstance(body, dict) else None
        if not choices:
            raise ModelCallError("No 'choices' in response")
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            raise ModelCallError("No 'message' in first choice")
        content = message.get("content")
        if content is None:
            raise ModelCallError("No 'content' in message")
        return str(content)

    def __repr__(self) -> str:
        return f"ModelClient(model={self._model_name!r}, base_url={self._base_url!r})"
