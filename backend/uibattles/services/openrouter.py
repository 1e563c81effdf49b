"""OpenRouter chat-completions client used to run one model per generation item."""

import logging
import os
import threading
import time

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
MAX_RETRIES = 2
_INITIAL_BACKOFF_SECONDS = 2.0
_REQUEST_TIMEOUT_SECONDS = 120.0
_RETRYABLE_STATUS_CODES = {408, 409, 429}


class APICallError(Exception):
    """A single call to the model API failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_body: str | None = None,
        is_retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.is_retryable = is_retryable


class RetryError(Exception):
    """Every attempt failed; *errors* holds each attempt's APICallError in order."""

    def __init__(self, message: str, errors: list[APICallError]) -> None:
        super().__init__(message)
        self.errors = errors

    @property
    def last_error(self) -> APICallError | None:
        return self.errors[-1] if self.errors else None


class GenerationCancelledError(Exception):
    """The caller's cancellation event was set before the call could finish."""


def _is_retryable_status(status_code: int) -> bool:
    return status_code in _RETRYABLE_STATUS_CODES or status_code >= 500


class OpenRouterClient:
    """Calls the OpenRouter chat completions endpoint with the user's API key."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        max_retries: int = MAX_RETRIES,
        backoff_seconds: float = _INITIAL_BACKOFF_SECONDS,
    ) -> None:
        if not api_key:
            raise ValueError("OpenRouter API key is required")
        self._api_key = api_key
        self._base_url = (base_url or os.environ.get("OPENROUTER_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds

    def generate(
        self,
        model_id: str,
        system_prompt: str,
        user_prompt: str,
        cancel: threading.Event | None = None,
    ) -> str:
        """Return the model's text for *user_prompt*.

        Retryable failures (429, 5xx, network) are retried up to max_retries times.
        Raises APICallError when the first failure is not retryable, RetryError when
        every attempt failed, GenerationCancelledError once *cancel* is set.
        """
        errors: list[APICallError] = []
        for attempt in range(self._max_retries + 1):
            if cancel is not None and cancel.is_set():
                raise GenerationCancelledError(f"Generation with {model_id} was cancelled")
            try:
                return self._complete(model_id, system_prompt, user_prompt)
            except APICallError as exc:
                errors.append(exc)
                if not exc.is_retryable or attempt == self._max_retries:
                    break
                delay = self._backoff_seconds * (2**attempt)
                logger.warning(
                    "model %s attempt %d/%d failed (%s), retrying in %.1fs",
                    model_id,
                    attempt + 1,
                    self._max_retries + 1,
                    exc,
                    delay,
                )
                if cancel is not None:
                    if cancel.wait(delay):
                        raise GenerationCancelledError(f"Generation with {model_id} was cancelled") from exc
                else:
                    time.sleep(delay)

        if len(errors) == 1:
            raise errors[0]
        raise RetryError(f"Failed after {len(errors)} attempts. Last error: {errors[-1]}", errors)

    def _complete(self, model_id: str, system_prompt: str, user_prompt: str) -> str:
        try:
            response = httpx.post(
                f"{self._base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "HTTP-Referer": os.environ.get("APP_ORIGIN", "http://localhost:8000"),
                    "X-Title": "UI Battles",
                },
                json={
                    "model": model_id,
                    "messages": [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                },
                timeout=_REQUEST_TIMEOUT_SECONDS,
            )
        except httpx.TransportError as exc:
            raise APICallError(f"Cannot connect to API: {exc}", is_retryable=True) from exc

        if response.is_error:
            raise APICallError(
                response.reason_phrase or f"HTTP {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
                is_retryable=_is_retryable_status(response.status_code),
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise APICallError(
                "Invalid JSON response", status_code=response.status_code, response_body=response.text
            ) from exc

        # OpenRouter reports some upstream provider failures with a 200 status.
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            code = data["error"].get("code")
            raise APICallError(
                str(data["error"].get("message") or "Provider returned an error"),
                status_code=code if isinstance(code, int) else response.status_code,
                response_body=response.text,
                is_retryable=isinstance(code, int) and _is_retryable_status(code),
            )

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise APICallError(
                "Response contained no message content",
                status_code=response.status_code,
                response_body=response.text,
            ) from exc
        return content or ""
