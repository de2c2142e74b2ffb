"""
AI Service for the Vercel AI Gateway.
Structured-output LLM calls (OpenAI-compatible /chat/completions) validated
into pydantic models. Transient failures are retried with exponential
backoff; a circuit breaker stops calling a failing gateway for a while.
"""
import json
import logging
import threading
import time
from collections import deque
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.1
REQUEST_TIMEOUT = 120.0
MAX_RETRIES = 3

# Circuit breaker configuration
CIRCUIT_BREAKER_ERROR_THRESHOLD = 0.50
CIRCUIT_BREAKER_WINDOW_SECONDS = 300
CIRCUIT_BREAKER_RESET_SECONDS = 60
CIRCUIT_BREAKER_MIN_CALLS = 10

T = TypeVar("T", bound=BaseModel)


class AIServiceError(Exception):
    """Base error for AI gateway calls"""


class AINetworkError(AIServiceError):
    """Transport failure, timeout or 5xx after retries"""


class AIResponseError(AIServiceError):
    """Gateway rejected the request (4xx) or returned an unusable body"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AISchemaError(AIServiceError):
    """Model output did not match the requested schema"""


class AIUnavailableError(AIServiceError):
    """Gateway not configured or circuit breaker open"""


class _RetryableStatus(Exception):
    def __init__(self, status_code: int, body: str):
        super().__init__(f"HTTP {status_code}: {body[:200]}")
        self.status_code = status_code


class CircuitBreaker:
    """Opens when the recent error rate crosses a threshold; half-opens after a cool-down."""

    def __init__(
        self,
        error_threshold: float = CIRCUIT_BREAKER_ERROR_THRESHOLD,
        window_seconds: int = CIRCUIT_BREAKER_WINDOW_SECONDS,
        reset_seconds: int = CIRCUIT_BREAKER_RESET_SECONDS,
    ):
        self.error_threshold = error_threshold
        self.window_seconds = window_seconds
        self.reset_seconds = reset_seconds
        self.error_history = deque()  # (timestamp, is_error)
        self.circuit_open = False
        self.circuit_open_since: Optional[float] = None
        self._lock = threading.Lock()

    def record_call(self, is_error: bool):
        with self._lock:
            now = time.time()
            self.error_history.append((now, is_error))

            cutoff = now - self.window_seconds
            while self.error_history and self.error_history[0][0] < cutoff:
                self.error_history.popleft()

            if not is_error and self.circuit_open:
                self.circuit_open = False
                self.circuit_open_since = None
                logger.info("[ai_service] Circuit breaker CLOSED after successful call")
                return

            if len(self.error_history) >= CIRCUIT_BREAKER_MIN_CALLS:
                errors = sum(1 for _, is_err in self.error_history if is_err)
                error_rate = errors / len(self.error_history)
                if error_rate >= self.error_threshold and not self.circuit_open:
                    self.circuit_open = True
                    self.circuit_open_since = now
                    logger.warning(f"[ai_service] Circuit breaker OPENED: error rate {error_rate:.1%} >= {self.error_threshold:.1%}")

    def can_make_call(self) -> bool:
        with self._lock:
            if not self.circuit_open:
                return True
            if self.circuit_open_since and time.time() - self.circuit_open_since >= self.reset_seconds:
                self.circuit_open = False
                self.circuit_open_since = None
                logger.info("[ai_service] Circuit breaker CLOSED (half-open state)")
                return True
            return False


class AIGatewayClient:
    """Client for structured generation through the AI gateway."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str,
        model: str,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.transport = transport
        self.timeout = timeout
        self.enabled = bool(api_key)
        self.circuit_breaker = CircuitBreaker()

        if not self.enabled:
            logger.warning("[ai_service] AI gateway API key not configured. AI features disabled.")

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    @retry(
        stop=stop_after_attempt(MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError, _RetryableStatus)),
        reraise=True,
    )
    def _post_completion(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            response = client.post(
                f"{self.base_url}/chat/completions",
                headers=self._headers(),
                json=payload,
            )

        if response.status_code >= 500:
            logger.warning(f"[ai_service] HTTP {response.status_code} from gateway, will retry")
            raise _RetryableStatus(response.status_code, response.text)
        if response.status_code >= 400:
            raise AIResponseError(
                f"AI gateway returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise AIResponseError(f"AI gateway returned invalid JSON: {e}") from e

    def complete_json(self, messages: List[Dict[str, str]], temperature: float = DEFAULT_TEMPERATURE) -> Dict[str, Any]:
        """
        Run a chat completion in JSON mode and return the parsed object.

        Raises:
            AIUnavailableError, AINetworkError, AIResponseError, AISchemaError
        """
        if not self.enabled:
            raise AIUnavailableError("AI gateway not configured")
        if not self.circuit_breaker.can_make_call():
            raise AIUnavailableError("AI gateway circuit breaker is open")

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "response_format": {"type": "json_object"},
        }

        start_time = time.time()
        try:
            data = self._post_completion(payload)
        except (httpx.TimeoutException, httpx.TransportError, _RetryableStatus) as e:
            self.circuit_breaker.record_call(True)
            logger.error(f"[ai_service] Gateway call failed after {MAX_RETRIES} attempts: {e}")
            raise AINetworkError(f"AI gateway unreachable: {e}") from e
        except AIResponseError:
            self.circuit_breaker.record_call(True)
            raise
        except httpx.HTTPError as e:
            self.circuit_breaker.record_call(True)
            logger.error(f"[ai_service] Gateway call failed: {type(e).__name__}: {e}")
            raise AINetworkError(f"AI gateway request failed: {e}") from e

        self.circuit_breaker.record_call(False)
        elapsed_ms = int((time.time() - start_time) * 1000)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise AIResponseError(f"Unexpected response format: {e}") from e

        usage = data.get("usage") or {}
        logger.info(f"[ai_service] Completion in {elapsed_ms}ms (tokens: {usage.get('total_tokens', '?')})")

        if isinstance(content, dict):
            return content
        try:
            parsed = json.loads(_strip_code_fence(content or ""))
        except json.JSONDecodeError as e:
            raise AISchemaError(f"Model did not return valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise AISchemaError("Model returned JSON that is not an object")
        return parsed

    def generate_object(self, instructions: str, prompt: str, model_cls: Type[T]) -> T:
        """
        Generate a structured object.

        Args:
            instructions: System instructions for the model
            prompt: User prompt
            model_cls: Pydantic model the response must validate against

        Returns:
            Validated model instance
        """
        schema = json.dumps(model_cls.model_json_schema())
        messages = [
            {
                "role": "system",
                "content": f"{instructions}\n\nRespond with a single JSON object matching this JSON Schema:\n{schema}",
            },
            {"role": "user", "content": prompt},
        ]
        raw = self.complete_json(messages)
        try:
            return model_cls.model_validate(raw)
        except ValidationError as e:
            raise AISchemaError(f"Response did not match {model_cls.__name__}: {e}") from e


def _strip_code_fence(content: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()
