"""
Resilient request executor.

Wraps one backend client with:
  * authentication strategy fallback (bearer header -> token in body -> no token),
  * bounded retries per strategy with exponential backoff,
  * a hard per-attempt timeout,
  * classification of HTTP failures into fatal / strategy-abandon / retryable.

Each attempt ends in exactly one of four outcomes; the loop below only looks at
the outcome, never at status codes.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from profilegen.errors import (
    AuthenticationError,
    ConfigurationError,
    ExhaustedRetriesError,
    TransientUpstreamError,
    UpstreamError,
)
from profilegen.models import ExecutorEvent, GenerationRequest

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
BASE_DELAY = 2.0  # seconds

SUCCESS = "success"
RETRY = "retry"
ABANDON_STRATEGY = "abandon_strategy"
FATAL = "fatal"

Observer = Callable[[ExecutorEvent], None]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class AuthStrategy:
    name: str
    applies_token: bool
    apply: Callable[[Dict[str, str], Dict[str, Any]], None]


def _noop(headers: Dict[str, str], body: Dict[str, Any]) -> None:
    return None


def default_auth_strategies(token: Optional[str]) -> List[AuthStrategy]:
    """Header bearer, then token in body, then anonymous. Token strategies only when a token exists."""
    strategies: List[AuthStrategy] = []
    if token:
        def bearer_header(headers: Dict[str, str], body: Dict[str, Any]) -> None:
            headers["Authorization"] = f"Bearer {token}"

        def token_in_body(headers: Dict[str, str], body: Dict[str, Any]) -> None:
            body["token"] = token

        strategies.append(AuthStrategy("authenticated header", True, bearer_header))
        strategies.append(AuthStrategy("token in body", True, token_in_body))
    strategies.append(AuthStrategy("no token", False, _noop))
    return strategies


def backoff_delay(attempt: int, base_delay: float = BASE_DELAY) -> float:
    """Delay before attempt `attempt + 1`; attempts are 1-based."""
    return base_delay * 2 ** (attempt - 1)


def raise_for_status(response: httpx.Response, strategy: AuthStrategy, backend: str) -> None:
    """Maps a non-2xx response onto the error taxonomy."""
    status = response.status_code
    if 200 <= status < 300:
        return

    body = response.text or ""
    if status == 400:
        raise ConfigurationError(f"{backend}: invalid request configuration (400): {body[:200]}")
    if status in (401, 403) and strategy.applies_token:
        raise AuthenticationError(
            f"{backend}: credentials rejected ({status}) using '{strategy.name}'",
            status_code=status, backend=backend, body=body,
        )
    if status in (502, 503):
        raise TransientUpstreamError(
            f"{backend}: service temporarily unavailable ({status})",
            status_code=status, backend=backend, body=body,
        )
    raise UpstreamError(f"{backend}: API error ({status}): {body[:200]}", status_code=status, backend=backend, body=body)


def classify_error(error: Exception) -> str:
    if isinstance(error, ConfigurationError):
        return FATAL
    if isinstance(error, AuthenticationError):
        return ABANDON_STRATEGY
    return RETRY


class ResilientExecutor:
    """Runs a GenerationRequest against one backend client until it succeeds or gives up."""

    def __init__(
        self,
        max_attempts: int = MAX_RETRIES,
        base_delay: float = BASE_DELAY,
        sleep: Optional[Sleep] = None,
        observer: Optional[Observer] = None,
    ):
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self._sleep = sleep or asyncio.sleep
        self.observer = observer

    def _notify(self, observer: Optional[Observer], event: ExecutorEvent) -> None:
        if observer is None:
            return
        try:
            observer(event)
        except Exception as e:
            logger.warning(f"⚠️  Progress observer raised {type(e).__name__}: {e}")

    async def _attempt(
        self,
        backend: Any,
        http: httpx.AsyncClient,
        request: GenerationRequest,
        strategy: AuthStrategy,
    ) -> str:
        """One HTTP round trip. Returns content or raises a classified error."""
        attempt_request = request.clone()
        body = backend.build_body(attempt_request)
        headers = backend.base_headers()
        strategy.apply(headers, body)

        try:
            response = await asyncio.wait_for(
                http.post(backend.endpoint(attempt_request), headers=headers, json=body),
                timeout=backend.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise TransientUpstreamError(
                f"{backend.name}: request timed out after {backend.timeout:.0f}s", backend=backend.name
            ) from e
        except httpx.RequestError as e:
            raise TransientUpstreamError(f"{backend.name}: request error: {e}", backend=backend.name) from e

        raise_for_status(response, strategy, backend.name)

        try:
            payload = response.json()
        except ValueError as e:
            raise TransientUpstreamError(
                f"{backend.name}: response was not JSON", status_code=response.status_code,
                backend=backend.name, body=response.text or "",
            ) from e

        content = backend.extract_content(payload)
        if not content or not content.strip():
            raise TransientUpstreamError(f"{backend.name}: the model returned empty content", backend=backend.name)
        return content

    async def execute(
        self,
        backend: Any,
        request: GenerationRequest,
        token: Optional[str] = None,
        observer: Optional[Observer] = None,
    ) -> str:
        """
        Returns the first non-empty generation.

        Raises ConfigurationError immediately on a 400, and ExhaustedRetriesError
        (wrapping the last failure) once every strategy and attempt is used up.
        """
        observer = observer or self.observer
        strategies = backend.auth_strategies(token)
        last_error: Optional[Exception] = None

        async with backend.open_http() as http:
            for strategy in strategies:
                logger.info(f"🔄 [{backend.name}] Trying strategy '{strategy.name}'...")

                for attempt in range(1, self.max_attempts + 1):
                    logger.debug(f"  Attempt {attempt}/{self.max_attempts} ({strategy.name})")
                    self._notify(observer, ExecutorEvent("attempt", backend.name, strategy.name, attempt))
                    try:
                        content = await self._attempt(backend, http, request, strategy)
                    except (ConfigurationError, UpstreamError) as e:
                        last_error = e
                        outcome = classify_error(e)
                    else:
                        logger.info(f"✅ [{backend.name}] Success with '{strategy.name}' on attempt {attempt}")
                        self._notify(observer, ExecutorEvent(SUCCESS, backend.name, strategy.name, attempt))
                        return content

                    if outcome == FATAL:
                        logger.error(f"⛔ [{backend.name}] Configuration error, aborting: {last_error}")
                        self._notify(observer, ExecutorEvent(FATAL, backend.name, strategy.name, attempt, str(last_error)))
                        raise last_error

                    if outcome == ABANDON_STRATEGY:
                        logger.warning(f"⚠️  [{backend.name}] {last_error}; moving to next strategy")
                        self._notify(
                            observer,
                            ExecutorEvent("strategy_abandoned", backend.name, strategy.name, attempt, str(last_error)),
                        )
                        break

                    logger.error(f"❌ [{backend.name}] Attempt {attempt} failed: {last_error}")
                    if attempt < self.max_attempts:
                        delay = backoff_delay(attempt, self.base_delay)
                        logger.warning(f"⏳ Retrying in {delay:.2f} seconds... (Attempt {attempt}/{self.max_attempts})")
                        self._notify(
                            observer,
                            ExecutorEvent("retry", backend.name, strategy.name, attempt, str(last_error), {"delay": delay}),
                        )
                        await self._sleep(delay)

        logger.error(f"❌ [{backend.name}] All strategies and attempts failed")
        if last_error is None:
            raise ExhaustedRetriesError(f"{backend.name}: unknown upstream failure", backend=backend.name)
        raise ExhaustedRetriesError(
            f"{backend.name}: all attempts failed: {last_error}", last_error=last_error, backend=backend.name
        ) from last_error
