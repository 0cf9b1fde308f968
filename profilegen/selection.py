"""
Render backend selection.

Paid backends are tried in preference order; the credential-free Pollinations
backend is always the last candidate and its failure is the only one that
reaches the caller.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from profilegen.backends import GEMINI, OPENAI, POLLINATIONS, BackendClient
from profilegen.config import Settings
from profilegen.errors import ConfigurationError

logger = logging.getLogger(__name__)

KEYED_BACKENDS = (OPENAI, GEMINI)
BACKEND_ALIASES = {
    "a": OPENAI,
    "openai": OPENAI,
    "b": GEMINI,
    "gemini": GEMINI,
    "auto": "auto",
    "": "auto",
    "pollinations": POLLINATIONS,
}


def normalize_backend(preferred: Optional[str]) -> str:
    key = (preferred or "").strip().lower()
    if key not in BACKEND_ALIASES:
        raise ConfigurationError(f"Unknown render backend: {preferred!r}")
    return BACKEND_ALIASES[key]


def _has_key(backend: str, settings: Settings) -> bool:
    if backend == OPENAI:
        return bool(settings.openai_api_key)
    if backend == GEMINI:
        return bool(settings.gemini_api_key)
    return True


def candidate_backends(preferred: Optional[str], settings: Settings) -> List[str]:
    """
    Ordered backends to try for HTML rendering.

    An explicit choice goes first and the other paid backend second; "auto"
    only lists paid backends whose key is configured. Pollinations is last.
    """
    choice = normalize_backend(preferred or settings.render_backend)
    candidates: List[str] = []

    if choice in KEYED_BACKENDS:
        candidates.append(choice)
        candidates.extend(b for b in KEYED_BACKENDS if b != choice)
    elif choice == "auto":
        candidates.extend(b for b in KEYED_BACKENDS if _has_key(b, settings))

    candidates.append(POLLINATIONS)
    return candidates


async def render_with_fallback(
    clients: Dict[str, BackendClient],
    candidates: List[str],
    prompt: str,
    system_prompt: str,
    options: Optional[Dict[str, Any]] = None,
    token: Optional[str] = None,
    observer=None,
    postprocess: Optional[Callable[[str], str]] = None,
) -> str:
    """
    Tries each candidate in order and returns the first generation.
    `postprocess` runs per candidate, so output it rejects moves on to the next
    backend. Failures are logged and skipped; the last candidate's failure propagates.
    """
    last_index = len(candidates) - 1
    for index, name in enumerate(candidates):
        client = clients[name]
        # Paid backends carry their own key; only Pollinations takes the caller token
        client_token = token if name == POLLINATIONS else None
        try:
            logger.info(f"🎨 Rendering with {name} ({index + 1}/{len(candidates)})")
            raw = await client.complete(prompt, system_prompt, options, token=client_token, observer=observer)
            return postprocess(raw) if postprocess else raw
        except Exception as e:
            if index == last_index:
                logger.error(f"❌ Final render backend {name} failed: {e}")
                raise
            logger.warning(f"⚠️  Render backend {name} failed ({type(e).__name__}: {e}); trying next backend")

    raise ConfigurationError("No render backend candidates")
