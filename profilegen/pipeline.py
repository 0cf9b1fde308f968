"""
The three pipeline operations exposed to the route layer:

    reformulate(text)                 -> ProfileData
    augment(profile, instructions)    -> ProfileData
    render(profile, options)          -> HTML fragment
"""

import logging
from typing import Dict, Optional

import httpx

from profilegen.backends import POLLINATIONS, BackendClient, build_clients
from profilegen.config import Settings, get_settings
from profilegen.errors import MalformedResponseError
from profilegen.executor import ResilientExecutor
from profilegen.models import ProfileData, RenderOptions
from profilegen.parsing import merge_augmented, parse_profile_data, strip_code_fences
from profilegen.prompts import build_augment_prompt, build_reformulate_prompt, build_render_prompt
from profilegen.selection import candidate_backends, render_with_fallback

logger = logging.getLogger(__name__)

# Pollinations' "openai" model only accepts the default temperature, so none is sent
STRUCTURED_OPTIONS = {"reasoning_effort": "medium", "json_mode": True}
RENDER_OPTIONS = {"reasoning_effort": "medium"}


def clean_fragment(raw: str) -> str:
    """Strips markdown fences; an empty fragment counts as a failed generation."""
    markup = strip_code_fences(raw)
    if not markup:
        raise MalformedResponseError("Render backend returned an empty fragment", snippet=raw[:200])
    return markup


class ProfilePipeline:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        clients: Optional[Dict[str, BackendClient]] = None,
        executor: Optional[ResilientExecutor] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        observer=None,
    ):
        self.settings = settings or get_settings()
        self.clients = clients or build_clients(self.settings, executor, transport)
        self.observer = observer

    def _token(self, token: Optional[str]) -> Optional[str]:
        return token if token is not None else self.settings.pollinations_token

    async def reformulate(
        self,
        extracted_text: str,
        token: Optional[str] = None,
        secondary_text: Optional[str] = None,
    ) -> ProfileData:
        """Structures raw PDF text (plus an optional secondary source) into sections."""
        if not extracted_text or not extracted_text.strip():
            raise ValueError("extracted_text is empty")

        logger.info(f"🔨 Reformulating {len(extracted_text)} characters into profile sections...")
        prompts = build_reformulate_prompt(extracted_text, secondary_text)
        raw = await self.clients[POLLINATIONS].complete(
            prompts.user_prompt, prompts.system_prompt, STRUCTURED_OPTIONS,
            token=self._token(token), observer=self.observer,
        )
        profile = parse_profile_data(raw)
        logger.info(f"✅ Reformulation complete - {len(profile.sections)} sections")
        return profile

    async def augment(
        self,
        current_profile: ProfileData,
        instructions: str,
        token: Optional[str] = None,
    ) -> ProfileData:
        """Adds sections from free-text instructions; existing sections are never removed."""
        instructions = (instructions or "").strip()
        if not instructions:
            raise ValueError("instructions are required")

        logger.info(f"🔨 Augmenting profile ({len(current_profile.sections)} sections) with new instructions...")
        prompts = build_augment_prompt(current_profile, instructions)
        raw = await self.clients[POLLINATIONS].complete(
            prompts.user_prompt, prompts.system_prompt, STRUCTURED_OPTIONS,
            token=self._token(token), observer=self.observer,
        )
        candidate = parse_profile_data(raw)
        merged = merge_augmented(current_profile, candidate)
        logger.info(f"✅ Augmentation complete - {len(current_profile.sections)} -> {len(merged.sections)} sections")
        return merged

    async def render(
        self,
        profile: ProfileData,
        options: Optional[RenderOptions] = None,
        token: Optional[str] = None,
    ) -> str:
        """HTML fragment for the profile; walks the backend fallback chain."""
        options = options or RenderOptions()
        prompts = build_render_prompt(profile, options)
        candidates = candidate_backends(options.preferred_backend, self.settings)
        mode = "revise" if options.previous_markup else "create"
        logger.info(f"🎨 Rendering profile ({mode} mode), backends: {' -> '.join(candidates)}")

        markup = await render_with_fallback(
            self.clients, candidates, prompts.user_prompt, prompts.system_prompt,
            RENDER_OPTIONS, token=self._token(token), observer=self.observer,
            postprocess=clean_fragment,
        )
        logger.info(f"✅ Render complete - {len(markup)} characters of markup")
        return markup
