"""
Generative backend clients.

Every client speaks HTTP through httpx and exposes the same
`complete(prompt, system_prompt, options)` call; retries, timeouts and auth
fallback live in the ResilientExecutor the client is handed.

  * PollinationsClient - free, token-optional OpenAI-compatible text API
  * OpenAIClient       - paid chat-completions API (render backend "A")
  * GeminiClient       - paid Gemini generateContent API (render backend "B")
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from profilegen.config import Settings
from profilegen.errors import ConfigurationError, TransientUpstreamError
from profilegen.executor import AuthStrategy, ResilientExecutor, default_auth_strategies
from profilegen.models import GenerationRequest

logger = logging.getLogger(__name__)

POLLINATIONS = "pollinations"
OPENAI = "openai"
GEMINI = "gemini"


class BackendClient:
    name = "backend"

    def __init__(
        self,
        settings: Settings,
        executor: Optional[ResilientExecutor] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.executor = executor or ResilientExecutor(settings.max_attempts, settings.base_delay)
        self.transport = transport

    # --- configuration -------------------------------------------------
    @property
    def model(self) -> str:
        raise NotImplementedError

    @property
    def timeout(self) -> float:
        raise NotImplementedError

    @property
    def is_configured(self) -> bool:
        return True

    def endpoint(self, request: GenerationRequest) -> str:
        raise NotImplementedError

    def base_headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def auth_strategies(self, token: Optional[str]) -> List[AuthStrategy]:
        return default_auth_strategies(token)

    # --- wire format -----------------------------------------------------
    def build_body(self, request: GenerationRequest) -> Dict[str, Any]:
        return request.to_payload()

    def _malformed(self, what: str) -> TransientUpstreamError:
        return TransientUpstreamError(f"{self.name}: unexpected response shape ({what})", backend=self.name)

    def extract_content(self, payload: Any) -> str:
        """First choice's message content (OpenAI-compatible shape)."""
        if not isinstance(payload, dict):
            raise self._malformed("body is not an object")
        choices = payload.get("choices") or []
        if not isinstance(choices, list) or not choices:
            raise TransientUpstreamError(f"{self.name}: no choices in response", backend=self.name)
        choice = choices[0]
        if not isinstance(choice, dict):
            raise self._malformed("choice is not an object")
        message = choice.get("message") or {}
        if not isinstance(message, dict):
            raise self._malformed("message is not an object")
        content = message.get("content") or ""
        if not isinstance(content, str):
            raise self._malformed("content is not a string")
        return content

    def open_http(self) -> httpx.AsyncClient:
        """Fresh client per call. TLS verification is scoped to this instance only."""
        kwargs: Dict[str, Any] = {"timeout": self.timeout, "verify": self.settings.verify_tls}
        if self.transport is not None:
            kwargs["transport"] = self.transport
        return httpx.AsyncClient(**kwargs)

    # --- public ------------------------------------------------------------
    def build_request(self, prompt: str, system_prompt: str = "", options: Optional[Dict[str, Any]] = None) -> GenerationRequest:
        options = dict(options or {})
        model = options.pop("model", None) or self.model
        return GenerationRequest.from_prompts(model, system_prompt, prompt, **options)

    async def complete(
        self,
        prompt: str,
        system_prompt: str = "",
        options: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
        observer=None,
    ) -> str:
        """
        Sends one prompt and returns the generated text.
        `options` maps onto GenerationRequest fields (temperature, json_mode, ...).
        """
        if not self.is_configured:
            raise ConfigurationError(f"{self.name}: API key is not configured")
        request = self.build_request(prompt, system_prompt, options)
        logger.info(f"🤖 Calling {self.name} (model={request.model})...")
        logger.debug(f"Prompt length: {len(prompt)} characters")
        return await self.executor.execute(self, request, token=token, observer=observer)


class PollinationsClient(BackendClient):
    name = POLLINATIONS

    @property
    def model(self) -> str:
        return self.settings.pollinations_model

    @property
    def timeout(self) -> float:
        return self.settings.pollinations_timeout

    def endpoint(self, request: GenerationRequest) -> str:
        return self.settings.pollinations_api_url

    def build_request(self, prompt: str, system_prompt: str = "", options: Optional[Dict[str, Any]] = None) -> GenerationRequest:
        options = dict(options or {})
        # Keep generations out of the public feed
        options.setdefault("private", True)
        return super().build_request(prompt, system_prompt, options)


class OpenAIClient(BackendClient):
    name = OPENAI

    @property
    def model(self) -> str:
        return self.settings.openai_model

    @property
    def timeout(self) -> float:
        return self.settings.openai_timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.openai_api_key)

    def endpoint(self, request: GenerationRequest) -> str:
        return self.settings.openai_api_url

    def base_headers(self) -> Dict[str, str]:
        headers = super().base_headers()
        if self.settings.openai_organization:
            headers["OpenAI-Organization"] = self.settings.openai_organization
        if self.settings.openai_project:
            headers["OpenAI-Project"] = self.settings.openai_project
        return headers

    def build_body(self, request: GenerationRequest) -> Dict[str, Any]:
        body = request.to_payload()
        # Pollinations-only flags
        body.pop("private", None)
        body.pop("reasoning_effort", None)
        return body

    def auth_strategies(self, token: Optional[str]) -> List[AuthStrategy]:
        key = self.settings.openai_api_key

        def api_key_header(headers: Dict[str, str], body: Dict[str, Any]) -> None:
            headers["Authorization"] = f"Bearer {key}"

        return [AuthStrategy("api key", True, api_key_header)]


class GeminiClient(BackendClient):
    name = GEMINI

    @property
    def model(self) -> str:
        return self.settings.gemini_model

    @property
    def timeout(self) -> float:
        return self.settings.gemini_timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.gemini_api_key)

    def endpoint(self, request: GenerationRequest) -> str:
        return f"{self.settings.gemini_api_base}/{request.model}:generateContent"

    def build_body(self, request: GenerationRequest) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "contents": [
                {"role": "user", "parts": [{"text": request.user_prompt}]}
            ]
        }
        if request.system_prompt:
            body["systemInstruction"] = {"parts": [{"text": request.system_prompt}]}
        generation_config: Dict[str, Any] = {}
        if request.temperature is not None:
            generation_config["temperature"] = request.temperature
        if request.json_mode:
            generation_config["responseMimeType"] = "application/json"
        if generation_config:
            body["generationConfig"] = generation_config
        return body

    def extract_content(self, payload: Any) -> str:
        if not isinstance(payload, dict):
            raise self._malformed("body is not an object")
        candidates = payload.get("candidates") or []
        if not isinstance(candidates, list) or not candidates:
            raise TransientUpstreamError(f"{self.name}: no candidates in response", backend=self.name)
        candidate = candidates[0]
        if not isinstance(candidate, dict):
            raise self._malformed("candidate is not an object")
        content = candidate.get("content") or {}
        if not isinstance(content, dict):
            raise self._malformed("content is not an object")
        parts = content.get("parts") or []
        if not isinstance(parts, list):
            raise self._malformed("parts is not a list")
        texts = []
        for part in parts:
            text = part.get("text", "") if isinstance(part, dict) else None
            if not isinstance(text, str):
                raise self._malformed("part text is not a string")
            texts.append(text)
        return "".join(texts)

    def auth_strategies(self, token: Optional[str]) -> List[AuthStrategy]:
        key = self.settings.gemini_api_key

        def api_key_header(headers: Dict[str, str], body: Dict[str, Any]) -> None:
            headers["x-goog-api-key"] = key

        return [AuthStrategy("api key", True, api_key_header)]


def build_clients(
    settings: Settings,
    executor: Optional[ResilientExecutor] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, BackendClient]:
    return {
        POLLINATIONS: PollinationsClient(settings, executor, transport),
        OPENAI: OpenAIClient(settings, executor, transport),
        GEMINI: GeminiClient(settings, executor, transport),
    }
