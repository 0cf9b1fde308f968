"""
Data shapes passed through the pipeline.

ProfileSection / ProfileData are pydantic models because they cross the HTTP
boundary; the request-scoped values are plain dataclasses.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ProfileSection(BaseModel):
    header: str = Field(..., description="Section title, e.g. 'Experience'")
    text: str = Field(..., description="Reformulated prose for the section")


class ProfileData(BaseModel):
    sections: List[ProfileSection] = Field(..., description="Sections in display order")

    def headers(self) -> List[str]:
        return [section.header for section in self.sections]


@dataclass
class GenerationRequest:
    """One chat-completion request. Cloned before every attempt."""

    model: str
    messages: List[Dict[str, str]]
    temperature: Optional[float] = None
    reasoning_effort: Optional[str] = None
    private: Optional[bool] = None
    stream: bool = False
    json_mode: bool = False

    @classmethod
    def from_prompts(cls, model: str, system_prompt: str, user_prompt: str, **options: Any) -> "GenerationRequest":
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})
        return cls(model=model, messages=messages, **options)

    def clone(self) -> "GenerationRequest":
        return copy.deepcopy(self)

    @property
    def system_prompt(self) -> str:
        return "\n\n".join(m["content"] for m in self.messages if m["role"] == "system")

    @property
    def user_prompt(self) -> str:
        return "\n\n".join(m["content"] for m in self.messages if m["role"] != "system")

    def to_payload(self) -> Dict[str, Any]:
        """OpenAI-compatible chat-completions body."""
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": copy.deepcopy(self.messages),
            "stream": self.stream,
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.reasoning_effort:
            payload["reasoning_effort"] = self.reasoning_effort
        if self.private is not None:
            payload["private"] = self.private
        if self.json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload


@dataclass
class RenderOptions:
    username: Optional[str] = None
    additional_instructions: Optional[str] = None
    preferred_backend: Optional[str] = None
    previous_markup: Optional[str] = None


@dataclass
class PromptPair:
    system_prompt: str
    user_prompt: str


@dataclass
class ExecutorEvent:
    """Progress notification handed to an optional observer callable."""

    kind: str  # attempt | retry | strategy_abandoned | success | fatal
    backend: str
    strategy: str
    attempt: int
    detail: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)
