"""
profilegen: turns an uploaded PDF résumé into a hosted profile page.

PDF text -> LLM structured sections -> optional augmentation -> LLM HTML fragment.
"""

from profilegen.errors import (
    AuthenticationError,
    ConfigurationError,
    ExhaustedRetriesError,
    ExtractionError,
    MalformedResponseError,
    ProfileGenError,
    TransientUpstreamError,
    UpstreamError,
)
from profilegen.models import ProfileData, ProfileSection, RenderOptions
from profilegen.pipeline import ProfilePipeline

__version__ = "0.1.0"

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "ExhaustedRetriesError",
    "ExtractionError",
    "MalformedResponseError",
    "ProfileData",
    "ProfileGenError",
    "ProfilePipeline",
    "ProfileSection",
    "RenderOptions",
    "TransientUpstreamError",
    "UpstreamError",
]
