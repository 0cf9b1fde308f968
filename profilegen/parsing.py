"""
Parsing and validation of model output.

Model responses are untrusted input: everything is decoded and checked here
before it becomes a ProfileData.
"""

import json
import logging
import re
from typing import Any, List, Optional

from profilegen.errors import MalformedResponseError
from profilegen.models import ProfileData, ProfileSection

logger = logging.getLogger(__name__)

OPENING_FENCE_RE = re.compile(r'^\s*```[\w+-]*[ \t]*\n?')
CLOSING_FENCE_RE = re.compile(r'\n?[ \t]*```\s*$')
JSON_OBJECT_RE = re.compile(r'\{.*\}', re.DOTALL)

SNIPPET_LENGTH = 200


def strip_code_fences(text: str) -> str:
    """Removes a leading ```lang fence and a trailing ``` fence, then trims."""
    if text is None:
        return ""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        logger.debug("Removing markdown fence (start)")
        cleaned = OPENING_FENCE_RE.sub("", cleaned, count=1)
        if cleaned.rstrip().endswith("```"):
            logger.debug("Removing markdown fence (end)")
            cleaned = CLOSING_FENCE_RE.sub("", cleaned, count=1)
    return cleaned.strip()


def _snippet(text: str) -> str:
    return text[:SNIPPET_LENGTH] + ("..." if len(text) > SNIPPET_LENGTH else "")


def _decode(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as first_error:
        # Tolerate prose around a single JSON object
        json_match = JSON_OBJECT_RE.search(text)
        if json_match and json_match.group(0) != text:
            logger.debug("Extracted JSON from mixed response")
            try:
                return json.loads(json_match.group(0))
            except json.JSONDecodeError:
                pass
        raise MalformedResponseError(
            f"Model response is not valid JSON ({first_error.msg} at line {first_error.lineno}, "
            f"column {first_error.colno}): {_snippet(text)}",
            snippet=_snippet(text),
        ) from first_error


def validation_problems(data: Any) -> List[str]:
    """Every structural problem found in a decoded document. Empty list means valid."""
    if not isinstance(data, dict):
        return [f"top-level value must be an object, got {type(data).__name__}"]

    sections = data.get("sections")
    if sections is None:
        return ["missing 'sections'"]
    if not isinstance(sections, list):
        return [f"'sections' must be an array, got {type(sections).__name__}"]
    if not sections:
        return ["'sections' is empty"]

    problems = []
    for index, section in enumerate(sections):
        if not isinstance(section, dict):
            problems.append(f"sections[{index}] must be an object")
            continue
        for field in ("header", "text"):
            value = section.get(field)
            if not isinstance(value, str):
                problems.append(f"sections[{index}].{field} must be a string")
            elif not value.strip():
                problems.append(f"sections[{index}].{field} is empty")
    return problems


def parse_profile_data(raw_text: str) -> ProfileData:
    """
    Decodes a model response into ProfileData.
    Raises MalformedResponseError on parse failure or on any schema violation.
    """
    text = strip_code_fences(raw_text or "")
    if not text:
        raise MalformedResponseError("Model response is empty", snippet="")

    data = _decode(text)
    problems = validation_problems(data)
    if problems:
        logger.error(f"❌ Model JSON failed validation: {'; '.join(problems)}")
        logger.debug(f"Raw output (first 1000 chars): {text[:1000]}")
        raise MalformedResponseError(
            f"Model JSON does not match the profile schema: {'; '.join(problems)}",
            snippet=_snippet(text),
            problems=problems,
        )

    return ProfileData(
        sections=[ProfileSection(header=s["header"], text=s["text"]) for s in data["sections"]]
    )


def coerce_profile_data(value: Any) -> Optional[ProfileData]:
    """Lenient loader for stored documents: None instead of an exception."""
    if isinstance(value, ProfileData):
        return value
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return None
    if validation_problems(value):
        return None
    return ProfileData(
        sections=[ProfileSection(header=s["header"], text=s["text"]) for s in value["sections"]]
    )


def normalize_header(header: str) -> str:
    return " ".join(header.split()).casefold()


def merge_augmented(base: ProfileData, candidate: ProfileData) -> ProfileData:
    """
    Applies the append-only augmentation contract to a model answer.

    Base sections keep their order and text; sections from the candidate are
    appended only when their header is new. Duplicate headers are dropped.
    """
    merged = [ProfileSection(header=s.header, text=s.text) for s in base.sections]
    seen = {normalize_header(s.header) for s in merged}
    dropped = 0

    for section in candidate.sections:
        key = normalize_header(section.header)
        if key in seen:
            dropped += 1
            continue
        seen.add(key)
        merged.append(ProfileSection(header=section.header, text=section.text))

    missing = [h for h in base.headers() if normalize_header(h) not in {normalize_header(c) for c in candidate.headers()}]
    if missing:
        logger.warning(f"⚠️  Model dropped {len(missing)} existing section(s); restored: {missing}")
    if dropped:
        logger.debug(f"Ignored {dropped} section(s) with an existing header")

    return ProfileData(sections=merged)
