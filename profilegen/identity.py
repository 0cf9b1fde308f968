"""
Profile identity: display name and public slug derived from an auth identity.
"""

import re
import secrets
import unicodedata
from dataclasses import dataclass
from typing import Optional, Tuple

DEFAULT_DISPLAY_NAME = "Professional Profile"


@dataclass
class BasicIdentity:
    auth_id: str
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None


@dataclass
class ProfileIdentity:
    username: str
    display_name: str
    slug: str
    email: Optional[str]
    auth_user_id: str


def remove_diacritics(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def slugify(value: str) -> str:
    normalized = remove_diacritics(value).lower()
    normalized = re.sub(r"[^a-z0-9]+", "-", normalized)
    return normalized.strip("-")


def _email_local_part(email: Optional[str]) -> str:
    if not email:
        return ""
    return email.split("@")[0].strip()


def _base_names(identity: BasicIdentity) -> Tuple[str, str]:
    full_name = " ".join(p for p in (identity.first_name, identity.last_name) if p).strip()
    username = (identity.username or "").strip()
    local_part = _email_local_part(identity.email)

    display = full_name or username or local_part or DEFAULT_DISPLAY_NAME
    base = username or full_name or local_part or identity.auth_id
    return base, display


def stable_suffix(auth_id: str) -> str:
    """Last six alphanumerics of the auth id, so the slug survives renames."""
    sanitized = re.sub(r"[^a-zA-Z0-9]", "", auth_id).lower()
    return sanitized[-6:] or secrets.token_hex(3)


def derive_profile_identity(identity: BasicIdentity) -> ProfileIdentity:
    base, display = _base_names(identity)
    base_slug = slugify(base)
    suffix = stable_suffix(identity.auth_id)
    slug = f"{base_slug}-{suffix}" if base_slug else f"user-{suffix}"

    return ProfileIdentity(
        username=display,
        display_name=display,
        slug=slug,
        email=identity.email or None,
        auth_user_id=identity.auth_id,
    )
