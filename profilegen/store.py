"""
Profile store: one JSON document per slug on local disk.

The pipeline never touches the store; only the route layer reads and writes
records, after the pipeline has returned.
"""

import asyncio
import json
import logging
import os
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiofiles

from profilegen.identity import ProfileIdentity
from profilegen.models import ProfileData

logger = logging.getLogger(__name__)


class ProfileNotFoundError(LookupError):
    pass


def sanitize_slug(slug: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_-]", "-", slug or "")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dump_profile(profile: Optional[ProfileData]) -> Optional[Dict[str, Any]]:
    return profile.model_dump() if profile is not None else None


class ProfileStore:
    def __init__(self, directory: str):
        self.directory = directory
        os.makedirs(self.directory, exist_ok=True)
        self._lock = asyncio.Lock()

    def _path(self, slug: str) -> str:
        return os.path.join(self.directory, f"{sanitize_slug(slug)}.json")

    async def _read(self, path: str) -> Optional[Dict[str, Any]]:
        if not os.path.exists(path):
            return None
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                return json.loads(await f.read())
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"❌ Could not read profile record {path}: {e}")
            return None

    async def _write(self, record: Dict[str, Any]) -> Dict[str, Any]:
        path = self._path(record["slug"])
        tmp_path = f"{path}.{uuid.uuid4().hex}.tmp"
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(record, ensure_ascii=False, indent=2))
        os.replace(tmp_path, path)
        logger.debug(f"Profile record written: {path}")
        return record

    async def get_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        if not sanitize_slug(slug):
            return None
        return await self._read(self._path(slug))

    async def get_by_auth_id(self, auth_user_id: str) -> Optional[Dict[str, Any]]:
        if not auth_user_id:
            return None
        for name in sorted(os.listdir(self.directory)):
            if not name.endswith(".json"):
                continue
            record = await self._read(os.path.join(self.directory, name))
            if record and record.get("auth_user_id") == auth_user_id:
                return record
        return None

    async def _get_or_new(self, slug: str, auth_user_id: Optional[str]) -> Dict[str, Any]:
        record = await self.get_by_slug(slug)
        if record is None and auth_user_id:
            record = await self.get_by_auth_id(auth_user_id)
        if record is not None:
            return record
        now = _now()
        return {
            "id": str(uuid.uuid4()),
            "auth_user_id": auth_user_id,
            "username": slug,
            "slug": sanitize_slug(slug),
            "email": None,
            "profile_json": None,
            "pdf_raw": None,
            "profile_html": None,
            "last_enriched_at": None,
            "last_rendered_at": None,
            "created_at": now,
            "updated_at": now,
        }

    async def _require(self, slug: str) -> Dict[str, Any]:
        record = await self.get_by_slug(slug)
        if record is None:
            raise ProfileNotFoundError(f"No profile for slug {slug!r}")
        return record

    async def save_from_pdf(
        self,
        identity: ProfileIdentity,
        pdf_text: str,
        profile_json: Optional[ProfileData],
    ) -> Dict[str, Any]:
        """Upserts the record for a fresh upload; any previously rendered page is discarded."""
        async with self._lock:
            record = await self._get_or_new(identity.slug, identity.auth_user_id)
            now = _now()
            record.update({
                "auth_user_id": identity.auth_user_id,
                "username": identity.username,
                "email": identity.email,
                "pdf_raw": pdf_text,
                "profile_json": _dump_profile(profile_json),
                "profile_html": None,
                "last_enriched_at": now if profile_json is not None else None,
                "updated_at": now,
            })
            logger.info(f"💾 Saved profile from PDF: {record['slug']}")
            return await self._write(record)

    async def ensure_metadata(
        self,
        username: str,
        slug: str,
        email: Optional[str],
        auth_user_id: str,
    ) -> Dict[str, Any]:
        async with self._lock:
            record = await self._get_or_new(slug, auth_user_id)
            record.update({
                "auth_user_id": auth_user_id,
                "username": username or record["username"],
                "email": email,
                "updated_at": _now(),
            })
            return await self._write(record)

    async def update_json(
        self,
        slug: str,
        profile_json: ProfileData,
        pdf_text: Optional[str] = None,
    ) -> Dict[str, Any]:
        async with self._lock:
            record = await self._require(slug)
            now = _now()
            record["profile_json"] = _dump_profile(profile_json)
            record["last_enriched_at"] = now
            record["updated_at"] = now
            if pdf_text is not None:
                record["pdf_raw"] = pdf_text
            logger.info(f"💾 Updated profile JSON: {slug} ({len(profile_json.sections)} sections)")
            return await self._write(record)

    async def update_html(self, slug: str, profile_html: str) -> Dict[str, Any]:
        async with self._lock:
            record = await self._require(slug)
            now = _now()
            record["profile_html"] = profile_html
            record["last_rendered_at"] = now
            record["updated_at"] = now
            logger.info(f"💾 Updated profile HTML: {slug} ({len(profile_html)} characters)")
            return await self._write(record)
