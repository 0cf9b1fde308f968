"""
Optional secondary text source: a Medium author's top articles via RapidAPI.

Best effort only. Every failure is logged and reported as None so the PDF
pipeline carries on without it.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from profilegen.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_ARTICLE_LIMIT = 5
REQUEST_TIMEOUT = 15.0


class MediumClient:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.rapid_api_key and self.settings.rapid_api_host)

    def _headers(self) -> Dict[str, str]:
        return {
            "X-RapidAPI-Key": self.settings.rapid_api_key or "",
            "X-RapidAPI-Host": self.settings.rapid_api_host or "",
        }

    def _client(self) -> httpx.AsyncClient:
        kwargs: Dict[str, Any] = {"timeout": REQUEST_TIMEOUT, "verify": self.settings.verify_tls}
        if self.transport is not None:
            kwargs["transport"] = self.transport
        return httpx.AsyncClient(**kwargs)

    async def get_user_id(self, http: httpx.AsyncClient, username: str) -> Optional[str]:
        url = f"https://{self.settings.rapid_api_host}/user/id_for/{quote(username)}"
        response = await http.get(url, headers=self._headers())
        response.raise_for_status()
        data = response.json()
        uid = (data.get("user_id") or data.get("id")) if isinstance(data, dict) else None
        return uid if isinstance(uid, str) else None

    async def get_top_articles(self, http: httpx.AsyncClient, user_id: str, limit: int = DEFAULT_ARTICLE_LIMIT) -> List[Dict[str, Any]]:
        url = f"https://{self.settings.rapid_api_host}/user/{quote(user_id)}/top_articles"
        response = await http.get(url, headers=self._headers())
        response.raise_for_status()
        data = response.json()
        if isinstance(data, dict):
            data = data.get("articles") or data.get("items") or data.get("data") or []
        items = [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []
        return items[:limit]

    async def fetch_summary_text(self, username: str) -> Optional[str]:
        """Plain-text summary of the author's top articles, or None when unavailable."""
        username = (username or "").strip().lstrip("@")
        if not username or not self.is_configured:
            return None

        try:
            async with self._client() as http:
                user_id = await self.get_user_id(http, username)
                if not user_id:
                    logger.info(f"Medium user not found: {username}")
                    return None
                articles = await self.get_top_articles(http, user_id)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"⚠️  Medium source unavailable for {username}: {e}")
            return None

        logger.info(f"📰 Medium: {len(articles)} top articles for {username}")
        return build_profile_text(username, articles)


def build_profile_text(username: str, articles: List[Dict[str, Any]]) -> str:
    lines = ["Medium Profile:", f"Username: {username}"]
    if articles:
        lines.append("Top Articles:")
        for article in articles:
            article_id = article.get("article_id") or article.get("id") or ""
            title = article.get("title") or "Untitled"
            url = article.get("url") or (f"https://medium.com/p/{article_id}" if article_id else "")
            claps = article.get("claps", article.get("clap_count"))
            claps_part = f" | Claps: {claps}" if isinstance(claps, int) else ""
            url_part = f" | {url}" if url else ""
            lines.append(f"- {title}{claps_part}{url_part}")
    return "\n".join(lines)
