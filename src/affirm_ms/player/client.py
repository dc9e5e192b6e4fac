"""HTTP client for fetching playlist manifests from the affirm-ms API."""
from __future__ import annotations

from dataclasses import replace
from typing import Dict, Optional
from urllib.parse import urljoin

import httpx

from affirm_ms.core.logging import get_logger, info
from affirm_ms.playlist.models import PlaylistManifest

_LOG = get_logger("affirm-ms.client")


class PlaylistClient:
    def __init__(
        self,
        base_url: str,
        timeout_s: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    async def fetch_playlist(
        self,
        session_id: str,
        voice_id: Optional[str] = None,
        tier: Optional[str] = None,
    ) -> PlaylistManifest:
        """
        Fetch a session's manifest. Relative audio URLs are resolved
        against the API base URL.

        Raises:
            httpx.HTTPError: Transport failure or non-2xx response.
        """
        params: Dict[str, str] = {}
        if voice_id:
            params["voice_id"] = voice_id
        headers = {"X-Access-Tier": tier} if tier else {}
        response = await self._client.get(
            urljoin(self.base_url, f"v1/sessions/{session_id}/playlist"),
            params=params,
            headers=headers,
        )
        response.raise_for_status()
        manifest = PlaylistManifest.from_dict(response.json())
        manifest.lines = [
            replace(line, audio_url=urljoin(self.base_url, line.audio_url)) if line.audio_url else line
            for line in manifest.lines
        ]
        info(
            _LOG,
            "playlist_fetched",
            session=session_id,
            lines=len(manifest.lines),
            total_ms=manifest.total_duration_ms,
        )
        return manifest

    async def aclose(self) -> None:
        await self._client.aclose()
