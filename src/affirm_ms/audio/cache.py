"""
Content-addressed audio cache.

Cache keys are SHA256 hashes of everything that changes what is spoken:

    key = sha256(json({"text": normalize_text(text), "voice": voice_id,
                       "goal": goal, "pace": pace, "norm": NORMALIZE_VERSION}))

The same inputs always give the same key, and the key alone locates the
artifact, independent of which affirmation row asked for it.

File Organization:
    Artifacts are sharded on the first two hex characters of the key:

    {base_dir}/
        ab/
            ab12...ef.mp3
        cd/
            cd34...01.wav

Writes go to a temporary file in the shard and are renamed into place,
so readers never see partial audio.

Optionally every artifact is mirrored to an HTTP object store; the
mirror's public URL then becomes the artifact reference. Mirror failures
are logged and the local reference is used instead.
"""
from __future__ import annotations

import hashlib
import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import httpx

from affirm_ms.core.config import MirrorConfig
from affirm_ms.core.logging import get_logger, verbose, warn
from affirm_ms.utils.text import NORMALIZE_VERSION, normalize_text

_LOG = get_logger("affirm-ms.cache")

MEDIA_TYPES: Dict[str, str] = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
}


def make_cache_key(text: str, voice_id: str, goal: Optional[str], pace: str) -> str:
    """Deterministic cache key for one spoken rendition."""
    payload = {
        "text": normalize_text(text),
        "voice": voice_id,
        "goal": goal or None,
        "pace": pace,
        "norm": NORMALIZE_VERSION,
    }
    raw = json.dumps(payload, sort_keys=True, ensure_ascii=True).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


@dataclass
class StoredArtifact:
    key: str
    path: Path
    ext: str

    @property
    def media_type(self) -> str:
        return MEDIA_TYPES.get(self.ext, "application/octet-stream")


class HttpMirror:
    """
    Mirrors artifacts to an HTTP object store with authenticated PUTs.

    Upload target: ``{upload_url}/{bucket}/{key}.{ext}``
    Public reference: ``{public_url}/{bucket}/{key}.{ext}``
    """

    def __init__(self, config: MirrorConfig, client: Optional[httpx.Client] = None):
        self.config = config
        token = os.getenv(config.token_env, "")
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.Client(timeout=config.timeout_s, headers=headers)

    def upload(self, key: str, ext: str, data: bytes) -> Optional[str]:
        name = f"{self.config.bucket}/{key}.{ext}"
        try:
            response = self._client.put(
                f"{self.config.upload_url}/{name}",
                content=data,
                headers={"Content-Type": MEDIA_TYPES.get(ext, "application/octet-stream"), "x-upsert": "true"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            warn(_LOG, "mirror_upload_failed", key=key[:12], error=str(e))
            return None
        base = self.config.public_url or self.config.upload_url
        return f"{base}/{name}"

    def close(self) -> None:
        self._client.close()


class ArtifactStore:
    """Sharded local artifact store with an optional HTTP mirror."""

    def __init__(self, base_dir: str, route_prefix: str = "/v1/audio", mirror: Optional[HttpMirror] = None):
        self.base_dir = Path(base_dir)
        self.route_prefix = route_prefix.rstrip("/")
        self.mirror = mirror

    def _path(self, key: str, ext: str) -> Path:
        return self.base_dir / key[:2] / f"{key}.{ext}"

    def local_ref(self, key: str) -> str:
        return f"{self.route_prefix}/{key}"

    def find(self, key: str) -> Optional[StoredArtifact]:
        """The stored artifact for key, if any file exists for it."""
        if len(key) < 2:
            return None
        for ext in MEDIA_TYPES:
            p = self._path(key, ext)
            if p.is_file():
                return StoredArtifact(key=key, path=p, ext=ext)
        return None

    def exists(self, key: str) -> bool:
        return self.find(key) is not None

    def read(self, key: str) -> Optional[bytes]:
        artifact = self.find(key)
        return artifact.path.read_bytes() if artifact else None

    def save(self, key: str, data: bytes, ext: str) -> str:
        """
        Persist bytes under key and return the artifact reference.

        The reference is the mirror's public URL when mirroring succeeds,
        otherwise the local serving route.
        """
        if ext not in MEDIA_TYPES:
            raise ValueError(f"unsupported audio format: {ext}")
        p = self._path(key, ext)
        p.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=p.parent, suffix=".part")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, p)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise
        verbose(_LOG, "artifact_saved", key=key[:12], bytes=len(data), ext=ext)

        if self.mirror is not None:
            remote = self.mirror.upload(key, ext, data)
            if remote:
                return remote
        return self.local_ref(key)

    def stats(self) -> Dict[str, int]:
        files = 0
        total = 0
        if self.base_dir.exists():
            for ext in MEDIA_TYPES:
                for p in self.base_dir.glob(f"*/*.{ext}"):
                    files += 1
                    total += p.stat().st_size
        return {"artifacts": files, "bytes": total}
