"""Recording storage — fetch recordings by URL and host them publicly for URL-ingesting providers."""

import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator
from urllib.parse import urlparse

import httpx
from loguru import logger

from config.errors import StorageError


class RecordingStorage:
    """HTTP client for the recording source and the public storage service.

    Args:
        api_url: Storage API base used for upload/delete (STORAGE_API_URL)
        base_url: Public base URL that serves stored files (STORAGE_BASE_URL)
        verify_ssl: Verify TLS certificates when downloading; recording endpoints are often
            self-signed, so this defaults to False
    """

    def __init__(
        self,
        api_url: str | None = None,
        base_url: str | None = None,
        verify_ssl: bool = False,
        timeout: float = 120.0,
        http_client: httpx.Client | None = None,
    ):
        self.api_url = (api_url or "").rstrip("/")
        self.base_url = (base_url or "").rstrip("/")
        self._client = http_client or httpx.Client(timeout=timeout, verify=verify_ssl, follow_redirects=True)

    def is_configured(self) -> bool:
        return bool(self.api_url and self.base_url)

    def download(self, url: str, dest_dir: str | Path, interaction_id: str) -> Path:
        """Stream a recording into dest_dir. Returns the local path."""
        suffix = Path(urlparse(url).path).suffix or ".mp3"
        dest = Path(dest_dir) / f"{interaction_id}_{uuid.uuid4().hex[:8]}{suffix}"
        try:
            with self._client.stream("GET", url) as resp:
                resp.raise_for_status()
                with open(dest, "wb") as f:
                    for chunk in resp.iter_bytes():
                        f.write(chunk)
        except httpx.HTTPError as e:
            dest.unlink(missing_ok=True)
            raise StorageError(f"Recording download failed for {interaction_id}: {e}") from e
        logger.info(f"[{interaction_id}] Downloaded recording → {dest.name} ({dest.stat().st_size} bytes)")
        return dest

    def upload(self, path: str | Path, interaction_id: str) -> str:
        """Upload to public storage. Returns the public URL."""
        if not self.is_configured():
            raise StorageError("Public storage is not configured (STORAGE_API_URL / STORAGE_BASE_URL)")
        path = Path(path)
        with open(path, "rb") as f:
            resp = self._client.post(
                f"{self.api_url}/store/single/voice_recording/{interaction_id}",
                files={"file": (path.name, f, "audio/mpeg")},
            )
        resp.raise_for_status()
        stored = resp.json().get("url")
        if not stored:
            raise StorageError(f"Storage upload for {interaction_id} returned no url")
        return f"{self.base_url}/store{stored}"

    def delete(self, public_url: str) -> None:
        stored_path = public_url
        prefix = f"{self.base_url}/store"
        if public_url.startswith(prefix):
            stored_path = public_url[len(prefix):]
        resp = self._client.request(
            "DELETE", f"{self.api_url}/store/delete", json={"filesPath": [stored_path]}
        )
        resp.raise_for_status()

    @contextmanager
    def hosted(self, path: str | Path, interaction_id: str) -> Iterator[str]:
        """Host a local file publicly for the duration of the block; always delete afterwards."""
        public_url = self.upload(path, interaction_id)
        logger.debug(f"[{interaction_id}] Hosted recording at {public_url}")
        try:
            yield public_url
        finally:
            try:
                self.delete(public_url)
                logger.debug(f"[{interaction_id}] Deleted hosted recording {public_url}")
            except Exception as e:
                logger.warning(f"[{interaction_id}] Failed to delete hosted recording {public_url}: {e}")

    def close(self) -> None:
        self._client.close()
