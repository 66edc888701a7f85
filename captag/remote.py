"""
HTTP client for a remote captioning server.

Implements the collection store protocol against the server's REST API:

    GET    /api/images          metadata list (no image bytes)
    GET    /api/images/{id}     image bytes
    PUT    /api/images/{id}     {"caption": ...}
    DELETE /api/images/{id}
    DELETE /api/images
    POST   /api/upload          multipart: images[] + captions[]

Transport and HTTP failures surface as StoreError so a bulk batch can record
them per item.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

import httpx

from .errors import StoreError
from .types import Item

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
UPLOAD_TIMEOUT = 600.0
DEFAULT_UPLOAD_CHUNK_SIZE = 50


@dataclass
class UploadSummary:
    """What the server reported for a (possibly chunked) upload."""
    count: int = 0
    captioned: int = 0
    items: list[Item] = field(default_factory=list)


def _item_from_payload(payload: dict) -> Item:
    return Item(
        id=str(payload.get("_id") or payload.get("id")),
        filename=payload.get("filename", ""),
        caption=payload.get("caption") or "",
        content_type=payload.get("contentType"),
        created=payload.get("timestamp"),
        updated=payload.get("updatedAt") or payload.get("timestamp"),
    )


class RemoteCollectionStore:
    """Collection store backed by a captioning server."""

    is_local = False

    def __init__(
        self,
        api_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        upload_chunk_size: int = DEFAULT_UPLOAD_CHUNK_SIZE,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._api_url = api_url.rstrip("/")
        self._upload_chunk_size = max(1, upload_chunk_size)

        # Refuse plain HTTP to anything but the local machine
        if not self._api_url.startswith("https://"):
            host = urlparse(self._api_url).hostname or ""
            if host not in ("localhost", "127.0.0.1", "::1"):
                raise ValueError(
                    f"Server URL must use HTTPS (got {self._api_url}). "
                    "Use HTTPS, or use localhost for local development."
                )

        self._client = httpx.Client(
            base_url=self._api_url,
            timeout=timeout,
            transport=transport,
        )
        # Last listing, keyed by id; refreshed by get_all()
        self._cache: dict[str, Item] = {}
        self._cache_lock = threading.Lock()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = self._client.request(method, path, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.HTTPStatusError as e:
            raise StoreError(
                f"{method} {path} failed: {e.response.status_code} {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _json(resp: httpx.Response, what: str):
        try:
            return resp.json()
        except ValueError as e:
            raise StoreError(f"{what} returned invalid JSON: {e}") from e

    # -- Read operations --

    def get_all(self) -> list[Item]:
        resp = self._request("GET", "/api/images")
        items = [_item_from_payload(p) for p in self._json(resp, "GET /api/images")]
        with self._cache_lock:
            self._cache = {item.id: item for item in items}
        return items

    def get(self, id: str) -> Optional[Item]:
        with self._cache_lock:
            cached = self._cache.get(id)
        if cached is not None:
            return cached
        for item in self.get_all():
            if item.id == id:
                return item
        return None

    def get_caption(self, id: str) -> Optional[str]:
        item = self.get(id)
        return item.caption if item is not None else None

    def read_bytes(self, id: str) -> bytes:
        return self._request("GET", f"/api/images/{id}").content

    def count(self) -> int:
        return len(self.get_all())

    # -- Write operations --

    def set_caption(self, id: str, caption: str) -> bool:
        """PUT the new caption. Returns False if the server has no such item."""
        try:
            resp = self._client.put(f"/api/images/{id}", json={"caption": caption})
        except httpx.HTTPError as e:
            raise StoreError(f"PUT /api/images/{id} failed: {e}") from e
        if resp.status_code == 404:
            return False
        if resp.is_error:
            raise StoreError(f"PUT /api/images/{id} failed: {resp.status_code} {resp.text}")
        # The server answers with the updated document (or null if it was gone)
        payload = self._json(resp, f"PUT /api/images/{id}") if resp.content else None
        if payload is None:
            return False
        with self._cache_lock:
            self._cache[id] = _item_from_payload(payload)
        return True

    def add(
        self,
        filename: str,
        data: bytes,
        *,
        caption: str = "",
        content_type: Optional[str] = None,
        id: Optional[str] = None,
    ) -> Item:
        """Upload a single image. The server assigns the id."""
        if id is not None:
            logger.debug("Ignoring explicit id %s: the server assigns ids", id)
        uploaded = self.upload([(filename, data, content_type, caption)])
        if not uploaded.items:
            raise StoreError(f"Server did not return the uploaded item for {filename}")
        return uploaded.items[0]

    def upload(self, files: list[tuple[str, bytes, Optional[str], str]]) -> UploadSummary:
        """
        Upload (filename, data, content_type, caption) tuples.

        Large uploads are split into chunks of ``upload_chunk_size`` files.
        Counts come from the server's ``count`` and ``captionedCount``; the
        server echoes only the first few items of each chunk.
        """
        summary = UploadSummary()
        chunks = [
            files[i:i + self._upload_chunk_size]
            for i in range(0, len(files), self._upload_chunk_size)
        ]
        for number, chunk in enumerate(chunks, start=1):
            multipart = [
                ("images", (name, data, content_type or "application/octet-stream"))
                for name, data, content_type, _ in chunk
            ]
            form = {"captions": [(caption or "").strip() for *_, caption in chunk]}
            resp = self._request(
                "POST", "/api/upload", files=multipart, data=form, timeout=UPLOAD_TIMEOUT,
            )
            body = self._json(resp, "POST /api/upload")
            echoed = [_item_from_payload(p) for p in body.get("images", [])]
            summary.items.extend(echoed)
            summary.count += int(body.get("count", len(echoed)))
            summary.captioned += int(body.get("captionedCount", sum(1 for i in echoed if i.has_caption)))
            logger.info("Uploaded chunk %d/%d (%d files)", number, len(chunks), len(chunk))
        return summary

    def delete(self, id: str) -> bool:
        try:
            resp = self._client.delete(f"/api/images/{id}")
        except httpx.HTTPError as e:
            raise StoreError(f"DELETE /api/images/{id} failed: {e}") from e
        if resp.status_code == 404:
            return False
        if resp.is_error:
            raise StoreError(f"DELETE /api/images/{id} failed: {resp.status_code}")
        with self._cache_lock:
            self._cache.pop(id, None)
        return True

    def clear(self) -> int:
        count = len(self.get_all())
        self._request("DELETE", "/api/images")
        with self._cache_lock:
            self._cache = {}
        return count

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()
