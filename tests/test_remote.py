"""
Tests for the remote collection store, using httpx.MockTransport.
"""

import json
from unittest.mock import patch

import httpx
import pytest

from captag.dataset import import_paths
from captag.engine import EngineState
from captag.errors import StoreError
from captag.operations import DeleteTag
from captag.remote import RemoteCollectionStore


class FakeServer:
    """Minimal in-memory captioning server."""

    def __init__(self, captions=()):
        self.images = {
            f"id{n}": {"_id": f"id{n}", "filename": f"{n}.png", "caption": c,
                       "contentType": "image/png", "timestamp": "2024-01-01T00:00:00"}
            for n, c in enumerate(captions)
        }
        self.uploads = []
        self.fail_put = set()
        self.garbled_put = set()

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/images" and request.method == "GET":
            return httpx.Response(200, json=list(self.images.values()))
        if path == "/api/images" and request.method == "DELETE":
            self.images.clear()
            return httpx.Response(200, json={"message": "All images deleted"})
        if path.startswith("/api/images/"):
            image_id = path.rsplit("/", 1)[-1]
            if image_id not in self.images:
                return httpx.Response(404, json={"error": "Image not found"})
            if request.method == "GET":
                return httpx.Response(200, content=b"img-" + image_id.encode())
            if request.method == "PUT":
                if image_id in self.fail_put:
                    return httpx.Response(500, text="boom")
                if image_id in self.garbled_put:
                    return httpx.Response(200, text="OK")
                self.images[image_id]["caption"] = json.loads(request.content)["caption"]
                return httpx.Response(200, json=self.images[image_id])
            if request.method == "DELETE":
                del self.images[image_id]
                return httpx.Response(200, json={"message": "deleted"})
        if path == "/api/upload" and request.method == "POST":
            body = request.read()
            count = body.count(b'name="images"')
            self.uploads.append(count)
            echoed = []
            for n in range(count):
                image_id = f"up{len(self.images)}"
                self.images[image_id] = {"_id": image_id, "filename": f"up{n}.png", "caption": ""}
                echoed.append(self.images[image_id])
            captioned = sum(1 for caption in _form_values(body, "captions") if caption)
            return httpx.Response(200, json={
                "message": "ok",
                "count": count,
                "captionedCount": captioned,
                "images": echoed[:10],
            })
        return httpx.Response(404)


def _form_values(body: bytes, name: str) -> list[bytes]:
    """Values of a multipart text field, in order."""
    values = []
    for part in body.split(f'name="{name}"'.encode())[1:]:
        value = part.split(b"\r\n\r\n", 1)[1]
        values.append(value.split(b"\r\n", 1)[0])
    return values


def make_store(server, **kwargs):
    return RemoteCollectionStore(
        "http://localhost:3000", transport=httpx.MockTransport(server.handler), **kwargs,
    )


class TestRemoteStore:

    def test_requires_https_for_remote_hosts(self):
        with pytest.raises(ValueError, match="HTTPS"):
            RemoteCollectionStore("http://example.com")

    def test_https_accepted(self):
        with patch("captag.remote.httpx.Client") as MockClient:
            store = RemoteCollectionStore("https://example.com/", timeout=7)
        assert not store.is_local
        kwargs = MockClient.call_args.kwargs
        assert kwargs["base_url"] == "https://example.com"
        assert kwargs["timeout"] == 7

    def test_get_all_maps_payload(self):
        store = make_store(FakeServer(["cat, dog"]))
        [item] = store.get_all()
        assert item.id == "id0"
        assert item.caption == "cat, dog"
        assert item.content_type == "image/png"

    def test_get_and_read_bytes(self):
        store = make_store(FakeServer(["cat"]))
        assert store.get("id0").filename == "0.png"
        assert store.get("nope") is None
        assert store.read_bytes("id0") == b"img-id0"

    def test_set_caption(self):
        server = FakeServer(["cat"])
        store = make_store(server)
        assert store.set_caption("id0", "dog")
        assert server.images["id0"]["caption"] == "dog"
        assert store.get_caption("id0") == "dog"

    def test_set_caption_missing_returns_false(self):
        store = make_store(FakeServer())
        assert store.set_caption("nope", "dog") is False

    def test_set_caption_server_error(self):
        server = FakeServer(["cat"])
        server.fail_put.add("id0")
        store = make_store(server)
        with pytest.raises(StoreError, match="500"):
            store.set_caption("id0", "dog")

    def test_non_json_reply_becomes_store_error(self):
        server = FakeServer(["cat"])
        server.garbled_put.add("id0")
        store = make_store(server)
        with pytest.raises(StoreError, match="invalid JSON"):
            store.set_caption("id0", "dog")

    def test_http_error_becomes_store_error(self):
        def broken(request):
            raise httpx.ConnectError("refused")
        store = RemoteCollectionStore("http://localhost:3000", transport=httpx.MockTransport(broken))
        with pytest.raises(StoreError):
            store.get_all()

    def test_upload_is_chunked(self):
        server = FakeServer()
        store = make_store(server, upload_chunk_size=2)
        files = [(f"{n}.png", b"x", "image/png", "cat") for n in range(5)]
        uploaded = store.upload(files)
        assert server.uploads == [2, 2, 1]
        assert uploaded.count == 5
        assert uploaded.captioned == 5
        assert len(uploaded.items) == 5
        assert store.count() == 5

    def test_upload_counts_beyond_echoed_items(self):
        store = make_store(FakeServer())
        files = [(f"{n}.png", b"x", "image/png", "cat" if n % 2 else "") for n in range(12)]
        uploaded = store.upload(files)
        assert len(uploaded.items) == 10
        assert uploaded.count == 12
        assert uploaded.captioned == 6

    def test_add_returns_item(self):
        store = make_store(FakeServer())
        item = store.add("a.png", b"x", caption="cat")
        assert item.id.startswith("up")

    def test_delete_and_clear(self):
        server = FakeServer(["a", "b", "c"])
        store = make_store(server)
        assert store.delete("id0")
        assert not store.delete("id0")
        assert store.clear() == 2
        assert server.images == {}


class TestRemoteBulk:

    def test_bulk_delete_isolates_failures(self):
        server = FakeServer(["cat, a1", "cat, b2", "cat, c3", "dog"])
        server.fail_put.add("id1")
        state = EngineState(make_store(server), max_workers=3)
        result = state.apply(DeleteTag("cat"))
        assert result.modified_count == 2
        assert list(result.failures) == ["id1"]
        assert [img["caption"] for img in server.images.values()] == ["a1", "cat, b2", "c3", "dog"]
        assert state.index["cat"] == 1

    def test_non_json_reply_recorded_per_item(self):
        server = FakeServer(["cat, a1", "cat, b2", "cat, c3"])
        server.garbled_put.add("id0")
        state = EngineState(make_store(server), max_workers=3)
        result = state.apply(DeleteTag("cat"))
        assert set(result.failures) == {"id0"}
        assert "invalid JSON" in result.failures["id0"]
        assert result.modified_count == 2
        assert state.index["cat"] == 1


class TestRemoteImport:

    def test_import_reports_server_counts(self, tmp_path):
        for n in range(12):
            (tmp_path / f"{n:02d}.png").write_bytes(b"x")
        (tmp_path / "00.txt").write_text("cat")
        server = FakeServer()
        state = EngineState(make_store(server))
        summary = import_paths(state, [tmp_path])
        assert server.uploads == [12]
        assert (summary.added, summary.captioned) == (12, 1)
        assert len(state.items()) == 12
