import os, sys, json
from urllib.parse import unquote

import httpx
import pytest

# Ensure project root on sys.path so `import image_gallery...` works
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from image_gallery.core.config import settings
from image_gallery.core.tokens import token_store
from image_gallery.web3.car import CID, list_directory, pack_directory, read_car, read_file

API_HOST = "api.test"
GATEWAY_HOST = "ipfs.test"
TOKEN = "test-token"


class FakeWeb3Storage:
    """In-memory web3.storage API plus subdomain gateway for httpx.MockTransport."""

    def __init__(self, token=TOKEN):
        self.token = token
        self.uploads = []
        self.blocks = {}
        self.requests = []
        self.gateway_overrides = {}
        self.gateway_errors = set()
        self.fail_uploads = False
        self.transport = httpx.MockTransport(self.handler)

    def add_upload(self, name, files):
        packed = pack_directory(files)
        self.blocks.update(packed.blocks)
        cid = str(packed.root)
        self.uploads.append({"cid": cid, "name": name, "created": f"2022-01-0{len(self.uploads) + 1}T00:00:00Z"})
        return cid

    def add_sidecar(self, name, cid, status_code=200, body=b""):
        """Register an upload whose metadata.json answer is fixed."""
        self.uploads.append({"cid": cid, "name": name})
        self.gateway_overrides[(cid, "metadata.json")] = (status_code, body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.host, request.url.path))
        host = request.url.host
        if host == API_HOST:
            return self._api(request)
        if host.endswith("." + GATEWAY_HOST):
            if host[: -len(GATEWAY_HOST) - 1] in self.gateway_errors:
                raise httpx.ConnectError("gateway unreachable", request=request)
            return self._gateway(host[: -len(GATEWAY_HOST) - 1], unquote(request.url.path.lstrip("/")))
        return httpx.Response(404)

    def _api(self, request):
        if request.headers.get("authorization") != f"Bearer {self.token}":
            return httpx.Response(401, json={"message": "invalid token"})

        if request.method == "POST" and request.url.path == "/car":
            if self.fail_uploads:
                return httpx.Response(500, json={"message": "boom"})
            roots, blocks = read_car(request.content)
            self.blocks.update(blocks)
            cid = str(roots[0])
            if not any(u["cid"] == cid for u in self.uploads):
                name = unquote(request.headers.get("x-name", ""))
                self.uploads.append({"cid": cid, "name": name})
            return httpx.Response(200, json={"cid": cid})

        if request.method == "GET" and request.url.path == "/user/uploads":
            size = int(request.url.params.get("size", "25"))
            offset = int(request.url.params.get("offset", "0"))
            page = self.uploads[offset:offset + size]
            headers = {}
            if offset + size < len(self.uploads):
                headers["Link"] = f'</user/uploads?size={size}&offset={offset + size}>; rel="next"'
            return httpx.Response(200, json=page, headers=headers)

        return httpx.Response(404)

    def _gateway(self, cid, path):
        if (cid, path) in self.gateway_overrides:
            status_code, body = self.gateway_overrides[(cid, path)]
            return httpx.Response(status_code, content=body)
        try:
            entries = list_directory(self.blocks, CID.parse(cid))
            return httpx.Response(200, content=read_file(self.blocks, entries[path]))
        except (KeyError, ValueError):
            return httpx.Response(404)

    def fetch_json(self, cid, path):
        return json.loads(self._gateway(cid, path).content)

    def posts(self):
        return [r for r in self.requests if r[0] == "POST"]


@pytest.fixture
def fake_backend(monkeypatch):
    monkeypatch.setattr(settings, "web3storage_endpoint", f"https://{API_HOST}")
    monkeypatch.setattr(settings, "gateway_host", GATEWAY_HOST)
    monkeypatch.setattr(settings, "gallery_prefix", "ImageGallery")
    monkeypatch.setattr(settings, "max_chunk_size", 10 * 1024 * 1024)
    monkeypatch.setattr(settings, "list_page_size", 25)
    monkeypatch.setattr(token_store, "_token", TOKEN)
    monkeypatch.setattr(token_store, "_path", None)
    return FakeWeb3Storage()
