import logging
from typing import Any, AsyncIterator, Callable, Dict, Iterable, Optional, Tuple
from urllib.parse import quote
import httpx
from ..core.config import settings
from ..core.tokens import token_store
from .car import pack_directory, split_car
from .gateway import gateway_url

logger = logging.getLogger(__name__)

CLIENT_NAME = "image-gallery"


class Web3StorageClient:
    """Thin async client for the web3.storage HTTP API and the IPFS gateway.

    Use it as an async context manager so the underlying connection pool is
    closed when the request is done.
    """

    def __init__(
        self,
        token: Optional[str],
        endpoint: str = "https://api.web3.storage",
        gateway_host: str = "ipfs.dweb.link",
        max_chunk_size: int = 10 * 1024 * 1024,
        page_size: int = 25,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token or None
        self.endpoint = endpoint.rstrip("/")
        self.gateway_host = gateway_host
        self.max_chunk_size = max_chunk_size
        self.page_size = page_size
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self) -> "Web3StorageClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "X-Client": CLIENT_NAME,
        }

    async def put(
        self,
        files: Iterable[Tuple[str, bytes]],
        name: str,
        on_root_cid_ready: Optional[Callable[[str], None]] = None,
        on_stored_chunk: Optional[Callable[[int], None]] = None,
    ) -> str:
        """Store files as one directory and return its CID.

        The CID is computed locally and handed to `on_root_cid_ready` before
        any upload starts. Chunks go out one at a time; `on_stored_chunk`
        receives the size of each chunk after the backend accepted it.
        """
        if not self.token:
            raise ValueError("missing_api_token")

        packed = pack_directory(files)
        root = str(packed.root)
        if on_root_cid_ready is not None:
            on_root_cid_ready(root)

        chunks = split_car(packed, self.max_chunk_size)
        headers = self._headers()
        headers["Content-Type"] = "application/car"
        if name:
            headers["X-Name"] = quote(name, safe="")

        for index, chunk in enumerate(chunks, start=1):
            logger.debug("sending chunk %d/%d (%d bytes) for %s", index, len(chunks), len(chunk), root)
            resp = await self._http.post(f"{self.endpoint}/car", content=chunk, headers=headers)
            resp.raise_for_status()
            try:
                cid = resp.json().get("cid")
            except (ValueError, AttributeError):
                raise RuntimeError("invalid_backend_response")
            if cid != root:
                raise RuntimeError("root_cid_mismatch")
            if on_stored_chunk is not None:
                on_stored_chunk(len(chunk))

        logger.info("stored %s as %s", name, root)
        return root

    async def list(self, page_size: Optional[int] = None) -> AsyncIterator[Dict[str, Any]]:
        """Yield every upload owned by the token, in backend order.

        Each call walks the listing from the start; nothing is cached.
        """
        if not self.token:
            return

        url: Optional[str] = f"{self.endpoint}/user/uploads"
        params: Optional[Dict[str, Any]] = {"size": page_size or self.page_size}
        while url:
            resp = await self._http.get(url, params=params, headers=self._headers())
            resp.raise_for_status()
            for upload in resp.json():
                yield upload
            next_link = resp.links.get("next", {}).get("url")
            # the next link already carries the query string
            url = str(resp.url.join(next_link)) if next_link else None
            params = None

    async def fetch(self, cid: str, path: str) -> bytes:
        resp = await self._http.get(gateway_url(cid, path, self.gateway_host))
        resp.raise_for_status()
        return resp.content


def web3storage(
    transport: Optional[httpx.AsyncBaseTransport] = None,
    token: Optional[str] = None,
) -> Web3StorageClient:
    """Create a client from our settings.

    Without an explicit `token` the currently saved one is read; pass "" for no token.
    """
    return Web3StorageClient(
        token=token_store.get() if token is None else token,
        endpoint=settings.web3storage_endpoint,
        gateway_host=settings.gateway_host,
        max_chunk_size=settings.max_chunk_size,
        page_size=settings.list_page_size,
        timeout=settings.http_timeout,
        transport=transport,
    )
