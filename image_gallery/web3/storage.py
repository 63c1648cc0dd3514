import logging
from typing import Any, Callable, Dict, List, Optional
import httpx
from pydantic import ValidationError
from ..core.config import settings
from ..core.models import MetadataSidecar
from .clients import Web3StorageClient
from .gateway import METADATA_FILENAME, decode_metadata, encode_metadata, gateway_url, ipfs_uri

"""Upload images with their caption sidecar, and rebuild the gallery from
the uploads listing.
"""

logger = logging.getLogger(__name__)


def upload_name(caption: str, prefix: Optional[str] = None) -> str:
    return f"{prefix or settings.gallery_prefix}|{caption}"


async def store_image(
    client: Web3StorageClient,
    *,
    filename: Optional[str],
    data_bytes: Optional[bytes],
    caption: Optional[str] = None,
    prefix: Optional[str] = None,
    on_root_cid_ready: Optional[Callable[[str], None]] = None,
    on_stored_chunk: Optional[Callable[[int], None]] = None,
) -> Optional[Dict[str, str]]:
    """Upload one image and its metadata.json as a single directory.

    Returns None without touching the network when no file was given.
    Errors from the backend propagate; nothing is retried.
    """
    if not filename or not data_bytes:
        logger.info("no file selected")
        return None

    caption = caption or ""
    sidecar = encode_metadata(filename, caption)

    logger.info("storing file %s", filename)
    cid = await client.put(
        [(filename, data_bytes), (METADATA_FILENAME, sidecar)],
        name=upload_name(caption, prefix),
        on_root_cid_ready=on_root_cid_ready,
        on_stored_chunk=on_stored_chunk,
    )
    logger.info("stored %s - cid: %s", filename, cid)

    host = client.gateway_host
    return {
        "cid": cid,
        "image_uri": ipfs_uri(cid, filename),
        "image_gateway_url": gateway_url(cid, filename, host),
        "metadata_uri": ipfs_uri(cid, METADATA_FILENAME),
        "metadata_gateway_url": gateway_url(cid, METADATA_FILENAME, host),
    }


async def list_gallery(client: Web3StorageClient, *, prefix: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
    """Rebuild gallery items from every upload whose name carries our prefix.

    Sidecars are fetched one at a time in listing order. An upload whose
    sidecar can't be fetched or parsed lands in `failures` instead of
    aborting the whole listing.
    """
    items: List[Dict[str, Any]] = []
    failures: List[Dict[str, Any]] = []
    if not client.token:
        logger.info("no api token configured, gallery is empty")
        return {"items": items, "failures": failures}

    name_prefix = prefix or settings.gallery_prefix
    async for upload in client.list():
        name = upload.get("name") or ""
        cid = upload.get("cid")
        if not cid or not name.startswith(name_prefix):
            continue

        try:
            raw = await client.fetch(cid, METADATA_FILENAME)
            meta = MetadataSidecar(**decode_metadata(raw))
        except (httpx.HTTPError, ValueError) as e:
            # pydantic's ValidationError is a ValueError too
            reason = _failure_reason(e)
            logger.warning("error getting image metadata for %s: %s", cid, reason)
            failures.append({"cid": cid, "name": name, "reason": reason})
            continue

        items.append(
            {
                "cid": cid,
                "path": meta.path,
                "caption": meta.caption,
                "gateway_url": gateway_url(cid, meta.path, client.gateway_host),
                "uri": ipfs_uri(cid, meta.path),
            }
        )

    return {"items": items, "failures": failures}


def _failure_reason(e: Exception) -> str:
    if isinstance(e, httpx.HTTPStatusError):
        return f"http_{e.response.status_code}"
    if isinstance(e, httpx.HTTPError):
        return f"request_failed {e}"
    if isinstance(e, ValidationError):
        return "invalid_metadata"
    return f"invalid_metadata_json {e}"
