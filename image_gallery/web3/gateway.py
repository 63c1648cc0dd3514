import json
from typing import Any, Dict, Optional
from urllib.parse import quote
from ..core.config import settings

"""Gateway links and the JSON sidecar stored next to each image."""

METADATA_FILENAME = "metadata.json"


def gateway_url(cid: str, path: str, host: Optional[str] = None) -> str:
    """Build the subdomain-style HTTP gateway URL for a file inside a CID.

    The path is percent-encoded, so "a b.png" becomes "a%20b.png".
    """
    host = host or settings.gateway_host
    return f"https://{cid}.{host}/{quote(path)}"


def ipfs_uri(cid: str, path: str) -> str:
    return f"ipfs://{cid}/{path}"


def encode_metadata(path: str, caption: str) -> bytes:
    return json.dumps({"path": path, "caption": caption}, separators=(",", ":")).encode("utf-8")


def decode_metadata(text) -> Dict[str, Any]:
    """Parse a sidecar. Raises ValueError on malformed JSON or a non-object."""
    if isinstance(text, (bytes, bytearray)):
        text = text.decode("utf-8")
    meta = json.loads(text)
    if not isinstance(meta, dict):
        raise ValueError("metadata_must_be_object")
    return meta
