import os
from pydantic import BaseModel
from typing import Optional


def _optional_float(value: Optional[str]) -> Optional[float]:
    return float(value) if value else None


class Settings(BaseModel):
    """for reading environment-driven configuration.

    Values default to the public web3.storage API and the dweb.link gateway.
    Point `WEB3STORAGE_ENDPOINT` at https://api-staging.web3.storage for development.
    """
    web3storage_token: Optional[str] = os.getenv("WEB3STORAGE_TOKEN")
    web3storage_endpoint: str = os.getenv("WEB3STORAGE_ENDPOINT", "https://api.web3.storage")
    gateway_host: str = os.getenv("GATEWAY_HOST", "ipfs.dweb.link")
    gallery_prefix: str = os.getenv("GALLERY_PREFIX", "ImageGallery")
    max_chunk_size: int = int(os.getenv("MAX_CHUNK_SIZE", str(10 * 1024 * 1024)))
    list_page_size: int = int(os.getenv("LIST_PAGE_SIZE", "25"))
    token_file: Optional[str] = os.getenv("TOKEN_FILE")
    http_timeout: Optional[float] = _optional_float(os.getenv("HTTP_TIMEOUT"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
