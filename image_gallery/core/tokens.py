import logging
import os
from typing import Optional
from .config import settings

logger = logging.getLogger(__name__)


class TokenStore:
    """Holds the single web3.storage API token.

    Seeded from `WEB3STORAGE_TOKEN`. When a token file is configured the
    token is persisted there and re-read on every `get()`, so a token saved
    by one process is picked up by the next request of another.
    """

    def __init__(self, token: Optional[str] = None, path: Optional[str] = None):
        self._token = token or None
        self._path = path

    def get(self) -> Optional[str]:
        if self._path and os.path.exists(self._path):
            with open(self._path, "r", encoding="utf-8") as fh:
                return fh.read().strip() or None
        return self._token

    def set(self, token: str) -> None:
        token = (token or "").strip()
        if not token:
            raise ValueError("missing_api_token")
        self._token = token
        if self._path:
            with open(self._path, "w", encoding="utf-8") as fh:
                fh.write(token)
        logger.info("api token saved")

    def clear(self) -> None:
        self._token = None
        if self._path and os.path.exists(self._path):
            os.remove(self._path)
        logger.info("api token deleted")


token_store = TokenStore(settings.web3storage_token, settings.token_file)
