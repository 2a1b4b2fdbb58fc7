"""Object-storage gateway for book PDFs.

Talks to the Supabase Storage REST API with the privileged service key.
Callers only ever see :class:`StorageError` for transport failures and
non-2xx responses.
"""
import logging
import threading
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from .config import get_settings
from .errors import UpstreamFailure

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class StorageError(UpstreamFailure):
    default_message = "Storage request failed"


class StorageGateway:
    def __init__(self, base_url: str, service_key: str, bucket: str, timeout: int = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.bucket = bucket
        self.timeout = timeout
        self.session = session or requests.Session()

    # -- helpers -------------------------------------------------------------
    def _url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1{path}"

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }
        if extra:
            headers.update(extra)
        return headers

    def _key_path(self, key: str) -> str:
        return quote(key, safe="")

    def _request(self, method: str, path: str, action: str, **kwargs) -> requests.Response:
        try:
            resp = self.session.request(method, self._url(path), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error("Storage %s failed: %s", action, e)
            raise StorageError(f"Failed to {action}") from e
        if resp.status_code >= 400:
            logger.error("Storage %s returned %s: %s", action, resp.status_code, resp.text[:500])
            raise StorageError(f"Failed to {action}")
        return resp

    # -- operations ----------------------------------------------------------
    def public_url(self, key: str) -> str:
        return self._url(f"/object/public/{self.bucket}/{self._key_path(key)}")

    def upload(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Store ``data`` under ``key`` without overwriting; return the object key."""
        self._request(
            "POST",
            f"/object/{self.bucket}/{self._key_path(key)}",
            "upload PDF file",
            data=data,
            headers=self._headers({"Content-Type": content_type, "x-upsert": "false"}),
        )
        logger.info("Uploaded %s (%d bytes) to bucket %s", key, len(data), self.bucket)
        return key

    def create_signed_upload_url(self, key: str) -> str:
        resp = self._request(
            "POST",
            f"/object/upload/sign/{self.bucket}/{self._key_path(key)}",
            "generate upload URL",
            headers=self._headers(),
        )
        try:
            relative = resp.json()["url"]
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError("Failed to generate upload URL") from e
        return self._url(relative if relative.startswith("/") else f"/{relative}")

    def remove(self, key: str) -> bool:
        """Delete one object. Returns False when the object did not exist."""
        resp = self._request(
            "DELETE",
            f"/object/{self.bucket}",
            "delete PDF file",
            json={"prefixes": [key]},
            headers=self._headers(),
        )
        try:
            removed = resp.json()
        except ValueError:
            removed = []
        return any(isinstance(item, dict) and item.get("name") == key for item in removed or [])

    def list_buckets(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/bucket", "list buckets", headers=self._headers()).json()

    def list_objects(self, prefix: str = "", limit: int = 100) -> List[Dict[str, Any]]:
        return self._request(
            "POST",
            f"/object/list/{self.bucket}",
            "list files",
            json={"prefix": prefix, "limit": limit, "offset": 0},
            headers=self._headers(),
        ).json()


_storage: Optional[StorageGateway] = None
_lock = threading.Lock()


def get_storage() -> StorageGateway:
    """Dependency returning the process-wide gateway, built on first use."""
    global _storage
    if _storage is None:
        with _lock:
            if _storage is None:
                settings = get_settings()
                _storage = StorageGateway(
                    settings.storage_url,
                    settings.storage_service_key,
                    settings.storage_bucket,
                )
    return _storage
