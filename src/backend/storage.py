"""PDF cache on a Supabase-compatible object storage REST API."""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import httpx

from errors import AssetStorageFailed
from external_clients import Deadline, get_http_client
from models import PdfAsset

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


def pdf_object_path(arxiv_id: str) -> str:
    return f"{arxiv_id}.pdf"


def build_public_storage_url(base_url: str, bucket: str, object_path: str) -> str:
    """Public URL of an object, composed locally without a round trip."""
    return f"{base_url.rstrip('/')}/storage/v1/object/public/{bucket}/{object_path}"


class PdfStorage:
    """Minimal client for the storage bucket that holds paper PDFs."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str = "papers",
        conditional_upload: bool = False,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.conditional_upload = conditional_upload
        self._headers = {"Authorization": f"Bearer {service_key}", "apikey": service_key}
        self._client = client or get_http_client("storage")

    @classmethod
    def from_config(cls, storage_config: dict[str, Any]) -> PdfStorage:
        return cls(
            base_url=storage_config["base_url"],
            service_key=storage_config["service_key"],
            bucket=storage_config["bucket"],
            conditional_upload=storage_config["conditional_upload"],
        )

    def _object_url(self, object_path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{object_path}"

    def public_url(self, object_path: str) -> str:
        return build_public_storage_url(self.base_url, self.bucket, object_path)

    def download(self, object_path: str, deadline: Deadline) -> Optional[bytes]:
        """Return the stored bytes, or None when the object does not exist."""
        try:
            response = self._client.get(
                self._object_url(object_path),
                headers=self._headers,
                timeout=deadline.timeout("storage download"),
            )
        except httpx.HTTPError as exc:
            raise AssetStorageFailed(f"Storage download failed for {object_path}: {exc}") from exc

        if _is_missing(response):
            return None
        if not response.is_success:
            raise AssetStorageFailed(f"Storage download failed for {object_path}: {response.status_code}")
        return response.content

    def exists(self, object_path: str, deadline: Deadline) -> bool:
        """Check for the object by searching its folder listing for the filename."""
        folder, _, file_name = object_path.rpartition("/")
        try:
            response = self._client.post(
                f"{self.base_url}/storage/v1/object/list/{self.bucket}",
                headers=self._headers,
                json={"prefix": folder, "search": file_name, "limit": 100},
                timeout=deadline.timeout("storage listing"),
            )
        except httpx.HTTPError as exc:
            raise AssetStorageFailed(f"Storage listing failed for {object_path}: {exc}") from exc

        if not response.is_success:
            raise AssetStorageFailed(f"Storage listing failed for {object_path}: {response.status_code}")
        entries = response.json()
        return isinstance(entries, list) and any(
            isinstance(entry, dict) and entry.get("name") == file_name for entry in entries
        )

    def upload(self, object_path: str, content: bytes, deadline: Deadline, upsert: bool = True) -> bool:
        """Upload the object. Returns False if a conditional upload lost the race."""
        headers = {
            **self._headers,
            "Content-Type": PDF_CONTENT_TYPE,
            "x-upsert": "true" if upsert else "false",
        }
        try:
            response = self._client.post(
                self._object_url(object_path),
                headers=headers,
                content=content,
                timeout=deadline.timeout("storage upload"),
            )
        except httpx.HTTPError as exc:
            raise AssetStorageFailed(f"Storage upload failed for {object_path}: {exc}") from exc

        if not upsert and _is_duplicate(response):
            return False
        if not response.is_success:
            raise AssetStorageFailed(
                f"Storage upload failed for {object_path}: {response.status_code} {response.text[:500]}"
            )
        return True


def _body_status(response: httpx.Response) -> str:
    """Status reported inside a storage error body; some versions answer 400 for everything."""
    try:
        body = response.json()
    except ValueError:
        return ""
    return str(body.get("statusCode", "")) if isinstance(body, dict) else ""


def _is_missing(response: httpx.Response) -> bool:
    if response.status_code == 404:
        return True
    return response.status_code == 400 and _body_status(response) == "404"


def _is_duplicate(response: httpx.Response) -> bool:
    if response.status_code == 409:
        return True
    return response.status_code == 400 and _body_status(response) == "409"


def ensure_pdf_cached(
    storage: PdfStorage,
    arxiv_id: str,
    fetch_pdf: Callable[[str, Deadline], bytes],
    deadline: Deadline,
    log: Optional[Callable[..., None]] = None,
) -> PdfAsset:
    """Make sure ``<arxiv_id>.pdf`` exists in storage and return its bytes.

    The origin is only contacted when storage has no copy. Concurrent indexers
    for the same id are tolerated: either the listing shows the other writer's
    object, or the upload replaces it with identical bytes.
    """
    note = log or (lambda *args, **kwargs: None)
    object_path = pdf_object_path(arxiv_id)
    public_url = storage.public_url(object_path)

    stored = storage.download(object_path, deadline)
    if stored is not None:
        note("pdf found in storage", bytes=len(stored))
        return PdfAsset(content=stored, object_path=object_path, public_url=public_url, from_storage=True)

    content = fetch_pdf(arxiv_id, deadline)
    note("downloaded pdf", bytes=len(content))

    if storage.conditional_upload:
        if storage.upload(object_path, content, deadline, upsert=False):
            note("uploaded pdf to storage", object_path=object_path)
        else:
            note("pdf already uploaded by another indexer", object_path=object_path)
    elif storage.exists(object_path, deadline):
        note("pdf already uploaded by another indexer", object_path=object_path)
    else:
        storage.upload(object_path, content, deadline, upsert=True)
        note("uploaded pdf to storage", object_path=object_path)

    return PdfAsset(content=content, object_path=object_path, public_url=public_url, from_storage=False)
