"""arXiv helper utilities: id normalization, metadata lookup, PDF download."""
from __future__ import annotations

import logging
import re
from typing import Any, Optional
from urllib.parse import urlparse

import arxiv
import httpx

from errors import AssetFetchFailed, IdentifierMalformed, MetadataNotFound
from external_clients import Deadline, get_http_client
from models import DEFAULT_CATEGORY, UNKNOWN_PUBLISHED, PaperMetadata

logger = logging.getLogger(__name__)

ARXIV_PDF_BASE_URL = "https://arxiv.org/pdf"

_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
_ARXIV_PREFIX = re.compile(r"^arxiv:", re.IGNORECASE)
_PDF_SUFFIX = re.compile(r"\.pdf$", re.IGNORECASE)
_VERSION_SUFFIX = re.compile(r"v\d+$", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def _id_from_url(url: str) -> str:
    """Return the path after an ``abs``/``pdf`` segment, or the URL unchanged."""
    try:
        parts = [part for part in urlparse(url).path.split("/") if part]
    except ValueError as exc:
        raise IdentifierMalformed(f"Unparseable arXiv URL: {url}") from exc

    for index, part in enumerate(parts):
        if part in ("abs", "pdf") and index + 1 < len(parts):
            # Old-style ids (hep-th/9901001) span two segments.
            return _PDF_SUFFIX.sub("", "/".join(parts[index + 1:]))
    return url


def _normalize_once(value: str) -> str:
    value = value.strip()
    if _URL_PATTERN.match(value):
        try:
            value = _id_from_url(value)
        except IdentifierMalformed as exc:
            logger.debug(f"Falling back to raw identifier: {exc}")
    value = _ARXIV_PREFIX.sub("", value)
    value = _PDF_SUFFIX.sub("", value)
    return _VERSION_SUFFIX.sub("", value)


def normalize_arxiv_id(identifier: str) -> str:
    """Canonicalize an arXiv id, prefixed id, versioned id, or abs/pdf URL.

    Stripping repeats until nothing changes, so the result is a fixed point:
    ``normalize_arxiv_id(normalize_arxiv_id(x)) == normalize_arxiv_id(x)``.
    """
    current = identifier or ""
    while True:
        candidate = _normalize_once(current)
        if candidate == current:
            return candidate
        current = candidate


def _collapse(text: Optional[str]) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def _metadata_from_result(result: Any) -> PaperMetadata:
    categories = list(getattr(result, "categories", None) or [])
    published = getattr(result, "published", None)
    authors = tuple(
        name for name in (_collapse(getattr(author, "name", "")) for author in result.authors or []) if name
    )
    return PaperMetadata(
        title=_collapse(result.title),
        abstract=_collapse(result.summary),
        authors=authors,
        category=categories[0] if categories else DEFAULT_CATEGORY,
        published=published.isoformat() if published else UNKNOWN_PUBLISHED,
    )


def fetch_arxiv_metadata(arxiv_id: str, deadline: Deadline, num_retries: int = 3) -> PaperMetadata:
    """Query the arXiv export API and parse the first entry only."""
    deadline.check("arXiv metadata query")
    client = arxiv.Client(num_retries=num_retries)
    search = arxiv.Search(id_list=[arxiv_id], max_results=1)
    try:
        result = next(iter(client.results(search)), None)
    except arxiv.ArxivError as exc:
        raise MetadataNotFound(f"arXiv API failed for {arxiv_id}: {exc}") from exc

    if result is None:
        raise MetadataNotFound(f"No arXiv entry found for {arxiv_id}")

    metadata = _metadata_from_result(result)
    if not metadata.title:
        raise MetadataNotFound(f"Failed to parse title from arXiv entry {arxiv_id}")
    return metadata


def download_arxiv_pdf(
    arxiv_id: str,
    deadline: Deadline,
    base_url: str = ARXIV_PDF_BASE_URL,
    client: Optional[httpx.Client] = None,
) -> bytes:
    """Fetch the PDF from arXiv itself. Any failure is fatal for the request."""
    client = client or get_http_client("arxiv")
    pdf_url = f"{base_url.rstrip('/')}/{arxiv_id}.pdf"
    try:
        response = client.get(pdf_url, timeout=deadline.timeout("PDF download"))
    except httpx.HTTPError as exc:
        raise AssetFetchFailed(f"PDF download failed: {exc}") from exc

    if not response.is_success:
        raise AssetFetchFailed(f"PDF download failed: {response.status_code}")
    return response.content
