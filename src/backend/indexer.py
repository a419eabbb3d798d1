"""Indexing pipeline: normalize -> cache check -> metadata -> PDF -> wiki -> upsert."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence

import db
from arxiv_helpers import download_arxiv_pdf, fetch_arxiv_metadata, normalize_arxiv_id
from config import _get_indexing_config, _get_provider_config, _get_storage_config
from errors import InvalidRequest, PersistenceError
from external_clients import Deadline
from llm_clients import GenerationBackend, build_backends
from models import PaperMetadata, PromptContext
from storage import PdfStorage, ensure_pdf_cached
from synthesis import synthesize_wiki

logger = logging.getLogger(__name__)


class DebugLog:
    """Ordered trace of one request, mirrored to the module logger."""

    def __init__(self) -> None:
        self.t0 = time.time()
        self.notes: list[dict[str, Any]] = []

    def log(self, note: str, **extra: Any) -> None:
        item: dict[str, Any] = {"note": note}
        if extra:
            item["extra"] = extra
        self.notes.append(item)
        logger.info(f"[index-paper] {note} {extra if extra else ''}".rstrip())

    def elapsed_ms(self) -> int:
        return int((time.time() - self.t0) * 1000)

    def as_dict(self) -> dict[str, Any]:
        return {"t0": int(self.t0 * 1000), "notes": list(self.notes)}


@dataclass
class IndexerServices:
    """Collaborators of one indexing run."""

    store: Any
    storage: PdfStorage
    backends: Mapping[str, GenerationBackend]
    priority: Sequence[str]
    fetch_metadata: Callable[[str, Deadline], PaperMetadata]
    fetch_pdf: Callable[[str, Deadline], bytes]
    deadline_seconds: float = 300.0
    request_timeout_seconds: Optional[float] = None

    def describe(self) -> dict[str, Any]:
        """Which collaborators are usable; never includes secret values."""
        return {
            "storageUrl": getattr(self.storage, "base_url", None),
            "providers": {
                name: {"configured": backend.configured, "model": getattr(backend, "model", None)}
                for name, backend in self.backends.items()
            },
            "priority": list(self.priority),
        }


def build_default_services(model_overrides: Optional[dict[str, Optional[str]]] = None) -> IndexerServices:
    """Wire the real collaborators from config. Raises ConfigurationMissing early."""
    storage_config = _get_storage_config()
    provider_config = _get_provider_config(model_overrides)
    indexing_config = _get_indexing_config()

    def fetch_metadata(arxiv_id: str, deadline: Deadline) -> PaperMetadata:
        return fetch_arxiv_metadata(arxiv_id, deadline, num_retries=indexing_config["arxiv_num_retries"])

    def fetch_pdf(arxiv_id: str, deadline: Deadline) -> bytes:
        return download_arxiv_pdf(arxiv_id, deadline, base_url=indexing_config["arxiv_pdf_base_url"])

    return IndexerServices(
        store=db,
        storage=PdfStorage.from_config(storage_config),
        backends=build_backends(provider_config),
        priority=provider_config["priority"],
        fetch_metadata=fetch_metadata,
        fetch_pdf=fetch_pdf,
        deadline_seconds=indexing_config["deadline_seconds"],
        request_timeout_seconds=indexing_config["request_timeout_seconds"],
    )


def index_paper(
    raw_arxiv_id: Optional[str],
    trace: DebugLog,
    force: bool = False,
    provider: Optional[str] = None,
    model_overrides: Optional[dict[str, Optional[str]]] = None,
    services_factory: Callable[..., IndexerServices] = build_default_services,
) -> dict[str, Any]:
    """Index one paper and return the response body.

    Without ``force`` an existing row is returned as-is and nothing external is
    touched. Fatal problems raise ``IndexingError`` subclasses; backend
    failures only show up in ``providerErrors``.
    """
    if not raw_arxiv_id or not raw_arxiv_id.strip():
        raise InvalidRequest("Missing arxiv_id")

    services = services_factory(model_overrides)
    trace.log("env summary", **services.describe())

    normalized = normalize_arxiv_id(raw_arxiv_id)
    trace.log("normalized arxiv id", input=raw_arxiv_id, normalized=normalized)
    if not normalized:
        raise InvalidRequest(f"Invalid arxiv_id: {raw_arxiv_id}")

    if not force:
        try:
            existing = services.store.get_paper_by_arxiv_id(normalized)
        except PersistenceError as exc:
            trace.log("existing lookup error", error=str(exc))
            existing = None
        if existing:
            trace.log("already indexed", arxiv_id=normalized)
            return {"ok": True, "data": existing, "alreadyIndexed": True}

    deadline = Deadline(services.deadline_seconds, services.request_timeout_seconds)

    metadata = services.fetch_metadata(normalized, deadline)
    trace.log("metadata", title=metadata.title, category=metadata.category, authorsCount=len(metadata.authors))

    asset = ensure_pdf_cached(services.storage, normalized, services.fetch_pdf, deadline, log=trace.log)
    trace.log("pdfPublicUrl", pdfPublicUrl=asset.public_url)

    context = PromptContext(
        arxiv_id=normalized,
        metadata=metadata,
        pdf_url=asset.public_url,
        pdf_bytes=asset.content,
    )
    result = synthesize_wiki(
        context,
        services.backends,
        services.priority,
        deadline,
        explicit=provider,
        log=trace.log,
    )

    payload = db.build_paper_payload(
        normalized,
        metadata,
        asset.public_url,
        [section.to_dict() for section in result.sections],
    )
    record = services.store.upsert_paper(payload)
    trace.log("done", ms=trace.elapsed_ms())

    return {
        "ok": True,
        "data": record,
        "alreadyIndexed": False,
        "provider": result.provider,
        "providerErrors": result.provider_errors,
    }
