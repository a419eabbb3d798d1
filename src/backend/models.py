"""Shared typed models for the indexing pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

DEFAULT_CATEGORY = "Computer Science"
UNKNOWN_PUBLISHED = "Unknown"


class PaperStatus(str, Enum):
    PENDING = "pending"
    CACHED = "cached"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class PaperMetadata:
    """Bibliographic record for one arXiv entry."""

    title: str
    abstract: str = ""
    authors: tuple[str, ...] = ()
    category: str = DEFAULT_CATEGORY
    published: str = UNKNOWN_PUBLISHED


@dataclass(frozen=True, slots=True)
class PdfAsset:
    """PDF bytes plus where they live in object storage."""

    content: bytes
    object_path: str
    public_url: str
    from_storage: bool


@dataclass(slots=True)
class Section:
    """One node of a generated wiki document."""

    id: str
    title: str
    content: Optional[str] = None
    children: Optional[list[Section]] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "title": self.title}
        if self.content is not None:
            data["content"] = self.content
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data


@dataclass(frozen=True, slots=True)
class PromptContext:
    """Everything a generation backend gets to see about a paper."""

    arxiv_id: str
    metadata: PaperMetadata
    pdf_url: str
    pdf_bytes: Optional[bytes] = field(default=None, repr=False)
