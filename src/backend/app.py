from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import db
import indexer
from arxiv_helpers import normalize_arxiv_id
from errors import IndexingError
from external_clients import shutdown_http_clients

logger = logging.getLogger(__name__)

app = FastAPI(title="paper-wiki-indexer")


@app.on_event("shutdown")
def close_http_clients() -> None:
    """Close all shared HTTP clients on shutdown."""
    shutdown_http_clients()


@app.exception_handler(RequestValidationError)
async def request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer malformed bodies with the same error shape as indexing failures."""
    problems = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
        for error in exc.errors()
    ]
    trace = indexer.DebugLog()
    trace.log("invalid request", errors=jsonable_encoder(exc.errors()))
    return JSONResponse(
        status_code=422,
        content={"error": "Invalid request: " + "; ".join(problems), "debug": trace.as_dict()},
    )


# =============================================================================
# Request Models
# =============================================================================

class Provider(str, Enum):
    openai = "openai"
    anthropic = "anthropic"
    gemini = "gemini"


class IndexPaperRequest(BaseModel):
    arxiv_id: Optional[str] = Field(default=None, description="arXiv ID or URL, e.g. 1706.03762")
    force: bool = Field(default=False, description="Regenerate even if the paper is already indexed")
    provider: Optional[Provider] = Field(default=None, description="Backend to try first")
    openai_model: Optional[str] = Field(default=None, description="OpenAI model override")
    anthropic_model: Optional[str] = Field(default=None, description="Anthropic model override")
    gemini_model: Optional[str] = Field(default=None, description="Gemini model override")
    debug: bool = Field(default=False, description="Include the request trace in the response")


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/papers/index")
def index_paper(payload: IndexPaperRequest) -> Any:
    """Index a paper: metadata, cached PDF, generated wiki, idempotent upsert."""
    trace = indexer.DebugLog()
    try:
        body = indexer.index_paper(
            payload.arxiv_id,
            trace,
            force=payload.force,
            provider=payload.provider.value if payload.provider else None,
            model_overrides={
                "openai": payload.openai_model,
                "anthropic": payload.anthropic_model,
                "gemini": payload.gemini_model,
            },
            services_factory=indexer.build_default_services,
        )
    except IndexingError as exc:
        trace.log("fatal", err=str(exc), ms=trace.elapsed_ms())
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc), "debug": trace.as_dict()},
        )
    except Exception as exc:
        logger.exception(f"Unexpected failure while indexing {payload.arxiv_id}")
        trace.log("fatal", err=str(exc), ms=trace.elapsed_ms())
        return JSONResponse(status_code=500, content={"error": str(exc), "debug": trace.as_dict()})

    if payload.debug:
        body["debug"] = trace.as_dict()
    return jsonable_encoder(body)


@app.get("/papers/{arxiv_id:path}")
def get_paper(arxiv_id: str) -> dict[str, Any]:
    """Read an indexed paper for the presentation layer."""
    normalized = normalize_arxiv_id(arxiv_id)
    try:
        paper = db.get_paper_by_arxiv_id(normalized)
    except IndexingError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc))
    if not paper:
        raise HTTPException(status_code=404, detail=f"Paper {normalized} not found")
    return paper
