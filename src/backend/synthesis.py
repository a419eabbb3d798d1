"""Ordered multi-backend wiki generation with a deterministic stub fallback."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional, Sequence

from external_clients import Deadline
from llm_clients import GenerationBackend
from models import PromptContext, Section
from wiki_parser import parse_wiki_document

logger = logging.getLogger(__name__)

STUB_PROVIDER = "stub"


@dataclass
class SynthesisResult:
    sections: list[Section]
    provider: str
    provider_errors: dict[str, str] = field(default_factory=dict)


def build_stub_document(title: str, arxiv_id: str, category: str) -> list[Section]:
    """Placeholder wiki used when no backend produced a usable document."""
    return [
        Section("overview", "Overview",
                f'Concise analysis of "{title}" (arXiv:{arxiv_id}) in {category}. Full analysis pending.'),
        Section("methodology", "Methodology and Approach", "Problem setup, assumptions, experiments."),
        Section("results", "Results and Analysis", "Key results and comparisons to prior work."),
        Section("theoretical", "Theoretical Foundations", "Core formalism and reasoning."),
        Section("impact", "Impact and Significance", f"Implications for {category} research and practice."),
        Section("related", "Related Work and Context", "Positioning in the literature and notable refs."),
    ]


def resolve_candidate_order(
    backends: Mapping[str, GenerationBackend],
    priority: Sequence[str],
    explicit: Optional[str] = None,
) -> list[str]:
    """Explicit choice first (configured or not), then configured backends by priority."""
    order = [explicit] if explicit else []
    for name in priority:
        backend = backends.get(name)
        if name != explicit and backend is not None and backend.configured:
            order.append(name)
    return order


def synthesize_wiki(
    context: PromptContext,
    backends: Mapping[str, GenerationBackend],
    priority: Sequence[str],
    deadline: Deadline,
    explicit: Optional[str] = None,
    log: Optional[Callable[..., None]] = None,
) -> SynthesisResult:
    """Try each candidate once; the first parseable document wins.

    Invocation and parse failures are recorded per backend and never raised.
    """
    note = log or (lambda *args, **kwargs: None)
    candidates = resolve_candidate_order(backends, priority, explicit)
    note("provider order", providers=candidates)

    provider_errors: dict[str, str] = {}
    for name in candidates:
        backend = backends.get(name)
        try:
            if backend is None:
                raise ValueError(f"Unknown provider: {name}")
            raw_text = backend.generate(context, deadline)
            sections = parse_wiki_document(raw_text)
        except Exception as exc:  # every failure moves on to the next candidate
            message = str(exc) or type(exc).__name__
            provider_errors[name] = message
            logger.warning(f"Provider {name} failed for {context.arxiv_id}: {message}")
            note("provider error", provider=name, error=message)
            continue

        note("provider chosen", provider=name)
        return SynthesisResult(sections=sections, provider=name, provider_errors=provider_errors)

    metadata = context.metadata
    note("all providers failed, using stub", attempted=len(candidates))
    return SynthesisResult(
        sections=build_stub_document(metadata.title, context.arxiv_id, metadata.category),
        provider=STUB_PROVIDER,
        provider_errors=provider_errors,
    )
