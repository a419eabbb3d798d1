"""Generation backends behind one interface: prompt context in, raw text out."""
from __future__ import annotations

import logging
import re
from typing import Any, Optional

import anthropic
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from openai import APIError, OpenAI

from config import PROVIDER_NAMES, get_prompt
from errors import ProviderInvocationError
from external_clients import Deadline
from models import PromptContext

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"


def get_openai_client(api_key: str, timeout: float, base_url: str = OPENAI_BASE_URL) -> OpenAI:
    """Create an OpenAI client with SDK retries disabled."""
    return OpenAI(base_url=base_url, api_key=api_key, timeout=timeout, max_retries=0)


def get_anthropic_client(api_key: str, timeout: float) -> anthropic.Anthropic:
    """Create an Anthropic client with SDK retries disabled."""
    return anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)


def get_gemini_client(api_key: str, timeout: float) -> genai.Client:
    """Create a Gemini client; the SDK takes its timeout in milliseconds."""
    return genai.Client(api_key=api_key, http_options=genai_types.HttpOptions(timeout=int(timeout * 1000)))


def build_wiki_prompt(context: PromptContext) -> str:
    metadata = context.metadata
    return get_prompt(
        "wiki_document",
        title=metadata.title,
        arxiv_id=context.arxiv_id,
        category=metadata.category,
        authors=", ".join(metadata.authors) or "Unknown",
        abstract=metadata.abstract,
        pdf_url=context.pdf_url or "(not provided)",
    )


class GenerationBackend:
    """One text-generation service. Subclasses implement ``_generate``."""

    name = "base"
    supports_pdf_input = False

    def __init__(self, api_key: str, model: str, temperature: float = 0.2, max_output_tokens: int = 4096):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def check_preconditions(self) -> None:
        if not self.configured:
            raise ProviderInvocationError(f"{self.name.upper()}_API_KEY missing (provider={self.name})")

    def generate(self, context: PromptContext, deadline: Deadline) -> str:
        self.check_preconditions()
        text = self._generate(context, deadline.timeout(f"{self.name} generation"))
        if not text or not text.strip():
            raise ProviderInvocationError(f"{self.name} returned an empty response")
        return text

    def _generate(self, context: PromptContext, timeout: float) -> str:
        raise NotImplementedError


class OpenAIBackend(GenerationBackend):
    name = "openai"

    def _generate(self, context: PromptContext, timeout: float) -> str:
        client = get_openai_client(self.api_key, timeout)
        try:
            response = client.chat.completions.create(
                model=self.model,
                temperature=self.temperature,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": get_prompt("wiki_system")},
                    {"role": "user", "content": build_wiki_prompt(context)},
                ],
            )
        except APIError as exc:
            raise ProviderInvocationError(f"OpenAI error: {exc}") from exc

        if not response.choices:
            raise ProviderInvocationError("OpenAI returned no choices")
        return response.choices[0].message.content or ""


class AnthropicBackend(GenerationBackend):
    name = "anthropic"

    def __init__(self, *args: Any, model_pattern: Optional[str] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.model_pattern = re.compile(model_pattern) if model_pattern else None

    def check_preconditions(self) -> None:
        super().check_preconditions()
        if self.model_pattern is not None and not self.model_pattern.match(self.model):
            raise ProviderInvocationError(f"Invalid Anthropic model: {self.model}")

    def _generate(self, context: PromptContext, timeout: float) -> str:
        client = get_anthropic_client(self.api_key, timeout)
        try:
            response = client.messages.create(
                model=self.model,
                max_tokens=self.max_output_tokens,
                temperature=self.temperature,
                system=get_prompt("wiki_system"),
                messages=[{"role": "user", "content": build_wiki_prompt(context)}],
            )
        except anthropic.APIError as exc:
            raise ProviderInvocationError(f"Anthropic error: {exc}") from exc

        return "\n".join(block.text for block in response.content if getattr(block, "type", None) == "text")


class GeminiBackend(GenerationBackend):
    name = "gemini"
    supports_pdf_input = True

    def __init__(self, *args: Any, max_inline_pdf_bytes: int = 20 * 1024 * 1024, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.max_inline_pdf_bytes = max_inline_pdf_bytes

    def build_contents(self, context: PromptContext) -> list[Any]:
        """PDF part first when it fits inline, then the text prompt."""
        contents: list[Any] = []
        pdf_bytes = context.pdf_bytes
        if pdf_bytes and len(pdf_bytes) <= self.max_inline_pdf_bytes:
            contents.append(genai_types.Part.from_bytes(data=pdf_bytes, mime_type="application/pdf"))
        contents.append(build_wiki_prompt(context))
        return contents

    def _generate(self, context: PromptContext, timeout: float) -> str:
        client = get_gemini_client(self.api_key, timeout)
        try:
            response = client.models.generate_content(
                model=self.model,
                contents=self.build_contents(context),
                config=genai_types.GenerateContentConfig(
                    temperature=self.temperature,
                    max_output_tokens=self.max_output_tokens,
                    response_mime_type="application/json",
                ),
            )
        except genai_errors.APIError as exc:
            raise ProviderInvocationError(f"Gemini error: {exc}") from exc

        return response.text or ""


_BACKEND_CLASSES: dict[str, type[GenerationBackend]] = {
    "anthropic": AnthropicBackend,
    "openai": OpenAIBackend,
    "gemini": GeminiBackend,
}


def build_backends(provider_config: dict[str, Any]) -> dict[str, GenerationBackend]:
    """Instantiate every known backend; unconfigured ones fail their preconditions."""
    common = {
        "temperature": provider_config["temperature"],
        "max_output_tokens": provider_config["max_output_tokens"],
    }
    extra: dict[str, dict[str, Any]] = {
        "anthropic": {"model_pattern": provider_config["anthropic_model_pattern"]},
        "gemini": {"max_inline_pdf_bytes": provider_config["max_inline_pdf_bytes"]},
    }
    backends: dict[str, GenerationBackend] = {}
    for name in PROVIDER_NAMES:
        settings = provider_config[name]
        backends[name] = _BACKEND_CLASSES[name](
            settings["api_key"], settings["model"], **common, **extra.get(name, {})
        )
    return backends
