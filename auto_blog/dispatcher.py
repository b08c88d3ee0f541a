"""
Routes generation requests to the AI provider that serves a model.

AIDispatcher.generate makes exactly one provider call and reports the
outcome as a GenerationResult instead of raising; retries and provider
fallback are decided by the caller.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .config import FALLBACK_MODELS, Settings
from .content import GeneratedContent, language_instruction, parse_generated_content
from .errors import ErrorKind, PipelineError, classify_error
from .providers import ADAPTERS, PROVIDERS, ProviderAdapter, profile_for, resolve_provider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationResult:
    """Success carries content; failure carries the error kind, raw output and exception."""

    success: bool
    content: Optional[GeneratedContent] = None
    kind: Optional[ErrorKind] = None
    raw: str = ""
    error: Optional[BaseException] = None
    model: str = ""
    provider: str = ""

    @classmethod
    def ok(cls, content: GeneratedContent, model: str = "", provider: str = "") -> "GenerationResult":
        return cls(success=True, content=content, model=model, provider=provider)

    @classmethod
    def failed(cls, kind: ErrorKind, raw: str = "", error: Optional[BaseException] = None,
               model: str = "", provider: str = "") -> "GenerationResult":
        return cls(success=False, kind=kind, raw=raw, error=error, model=model, provider=provider)

    def unwrap(self) -> GeneratedContent:
        """Return the content, or raise a PipelineError tagged with the failure kind."""
        if self.success:
            return self.content
        if isinstance(self.error, PipelineError):
            raise self.error
        message = str(self.error) if self.error else f"Generation failed ({self.kind.value})"
        raise PipelineError(f"{self.provider or 'AI'} generation failed: {message}", kind=self.kind) from self.error


class AIDispatcher:
    """Selects an adapter per model name and runs single completion calls."""

    def __init__(self, settings: Settings, adapters: Optional[Dict[str, ProviderAdapter]] = None):
        self.settings = settings
        self._adapters: Dict[str, ProviderAdapter] = dict(adapters or {})

    def resolve_provider(self, model_name: str) -> str:
        return resolve_provider(model_name, self.settings.ai_provider_default)

    def adapter_for(self, provider: str) -> ProviderAdapter:
        """Return (building on first use) the adapter for provider. Raises AUTHENTICATION without a key."""
        if provider not in self._adapters:
            adapter_cls = ADAPTERS.get(provider)
            if adapter_cls is None:
                raise PipelineError(f"Unsupported AI provider: {provider}")
            self._adapters[provider] = adapter_cls(self.settings.api_key_for(provider))
        return self._adapters[provider]

    def complete(self, prompt: str, model_name: str) -> str:
        """One raw completion call; errors propagate."""
        provider = self.resolve_provider(model_name)
        adapter = self.adapter_for(provider)
        logger.info(f"Calling {provider} model {model_name}")
        return adapter.complete(prompt, model_name, profile_for(model_name, provider))

    def generate(self, prompt: str, model_name: str, language: str = "EN") -> GenerationResult:
        """Generate one blog post with model_name; never raises."""
        provider = self.resolve_provider(model_name)
        full_prompt = prompt + language_instruction(language)
        raw = ""

        try:
            raw = self.complete(full_prompt, model_name)
            content = parse_generated_content(raw)
        except Exception as e:
            kind = classify_error(e)
            logger.warning(f"{provider}/{model_name} generation failed ({kind.value}): {e}")
            return GenerationResult.failed(kind, raw=raw, error=e, model=model_name, provider=provider)

        logger.info(f"Generated '{content.title}' with {provider}/{model_name}")
        return GenerationResult.ok(content, model=model_name, provider=provider)

    def candidate_models(self, model_name: str) -> List[str]:
        """The requested model, then one fallback model for each other provider with a key."""
        primary_provider = self.resolve_provider(model_name)
        candidates = [model_name]
        for provider in PROVIDERS:
            if provider == primary_provider or not self.settings.api_key_for(provider):
                continue
            fallback = FALLBACK_MODELS.get(provider)
            if fallback and fallback not in candidates:
                candidates.append(fallback)
        return candidates
