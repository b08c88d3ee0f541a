"""
AI provider profiles and SDK adapters.

Each adapter turns (prompt, model, profile) into the raw text the model
returned. Adapters make exactly one call and raise on failure; deciding
what to do about a failure is the caller's job.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

import anthropic
from google import genai
from openai import OpenAI

from .errors import ErrorKind, PipelineError

logger = logging.getLogger(__name__)

OPENAI = "openai"
ANTHROPIC = "anthropic"
GOOGLE = "google"
XAI = "xai"

PROVIDERS = (OPENAI, ANTHROPIC, GOOGLE, XAI)

XAI_BASE_URL = "https://api.x.ai/v1"


@dataclass(frozen=True)
class ProviderProfile:
    provider: str
    max_tokens: int = 4000
    max_tokens_param: str = "max_tokens"
    supports_json_format: bool = True
    supports_temperature: bool = True
    temperature: float = 0.7
    capabilities: Mapping[str, str] = field(default_factory=dict)


MODEL_PROFILES: Dict[str, ProviderProfile] = {
    # OpenAI
    'gpt-5': ProviderProfile(
        OPENAI, max_tokens=8000, max_tokens_param='max_completion_tokens', supports_temperature=False,
        capabilities={'jsonReliability': 'outstanding', 'writingQuality': 'outstanding', 'costEfficiency': 'low'}),
    'gpt-5-mini': ProviderProfile(
        OPENAI, max_tokens=6000, max_tokens_param='max_completion_tokens', supports_temperature=False,
        capabilities={'jsonReliability': 'excellent', 'writingQuality': 'excellent', 'costEfficiency': 'high'}),
    'gpt-4o': ProviderProfile(
        OPENAI, max_tokens=4000, max_tokens_param='max_completion_tokens',
        capabilities={'jsonReliability': 'excellent', 'writingQuality': 'excellent', 'costEfficiency': 'medium'}),
    'gpt-4o-mini': ProviderProfile(
        OPENAI, max_tokens=4000, max_tokens_param='max_completion_tokens',
        capabilities={'jsonReliability': 'high', 'writingQuality': 'good', 'costEfficiency': 'high'}),
    'gpt-4-turbo': ProviderProfile(
        OPENAI, max_tokens=4000, max_tokens_param='max_tokens',
        capabilities={'jsonReliability': 'excellent', 'writingQuality': 'excellent', 'costEfficiency': 'low'}),

    # Anthropic (no JSON mode, JSON is pulled out of the text)
    'claude-sonnet-4-20250514': ProviderProfile(
        ANTHROPIC, max_tokens=8000, supports_json_format=False,
        capabilities={'jsonReliability': 'excellent', 'writingQuality': 'outstanding', 'costEfficiency': 'medium'}),
    'claude-3-5-sonnet-20241022': ProviderProfile(
        ANTHROPIC, max_tokens=4000, supports_json_format=False,
        capabilities={'jsonReliability': 'good', 'writingQuality': 'excellent', 'costEfficiency': 'medium'}),
    'claude-3-5-haiku-20241022': ProviderProfile(
        ANTHROPIC, max_tokens=4000, supports_json_format=False,
        capabilities={'jsonReliability': 'medium', 'writingQuality': 'good', 'costEfficiency': 'high'}),
    'claude-3-opus-20240229': ProviderProfile(
        ANTHROPIC, max_tokens=4000, supports_json_format=False,
        capabilities={'jsonReliability': 'good', 'writingQuality': 'outstanding', 'costEfficiency': 'very_low'}),

    # Google
    'gemini-2.5-flash': ProviderProfile(
        GOOGLE, max_tokens=8000, max_tokens_param='max_output_tokens',
        capabilities={'jsonReliability': 'high', 'writingQuality': 'good', 'costEfficiency': 'high'}),
    'gemini-2.5-pro': ProviderProfile(
        GOOGLE, max_tokens=8000, max_tokens_param='max_output_tokens',
        capabilities={'jsonReliability': 'high', 'writingQuality': 'excellent', 'costEfficiency': 'medium'}),

    # xAI (OpenAI-compatible API)
    'grok-3': ProviderProfile(
        XAI, max_tokens=4000, supports_json_format=False,
        capabilities={'jsonReliability': 'good', 'writingQuality': 'good', 'costEfficiency': 'medium'}),
    'grok-3-mini': ProviderProfile(
        XAI, max_tokens=4000, supports_json_format=False,
        capabilities={'jsonReliability': 'medium', 'writingQuality': 'good', 'costEfficiency': 'high'}),
}

# Substring rules for model names not in the table; order matters.
MODEL_ALIASES = [
    ('gpt-5-mini', 'gpt-5-mini'),
    ('gpt-5', 'gpt-5'),
    ('gpt-4o-mini', 'gpt-4o-mini'),
    ('gpt-4o', 'gpt-4o'),
    ('gpt-4', 'gpt-4-turbo'),
    ('claude-sonnet-4', 'claude-sonnet-4-20250514'),
    ('claude-4', 'claude-sonnet-4-20250514'),
    ('claude-3-5-sonnet', 'claude-3-5-sonnet-20241022'),
    ('claude-3-5-haiku', 'claude-3-5-haiku-20241022'),
    ('claude-3-opus', 'claude-3-opus-20240229'),
    ('claude', 'claude-sonnet-4-20250514'),
    ('gemini-2.5-pro', 'gemini-2.5-pro'),
    ('gemini', 'gemini-2.5-flash'),
    ('grok-3-mini', 'grok-3-mini'),
    ('grok', 'grok-3'),
]

# Used when a model name is unknown and only the provider is.
DEFAULT_PROFILES = {
    OPENAI: MODEL_PROFILES['gpt-4o-mini'],
    ANTHROPIC: MODEL_PROFILES['claude-3-5-haiku-20241022'],
    GOOGLE: MODEL_PROFILES['gemini-2.5-flash'],
    XAI: MODEL_PROFILES['grok-3-mini'],
}


def get_model_profile(model_name: str) -> Optional[ProviderProfile]:
    """Exact lookup first, then the alias rules. None for unknown models."""
    if not model_name:
        return None
    name = model_name.strip().lower()
    if name in MODEL_PROFILES:
        return MODEL_PROFILES[name]
    for fragment, canonical in MODEL_ALIASES:
        if fragment in name:
            return MODEL_PROFILES[canonical]
    return None


def resolve_provider(model_name: str, default_provider: str = OPENAI) -> str:
    """Map a model name to its provider; unknown names fall back to default_provider."""
    profile = get_model_profile(model_name)
    if profile is not None:
        return profile.provider
    logger.warning(f"Unrecognized model '{model_name}', using default provider '{default_provider}'")
    return default_provider


def profile_for(model_name: str, provider: str) -> ProviderProfile:
    profile = get_model_profile(model_name)
    if profile is not None and profile.provider == provider:
        return profile
    return DEFAULT_PROFILES.get(provider, DEFAULT_PROFILES[OPENAI])


def extract_json_object(text: str) -> str:
    """Pull the outermost {...} out of free text; returns text unchanged if there is none."""
    match = re.search(r'\{[\s\S]*\}', text or '')
    return match.group(0) if match else (text or '')


JSON_ONLY_SUFFIX = "\n\nRespond ONLY with a valid JSON object. Do not include any other text."


# ============================================================================
# ADAPTERS
# ============================================================================

class ProviderAdapter:
    """Common interface: one completion call returning raw text."""

    provider = ""

    def __init__(self, api_key: str):
        if not api_key:
            raise PipelineError(
                f"API key not configured for provider '{self.provider}'",
                kind=ErrorKind.AUTHENTICATION,
            )
        self.api_key = api_key
        self._client = None

    def complete(self, prompt: str, model: str, profile: ProviderProfile) -> str:
        raise NotImplementedError


class OpenAIAdapter(ProviderAdapter):
    provider = OPENAI
    base_url = None

    @property
    def client(self):
        if self._client is None:
            if self.base_url:
                self._client = OpenAI(api_key=self.api_key, base_url=self.base_url, max_retries=0)
            else:
                self._client = OpenAI(api_key=self.api_key, max_retries=0)
        return self._client

    def complete(self, prompt: str, model: str, profile: ProviderProfile) -> str:
        params = {
            'model': model,
            'messages': [{'role': 'user', 'content': prompt if profile.supports_json_format else prompt + JSON_ONLY_SUFFIX}],
            profile.max_tokens_param: profile.max_tokens,
        }
        if profile.supports_json_format:
            params['response_format'] = {'type': 'json_object'}
        if profile.supports_temperature:
            params['temperature'] = profile.temperature

        response = self.client.chat.completions.create(**params)
        content = response.choices[0].message.content or ""
        return content if profile.supports_json_format else extract_json_object(content)


class XAIAdapter(OpenAIAdapter):
    provider = XAI
    base_url = XAI_BASE_URL


class AnthropicAdapter(ProviderAdapter):
    provider = ANTHROPIC

    @property
    def client(self):
        if self._client is None:
            self._client = anthropic.Anthropic(api_key=self.api_key, max_retries=0)
        return self._client

    def complete(self, prompt: str, model: str, profile: ProviderProfile) -> str:
        params = {
            'model': model,
            'max_tokens': profile.max_tokens,
            'messages': [{'role': 'user', 'content': prompt + JSON_ONLY_SUFFIX}],
        }
        if profile.supports_temperature:
            params['temperature'] = profile.temperature

        response = self.client.messages.create(**params)
        text = "".join(
            getattr(block, 'text', '') for block in response.content
            if getattr(block, 'type', 'text') == 'text'
        )
        return extract_json_object(text)


class GeminiAdapter(ProviderAdapter):
    provider = GOOGLE

    @property
    def client(self):
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def complete(self, prompt: str, model: str, profile: ProviderProfile) -> str:
        config = {profile.max_tokens_param: profile.max_tokens}
        if profile.supports_json_format:
            config['response_mime_type'] = 'application/json'
        if profile.supports_temperature:
            config['temperature'] = profile.temperature

        response = self.client.models.generate_content(
            model=model,
            contents=prompt,
            config=config,
        )
        return (response.text or "").strip()


ADAPTERS = {
    OPENAI: OpenAIAdapter,
    ANTHROPIC: AnthropicAdapter,
    GOOGLE: GeminiAdapter,
    XAI: XAIAdapter,
}
