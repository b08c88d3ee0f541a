"""
Configuration and constants for the auto_blog package.

Everything that varies per deployment is read once from the environment by
load_settings() and passed around as a Settings object.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from .errors import RetryPolicy

logger = logging.getLogger(__name__)

# --- SEARCH API ---
SERPAPI_URL = "https://serpapi.com/search.json"
SERP_RESULTS_PER_QUERY = 10

# --- CACHE ---
CACHE_SIZE_LIMIT = 90_000
SERP_CACHE_TTL = 24 * 60 * 60
WP_TERM_CACHE_TTL = 24 * 60 * 60

# --- WORDPRESS ---
WP_API_PATH = "/wp-json/wp/v2"

WP_USER_AGENT = "auto-blog/1.0"

# Used when the generated post names no category.
DEFAULT_CATEGORY = "Trends"

# Generated slugs are cut to this many characters.
MAX_SLUG_LENGTH = 60

# --- OPPORTUNITY SCORING ---
# Forum and Q&A sites ranking for a query mean the SERP is easy to enter.
FORUM_DOMAINS = [
    "reddit.com",
    "quora.com",
    "stackexchange.com",
    "stackoverflow.com",
    "tripadvisor.com",
    "answers.com",
    "city-data.com",
]

# Major outlets ranking for a query mean heavy competition.
HIGH_AUTHORITY_DOMAINS = [
    "forbes.com",
    "nytimes.com",
    "wikipedia.org",
    "cnn.com",
    "bbc.com",
    "bbc.co.uk",
    "theguardian.com",
    "wsj.com",
    "bloomberg.com",
    "reuters.com",
    "businessinsider.com",
    "healthline.com",
]

BASE_OPPORTUNITY_SCORE = 50
FORUM_BONUS = 5
AUTHORITY_PENALTY = 5
VIDEO_BONUS = 2
MAX_SCORED_RESULTS = 10

# --- CONTENT ---
LANGUAGE_NAMES = {
    "EN": "English",
    "KO": "Korean",
    "JA": "Japanese",
    "ES": "Spanish",
    "DE": "German",
    "FR": "French",
}

# One fallback model per provider, tried after the configured model fails.
FALLBACK_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-20241022",
    "google": "gemini-2.5-flash",
    "xai": "grok-3-mini",
}

DEFAULT_TIME_BUDGET_SECONDS = 330
DEFAULT_DAILY_LIMIT = 3
POST_DELAY_SECONDS = 2


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, built once and passed to every component."""

    serp_api_key: str = ""
    seed_keywords: Tuple[str, ...] = ()
    search_country: str = "us"
    search_language: str = "en"

    ai_provider_default: str = "openai"
    model_name: str = "gpt-4o-mini"
    analysis_model: str = "gpt-4o-mini"
    content_language: str = "EN"
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    gemini_api_key: str = ""
    xai_api_key: str = ""

    wp_base: str = ""
    wp_user: str = ""
    wp_app_pass: str = ""
    wp_post_status: str = "draft"

    daily_limit: int = DEFAULT_DAILY_LIMIT
    time_budget_seconds: int = DEFAULT_TIME_BUDGET_SECONDS
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    cache_file: str = ""
    error_log_file: str = ""
    used_topics_file: str = ""

    def api_key_for(self, provider: str) -> str:
        """Return the API key configured for an AI provider (empty if none)."""
        return {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "google": self.gemini_api_key,
            "xai": self.xai_api_key,
        }.get(provider, "")

    @property
    def wordpress_configured(self) -> bool:
        return all([self.wp_base, self.wp_user, self.wp_app_pass])


def _parse_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {raw!r}, using {default}")
        return default


def _parse_keywords(raw: str) -> Tuple[str, ...]:
    return tuple(k.strip() for k in raw.split(",") if k.strip())


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from environment variables."""
    env = os.environ if environ is None else environ

    model_name = env.get("AI_MODEL", "") or "gpt-4o-mini"
    data_dir = env.get("AUTO_BLOG_DATA_DIR", "") or os.getcwd()

    return Settings(
        serp_api_key=env.get("SERP_API_KEY", ""),
        seed_keywords=_parse_keywords(env.get("SEED_KEYWORDS", "")),
        search_country=env.get("SEARCH_COUNTRY", "") or "us",
        search_language=env.get("SEARCH_LANGUAGE", "") or "en",
        ai_provider_default=(env.get("AI_PROVIDER", "") or "openai").lower(),
        model_name=model_name,
        analysis_model=env.get("AI_ANALYSIS_MODEL", "") or model_name,
        content_language=(env.get("CONTENT_LANGUAGE", "") or "EN").upper(),
        openai_api_key=env.get("OPENAI_API_KEY", ""),
        anthropic_api_key=env.get("CLAUDE_API_KEY", "") or env.get("ANTHROPIC_API_KEY", ""),
        gemini_api_key=env.get("GEMINI_API_KEY", ""),
        xai_api_key=env.get("XAI_API_KEY", ""),
        wp_base=env.get("WP_BASE", "").rstrip("/"),
        wp_user=env.get("WP_USER", ""),
        wp_app_pass=env.get("WP_APP_PASS", ""),
        wp_post_status=env.get("WP_POST_STATUS", "") or "draft",
        daily_limit=_parse_int(env, "DAILY_LIMIT", DEFAULT_DAILY_LIMIT),
        time_budget_seconds=_parse_int(env, "TIME_BUDGET_SECONDS", DEFAULT_TIME_BUDGET_SECONDS),
        retry_policy=RetryPolicy(max_retries=_parse_int(env, "MAX_RETRIES", 3)),
        cache_file=env.get("CACHE_FILE", "") or os.path.join(data_dir, "cache.json"),
        error_log_file=env.get("ERROR_LOG_FILE", "") or os.path.join(data_dir, "error_log.jsonl"),
        used_topics_file=env.get("USED_TOPICS_FILE", "") or os.path.join(data_dir, "used_topics.json"),
    )
