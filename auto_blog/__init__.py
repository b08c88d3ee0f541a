"""
Auto Blog - Automated SEO Blog Pipeline

Discovers topics from search results, scores them by ranking opportunity,
generates posts with OpenAI, Anthropic, Gemini or xAI models,
and publishes them to WordPress.
"""

__version__ = "1.0.0"

from .config import Settings, load_settings
from .cache import MemoryCacheStore, JsonFileCacheStore, with_cache
from .errors import ErrorKind, ErrorLog, RetryPolicy, classify_error, with_retry, safe_batch_process, safe_execute
from .strategy import ScoredTopic, discover_topics, opportunity_score
from .dispatcher import AIDispatcher, GenerationResult
from .pipeline import ContentPipeline

__all__ = [
    'Settings',
    'load_settings',
    'MemoryCacheStore',
    'JsonFileCacheStore',
    'with_cache',
    'ErrorKind',
    'ErrorLog',
    'RetryPolicy',
    'classify_error',
    'with_retry',
    'safe_batch_process',
    'safe_execute',
    'ScoredTopic',
    'discover_topics',
    'opportunity_score',
    'AIDispatcher',
    'GenerationResult',
    'ContentPipeline',
]
