"""
Search-result harvesting via SerpAPI.

One search per seed keyword, cached for a day. Anything that goes wrong at
this layer turns into "no data" for that keyword.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import requests

from .cache import with_cache
from .config import SERPAPI_URL, SERP_CACHE_TTL, SERP_RESULTS_PER_QUERY, Settings

logger = logging.getLogger(__name__)

RELATED_SEARCH = "related_search"
PEOPLE_ALSO_ASK = "people_also_ask"


@dataclass(frozen=True)
class RawTopic:
    topic: str
    source: str


def compact_serp_payload(payload: dict) -> dict:
    """Keep only the SERP fields topic discovery reads; full payloads blow the cache size limit."""
    return {
        'organic_results': [
            {'link': r.get('link', ''), 'type': r.get('type', 'organic'), 'title': r.get('title', '')}
            for r in payload.get('organic_results') or []
            if isinstance(r, dict)
        ],
        'related_searches': [
            {'query': r.get('query', '')}
            for r in payload.get('related_searches') or []
            if isinstance(r, dict)
        ],
        'people_also_ask': [
            {'question': r.get('question', '')}
            for r in payload.get('people_also_ask') or []
            if isinstance(r, dict)
        ],
    }


def extract_topics(payload: Optional[dict]) -> List[RawTopic]:
    """Related searches first, then People Also Ask questions, in SERP order."""
    if not payload:
        return []

    topics = []
    for item in payload.get('related_searches') or []:
        query = (item.get('query') or '').strip() if isinstance(item, dict) else ''
        if query:
            topics.append(RawTopic(topic=query, source=RELATED_SEARCH))

    for item in payload.get('people_also_ask') or []:
        question = (item.get('question') or '').strip() if isinstance(item, dict) else ''
        if question:
            topics.append(RawTopic(topic=question, source=PEOPLE_ALSO_ASK))

    return topics


class SerpClient:
    """Fetches Google SERP data for seed keywords through SerpAPI."""

    def __init__(self, settings: Settings, cache_store, session: Optional[requests.Session] = None):
        self.settings = settings
        self.cache_store = cache_store
        self.session = session or requests.Session()

    def fetch_serp_data(self, keyword: str) -> Optional[dict]:
        """Return the (compacted) SERP payload for keyword, or None on any failure."""
        cache_key = f"serp_{self.settings.search_country}_{keyword.strip().lower()}"
        return with_cache(
            self.cache_store,
            cache_key,
            SERP_CACHE_TTL,
            lambda: self._search(keyword),
            compact=compact_serp_payload,
        )

    def _search(self, keyword: str) -> Optional[dict]:
        if not self.settings.serp_api_key:
            logger.warning("SERP_API_KEY not set, skipping search")
            return None

        logger.info(f"Searching SERP for: {keyword}")
        params = {
            'engine': 'google',
            'q': keyword,
            'gl': self.settings.search_country,
            'hl': self.settings.search_language,
            'num': SERP_RESULTS_PER_QUERY,
            'api_key': self.settings.serp_api_key,
        }

        try:
            response = self.session.get(SERPAPI_URL, params=params, timeout=30)
        except requests.RequestException as e:
            logger.warning(f"SerpAPI request failed for '{keyword}': {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"SerpAPI error ({response.status_code}) for '{keyword}': {response.text[:200]}")
            return None

        try:
            data = response.json()
        except ValueError as e:
            logger.warning(f"SerpAPI returned non-JSON for '{keyword}': {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Unexpected SerpAPI payload for '{keyword}'")
            return None

        logger.info(
            f"SerpAPI '{keyword}': {len(data.get('organic_results') or [])} organic, "
            f"{len(data.get('related_searches') or [])} related, "
            f"{len(data.get('people_also_ask') or [])} questions"
        )
        return data
