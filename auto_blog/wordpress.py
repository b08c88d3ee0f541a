"""
WordPress REST API integration: term lookup, post creation and HTML cleanup.
"""

import logging
import re
import time
from typing import Dict, List, Optional, Sequence

import requests
from bs4 import BeautifulSoup

from .cache import MemoryCacheStore, compact_entity, with_cache
from .config import DEFAULT_CATEGORY, MAX_SLUG_LENGTH, WP_API_PATH, WP_TERM_CACHE_TTL, WP_USER_AGENT
from .content import GeneratedContent
from .errors import ErrorKind, PipelineError

logger = logging.getLogger(__name__)

# Client errors that may succeed on a later attempt.
TRANSIENT_CLIENT_STATUSES = (408, 429)


class WordPressError(PipelineError):
    """Non-2xx answer from the WordPress REST API."""

    kind = ErrorKind.WORDPRESS

    def __init__(self, message: str, status_code: Optional[int] = None):
        permanent = (
            status_code is not None
            and 400 <= status_code < 500
            and status_code not in TRANSIENT_CLIENT_STATUSES
        )
        super().__init__(message, retryable=not permanent)
        self.status_code = status_code


def sanitize_html_before_publish(html, title=None):
    """
    Clean generated HTML before it goes into a post body.

    WordPress renders the post title itself, so the first <h1> is dropped,
    any other <h1> becomes <h2>, and the first <h2>/<h3> repeating the title
    is removed. Scripts and styles are stripped.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, 'html.parser')

    for tag in soup(['script', 'style']):
        tag.decompose()

    first_h1 = soup.find('h1')
    if first_h1 is not None:
        first_h1.decompose()

    for h1 in soup.find_all('h1'):
        h1.name = 'h2'

    if title:
        wanted = " ".join(title.split()).lower()
        for heading in soup.find_all(['h2', 'h3']):
            if " ".join(heading.get_text().split()).lower() == wanted:
                heading.decompose()
                break

    return str(soup).strip()


def generate_slug(title: str) -> str:
    """URL slug from a post title: lowercase words joined by hyphens, at most MAX_SLUG_LENGTH chars."""
    slug = (title or "").lower()
    slug = re.sub(r'[^\w\s-]', '', slug)
    slug = re.sub(r'\s+', '-', slug)
    slug = re.sub(r'-+', '-', slug).strip('-')
    return slug[:MAX_SLUG_LENGTH].strip('-')


class WordPressClient:
    """Thin wrapper over /wp-json/wp/v2 with application-password auth."""

    def __init__(self, base_url: str, user: str, app_password: str, cache_store=None,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.api_url = f"{self.base_url}{WP_API_PATH}"
        self.cache_store = cache_store if cache_store is not None else MemoryCacheStore()
        self.session = session or requests.Session()
        self.session.auth = (user, app_password)
        self.session.headers["User-Agent"] = WP_USER_AGENT

    def request(self, method: str, endpoint: str, params: Optional[dict] = None,
                payload: Optional[dict] = None):
        url = f"{self.api_url}{endpoint}"
        response = self.session.request(method, url, params=params, json=payload, timeout=30)

        if not 200 <= response.status_code < 300:
            raise WordPressError(
                f"WordPress API error ({response.status_code}) on {method} {endpoint}: {response.text[:300]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            return response.text

    def _find_or_create_term(self, taxonomy: str, name: str) -> Dict:
        existing = self.request('GET', f"/{taxonomy}", params={'search': name, 'per_page': 100})
        for term in existing if isinstance(existing, list) else []:
            if str(term.get('name', '')).lower() == name.lower():
                return term

        created = self.request('POST', f"/{taxonomy}", payload={'name': name})
        logger.info(f"Created WordPress {taxonomy} term '{name}' (ID: {created.get('id')})")
        return created

    def _ensure_term(self, taxonomy: str, name: str) -> int:
        term = with_cache(
            self.cache_store,
            f"wp_{taxonomy}_{name.strip().lower()}",
            WP_TERM_CACHE_TTL,
            lambda: self._find_or_create_term(taxonomy, name.strip()),
            compact=compact_entity,
        )
        if not isinstance(term, dict) or 'id' not in term:
            raise WordPressError(f"WordPress returned no id for {taxonomy} '{name}'")
        return term['id']

    def ensure_category(self, name: str) -> int:
        return self._ensure_term('categories', name)

    def ensure_tags(self, names: Sequence[str]) -> List[int]:
        tag_ids = []
        for name in names:
            if name and name.strip():
                tag_ids.append(self._ensure_term('tags', name))
        return tag_ids

    def create_post(self, title: str, html: str, category_ids: Sequence[int] = (),
                    tag_ids: Sequence[int] = (), status: str = "draft", excerpt: str = "",
                    slug: str = "") -> Dict:
        payload = {'title': title, 'content': html, 'status': status}
        if category_ids:
            payload['categories'] = list(category_ids)
        if tag_ids:
            payload['tags'] = list(tag_ids)
        if excerpt:
            payload['excerpt'] = excerpt
        if slug:
            payload['slug'] = slug

        result = self.request('POST', '/posts', payload=payload)
        if not isinstance(result, dict) or 'id' not in result:
            raise WordPressError("WordPress post creation returned no id")

        post = self._post_ref(result)
        logger.info(f"WordPress post created: ID {post['id']} ({post['link']})")
        return post

    def find_post_by_slug(self, slug: str) -> Optional[Dict]:
        """The post with this slug in any status, or None."""
        if not slug:
            return None
        found = self.request('GET', '/posts', params={'slug': slug, 'status': 'any', 'context': 'edit'})
        for result in found if isinstance(found, list) else []:
            if isinstance(result, dict) and 'id' in result:
                return self._post_ref(result)
        return None

    def _post_ref(self, result: Dict) -> Dict:
        return {'id': result['id'], 'link': result.get('link') or f"{self.base_url}/?p={result['id']}"}


class WordPressPublisher:
    """
    Publishes GeneratedContent as a WordPress post.

    Term lookups are idempotent and go through the retry policy. Post
    creation is not: a create that fails after WordPress committed it
    would publish twice, so before every repeat attempt the post is
    looked up by its slug and returned if it already exists.
    """

    def __init__(self, client: WordPressClient, post_status: str = "draft", retry_policy=None,
                 sleep=time.sleep):
        self.client = client
        self.post_status = post_status
        self.retry_policy = retry_policy
        self.sleep = sleep

    def _retrying(self, func):
        if self.retry_policy is None:
            return func
        return self.retry_policy.wrap(func, sleep=self.sleep)

    def publish(self, content: GeneratedContent) -> Dict:
        categories = [c for c in content.categories if c.strip()] or [DEFAULT_CATEGORY]
        category_ids = [self._retrying(self.client.ensure_category)(c) for c in categories]
        tag_ids = self._retrying(self.client.ensure_tags)(content.tags)
        html = sanitize_html_before_publish(content.html, content.title)
        slug = generate_slug(content.title)
        attempts = 0

        def create():
            nonlocal attempts
            if attempts and slug:
                existing = self.client.find_post_by_slug(slug)
                if existing is not None:
                    logger.info(f"Post '{slug}' already exists (ID {existing['id']}), not creating it again")
                    return existing
            attempts += 1
            return self.client.create_post(
                title=content.title,
                html=html,
                category_ids=category_ids,
                tag_ids=tag_ids,
                status=self.post_status,
                excerpt=content.seo_description,
                slug=slug,
            )

        # Without a slug there is no way to tell whether a failed create landed.
        return self._retrying(create)() if slug else create()
