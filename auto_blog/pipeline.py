"""
End-to-end run: discover topics, generate posts with provider fallback,
publish them, and record what was published.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from .cache import JsonFileCacheStore, MemoryCacheStore
from .config import POST_DELAY_SECONDS, Settings
from .content import GeneratedContent, build_content_prompt
from .dispatcher import AIDispatcher
from .errors import BatchResult, ErrorLog, TimeBudget, classify_error, safe_batch_process, safe_execute
from .serp import SerpClient
from .strategy import ScoredTopic, discover_topics
from .utils import add_used_topic, load_used_topics, normalize_topic
from .wordpress import WordPressClient, WordPressPublisher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishedPost:
    topic: str
    content: GeneratedContent
    post_id: Optional[int] = None
    link: str = ""
    model: str = ""
    dry_run: bool = False


class ContentPipeline:
    """Wires the components together from one Settings object."""

    def __init__(self, settings: Settings, cache_store=None, serp_client=None, dispatcher=None,
                 publisher=None, error_log: Optional[ErrorLog] = None, sleep=time.sleep,
                 clock=time.monotonic, dry_run: bool = False):
        self.settings = settings
        self.sleep = sleep
        self.clock = clock

        if cache_store is None:
            cache_store = JsonFileCacheStore(settings.cache_file) if settings.cache_file else MemoryCacheStore()
        self.cache_store = cache_store
        self.error_log = error_log if error_log is not None else ErrorLog(settings.error_log_file or None)
        self.serp_client = serp_client or SerpClient(settings, cache_store)
        self.dispatcher = dispatcher or AIDispatcher(settings)

        if publisher is None and not dry_run and settings.wordpress_configured:
            publisher = WordPressPublisher(
                WordPressClient(settings.wp_base, settings.wp_user, settings.wp_app_pass, cache_store=cache_store),
                post_status=settings.wp_post_status,
                retry_policy=settings.retry_policy,
                sleep=sleep,
            )
        self.publisher = publisher
        if self.publisher is None:
            logger.info("No publisher configured, running in dry-run mode")

    @property
    def dry_run(self) -> bool:
        return self.publisher is None

    def discover_topics(self) -> List[ScoredTopic]:
        return discover_topics(self.settings, self.serp_client, self.dispatcher,
                               error_log=self.error_log, sleep=self.sleep)

    def generate_for_topic(self, topic: ScoredTopic):
        """
        Generate a post for topic, trying each candidate model in turn.

        Each model gets the configured retry policy; errors that retrying
        cannot fix (bad key, malformed output) move straight on to the next
        model. Returns (content, model). Raises the last error if every
        model fails.
        """
        prompt = build_content_prompt(topic.topic, topic.keywords, topic.user_intent)
        language = self.settings.content_language
        last_error = None

        for model in self.dispatcher.candidate_models(self.settings.model_name):
            attempt = self.settings.retry_policy.wrap(
                lambda m=model: self.dispatcher.generate(prompt, m, language).unwrap(),
                sleep=self.sleep,
            )
            try:
                return attempt(), model
            except Exception as e:
                last_error = e
                logger.warning(f"Model {model} failed for '{topic.topic}' [{classify_error(e).value}]: {e}")

        raise last_error

    def publish_topic(self, topic: ScoredTopic, index: int = 0) -> PublishedPost:
        if index > 0 and POST_DELAY_SECONDS:
            self.sleep(POST_DELAY_SECONDS)

        logger.info(f"Processing topic {index + 1}: {topic.topic} (score {topic.opportunity_score})")
        content, model = self.generate_for_topic(topic)

        if self.publisher is None:
            logger.info(f"[dry-run] Would publish '{content.title}'")
            return PublishedPost(topic=topic.topic, content=content, model=model, dry_run=True)

        post = self.publisher.publish(content)
        add_used_topic(self.settings.used_topics_file, topic.topic)

        return PublishedPost(
            topic=topic.topic,
            content=content,
            post_id=post.get('id'),
            link=post.get('link', ''),
            model=model,
        )

    def select_topics(self, topics: List[ScoredTopic], limit: Optional[int] = None) -> List[ScoredTopic]:
        """Drop already-published topics, best opportunity first, at most limit."""
        used = {normalize_topic(t) for t in load_used_topics(self.settings.used_topics_file)}
        fresh = [t for t in topics if normalize_topic(t.topic) not in used]
        if len(fresh) < len(topics):
            logger.info(f"Skipped {len(topics) - len(fresh)} already published topic(s)")

        fresh.sort(key=lambda t: t.opportunity_score, reverse=True)
        count = self.settings.daily_limit if limit is None else limit
        return fresh[:max(0, count)]

    def run(self, limit: Optional[int] = None) -> BatchResult:
        budget = TimeBudget(self.settings.time_budget_seconds, clock=self.clock)

        topics = safe_execute(self.discover_topics, fallback=list, context="topic_discovery",
                              error_log=self.error_log) or []
        selected = self.select_topics(topics, limit)
        logger.info(f"{len(selected)} topic(s) selected from {len(topics)} discovered")

        return safe_batch_process(selected, self.publish_topic, budget=budget, error_log=self.error_log)
