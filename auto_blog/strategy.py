"""
Topic discovery: harvest SERP topics for every seed keyword, cluster them
with an AI model, and score each cluster by how winnable its SERP looks.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .config import (
    AUTHORITY_PENALTY,
    BASE_OPPORTUNITY_SCORE,
    FORUM_BONUS,
    FORUM_DOMAINS,
    HIGH_AUTHORITY_DOMAINS,
    MAX_SCORED_RESULTS,
    VIDEO_BONUS,
    Settings,
)
from .content import build_topic_cluster_prompt, parse_json_response
from .errors import ErrorLog, InvalidDataError, classify_and_log_error
from .serp import RawTopic, extract_topics

logger = logging.getLogger(__name__)

AI_CONTENT_STRATEGY = "ai_content_strategy"


@dataclass(frozen=True)
class TopicCluster:
    cluster_name: str
    representative_title: str
    user_intent: str
    keywords: Tuple[str, ...] = ()
    suggested_category: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "TopicCluster":
        if not isinstance(data, dict):
            raise InvalidDataError(f"Cluster entry is not an object: {data!r}")

        keywords = data.get('keywords') or []
        if isinstance(keywords, str):
            keywords = [keywords]

        return cls(
            cluster_name=str(data.get('cluster_name') or ''),
            representative_title=str(data.get('representative_title') or ''),
            user_intent=str(data.get('user_intent') or ''),
            keywords=tuple(str(k) for k in keywords if str(k).strip()),
            suggested_category=str(data.get('suggested_category') or ''),
        )

    @property
    def primary_keyword(self) -> str:
        return self.keywords[0] if self.keywords else self.representative_title


@dataclass(frozen=True)
class ScoredTopic:
    topic: str
    cluster_name: str
    user_intent: str
    keywords: Tuple[str, ...]
    opportunity_score: int
    source: str = AI_CONTENT_STRATEGY
    suggested_category: str = ""


def normalize(text: str) -> str:
    """Lowercase and collapse whitespace; the equality used for dedup."""
    return " ".join((text or "").lower().split())


def dedupe_topics(topics: Iterable[RawTopic]) -> List[RawTopic]:
    """Drop repeats of the same topic text, keeping the first occurrence."""
    seen = set()
    unique = []
    for raw in topics:
        key = normalize(raw.topic)
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(raw)
    return unique


def extract_domain(link: str) -> str:
    """Host part of an absolute URL ('https://host/...' -> 'host'); '' if there is none."""
    try:
        return (link or "").split('/')[2].lower()
    except IndexError:
        return ""


def _matches(host: str, domains: Sequence[str]) -> bool:
    return any(host == d or host.endswith("." + d) for d in domains)


def opportunity_score(organic_results: Optional[Sequence[dict]]) -> int:
    """
    Score how easy a SERP looks to break into, from 0 to 100.

    Starts at 50. Over the top results, forum/Q&A hosts add points (the
    query lacks good answers), big publishers take points away, and video
    results add a little. No organic data at all scores a neutral 50.
    """
    if not organic_results:
        return BASE_OPPORTUNITY_SCORE

    score = BASE_OPPORTUNITY_SCORE
    for result in list(organic_results)[:MAX_SCORED_RESULTS]:
        if not isinstance(result, dict):
            continue
        host = extract_domain(result.get('link', ''))
        if host:
            if _matches(host, FORUM_DOMAINS):
                score += FORUM_BONUS
            if _matches(host, HIGH_AUTHORITY_DOMAINS):
                score -= AUTHORITY_PENALTY
        if result.get('type') == 'video':
            score += VIDEO_BONUS

    return max(0, min(100, score))


def find_parent_seed(primary_keyword: str, seeds: Sequence[str]) -> Optional[str]:
    """
    Guess which seed a cluster came from: the first seed contained in the
    primary keyword, else the first seed. This is a heuristic; a cluster
    can mix topics from several seeds.
    """
    if not seeds:
        return None
    primary = (primary_keyword or "").lower()
    for seed in seeds:
        if seed.lower() in primary:
            return seed
    return seeds[0]


def cluster_topics(topics: Sequence[RawTopic], dispatcher, model: str, retry_policy=None,
                   sleep=time.sleep) -> List[TopicCluster]:
    """Ask the analysis model to group topics into clusters. Raises on any failure."""
    prompt = build_topic_cluster_prompt([t.topic for t in topics])

    def call():
        return dispatcher.complete(prompt, model)

    if retry_policy is not None:
        call = retry_policy.wrap(call, sleep=sleep)

    raw = call()
    data = parse_json_response(raw)

    clusters = data.get('clusters') if isinstance(data, dict) else None
    if not isinstance(clusters, list):
        raise InvalidDataError("Clustering response has no 'clusters' list")

    return [TopicCluster.from_dict(c) for c in clusters]


def discover_topics(settings: Settings, serp_client, dispatcher,
                    error_log: Optional[ErrorLog] = None, sleep=time.sleep) -> List[ScoredTopic]:
    """
    Turn the configured seed keywords into scored content topics.

    Returns an empty list (never raises) when there is no search key, no
    seeds, no harvested topics, or the clustering call fails.
    """
    seeds = list(settings.seed_keywords)
    if not settings.serp_api_key or not seeds:
        logger.warning("No SERP API key or seed keywords configured, skipping discovery")
        return []

    all_topics: List[RawTopic] = []
    organic_by_seed: Dict[str, list] = {}

    for seed in seeds:
        payload = serp_client.fetch_serp_data(seed)
        if not payload:
            logger.warning(f"No SERP data for seed '{seed}'")
            continue
        organic_by_seed[seed] = payload.get('organic_results') or []
        found = extract_topics(payload)
        logger.info(f"Seed '{seed}': {len(found)} raw topics")
        all_topics.extend(found)

    unique = dedupe_topics(all_topics)
    logger.info(f"{len(unique)} unique topics from {len(all_topics)} harvested")
    if not unique:
        return []

    try:
        clusters = cluster_topics(unique, dispatcher, settings.analysis_model,
                                  retry_policy=settings.retry_policy, sleep=sleep)
    except Exception as e:
        classify_and_log_error(e, "topic_clustering", error_log)
        logger.warning("Topic clustering failed, no topics discovered this run")
        return []

    if not clusters:
        logger.warning("Clustering returned no clusters")
        return []

    scored = []
    for cluster in clusters:
        seed = find_parent_seed(cluster.primary_keyword, seeds)
        score = opportunity_score(organic_by_seed.get(seed, []))
        scored.append(ScoredTopic(
            topic=cluster.representative_title,
            cluster_name=cluster.cluster_name,
            user_intent=cluster.user_intent,
            keywords=cluster.keywords,
            opportunity_score=score,
            suggested_category=cluster.suggested_category,
        ))
        logger.info(f"Topic '{cluster.representative_title}' (seed '{seed}'): score {score}")

    return scored
