"""
Utility functions for the auto_blog package.
Tracks which topics have already been published.
"""

import json
import logging
import os

logger = logging.getLogger(__name__)


def normalize_topic(topic):
    """Case- and whitespace-insensitive form used to compare topics."""
    return " ".join((topic or "").lower().split())


def load_used_topics(path):
    """Load previously published topics from the ledger file."""
    if not path or not os.path.exists(path):
        return []
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
            topics = data.get('topics', []) if isinstance(data, dict) else []
            return [t for t in topics if isinstance(t, str)]
    except json.JSONDecodeError:
        logger.warning(f"{path} is invalid, starting with no used topics")
        return []
    except OSError as e:
        logger.warning(f"Could not read {path}: {e}")
        return []


def add_used_topic(path, topic):
    """Append topic to the ledger unless it is already there. Returns True on success."""
    topics = load_used_topics(path)
    if normalize_topic(topic) in {normalize_topic(t) for t in topics}:
        return True

    topics.append(topic)
    try:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump({'topics': topics}, f, indent=2, ensure_ascii=False)
        logger.info(f"Updated {os.path.basename(path)} ({len(topics)} topics recorded)")
        return True
    except OSError as e:
        logger.error(f"Error saving {path}: {e}")
        return False
