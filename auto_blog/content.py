"""
Prompts and response decoding for AI-generated content.
"""

import re
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Sequence

from .config import LANGUAGE_NAMES
from .errors import InvalidDataError

logger = logging.getLogger(__name__)

USER_INTENTS = ('How-to/Tutorial', 'Comparison/Review', 'Information/Concept', 'News/Update')

SEO_DESCRIPTION_LIMIT = 155


@dataclass(frozen=True)
class GeneratedContent:
    title: str
    html: str
    categories: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    seo_description: str = ""


def sanitize_json_control_chars(s):
    """
    Fix control characters inside JSON string values.
    Models sometimes output literal newlines/tabs inside JSON strings
    which breaks json.loads(). This escapes them properly.
    """
    result = []
    in_string = False
    escape_next = False
    for char in s:
        if escape_next:
            result.append(char)
            escape_next = False
            continue
        if char == '\\':
            result.append(char)
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            result.append(char)
            continue
        if in_string:
            if char == '\n':
                result.append('\\n')
            elif char == '\r':
                result.append('\\r')
            elif char == '\t':
                result.append('\\t')
            elif ord(char) < 32:
                result.append(f'\\u{ord(char):04x}')
            else:
                result.append(char)
        else:
            result.append(char)
    return ''.join(result)


def strip_code_fences(text):
    text = (text or '').strip()
    if text.startswith('```'):
        text = re.sub(r'^```(?:json)?\s*\n?', '', text)
        text = re.sub(r'\n?\s*```\s*$', '', text)
    return text


def parse_json_response(raw):
    """Decode a model's JSON reply. Raises InvalidDataError if it is not JSON."""
    if not raw or not raw.strip():
        raise InvalidDataError("Empty response from AI model")

    json_string = sanitize_json_control_chars(strip_code_fences(raw))
    try:
        return json.loads(json_string)
    except json.JSONDecodeError as e:
        raise InvalidDataError(f"AI response is not valid JSON: {e}. Raw output: {raw[:200]}") from e


def _string_list(value, name):
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(',') if v.strip()]
    if not isinstance(value, list):
        raise InvalidDataError(f"Field '{name}' must be a list, got {type(value).__name__}")
    return [str(v).strip() for v in value if str(v).strip()]


def parse_generated_content(raw) -> GeneratedContent:
    """
    Decode a blog post reply into GeneratedContent.

    title and html are required non-empty strings; categories and tags may
    be missing. Anything else malformed raises InvalidDataError.
    """
    data = parse_json_response(raw)
    if not isinstance(data, dict):
        raise InvalidDataError(f"Expected a JSON object, got {type(data).__name__}")

    title = data.get('title')
    html = data.get('html')
    if not isinstance(title, str) or not title.strip():
        raise InvalidDataError("Generated content is missing a title")
    if not isinstance(html, str) or not html.strip():
        raise InvalidDataError("Generated content is missing html")

    seo_description = data.get('seoDescription') or ''
    if not isinstance(seo_description, str):
        seo_description = str(seo_description)
    if len(seo_description) > SEO_DESCRIPTION_LIMIT:
        seo_description = seo_description[:SEO_DESCRIPTION_LIMIT - 3] + '...'
        logger.debug(f"Truncated seoDescription to {SEO_DESCRIPTION_LIMIT} chars")

    return GeneratedContent(
        title=title.strip(),
        html=html,
        categories=_string_list(data.get('categories'), 'categories'),
        tags=_string_list(data.get('tags'), 'tags'),
        seo_description=seo_description,
    )


def language_instruction(language):
    """Instruction appended to every content prompt to pin the output language."""
    code = (language or 'EN').upper()
    name = LANGUAGE_NAMES.get(code, code)
    return (
        f"\n\nLANGUAGE: Write the entire post (title, headings, body, categories and tags) "
        f"in {name}. Do not switch languages anywhere in the output."
    )


def build_topic_cluster_prompt(topics: Sequence[str]):
    """Prompt that groups raw search queries into 3-5 blog post clusters."""
    topic_list = "\n".join(f"- {t}" for t in topics)
    intents = ", ".join(f"'{i}'" for i in USER_INTENTS)

    return f"""
You are a senior content strategist and SEO expert. Your task is to analyze a raw list of search queries and organize them into a coherent content strategy.

**--- DISCOVERED SEARCH QUERIES AND QUESTIONS ---**
{topic_list}

**--- TASK ---**
1. **Group into Clusters:** Group these queries into 3-5 logical topic clusters. A cluster represents a single, comprehensive blog post idea.
2. **Assign a Cluster Name:** Give each cluster a short, descriptive name.
3. **Determine User Intent:** For each cluster, identify the primary user intent. Choose from: {intents}.
4. **Create a Representative Title:** Write one compelling, SEO-friendly blog post title that would satisfy all the queries in the cluster.
5. **List Keywords:** List the original queries that belong to each cluster, most important first.
6. **Suggest Category:** Suggest the most appropriate blog category for the cluster.

**--- JSON SCHEMA ---**
{{
    "clusters": [
        {{
            "cluster_name": "A short, descriptive name for the cluster",
            "representative_title": "A compelling, SEO-friendly blog post title",
            "user_intent": "How-to/Tutorial",
            "suggested_category": "Technology",
            "keywords": ["keyword1 from the original list", "keyword2 from the original list"]
        }}
    ]
}}

CRITICAL RULES:
- Return ONLY the JSON object, no additional text or markdown code fences.
- Only use queries from the list above as keywords.
"""


def build_content_prompt(topic, keywords: Sequence[str] = (), user_intent=""):
    """Prompt for a complete SEO blog post about one discovered topic."""
    now = datetime.now(timezone.utc)
    keyword_text = ", ".join(keywords) if keywords else topic
    intent_text = f"\nPrimary user intent: {user_intent}" if user_intent else ""

    return f"""
You are a professional blogger known for original insights and fresh perspectives. Write an SEO-optimized blog post about the topic below.

**--- TOPIC ---**
{topic}
Related search queries to cover naturally: {keyword_text}{intent_text}
Current date: {now.month}/{now.year}

**--- OUTPUT REQUIREMENTS ---**
1. **title**: Engaging, SEO-friendly headline. MAXIMUM 60 characters.
2. **seoDescription**: Meta description. MAXIMUM 155 characters.
3. **categories**: Array of 1-2 general blog categories.
4. **tags**: Array of 5 SEO-friendly tags.
5. **subtopics**: Array of the H2 headings used in the post.
6. **html**: The complete post body as HTML. Use <h2> and <h3> for structure (at most 6 <h2> sections), <p> for paragraphs and lists where they help. Do NOT repeat the title as a heading and do NOT use <h1>.

**--- JSON SCHEMA ---**
{{
    "title": "Max 60 chars",
    "seoDescription": "Max 155 chars",
    "categories": ["Category"],
    "tags": ["tag1", "tag2", "tag3", "tag4", "tag5"],
    "subtopics": ["Heading 1", "Heading 2", "Heading 3"],
    "html": "<h2>Heading 1</h2><p>Full paragraph...</p>"
}}

CRITICAL RULES:
- Return ONLY the JSON object, no additional text or markdown code fences.
- Do not present information older than {now.year - 1} as current and do not invent statistics.
- Cover every related search query somewhere in the post.
"""
