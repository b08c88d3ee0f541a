#!/usr/bin/env python3
"""
Entry point for the Automated SEO Blog Pipeline.

Usage:
    python run.py [--discover-only] [--limit N] [--dry-run] [--verbose]

Environment variables required:
    SERP_API_KEY - SerpAPI key for topic discovery
    SEED_KEYWORDS - Comma-separated seed keywords
    OPENAI_API_KEY / CLAUDE_API_KEY / GEMINI_API_KEY / XAI_API_KEY - at least one AI key

Optional:
    AI_MODEL - Model used for posts (default: gpt-4o-mini)
    AI_ANALYSIS_MODEL - Model used for topic clustering (default: AI_MODEL)
    CONTENT_LANGUAGE - EN, KO, JA, ES, DE or FR (default: EN)
    WP_BASE, WP_USER, WP_APP_PASS - WordPress site; without them nothing is published
    DAILY_LIMIT - Posts per run (default: 3)
"""

import argparse
import logging
from datetime import datetime, timezone

from auto_blog import ContentPipeline, load_settings


def setup_logging(verbose=False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )
    for noisy in ('urllib3', 'httpx', 'openai', 'anthropic'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Discover, generate and publish SEO blog posts.")
    parser.add_argument('--discover-only', action='store_true', help="Only discover and score topics")
    parser.add_argument('--limit', type=int, default=None, help="Maximum posts this run (default: DAILY_LIMIT)")
    parser.add_argument('--dry-run', action='store_true', help="Generate posts without publishing")
    parser.add_argument('--verbose', action='store_true', help="Debug logging")
    return parser.parse_args(argv)


def main(argv=None):
    """Main execution flow."""
    args = parse_args(argv)
    setup_logging(args.verbose)
    settings = load_settings()

    print("=" * 60)
    print("  SEO Blog Pipeline")
    print(f"  Seeds: {', '.join(settings.seed_keywords) or '(none)'}")
    print(f"  Model: {settings.model_name} | Language: {settings.content_language}")
    print(f"  Started at: {datetime.now(timezone.utc).isoformat()}")
    print("=" * 60)

    # Validate configuration
    missing_config = []
    if not settings.serp_api_key:
        missing_config.append("SERP_API_KEY")
    if not settings.seed_keywords:
        missing_config.append("SEED_KEYWORDS")
    if not any(settings.api_key_for(p) for p in ('openai', 'anthropic', 'google', 'xai')):
        missing_config.append("an AI provider API key")

    if missing_config:
        print(f"\nWarning: Missing configuration: {', '.join(missing_config)}")
        print("Some features may not work correctly.")

    pipeline = ContentPipeline(settings, dry_run=args.dry_run)

    if args.discover_only:
        print("\n--- Discovering Topics ---")
        topics = sorted(pipeline.discover_topics(), key=lambda t: t.opportunity_score, reverse=True)
        if not topics:
            print("No topics discovered.")
            return 0
        for i, topic in enumerate(topics, 1):
            print(f"  {i}. [{topic.opportunity_score}] {topic.topic}")
            print(f"     Cluster: {topic.cluster_name} | Intent: {topic.user_intent}")
        return 0

    print(f"\n--- Running Pipeline{' (dry run)' if pipeline.dry_run else ''} ---")
    result = pipeline.run(limit=args.limit)

    for outcome in result.results:
        if outcome.success:
            post = outcome.value
            where = post.link or "not published (dry run)"
            print(f"  OK   {post.content.title[:60]} -> {where}")
        else:
            print(f"  FAIL {outcome.item.topic[:60]}: {outcome.error.kind.value}")

    print("\n" + "=" * 60)
    print(f"  COMPLETE: {result.success_count}/{result.total_count} post(s) succeeded ({result.success_rate}%)")
    if result.timeout is not None:
        print("  STOPPED: time budget exhausted before all topics were processed.")
    if result.errors:
        print(f"  FAILED: {len(result.errors)} post(s) could not be produced.")
    print("=" * 60)
    return 0 if not result.errors and result.timeout is None else 1


if __name__ == "__main__":
    raise SystemExit(main())
