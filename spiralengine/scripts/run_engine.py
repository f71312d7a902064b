#!/usr/bin/env python3
"""Command-line entry point for the pattern, insight and alert engines.

Usage:
    spiralengine import data/episodes.csv --user u42
    spiralengine patterns u42 --days 30
    spiralengine insights u42 --type weekly --save
    spiralengine predict                 # every recently active user
    spiralengine predict --user u42
    spiralengine alerts u42 --snooze alert_3f2a9c --hours 12

Reports are printed to stdout as JSON; progress goes to the log.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from typing import Any, Sequence

import redis

from spiralengine.ai.service import AIService, get_provider
from spiralengine.config.settings import AI_ENABLED, AI_PROVIDER, LOG_LEVEL, REDIS_URL
from spiralengine.data_pipeline.parsers import load_episodes
from spiralengine.engine import episode_store
from spiralengine.engine.insight_generator import InsightGenerator
from spiralengine.engine.pattern_analyzer import PatternAnalyzer
from spiralengine.engine.predictive_alerts import PredictiveAlerts

logger = logging.getLogger("run_engine")


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="spiralengine",
        description="Analyze episode histories, generate insights and run predictive alerts.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable DEBUG logging.")
    parser.add_argument(
        "--provider",
        default=AI_PROVIDER,
        help=f"AI provider name (default: {AI_PROVIDER}).",
    )
    parser.add_argument("--no-ai", action="store_true", help="Disable AI analysis.")
    # AI flags are accepted after the subcommand as well.
    ai_flags = argparse.ArgumentParser(add_help=False)
    ai_flags.add_argument("--provider", default=argparse.SUPPRESS, help="AI provider name.")
    ai_flags.add_argument("--no-ai", action="store_true", default=argparse.SUPPRESS, help="Disable AI analysis.")
    sub = parser.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import", help="Store episodes from a CSV or JSON file.", parents=[ai_flags])
    p_import.add_argument("file")
    p_import.add_argument("--user", help="Assign every imported episode to this user.")

    p_patterns = sub.add_parser("patterns", help="Print a user's pattern report.", parents=[ai_flags])
    p_patterns.add_argument("user")
    p_patterns.add_argument("--days", type=int, default=30)

    p_insights = sub.add_parser("insights", help="Generate an insight report.", parents=[ai_flags])
    p_insights.add_argument("user")
    p_insights.add_argument(
        "--type",
        default="daily",
        choices=["daily", "weekly", "monthly", "milestone", "predictive"],
    )
    p_insights.add_argument("--refresh", action="store_true", help="Ignore cached reports.")
    p_insights.add_argument("--save", action="store_true", help="Save the report to the user's history.")

    p_predict = sub.add_parser("predict", help="Run scheduled predictions.", parents=[ai_flags])
    p_predict.add_argument("--user", help="Only this user (default: every eligible user).")

    p_alerts = sub.add_parser("alerts", help="List or update a user's active alerts.", parents=[ai_flags])
    p_alerts.add_argument("user")
    action = p_alerts.add_mutually_exclusive_group()
    action.add_argument("--dismiss", metavar="ALERT_ID")
    action.add_argument("--snooze", metavar="ALERT_ID")
    p_alerts.add_argument("--hours", type=int, default=24)

    return parser.parse_args(argv)


def build_ai_service(args: argparse.Namespace, r: redis.Redis) -> AIService | None:
    if args.no_ai or not AI_ENABLED:
        return None
    return AIService(provider=get_provider(args.provider), r=r)


def _print(payload: Any) -> None:
    json.dump(payload, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


# ── Commands ─────────────────────────────────────────────────────────────

def cmd_import(args: argparse.Namespace, r: redis.Redis) -> int:
    episodes = load_episodes(args.file, user_id=args.user)
    stored = episode_store.store_episodes(episodes, r=r)
    logger.info("Imported %d episodes from %s", stored, args.file)
    _print({"imported": stored, "users": sorted({ep.user_id for ep in episodes})})
    return 0


def cmd_patterns(args: argparse.Namespace, r: redis.Redis) -> int:
    ai = build_ai_service(args, r)
    analyzer = PatternAnalyzer(r=r, ai_service=ai)
    results = analyzer.analyze_user_patterns(args.user, days=args.days, include_ai=ai is not None)
    _print(results)
    return 1 if "error" in results else 0


def cmd_insights(args: argparse.Namespace, r: redis.Redis) -> int:
    ai = build_ai_service(args, r)
    generator = InsightGenerator(r=r, ai_service=ai)
    insights = generator.generate_insights(
        args.user,
        insight_type=args.type,
        use_ai=ai is not None,
        force_refresh=args.refresh,
    )
    if "error" in insights:
        _print(insights)
        return 1
    if args.save:
        generator.save_insights(insights)
        logger.info("Saved %s insights for %s", args.type, args.user)
    _print(insights)
    return 0


def cmd_predict(args: argparse.Namespace, r: redis.Redis) -> int:
    ai = build_ai_service(args, r)
    engine = PredictiveAlerts(r=r, ai_service=ai, use_ai=ai is not None)
    if args.user:
        results = {args.user: engine.run_user_predictions(args.user)}
    else:
        results = engine.run_scheduled_predictions()
    _print({user: [alert.to_dict() for alert in alerts] for user, alerts in results.items()})
    return 0


def cmd_alerts(args: argparse.Namespace, r: redis.Redis) -> int:
    engine = PredictiveAlerts(r=r)
    if args.dismiss:
        ok = engine.dismiss_alert(args.user, args.dismiss)
        _print({"alert_id": args.dismiss, "dismissed": ok})
        return 0 if ok else 1
    if args.snooze:
        ok = engine.snooze_alert(args.user, args.snooze, hours=args.hours)
        _print({"alert_id": args.snooze, "snoozed": ok, "hours": args.hours})
        return 0 if ok else 1
    _print([alert.to_dict() for alert in engine.get_active_alerts(args.user)])
    return 0


COMMANDS = {
    "import": cmd_import,
    "patterns": cmd_patterns,
    "insights": cmd_insights,
    "predict": cmd_predict,
    "alerts": cmd_alerts,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s  %(levelname)-7s  %(name)-22s  %(message)s",
        datefmt="%H:%M:%S",
    )

    t0 = time.perf_counter()
    try:
        code = COMMANDS[args.command](args, _get_redis())
    except ValueError as exc:
        logger.error("%s", exc)
        return 2
    logger.info("%s finished in %.2fs", args.command, time.perf_counter() - t0)
    return code


if __name__ == "__main__":
    sys.exit(main())
