"""Adrefresh operator entry-point.

Usage:
    python -m adrefresh info
    python -m adrefresh check-limit KEY [-n N] [--limiter pick|api]

``info`` prints the provider selection, refresh profile and timeout budgets
resolved from the current environment.  ``check-limit`` runs *N* checks for
*KEY* through the configured limiter and key-value store, one line per
decision.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence

from pydantic import ValidationError

from adrefresh.core import configure_logging
from adrefresh.core.exceptions import ConfigError, StorageError
from adrefresh.core.profiles import PROVIDER_TIMEOUTS, provider_timeout
from adrefresh.core.settings import Settings

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="adrefresh",
        description="Ad refresh orchestration: configuration and rate-limit tooling.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("info", help="Print the resolved provider, profile and timeouts.")

    check = sub.add_parser("check-limit", help="Run rate-limit checks for a key.")
    check.add_argument("key", help="Bucket key, e.g. a session id.")
    check.add_argument("-n", "--count", type=int, default=1, help="Number of checks (default 1).")
    check.add_argument(
        "--limiter",
        choices=("pick", "api"),
        default="pick",
        help="Which configured limiter to use (default: pick).",
    )
    return parser


def load_settings() -> Settings:
    """Load :class:`Settings`, mapping validation failures to :class:`ConfigError`."""
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def describe(settings: Settings) -> dict[str, object]:
    """Return the JSON document printed by ``info``."""
    from adrefresh.providers.dispatch import resolve_provider_info  # noqa: PLC0415

    info = resolve_provider_info(settings)
    target = info.dispatch_target()
    profile = settings.refresh_profile
    return {
        "provider": info.provider_name,
        "dispatch_target": target.value if target is not None else None,
        "active_flags": {p.value: flag for p, flag in info.active_flags.items()},
        "profile": {
            "name": profile.name,
            "min_refresh_interval": profile.min_refresh_interval,
            "max_retry_attempts": profile.max_retry_attempts,
            "retry_delay": profile.retry_delay,
            "cache_timeout": profile.cache_timeout,
        },
        "timeouts": {p.value: provider_timeout(p) for p in PROVIDER_TIMEOUTS},
    }


async def run_check_limit(settings: Settings, key: str, count: int, limiter_name: str) -> list[str]:
    """Run *count* checks for *key*; return one formatted line per decision."""
    from adrefresh.ratelimit.limiter import (  # noqa: PLC0415
        build_api_rate_limiter,
        build_pick_rate_limiter,
    )
    from adrefresh.storage.kv_store import open_store  # noqa: PLC0415

    factory = build_pick_rate_limiter if limiter_name == "pick" else build_api_rate_limiter
    lines: list[str] = []
    async with await open_store(settings.rate_limit_db_path_resolved) as store:
        limiter = factory(settings, store)
        for i in range(1, count + 1):
            result = await limiter.check_limit(key)
            verdict = "allowed" if result.allowed else "denied"
            line = f"{i:>3} {verdict:<7} remaining={result.remaining}"
            if result.retry_after is not None:
                line += f" retry_after={result.retry_after:.2f}s"
            lines.append(line)
    return lines


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry-point registered in ``pyproject.toml``."""
    args = _build_parser().parse_args(argv)

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"adrefresh: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        return 1

    try:
        settings = load_settings()
        if args.command == "info":
            print(json.dumps(describe(settings), indent=2))  # noqa: T201
        else:
            if args.count < 1:
                print("adrefresh: -n must be >= 1", file=sys.stderr)  # noqa: T201
                return 2
            for line in asyncio.run(
                run_check_limit(settings, args.key, args.count, args.limiter)
            ):
                print(line)  # noqa: T201
    except ConfigError as exc:
        logger.critical("Configuration error: %s", exc)
        return 1
    except StorageError as exc:
        logger.error("Storage error: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
