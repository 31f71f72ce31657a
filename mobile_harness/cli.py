#!/usr/bin/env python3
"""
Command line entry point for the mobile harness.

    python -m mobile_harness.cli capabilities --platform ios
    python -m mobile_harness.cli smoke -o execution.mode=cloud-provider
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Optional

from .capabilities import CapabilityBuilder, resolve_server_url
from .config import ConfigurationResolver, OverrideStore, parse_override_args
from .env import ensure_dotenv_loaded
from .errors import HarnessError
from .flows import run_accessibility_dump, run_smoke_test
from .log import configure_logging
from .screenshots import cleanup_old_screenshots


def _resolver(args: argparse.Namespace) -> ConfigurationResolver:
    store = OverrideStore(parse_override_args(args.config_override))
    if args.platform:
        store.set("platform", args.platform)
    return ConfigurationResolver.from_file(args.config, overrides=store)


def _cmd_capabilities(resolver: ConfigurationResolver, args: argparse.Namespace) -> int:
    caps = CapabilityBuilder(resolver).build(resolver.platform(), resolver.execution_mode())
    print(json.dumps(caps.to_session_payload(), indent=2, sort_keys=True))
    # Credentials are embedded in cloud URLs; only show where we'd connect.
    if caps.environment.value == "local":
        print(f"\nServer: {resolve_server_url(caps.environment, resolver)}")
    return 0


def _cmd_smoke(resolver: ConfigurationResolver, args: argparse.Namespace) -> int:
    result = run_smoke_test(
        resolver,
        artifacts_dir=args.artifacts_dir,
        wait_for_enter_before_capture=args.pause,
    )
    print("\n✓ Mobile smoke test completed")
    print(f"  Session: {result.session_id}")
    print(f"  Screenshot: {result.screenshot_path}")
    print(f"  Page source: {result.page_source_path}")
    return 0


def _cmd_dump(resolver: ConfigurationResolver, args: argparse.Namespace) -> int:
    strings = run_accessibility_dump(
        resolver,
        max_strings=args.max_strings,
        wait_for_enter_before_capture=args.pause,
    )
    print(f"\n✓ {len(strings)} accessible string(s):")
    for s in strings:
        print(f"  - {s}")
    return 0


def _cmd_cleanup(resolver: ConfigurationResolver, args: argparse.Namespace) -> int:
    deleted = cleanup_old_screenshots(resolver.screenshot_path(), args.days)
    print(f"Deleted {deleted} screenshot(s) older than {args.days} day(s) from {resolver.screenshot_path()}")
    return 0


def _cmd_config(resolver: ConfigurationResolver, args: argparse.Namespace) -> int:
    for key in resolver.base_keys():
        value = resolver.get(key)
        if "access.key" in key or "username" in key:
            value = "***" if value else ""
        print(f"{key}={value}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Mobile UI test harness utilities (Appium).")
    parser.add_argument("--config", default=None, help="Path to a config.properties file.")
    parser.add_argument("--platform", default=None, help="android or ios (wins over the `platform` setting).")
    parser.add_argument(
        "-o",
        "--config-override",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a configuration key. Repeatable.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("capabilities", help="Print the new-session payload that would be sent.")

    smoke = sub.add_parser("smoke", help="Open a session, save screenshot + UI XML, close it.")
    smoke.add_argument("--artifacts-dir", default=None)
    smoke.add_argument("--pause", action="store_true", help="Wait for Enter before capturing.")

    dump = sub.add_parser("dump", help="Print the accessible strings on the current screen.")
    dump.add_argument("--max-strings", type=int, default=200)
    dump.add_argument("--pause", action="store_true", help="Wait for Enter before dumping.")

    cleanup = sub.add_parser("cleanup-screenshots", help="Delete old screenshots.")
    cleanup.add_argument("--days", type=int, default=7)

    sub.add_parser("config", help="Print the resolved configuration.")
    return parser


_COMMANDS = {
    "capabilities": _cmd_capabilities,
    "smoke": _cmd_smoke,
    "dump": _cmd_dump,
    "cleanup-screenshots": _cmd_cleanup,
    "config": _cmd_config,
}


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    ensure_dotenv_loaded()
    try:
        resolver = _resolver(args)
        configure_logging(resolver)
        return _COMMANDS[args.command](resolver, args)
    except HarnessError as e:
        print(f"\n✗ {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
