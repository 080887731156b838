from __future__ import annotations

import argparse
import datetime

from depcadence.app_api.factories.policy_factory import build_policy
from depcadence.app_api.providers.json_candidate_source import parse_timestamp
from depcadence.core.policy.policy import Policy


def add_policy_args(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--policy", help="Policy document path (.json, .yaml, .yml)")
    source.add_argument("--preset", default=None, help="Bundled preset id (e.g. dragonsecurity)")
    parser.add_argument("--preset-version", default="v1", help="Bundled preset version")


def policy_from_args(args: argparse.Namespace) -> Policy:
    preset = args.preset
    if not args.policy and not preset:
        preset = "dragonsecurity"
    return build_policy(policy_path=args.policy, preset=preset, preset_version=args.preset_version)


def parse_now(value: str | None) -> datetime.datetime | None:
    if value is None:
        return None
    return parse_timestamp(value)


def add_logging_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--log-level", default="WARNING", help="Python logging level")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")
    parser.add_argument("--debug-limit", type=int, default=25, help="Max items to show in debug lists (0 = no limit)")
