from __future__ import annotations

import argparse
from typing import Iterable, List, Sequence

from depcadence.core.domain.enums import REASON_METADATA, ReasonCode, reason_category


def _debug_enabled(args: argparse.Namespace) -> bool:
    return bool(getattr(args, "debug", False))


def _effective_limit(args: argparse.Namespace, items: Sequence[object]) -> int:
    if not items:
        return 0
    raw = getattr(args, "debug_limit", 0)
    if raw == 0:
        return len(items)
    return min(raw, len(items))


def _dbg(args: argparse.Namespace, msg: str) -> None:
    if _debug_enabled(args):
        print(f"[debug] {msg}")


def _dbg_list(args: argparse.Namespace, title: str, items: List[str]) -> None:
    if not _debug_enabled(args):
        return
    limit = _effective_limit(args, items)
    _dbg(args, f"{title} ({len(items)})")
    for item in items[:limit]:
        _dbg(args, f"  {item}")
    if limit < len(items):
        _dbg(args, f"  ... {len(items) - limit} more")


def format_reason(reason: ReasonCode) -> str:
    return f"{reason.value} [{reason_category(reason).value}] {REASON_METADATA[reason]['message']}"


def primary_blocker(reasons: Iterable[ReasonCode]) -> str:
    reasons_set = set(reasons)
    if ReasonCode.EVALUATION_ERROR in reasons_set:
        return "BLOCKER_EVALUATION_ERROR"
    if ReasonCode.DISABLED in reasons_set:
        return "BLOCKER_DISABLED"
    if ReasonCode.WINDOW_NEVER_COINCIDES in reasons_set:
        return "BLOCKER_WINDOW_NEVER_COINCIDES"
    if ReasonCode.WINDOW_PENDING in reasons_set:
        return "BLOCKER_WINDOW_PENDING"
    if ReasonCode.EXTRA_DELAY_PENDING in reasons_set:
        return "BLOCKER_EXTRA_DELAY_PENDING"
    if ReasonCode.RATE_LIMITED in reasons_set:
        return "BLOCKER_RATE_LIMITED"
    return "BLOCKER_NONE"
