"""Execution provider that prints change-sets instead of opening pull requests."""

from __future__ import annotations

import sys
from typing import TextIO

from depcadence.core.domain.models import ChangeSet


def format_change_set(change_set: ChangeSet) -> list[str]:
    lines = [
        f"CHANGESET id={change_set.change_set_id} action={change_set.action.value} "
        f"group={change_set.group_name or '-'} members={len(change_set.decisions)}"
        + (" manual=1" if change_set.manual else "")
    ]
    for decision in change_set.decisions:
        candidate = decision.candidate
        lines.append(
            f"  {candidate.package_name} {candidate.current_version or '?'} -> {candidate.candidate_version} "
            f"update_type={candidate.update_type.value} action={decision.action.value} "
            f"labels={','.join(decision.labels) or '-'}"
        )
    return lines


class StdoutChangeSetSink:
    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    def execute(self, change_set: ChangeSet) -> None:
        stream = self._stream or sys.stdout
        for line in format_change_set(change_set):
            print(line, file=stream)
