"""Discovery provider reading update candidates from a JSON file.

The file holds either a JSON array of records or one JSON object per line.
Malformed records are skipped with a warning so one bad entry never blocks a tick.
"""

from __future__ import annotations

import datetime
import json
import logging
from pathlib import Path
from typing import Any, Mapping

from depcadence.core.domain.enums import DepType, Manager, UpdateType
from depcadence.core.domain.models import UpdateCandidate

logger = logging.getLogger(__name__)

_RECORD_FIELDS = {
    "manager",
    "dep_type",
    "update_type",
    "package_name",
    "current_version",
    "candidate_version",
    "detected_at",
    "vulnerability",
}


def parse_timestamp(value: str) -> datetime.datetime:
    parsed = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        raise ValueError(f"Timestamp must carry a UTC offset: {value}")
    return parsed


def candidate_from_record(record: Mapping[str, Any]) -> UpdateCandidate:
    if not isinstance(record, Mapping):
        raise ValueError("Candidate record must be an object")
    unknown = sorted(set(record) - _RECORD_FIELDS)
    if unknown:
        raise ValueError(f"Unknown candidate field(s): {unknown}")
    package_name = record.get("package_name")
    if not isinstance(package_name, str) or not package_name:
        raise ValueError("package_name must be a non-empty string")
    candidate_version = record.get("candidate_version")
    if not isinstance(candidate_version, str) or not candidate_version:
        raise ValueError("candidate_version must be a non-empty string")
    dep_type = record.get("dep_type")
    vulnerability = record.get("vulnerability", False)
    if not isinstance(vulnerability, bool):
        raise ValueError("vulnerability must be a boolean")
    return UpdateCandidate(
        manager=Manager(record.get("manager")),
        dep_type=DepType(dep_type) if dep_type is not None else None,
        update_type=UpdateType(record.get("update_type")),
        package_name=package_name,
        current_version=record.get("current_version"),
        candidate_version=candidate_version,
        detected_at=parse_timestamp(str(record.get("detected_at", ""))),
        vulnerability=vulnerability,
    )


class JsonFileCandidateSource:
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def _records(self) -> list[Any]:
        text = self._path.read_text(encoding="utf-8").strip()
        if not text:
            return []
        if text.startswith("["):
            payload = json.loads(text)
            if not isinstance(payload, list):
                raise ValueError(f"{self._path} must contain a JSON array")
            return payload
        records = []
        for line_no, line in enumerate(text.splitlines(), start=1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as exc:
                logger.warning("Skipping malformed line %d in %s: %s", line_no, self._path, exc)
        return records

    def get_candidates(self) -> list[UpdateCandidate]:
        candidates = []
        for index, record in enumerate(self._records()):
            try:
                candidates.append(candidate_from_record(record))
            except (ValueError, TypeError) as exc:
                logger.warning("Skipping candidate record %d in %s: %s", index, self._path, exc)
        return candidates
