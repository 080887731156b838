"""Domain enums for candidate lifecycle and decision reasoning.

Responsibilities:
  - Define candidate attribute enums (manager, dependency type, update type).
  - Define lifecycle State, Action and ReasonCode identifiers persisted in the journal.
  - Provide stable reason categories and audit metadata.

Invariants:
  - Enum values must remain stable for persistence and audits.
  - ReasonCode metadata must be complete and deterministic.
"""

from __future__ import annotations

from enum import Enum


class Manager(Enum):
    NPM = "npm"
    PNPM = "pnpm"
    YARN = "yarn"
    GOMOD = "gomod"
    GITHUB_ACTIONS = "github-actions"
    DOCKERFILE = "dockerfile"
    DOCKER_COMPOSE = "docker-compose"
    PIP_REQUIREMENTS = "pip_requirements"
    POETRY = "poetry"
    CARGO = "cargo"
    MAVEN = "maven"
    GRADLE = "gradle"
    BUNDLER = "bundler"
    COMPOSER = "composer"
    NUGET = "nuget"
    HELM = "helm"
    TERRAFORM = "terraform"


class DepType(Enum):
    DEPENDENCIES = "dependencies"
    DEV_DEPENDENCIES = "devDependencies"
    PEER_DEPENDENCIES = "peerDependencies"
    OPTIONAL_DEPENDENCIES = "optionalDependencies"
    ENGINES = "engines"
    REQUIRE = "require"
    INDIRECT = "indirect"
    ACTION = "action"
    STAGE = "stage"
    IMAGE = "image"


class UpdateType(Enum):
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"
    PIN = "pin"
    DIGEST = "digest"
    LOCKFILE = "lockfile"


class AutomergeMode(Enum):
    BRANCH = "branch"
    PR = "pr"


# Ordered from least to most permissive; a group batch takes the minimum.
class Action(Enum):
    SUPPRESS = "suppress"
    OPEN_PULL_REQUEST = "open-pull-request"
    OPEN_AND_AUTOMERGE = "open-and-automerge"
    MERGE_IMMEDIATELY = "merge-immediately"


ACTION_RANK: dict[Action, int] = {
    Action.SUPPRESS: 0,
    Action.OPEN_PULL_REQUEST: 1,
    Action.OPEN_AND_AUTOMERGE: 2,
    Action.MERGE_IMMEDIATELY: 3,
}


class State(Enum):
    DISCOVERED = "DISCOVERED"
    MATCHED = "MATCHED"
    WINDOW_PENDING = "WINDOW_PENDING"
    READY = "READY"
    DECIDED = "DECIDED"
    EMITTED = "EMITTED"
    SUPPRESSED = "SUPPRESSED"


TERMINAL_STATES = frozenset({State.EMITTED, State.SUPPRESSED})


class ReasonCategory(Enum):
    VETO = "VETO"
    DEFERRAL = "DEFERRAL"
    INFO = "INFO"


# Stable identifiers for decision reasoning; value is the persisted code.
class ReasonCode(Enum):
    RULES_MATCHED = "RULES_MATCHED"
    NO_RULE_MATCHED = "NO_RULE_MATCHED"
    WINDOW_PENDING = "WINDOW_PENDING"
    WINDOW_NEVER_COINCIDES = "WINDOW_NEVER_COINCIDES"
    EXTRA_DELAY_PENDING = "EXTRA_DELAY_PENDING"
    RATE_LIMITED = "RATE_LIMITED"
    SUPERSEDED = "SUPERSEDED"
    CLOSED = "CLOSED"
    DISABLED = "DISABLED"
    EVALUATION_ERROR = "EVALUATION_ERROR"
    GROUP_CONFLICT = "GROUP_CONFLICT"
    MANUAL_TRIGGER = "MANUAL_TRIGGER"
    VULNERABILITY_FIX = "VULNERABILITY_FIX"
    EMITTED = "EMITTED"


# UI/audit metadata keyed by reason code.
REASON_METADATA: dict[ReasonCode, dict[str, object]] = {
    ReasonCode.RULES_MATCHED: {
        "category": ReasonCategory.INFO,
        "message": "One or more policy rules matched the candidate.",
    },
    ReasonCode.NO_RULE_MATCHED: {
        "category": ReasonCategory.INFO,
        "message": "No rule matched; default policy applies.",
    },
    ReasonCode.WINDOW_PENDING: {
        "category": ReasonCategory.DEFERRAL,
        "message": "Global and rule windows are not both active yet.",
    },
    ReasonCode.WINDOW_NEVER_COINCIDES: {
        "category": ReasonCategory.DEFERRAL,
        "message": "Global and rule windows never overlap within the search horizon.",
    },
    ReasonCode.EXTRA_DELAY_PENDING: {
        "category": ReasonCategory.DEFERRAL,
        "message": "Candidate is still inside its configured extra delay.",
    },
    ReasonCode.RATE_LIMITED: {
        "category": ReasonCategory.DEFERRAL,
        "message": "Hourly or concurrent pull-request cap reached; retried next tick.",
    },
    ReasonCode.SUPERSEDED: {
        "category": ReasonCategory.VETO,
        "message": "A newer candidate for the same package replaced this one.",
    },
    ReasonCode.CLOSED: {
        "category": ReasonCategory.VETO,
        "message": "Candidate was explicitly closed.",
    },
    ReasonCode.DISABLED: {
        "category": ReasonCategory.VETO,
        "message": "Updates are disabled for this candidate by policy.",
    },
    ReasonCode.EVALUATION_ERROR: {
        "category": ReasonCategory.VETO,
        "message": "Evaluation failed for this candidate; it was isolated.",
    },
    ReasonCode.GROUP_CONFLICT: {
        "category": ReasonCategory.INFO,
        "message": "Matched rules assigned different groups; the last rule won.",
    },
    ReasonCode.MANUAL_TRIGGER: {
        "category": ReasonCategory.INFO,
        "message": "Flushed by a manual trigger, bypassing rule windows.",
    },
    ReasonCode.VULNERABILITY_FIX: {
        "category": ReasonCategory.INFO,
        "message": "Security fix; vulnerability alert settings applied.",
    },
    ReasonCode.EMITTED: {
        "category": ReasonCategory.INFO,
        "message": "Decision handed to the execution collaborator.",
    },
}


def reason_category(reason: ReasonCode) -> ReasonCategory:
    return REASON_METADATA[reason]["category"]  # type: ignore[return-value]


def reason_from_persisted(label: str) -> ReasonCode | None:
    if not label:
        return None
    try:
        return ReasonCode(label)
    except ValueError:
        return None


_missing = [rc for rc in ReasonCode if rc not in REASON_METADATA]
if _missing:
    raise RuntimeError(f"Missing REASON_METADATA for: {[m.value for m in _missing]}")
