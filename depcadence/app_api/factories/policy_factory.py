from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from depcadence.app_api.config.policy_loader import load_policy
from depcadence.core.policy.policy import Policy


def _presets_dir() -> Path:
    return Path(__file__).resolve().parent.parent / "presets"


class PolicyFactory:
    def __init__(self) -> None:
        self._registry: Dict[Tuple[str, str], Callable[[], Policy]] = {}

    def register(self, policy_id: str, policy_version: str, builder: Callable[[], Policy]) -> None:
        self._registry[(policy_id, policy_version)] = builder

    def create(self, policy_id: str, policy_version: str) -> Policy:
        key = (policy_id, policy_version)
        if key not in self._registry:
            raise ValueError(f"Unknown policy_id/version: {policy_id}:{policy_version}")
        return self._registry[key]()

    def available(self) -> list[Tuple[str, str]]:
        return sorted(self._registry)


default_policy_factory = PolicyFactory()
default_policy_factory.register(
    "dragonsecurity", "v1", lambda: load_policy(_presets_dir() / "dragonsecurity_v1.json")
)


def build_policy(
    policy_path: Optional[str] = None,
    preset: Optional[str] = None,
    preset_version: str = "v1",
    factory: Optional[PolicyFactory] = None,
) -> Policy:
    if policy_path:
        return load_policy(policy_path)
    if preset:
        return (factory or default_policy_factory).create(preset, preset_version)
    raise ValueError("Either a policy file or a preset is required")


__all__ = ["PolicyFactory", "build_policy", "default_policy_factory"]
