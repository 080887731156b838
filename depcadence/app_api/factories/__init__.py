from .build_app import build_depcadence_app
from .policy_factory import PolicyFactory, build_policy, default_policy_factory

__all__ = [
    "build_depcadence_app",
    "PolicyFactory",
    "build_policy",
    "default_policy_factory",
]
"""Factory helpers for building policies and the application facade."""
