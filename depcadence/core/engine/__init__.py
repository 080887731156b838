"""Core policy-evaluation utilities.

Responsibilities:
  - Provide the evaluator and tick result types for deterministic policy execution.
  - Must not talk to registries or hosting APIs; consumes candidates through ports.
"""
