"""
Wire layer for the budgeting API.

Modules:
- errors: error kinds and the typed API error
- config: environment-driven settings and logging setup
- models: pydantic wire models (accounts, envelopes, goals, requests)
- codec: per-resource schema (paths, encode/decode)
- transport: async HTTP transport with failure classification
"""

__all__ = [
    "errors",
    "config",
    "models",
    "codec",
    "transport",
]
