"""
Common utilities for the blue-green rotation tooling.

Modules:
- env: environment/SSM configuration helpers
- log: logging setup for CLI and Lambda entry points
"""

__all__ = [
    "env",
    "log",
]
