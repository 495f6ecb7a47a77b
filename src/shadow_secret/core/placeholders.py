"""Placeholder token helpers.

Placeholders are written in target files as ``$KEY`` or ``${KEY}``.
"""
from __future__ import annotations


def resolve_placeholder(placeholder: str) -> str:
    """Return the secret key named by ``placeholder``.

    Supports:
    - ``${KEY}`` -> ``KEY``
    - ``$KEY`` -> ``KEY``
    - ``KEY`` -> ``KEY``
    """
    if placeholder.startswith("${") and placeholder.endswith("}"):
        return placeholder[2:-1]
    if placeholder.startswith("$"):
        return placeholder[1:]
    return placeholder


def is_placeholder(token: str) -> bool:
    """True when ``token`` uses one of the ``$`` placeholder spellings."""
    return token.startswith("$") and len(resolve_placeholder(token)) > 0


__all__ = ["resolve_placeholder", "is_placeholder"]
