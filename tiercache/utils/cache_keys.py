"""Canonical cache-key construction.

A cache key is derived from ``(category, identifier, params)``::

    players:87287966
    heroes:all:lang="en"|page=2

Params are sorted by name so insertion order never matters, and every
param value is rendered as compact JSON so ``1`` and ``"1"`` produce
different keys.  The delimiter characters (backslash, ``:``, ``|`` and
``=``) are backslash-escaped in every component, which makes the mapping
from logical request to key injective: no identifier or value can
smuggle in a delimiter and collide with another request.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

_ESCAPES = str.maketrans({
    "\\": "\\\\",
    ":": "\\:",
    "|": "\\|",
    "=": "\\=",
})


def _escape(component: str) -> str:
    return component.translate(_ESCAPES)


def _render_value(value: Any) -> str:
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        # Circular structures and the like; repr is still deterministic
        # for the primitive values callers pass in practice.
        return repr(value)


def generate_key(
    category: str,
    identifier: str | int,
    params: Mapping[str, Any] | None = None,
) -> str:
    """Build the canonical cache key for a logical request.

    Parameters
    ----------
    category:
        Free-form category label (``heroes``, ``players``, ...).
    identifier:
        The resource identifier within the category (account id, ``all``).
    params:
        Optional request parameters.  Sorted by name before rendering.

    Returns
    -------
    str
        The deterministic key.  Pure function; no side effects.
    """
    key = f"{_escape(str(category))}:{_escape(str(identifier))}"
    if not params:
        return key

    rendered = "|".join(
        f"{_escape(str(name))}={_escape(_render_value(params[name]))}"
        for name in sorted(params, key=str)
    )
    return f"{key}:{rendered}"
