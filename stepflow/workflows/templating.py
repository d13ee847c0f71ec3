"""{{token}} substitution over JSON values.

A string that is exactly one token is replaced by the token's value with its
JSON type intact ("{{trigger.payload.amount}}" → 42).  Tokens embedded in a
longer string are rendered to text.  A token that cannot be resolved is left
in place literally, so interpolation never fails.

Tokens: trigger.type, trigger.entity, trigger.payload.<path>, trigger.<path>,
payload.<path>, run.id, run.attempt, steps.<step_path>.<key>, now.iso
"""

from __future__ import annotations

import copy
import re
from typing import Any

from stepflow.types import ExecutionContext
from stepflow.workflows.conditions import CONTEXT_ROOTS, MISSING, resolve_field, value_to_string

_TOKEN = re.compile(r"\{\{\s*(.*?)\s*\}\}")


def token_value(token: str, context: ExecutionContext) -> Any:
    """Value for one token name, or MISSING."""
    if token == "now.iso":
        return context.now.isoformat()
    head = token.split(".", 1)[0]
    if head not in CONTEXT_ROOTS:
        return MISSING
    return resolve_field(context, token)


def single_token(value: str) -> str | None:
    """Token name when *value* is exactly one {{token}}, else None."""
    match = _TOKEN.fullmatch(value.strip())
    if match is None:
        return None
    token = match.group(1)
    if not token or "{{" in token or "}}" in token:
        return None
    return token


def interpolate_string(value: str, context: ExecutionContext) -> str:
    def _replace(match: re.Match) -> str:  # type: ignore[type-arg]
        resolved = token_value(match.group(1), context)
        if resolved is MISSING:
            return match.group(0)
        return value_to_string(resolved)

    return _TOKEN.sub(_replace, value)


def interpolate_json(value: Any, context: ExecutionContext) -> Any:
    """Return a new JSON value with every string interpolated. Input is not modified."""
    if isinstance(value, str):
        token = single_token(value)
        if token is not None:
            resolved = token_value(token, context)
            if resolved is not MISSING:
                return copy.deepcopy(resolved)
        return interpolate_string(value, context)
    if isinstance(value, dict):
        return {key: interpolate_json(item, context) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [interpolate_json(item, context) for item in value]
    return value
