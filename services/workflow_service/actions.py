# actions.py - Side-effecting actions run by action steps
# Parameters may reference context values with ${field} or ${nested.field}.

import re
import logging
from typing import Any, Dict, Protocol
from datetime import datetime

from .conditions import resolve_field, _MISSING

logger = logging.getLogger(__name__)

_VARIABLE = re.compile(r'\$\{([^}]+)\}')

def substitute_variables(value: Any, context: Dict[str, Any]) -> Any:
    """Substitute ${variable} patterns with context values, recursing into dicts and lists."""
    if isinstance(value, dict):
        return {key: substitute_variables(item, context) for key, item in value.items()}
    if isinstance(value, list):
        return [substitute_variables(item, context) for item in value]
    if not isinstance(value, str):
        return value

    # A parameter that is exactly one reference keeps the referenced value's type
    whole = _VARIABLE.fullmatch(value)
    if whole:
        resolved = resolve_field(whole.group(1), context)
        return None if resolved is _MISSING else resolved

    def replace_var(match):
        resolved = resolve_field(match.group(1), context)
        return f"MISSING({match.group(1)})" if resolved is _MISSING else str(resolved)

    return _VARIABLE.sub(replace_var, value)

class ActionExecutor(Protocol):
    async def execute(self, action_type: str, parameters: Dict[str, Any],
                      context: Dict[str, Any]) -> Dict[str, Any]:
        ...

class LoggingActionExecutor:
    """Resolves action parameters and records the action. Delivery is left to downstream consumers."""

    def __init__(self):
        self.executed: list = []

    async def execute(self, action_type: str, parameters: Dict[str, Any],
                      context: Dict[str, Any]) -> Dict[str, Any]:
        resolved = substitute_variables(parameters, context)
        logger.info(f"Executing workflow action: {action_type} with parameters: {resolved}")
        self.executed.append({"action_type": action_type, "parameters": resolved})

        return {
            "success": True,
            "action_type": action_type,
            "parameters": resolved,
            "executed_at": datetime.utcnow().isoformat()
        }
