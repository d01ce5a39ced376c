# conditions.py - Predicate evaluation for condition steps
# This file evaluates field/operator/value predicates against an execution context.

import logging
from typing import Any, Dict, List

from .models import ConditionOperator, WorkflowCondition

logger = logging.getLogger(__name__)

_MISSING = object()

def resolve_field(path: str, context: Dict[str, Any]) -> Any:
    """Resolve a context field, following dot notation like 'budget.amount'."""
    if path in context:
        return context[path]

    current: Any = context
    for part in path.split('.'):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current

def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("booleans are not compared numerically")
    return float(value)

def _as_text(value: Any) -> str:
    """Text form used by `contains`; lists join their items with commas."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else _as_text(item) for item in value)
    return str(value)

def _strictly_equal(left: Any, right: Any) -> bool:
    # True never equals 1 and "5" never equals 5
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right

def evaluate_condition(condition: WorkflowCondition, context: Dict[str, Any]) -> bool:
    """Evaluate a single predicate. Values that cannot be compared evaluate to False."""
    field_value = resolve_field(condition.field, context)
    operator = condition.operator

    if operator == ConditionOperator.EXISTS:
        return field_value is not _MISSING and field_value is not None

    if field_value is _MISSING or field_value is None:
        return False

    try:
        if operator == ConditionOperator.EQUALS:
            return _strictly_equal(field_value, condition.value)
        elif operator == ConditionOperator.GREATER_THAN:
            return _as_number(field_value) > _as_number(condition.value)
        elif operator == ConditionOperator.LESS_THAN:
            return _as_number(field_value) < _as_number(condition.value)
        elif operator == ConditionOperator.CONTAINS:
            return _as_text(condition.value) in _as_text(field_value)
    except (TypeError, ValueError) as e:
        logger.warning(f"Condition on '{condition.field}' could not be evaluated: {str(e)}")
        return False

    logger.warning(f"Unknown operator in condition: {operator}")
    return False

def evaluate_conditions(conditions: List[WorkflowCondition], context: Dict[str, Any]) -> List[bool]:
    """Evaluate every predicate; the overall result is the AND of the returned list."""
    results = [evaluate_condition(condition, context) for condition in conditions]
    logger.info(f"Condition results: {results}")
    return results
