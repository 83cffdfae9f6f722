"""Condition evaluation for stage automation rules.

Conditions compare a named fact against a typed value. All conditions of a
rule are ANDed. A missing or uncoercible fact makes its condition false.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from gentepro.pipeline.enums import ConditionOperator, ValueType
from gentepro.pipeline.schemas.rules import RuleCondition

logger = logging.getLogger(__name__)

_MISSING = object()

_TRUE_STRINGS = {"true", "1", "sim", "yes", "s", "y"}
_FALSE_STRINGS = {"false", "0", "nao", "não", "no", "n", ""}


class ConditionEvaluator:
    """Evaluates rule conditions against a fact set."""

    # Supported comparison operators
    OPERATORS: Dict[ConditionOperator, Callable[[Any, Any], bool]] = {
        ConditionOperator.EQ: lambda a, b: a == b,
        ConditionOperator.NEQ: lambda a, b: a != b,
        ConditionOperator.GTE: lambda a, b: a >= b,
        ConditionOperator.LTE: lambda a, b: a <= b,
        ConditionOperator.GT: lambda a, b: a > b,
        ConditionOperator.LT: lambda a, b: a < b,
    }

    def __init__(self):
        self.evaluation_log: List[Dict[str, Any]] = []

    def evaluate_conditions(
        self,
        conditions: List[RuleCondition],
        facts: Dict[str, Any],
        log_evaluation: bool = False,
    ) -> bool:
        """
        Check that every condition holds for the given facts.

        Example:
            [{"campo": "score", "operador": ">=", "valor": 80, "tipo": "numero"}]
            matches facts {"score": 85} and not {"score": 79}.
        """
        if log_evaluation:
            # Holds the last logged evaluation only
            self.evaluation_log = []
        for condition in conditions:
            result = self._evaluate_single_condition(condition, facts)
            if log_evaluation:
                self.evaluation_log.append({
                    "field": condition.field,
                    "operator": condition.operator.value,
                    "expected_value": condition.value,
                    "actual_value": facts.get(condition.field),
                    "result": result,
                })
            if not result:
                return False
        return True

    def _evaluate_single_condition(self, condition: RuleCondition, facts: Dict[str, Any]) -> bool:
        actual = facts.get(condition.field, _MISSING)
        if actual is _MISSING or actual is None:
            return False

        value_type = condition.value_type or ValueType.STRING
        actual_value = coerce(actual, value_type)
        expected_value = coerce(condition.value, value_type)
        if actual_value is None or expected_value is None:
            return False

        op_func = self.OPERATORS.get(condition.operator)
        if not op_func:
            return False

        try:
            return bool(op_func(actual_value, expected_value))
        except TypeError:
            return False


def coerce(value: Any, value_type: ValueType) -> Optional[Any]:
    """Coerce a raw value to the condition's type; None when it cannot be."""
    try:
        if value_type == ValueType.NUMBER:
            if isinstance(value, bool):
                return None
            return float(value)
        if value_type == ValueType.BOOLEAN:
            if isinstance(value, bool):
                return value
            if isinstance(value, (int, float)):
                return value != 0
            lowered = str(value).strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
            return None
        return str(value)
    except (TypeError, ValueError):
        return None


# Singleton instance
_evaluator: Optional[ConditionEvaluator] = None


def get_condition_evaluator() -> ConditionEvaluator:
    """Get the condition evaluator singleton."""
    global _evaluator
    if _evaluator is None:
        _evaluator = ConditionEvaluator()
    return _evaluator
