"""
Deterministic visibility evaluator for form fields.

Decides whether a field is shown based on its ``visibility_rule`` and
the current answers, and produces the ordered list of visible fields
for a whole template. Everything here is a pure function of
(template, answers): answers are never mutated and nothing raises for
a malformed condition.
"""

import logging
from collections.abc import Mapping
from typing import Any

from oinstec.core.schema import (
    ConditionOperator,
    FormField,
    FormTemplate,
    LogicalOperator,
    VisibilityCondition,
)
from oinstec.core.utils import is_empty, is_sequence, strict_equals, to_number

logger = logging.getLogger(__name__)


def is_field_visible(field: FormField, answers: Mapping[str, Any]) -> bool:
    """Determine if a field should be visible given the current answers.

    If the field has no visibility rule, it is always visible.
    Otherwise every condition is evaluated and the results are combined
    with the rule's logical operator (AND by default, or OR).

    Args:
        field: The form field to evaluate.
        answers: Current answers keyed by field ID.

    Returns:
        True if the field should be visible, False otherwise.
    """
    rule = field.visibility_rule
    if rule is None:
        return True

    results = [_evaluate_condition(condition, answers) for condition in rule.conditions]

    if rule.logical_operator == LogicalOperator.OR:
        return any(results)
    return all(results)


def get_visible_fields(template: FormTemplate, answers: Mapping[str, Any]) -> list[FormField]:
    """Return the template's visible fields in display order.

    Fields are sorted by ascending ``order``; ties keep declaration
    order since ``sorted`` is stable.
    """
    ordered = sorted(template.fields, key=lambda f: f.order)
    return [field for field in ordered if is_field_visible(field, answers)]


def _evaluate_condition(condition: VisibilityCondition, answers: Mapping[str, Any]) -> bool:
    """Evaluate a single visibility condition against the current answers.

    Conditions missing a field reference or an operator, or using an
    operator this module does not know, pass.
    """
    if not condition.field_id:
        logger.debug("Condition without fieldId treated as passing")
        return True

    if condition.operator is None:
        logger.debug("Condition on field '%s' without operator treated as passing", condition.field_id)
        return True

    answer = answers.get(condition.field_id)
    expected = condition.value

    match condition.operator:
        case ConditionOperator.EQUALS:
            return strict_equals(answer, expected)

        case ConditionOperator.NOT_EQUALS:
            return not strict_equals(answer, expected)

        case ConditionOperator.CONTAINS:
            return _contains(answer, expected)

        case ConditionOperator.GREATER_THAN:
            return to_number(answer) > to_number(expected)

        case ConditionOperator.LESS_THAN:
            return to_number(answer) < to_number(expected)

        case ConditionOperator.IS_EMPTY:
            return is_empty(answer)

        case ConditionOperator.IS_NOT_EMPTY:
            return not is_empty(answer)

    logger.debug(
        "Unknown operator '%s' on field '%s' treated as passing",
        condition.operator,
        condition.field_id,
    )
    return True


def _contains(answer: Any, expected: Any) -> bool:
    """Substring test for text answers, membership test for selections."""
    if isinstance(answer, str):
        if expected is None or is_sequence(expected) or isinstance(expected, Mapping):
            return False
        return str(expected) in answer

    if is_sequence(answer):
        return any(strict_equals(item, expected) for item in answer)

    return False
