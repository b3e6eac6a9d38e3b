"""Range filter grammar.

A filter value such as ``gt:5``, ``lt:5``, ``ne:5`` or ``bt:1,10`` is a range
query: a two letter operator, a colon, then the operand(s).
"""

from enum import Enum

import typing as t
from dataclasses import dataclass
from sqlalchemy import ColumnElement, Select

from reposcope.logger import get_logger

logger = get_logger(__name__)


class RangeOperator(str, Enum):
    GT = "gt"
    LT = "lt"
    NE = "ne"
    BT = "bt"


@dataclass(frozen=True)
class RangeExpression:
    operator: RangeOperator
    operands: tuple[str, ...]

    def to_clause(self, column: ColumnElement[t.Any]) -> ColumnElement[bool] | None:
        """Build the comparison for ``column``; ``None`` for a malformed ``bt``."""
        match self.operator:
            case RangeOperator.GT:
                return column > self.operands[0]
            case RangeOperator.LT:
                return column < self.operands[0]
            case RangeOperator.NE:
                return column != self.operands[0]
            case RangeOperator.BT:
                if len(self.operands) != 2:
                    return None
                return column.between(*self.operands)


def parse_range(value: t.Any) -> RangeExpression | None:
    """Parse ``value`` as a range expression, ``None`` if it is not one."""
    if not isinstance(value, str) or len(value) < 3 or value[2] != ":":
        return None

    try:
        operator = RangeOperator(value[:2].lower())
    except ValueError:
        return None

    rest = value[3:]
    operands = tuple(rest.split(",")) if operator is RangeOperator.BT else (rest,)
    return RangeExpression(operator, operands)


def apply_range(
    builder: Select[t.Any],
    column: ColumnElement[t.Any],
    value: t.Any,
) -> tuple[Select[t.Any], bool]:
    """Apply ``value`` to ``builder`` if it is a range expression.

    Returns:
        The statement and whether ``value`` was consumed as a range. A
        recognised but malformed payload is consumed without adding a clause.
    """
    expression = parse_range(value)
    if expression is None:
        return builder, False

    clause = expression.to_clause(column)
    if clause is None:
        logger.warning(f"Ignoring malformed range filter {value!r}")
        return builder, True
    return builder.where(clause), True
