"""
Input validation shared by the account service and the transfer engine.

Amounts arrive as int, float, str or Decimal and are normalised to Decimal.
Floats go through str() so 1000.50 becomes Decimal('1000.5'), not the
binary expansion. NEVER compare monetary values as floats.

Money has a fixed scale of MONEY_PLACES decimal places. Amounts with finer
precision are rejected rather than rounded, and balance arithmetic runs in
a context where any rounding raises.
"""

from contextlib import contextmanager
from decimal import Decimal, InvalidOperation, Inexact, localcontext
from typing import Any

from .errors import InvalidArgumentError


MONEY_PLACES = 2
MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_PLACES)  # Decimal('0.01')


def to_decimal(value: Any, error_message: str) -> Decimal:
    """Convert value to a finite Decimal or raise InvalidArgumentError"""
    if isinstance(value, bool) or value is None:
        raise InvalidArgumentError(error_message)

    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise InvalidArgumentError(error_message)

    if not amount.is_finite():
        raise InvalidArgumentError(error_message)
    return amount


def check_money_scale(amount: Decimal) -> Decimal:
    """Reject amounts finer than MONEY_PLACES or too large to add exactly"""
    try:
        with exact_money():
            amount.quantize(MONEY_QUANTUM)
    except Inexact:
        raise InvalidArgumentError(f"amount must have at most {MONEY_PLACES} decimal places")
    except InvalidOperation:
        raise InvalidArgumentError("amount is too large")
    return amount


def require_positive_amount(value: Any, error_message: str) -> Decimal:
    """Convert value to Decimal and require it to be strictly greater than zero"""
    amount = to_decimal(value, error_message)
    if amount <= Decimal("0"):
        raise InvalidArgumentError(error_message)
    return check_money_scale(amount)


@contextmanager
def exact_money():
    """Decimal context in which any rounding raises Inexact"""
    with localcontext() as ctx:
        ctx.traps[Inexact] = True
        ctx.traps[InvalidOperation] = True
        yield ctx
