"""
Module: card_kernel.db.types
Responsibility: Fixed-point money utilities shared by every component that
    touches an amount.  Centralizes scale, rounding, and the representable
    range so that validation, posting, and persistence agree exactly.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Scale: MONEY_DECIMAL_PLACES = 2.  Every stored amount is quantized to
      two fractional digits.
    - Rounding: DEFAULT_ROUNDING = ROUND_HALF_EVEN.  round_money() is the
      ONLY sanctioned rounding function.
    - Range: MAX_TRANSACTION_AMOUNT = 999,999,999.99 (legacy S9(9)V99).
    - No floats anywhere.  parse_amount() refuses float input outright.

Failure modes:
    - InvalidAmountError from parse_amount() on missing, non-numeric,
      non-finite, over-scale, or out-of-range input.
"""

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_EVEN
CENT = Decimal("0.01")
ZERO = Decimal("0.00")
MAX_TRANSACTION_AMOUNT = Decimal("999999999.99")


class InvalidAmountError(ValueError):
    """Raised when an amount cannot be accepted as a 2-digit fixed-point value."""

    def __init__(self, value: object, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid amount {value!r}: {reason}")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the ONLY sanctioned rounding function for money.  With
    2-digit inputs it is exact; rounding only matters when a caller works
    at higher intermediate precision.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def money_add(left: Decimal, right: Decimal) -> Decimal:
    """Exact sum of two money values, stored at scale 2."""
    return round_money(left + right)


def money_sub(left: Decimal, right: Decimal) -> Decimal:
    """Exact difference of two money values, stored at scale 2."""
    return round_money(left - right)


def money_mul(value: Decimal, factor: Decimal) -> Decimal:
    """Product rounded HALF_EVEN to scale 2."""
    return round_money(value * factor)


def money_div(value: Decimal, divisor: Decimal) -> Decimal:
    """Quotient rounded HALF_EVEN to scale 2.

    Raises:
        ZeroDivisionError: If divisor is zero.
    """
    if divisor == 0:
        raise ZeroDivisionError("money division by zero")
    return round_money(value / divisor)


def parse_amount(value: object) -> Decimal:
    """
    Parse a transaction amount into a 2-digit fixed-point Decimal.

    Accepts Decimal, int, or numeric text (surrounding whitespace allowed).
    Trailing zeros beyond two places are fine ("1.500"); significant digits
    beyond two places are refused rather than silently rounded.

    Returns:
        Decimal quantized to exactly two places.

    Raises:
        InvalidAmountError: On any value that is not an exact, finite,
            in-range 2-digit amount.
    """
    if value is None:
        raise InvalidAmountError(value, "amount is required")
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(value, "floating-point amounts are not accepted")

    if isinstance(value, Decimal):
        candidate = value
    elif isinstance(value, int):
        candidate = Decimal(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidAmountError(value, "amount is required")
        try:
            candidate = Decimal(text)
        except InvalidOperation:
            raise InvalidAmountError(value, "not a decimal number") from None
    else:
        raise InvalidAmountError(value, f"unsupported type {type(value).__name__}")

    if not candidate.is_finite():
        raise InvalidAmountError(value, "amount must be finite")

    # Range first: quantizing a huge exponent overflows the context
    if abs(candidate) > MAX_TRANSACTION_AMOUNT:
        raise InvalidAmountError(
            value, f"magnitude exceeds {MAX_TRANSACTION_AMOUNT}"
        )
    quantized = round_money(candidate)
    if quantized != candidate:
        raise InvalidAmountError(
            value, f"more than {MONEY_DECIMAL_PLACES} decimal places"
        )
    return quantized


def is_valid_amount(value: object) -> bool:
    """Check whether parse_amount() would accept the value."""
    try:
        parse_amount(value)
        return True
    except InvalidAmountError:
        return False
