"""
Module: ledger_kernel.db.types
Responsibility: The decimal helpers every engine and service uses for money,
    quantities and unit costs.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and the engines.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats.  Inputs are converted through ``to_decimal`` which goes via
      ``str`` so that 0.1 stays 0.1.
    - round_money() is the only sanctioned rounding function; it always uses
      ROUND_HALF_UP unless the caller says otherwise.

Failure modes:
    - ValueError on non-numeric input to to_decimal().
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MONEY_DECIMAL_PLACES = 2
COST_DECIMAL_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def to_decimal(value: Decimal | int | str | float | None) -> Decimal | None:
    """
    Convert an input number to Decimal without binary float artefacts.

    None passes through.  Floats are converted via their shortest ``repr`` so
    that ``to_decimal(0.1) == Decimal("0.1")``.

    Raises:
        ValueError: If value is not numeric.
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a numeric value: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a numeric value: {value!r}") from exc


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the ONLY sanctioned rounding function for persisted amounts.
    """
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=rounding)


def normalize_currency_code(code: str) -> str:
    """Upper-case and validate a three-letter currency code."""
    normalized = (code or "").strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError(f"Invalid currency code: {code!r}")
    return normalized
