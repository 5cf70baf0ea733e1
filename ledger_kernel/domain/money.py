"""
Money -- minor-unit conversions.

Every persisted amount is an ``int`` count of minor units (cents).  Client
inputs (unit prices, discounts, journal amounts, balances) arrive as
``Decimal`` or decimal strings and are converted here, half-up, against the
currency's decimal places.  ``float`` is rejected outright.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from ledger_kernel.domain.currency import CurrencyRegistry
from ledger_kernel.exceptions import InvalidAmountError

DEFAULT_ROUNDING = ROUND_HALF_UP

# Amounts are stored in BigInteger columns.
MAX_MINOR_UNITS = 2**63 - 1


def to_decimal(value: Any, field: str) -> Decimal:
    """
    Parse an input amount into a finite Decimal.

    Accepts Decimal, int and numeric strings.  Floats are refused because
    their binary representation cannot hold most decimal amounts exactly.

    Raises:
        InvalidAmountError: For floats, booleans, non-numeric or non-finite input.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(field, value, "use Decimal or a decimal string, not float")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidAmountError(field, value, "not a number") from None
    else:
        raise InvalidAmountError(field, value, f"unsupported type {type(value).__name__}")
    if not result.is_finite():
        raise InvalidAmountError(field, value, "must be finite")
    return result


def round_to_currency(
    amount: Decimal,
    currency: str,
    rounding: str = DEFAULT_ROUNDING,
    field: str = "amount",
) -> Decimal:
    """
    Quantize ``amount`` to the currency's decimal places.

    Raises:
        InvalidAmountError: If the quantized amount needs more digits than
            the decimal context carries.
    """
    info = CurrencyRegistry.get_info(currency)
    try:
        return amount.quantize(Decimal(info.quantize_string), rounding=rounding)
    except InvalidOperation:
        raise InvalidAmountError(field, amount, "out of range") from None


def to_minor_units(amount: Decimal, currency: str, field: str = "amount") -> int:
    """
    Round half-up to the currency precision and return integer minor units.

    Raises:
        InvalidAmountError: If the result does not fit a signed 64-bit column.
    """
    info = CurrencyRegistry.get_info(currency)
    minor = int(round_to_currency(amount, currency, field=field) * info.minor_unit_factor)
    if abs(minor) > MAX_MINOR_UNITS:
        raise InvalidAmountError(field, amount, "out of range")
    return minor


def exact_minor_units(value: Any, currency: str, field: str) -> int:
    """
    Convert an amount that must already be expressed in whole minor units.

    ``"10.50"`` is fine for USD, ``"10.505"`` is not.

    Raises:
        InvalidAmountError: If the amount carries sub-minor-unit precision.
    """
    amount = to_decimal(value, field)
    if round_to_currency(amount, currency, field=field) != amount:
        raise InvalidAmountError(
            field,
            value,
            f"more than {CurrencyRegistry.get_decimal_places(currency)} "
            f"decimal places for {currency}",
        )
    return to_minor_units(amount, currency, field)


def from_minor_units(minor: int, currency: str) -> Decimal:
    """Render integer minor units as a Decimal in major units."""
    info = CurrencyRegistry.get_info(currency)
    return (Decimal(minor) / info.minor_unit_factor).quantize(
        Decimal(info.quantize_string)
    )
