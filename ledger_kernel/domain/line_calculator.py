"""
Document line arithmetic.

Pure functions turning client quantities, prices, discounts and tax rates
into integer minor-unit amounts:

    gross     = quantity * unit_price
    net       = gross - discount            (discount <= gross)
    EXCLUSIVE : subtotal = net,  tax = net * rate / 100
    INCLUSIVE : total = net,     tax = net * rate / (100 + rate)

Rounding is half-up to the currency's minor unit, once per line.  Only
STANDARD tax codes carry a rate; ZERO, EXEMPT and OUT_OF_SCOPE tax nothing.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ledger_kernel.domain.dtos import TaxType, VatBehavior
from ledger_kernel.domain.money import to_minor_units
from ledger_kernel.exceptions import InvalidAmountError

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class TaxRate:
    rate: Decimal
    tax_type: TaxType = TaxType.STANDARD

    @property
    def effective_rate(self) -> Decimal:
        if self.tax_type is TaxType.STANDARD:
            return self.rate
        return Decimal("0")


@dataclass(frozen=True)
class LineAmounts:
    subtotal: int
    tax: int

    @property
    def total(self) -> int:
        return self.subtotal + self.tax


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: int
    tax_total: int

    @property
    def total(self) -> int:
        return self.subtotal + self.tax_total


def _require_non_negative(value: Decimal, field: str) -> None:
    if value < 0:
        raise InvalidAmountError(field, value, "must not be negative")


def compute_line(
    quantity: Decimal,
    unit_price: Decimal,
    discount: Decimal,
    tax: TaxRate | None,
    vat_behavior: VatBehavior,
    currency: str,
) -> LineAmounts:
    """
    Compute one line's subtotal and tax in minor units.

    Raises:
        InvalidAmountError: Negative quantity, price, discount or rate, or a
            discount larger than the gross amount.
    """
    _require_non_negative(quantity, "quantity")
    _require_non_negative(unit_price, "unit_price")
    _require_non_negative(discount, "discount")

    gross = quantity * unit_price
    if discount > gross:
        raise InvalidAmountError("discount", discount, f"exceeds line amount {gross}")
    net = gross - discount

    rate = tax.effective_rate if tax is not None else Decimal("0")
    _require_non_negative(rate, "tax_rate")

    if vat_behavior is VatBehavior.INCLUSIVE:
        total = to_minor_units(net, currency, "line amount")
        tax_amount = to_minor_units(net * rate / (_HUNDRED + rate), currency, "tax amount")
        return LineAmounts(subtotal=total - tax_amount, tax=tax_amount)

    subtotal = to_minor_units(net, currency, "line amount")
    tax_amount = to_minor_units(net * rate / _HUNDRED, currency, "tax amount")
    return LineAmounts(subtotal=subtotal, tax=tax_amount)


def sum_lines(lines: Iterable[LineAmounts]) -> DocumentTotals:
    subtotal = 0
    tax_total = 0
    for line in lines:
        subtotal += line.subtotal
        tax_total += line.tax
    return DocumentTotals(subtotal=subtotal, tax_total=tax_total)
