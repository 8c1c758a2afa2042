from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal, ROUND_HALF_UP, getcontext, localcontext
from typing import Optional, Union

MONEY_Q = Decimal("0.01")

Amount = Union[Decimal, int, float, str]


class PaymentValidationError(ValueError):
    """Raised when a requested payment cannot be applied to an invoice."""


def _wide_context(*values: Decimal):
    # Room for every integer digit, two decimals and a carry, however large the amount.
    ctx = getcontext().copy()
    ctx.prec = max([ctx.prec] + [v.adjusted() + 4 for v in values])
    return localcontext(ctx)


def to_money(v: Amount) -> Decimal:
    # Floats go through str() so 1.005 is read as written, not as 1.00499999...
    d = v if isinstance(v, Decimal) else Decimal(str(v or 0))
    with _wide_context(d):
        # ROUND_HALF_UP on Decimal rounds half away from zero (-0.005 -> -0.01).
        return d.quantize(MONEY_Q, rounding=ROUND_HALF_UP)


def derive_payment_status(paid_amount: Decimal, total: Decimal) -> str:
    if paid_amount <= 0:
        return "unpaid"
    if paid_amount >= total:
        return "paid"
    return "partially_paid"


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    payment_status: str

    def as_dict(self) -> dict:
        return asdict(self)


def calculate_totals(
    subtotal: Amount,
    discount: Optional[Amount] = None,
    paid_amount: Optional[Amount] = None,
) -> InvoiceTotals:
    """
    Derive the stored money fields of an invoice.

    - discount defaults to 0 and never drives the total below zero
    - an omitted paid_amount means the invoice is paid in full
    - a negative paid_amount is treated as 0
    - paid_amount above the total is rejected, never clamped down
    """
    sub = to_money(subtotal)
    disc = to_money(discount if discount is not None else 0)
    with _wide_context(sub, disc):
        total = to_money(max(Decimal("0"), sub - disc))

    if paid_amount is None:
        paid = total
    else:
        paid = to_money(max(Decimal("0"), to_money(paid_amount)))

    if paid > total:
        raise PaymentValidationError("paid amount cannot exceed total amount")

    with _wide_context(total, paid):
        remaining = to_money(total - paid)

    return InvoiceTotals(
        subtotal=sub,
        discount=disc,
        total=total,
        paid_amount=paid,
        remaining_amount=remaining,
        payment_status=derive_payment_status(paid, total),
    )
