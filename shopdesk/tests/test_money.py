from decimal import Decimal

import pytest

from shopdesk.app.money import PaymentValidationError, calculate_totals, derive_payment_status, to_money


def test_to_money_rounds_half_away_from_zero():
    assert to_money(1.005) == Decimal("1.01")
    assert to_money("2.675") == Decimal("2.68")
    assert to_money(-1.005) == Decimal("-1.01")
    assert to_money(10) == Decimal("10.00")
    assert str(to_money(Decimal("3.14159"))) == "3.14"


def test_to_money_handles_amounts_beyond_default_precision():
    assert to_money(1e26) == Decimal("100000000000000000000000000.00")
    assert to_money("123456789012345678901234567890.125") == Decimal("123456789012345678901234567890.13")


def test_calculate_totals_with_huge_discount_floors_total_at_zero():
    t = calculate_totals(subtotal=100, discount=Decimal("1e30"))
    assert t.total == Decimal("0.00")
    assert t.remaining_amount == Decimal("0.00")
    assert t.discount == Decimal("1e30")


def test_calculate_totals_keeps_cents_on_large_subtotals():
    t = calculate_totals(subtotal="100000000000000000000000000000.01", discount="0.01", paid_amount=0)
    assert t.total == Decimal("100000000000000000000000000000.00")
    assert t.remaining_amount == t.total
    assert t.payment_status == "unpaid"


def test_derive_payment_status_boundaries():
    assert derive_payment_status(Decimal("0"), Decimal("100")) == "unpaid"
    assert derive_payment_status(Decimal("-5"), Decimal("100")) == "unpaid"
    assert derive_payment_status(Decimal("25"), Decimal("100")) == "partially_paid"
    assert derive_payment_status(Decimal("100"), Decimal("100")) == "paid"
    # zero-total invoices with nothing paid stay unpaid
    assert derive_payment_status(Decimal("0"), Decimal("0")) == "unpaid"


def test_calculate_totals_defaults_paid_amount_to_total():
    t = calculate_totals(subtotal=100, discount=10)
    assert t.as_dict() == {
        "subtotal": Decimal("100"),
        "discount": Decimal("10"),
        "total": Decimal("90"),
        "paid_amount": Decimal("90"),
        "remaining_amount": Decimal("0"),
        "payment_status": "paid",
    }


def test_calculate_totals_partially_paid():
    t = calculate_totals(subtotal=200, discount=0, paid_amount=120)
    assert t.total == Decimal("200")
    assert t.remaining_amount == Decimal("80")
    assert t.payment_status == "partially_paid"


def test_calculate_totals_rejects_overpayment():
    with pytest.raises(PaymentValidationError) as exc_info:
        calculate_totals(subtotal=100, discount=0, paid_amount=120)
    assert "paid amount cannot exceed total amount" in str(exc_info.value)


def test_calculate_totals_discount_never_makes_total_negative():
    t = calculate_totals(subtotal=50, discount=80)
    assert t.total == Decimal("0")
    assert t.paid_amount == Decimal("0")
    assert t.payment_status == "unpaid"


def test_calculate_totals_negative_paid_amount_is_treated_as_zero():
    t = calculate_totals(subtotal=40, paid_amount=-10)
    assert t.paid_amount == Decimal("0")
    assert t.remaining_amount == Decimal("40")
    assert t.payment_status == "unpaid"


def test_calculate_totals_keeps_cents_without_drift():
    t = calculate_totals(subtotal=0.1 + 0.2, discount=0.05, paid_amount=0.1)
    assert t.subtotal == Decimal("0.30")
    assert t.total == Decimal("0.25")
    assert t.remaining_amount == Decimal("0.15")
    assert t.total - t.paid_amount == t.remaining_amount
    for v in (t.subtotal, t.discount, t.total, t.paid_amount, t.remaining_amount):
        assert v.as_tuple().exponent == -2


def test_calculate_totals_is_deterministic():
    assert calculate_totals(123.456, 3.21, 50) == calculate_totals(123.456, 3.21, 50)
