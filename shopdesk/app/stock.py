from __future__ import annotations

from decimal import Decimal
from typing import Optional, Union

Qty = Union[int, Decimal]


def resolve_low_stock_threshold(product_threshold: Optional[Qty], global_threshold: Qty) -> Qty:
    # A product override of 0 is a real value, only None falls back.
    if product_threshold is not None:
        return product_threshold
    return global_threshold


def is_low_stock(stock: Qty, product_threshold: Optional[Qty], global_threshold: Qty) -> bool:
    # Inclusive: at-threshold and oversold (negative) stock both count as low.
    threshold = resolve_low_stock_threshold(product_threshold, global_threshold)
    return stock <= threshold
