from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date
from decimal import Decimal
import json
import uuid
from ..db import get_conn, set_actor_context
from ..deps import get_current_profile, require
from ..authz import (
    can_add_discount,
    can_create_invoices,
    can_delete_invoices,
    can_edit_invoice_info,
    can_edit_invoice_payments,
    can_void_invoices,
)
from ..business_dates import business_today, clamp_date, invoice_date_bounds, parse_date
from ..logs import json_log
from ..money import PaymentValidationError, calculate_totals, to_money
from ..validation import FullName, OptionalDate, OptionalText

router = APIRouter(prefix="/invoices", tags=["invoices"])

PAYMENT_STATUSES = {"unpaid", "partially_paid", "paid"}
INVOICE_STATUSES = {"confirmed", "void"}
MAX_LIST_LIMIT = 500


class InvoiceLineIn(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(gt=0)
    # Only honored for products flagged allow_price_override.
    unit_price: Optional[Decimal] = Field(default=None, ge=0)


class InvoiceChargeIn(BaseModel):
    name: FullName
    amount: Decimal = Field(ge=0)


class InvoiceCreateIn(BaseModel):
    customer_name: OptionalText = None
    customer_phone: OptionalText = None
    reference_number: OptionalText = None
    invoice_date: OptionalDate = None
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    # None means "paid in full".
    paid_amount: Optional[Decimal] = Field(default=None, ge=0)
    charges: List[InvoiceChargeIn] = Field(default_factory=list)
    items: List[InvoiceLineIn] = Field(min_length=1)


class InvoiceInfoUpdate(BaseModel):
    customer_name: OptionalText = None
    customer_phone: OptionalText = None
    reference_number: OptionalText = None
    invoice_date: OptionalDate = None


class PaymentUpdateIn(BaseModel):
    paid_amount: Decimal = Field(ge=0)


class VoidIn(BaseModel):
    reason: OptionalText = None


def _normalize_choice(value: Optional[str], allowed: set[str], field: str) -> Optional[str]:
    raw = str(value or "").strip().lower()
    if not raw:
        return None
    if raw not in allowed:
        raise HTTPException(status_code=400, detail=f"invalid {field}")
    return raw


def _resolve_list_window(role: str, from_: Optional[str], to: Optional[str], today: Optional[date] = None):
    """
    Effective (start, end, bounds) invoice-date filter for a role.

    - manager: filters are used as given (None means unfiltered)
    - sales: always exactly today, user filters ignored
    - supervisor: user filters clamped into the trailing 7-day window
    """
    bounds = invoice_date_bounds(role, today)
    if bounds is None:
        return parse_date(from_), parse_date(to), None
    if role == "sales":
        return bounds["from"], bounds["to"], bounds
    return (
        clamp_date(from_, bounds["from"], "min"),
        clamp_date(to, bounds["to"], "max"),
        bounds,
    )


def _in_bounds(invoice_date: Optional[date], bounds: Optional[dict]) -> bool:
    if bounds is None:
        return True
    if invoice_date is None:
        return False
    return bounds["from"] <= invoice_date <= bounds["to"]


def _load_products(cur, product_ids: list[str]) -> dict[str, dict]:
    ids = sorted(set(product_ids))
    cur.execute(
        """
        SELECT id, sku, name, sale_price, status, allow_price_override
        FROM products
        WHERE id = ANY(%s::uuid[])
        """,
        (ids,),
    )
    return {str(r["id"]): r for r in cur.fetchall()}


def _price_lines(items: List[InvoiceLineIn], products: dict[str, dict]) -> list[dict]:
    lines = []
    for item in items:
        pid = str(item.product_id)
        product = products.get(pid)
        if not product:
            raise HTTPException(status_code=400, detail=f"unknown product: {pid}")
        if product["status"] != "active":
            raise HTTPException(status_code=400, detail=f"product is inactive: {product['sku']}")
        custom_price = None
        if item.unit_price is not None:
            if not product["allow_price_override"]:
                raise HTTPException(status_code=400, detail=f"price override not allowed for {product['sku']}")
            custom_price = to_money(item.unit_price)
        unit_price = custom_price if custom_price is not None else to_money(product["sale_price"])
        lines.append(
            {
                "product_id": pid,
                "quantity": item.quantity,
                "unit_price": unit_price,
                "custom_price": custom_price,
                "line_total": to_money(unit_price * item.quantity),
            }
        )
    return lines


def _invoice_subtotal(lines: list[dict], charges: List[InvoiceChargeIn]) -> Decimal:
    items_total = sum((line["line_total"] for line in lines), Decimal("0"))
    charges_total = sum((to_money(c.amount) for c in charges), Decimal("0"))
    return to_money(items_total + charges_total)


def _select_invoices(cur, where: list[str], params: list, limit: int) -> list[dict]:
    where_sql = ("WHERE " + " AND ".join(where)) if where else ""
    cur.execute(
        f"""
        SELECT i.id, i.invoice_number, i.invoice_date, i.created_at,
               i.customer_name, i.customer_phone, i.reference_number,
               i.subtotal, i.discount, i.total, i.paid_amount, i.remaining_amount,
               i.payment_status, i.status,
               u.full_name AS created_by_name
        FROM invoices i
        LEFT JOIN users u ON u.id = i.created_by
        {where_sql}
        ORDER BY i.created_at DESC
        LIMIT %s
        """,
        [*params, limit],
    )
    return cur.fetchall()


def select_open_receivables(cur, role: str, limit: int, today: Optional[date] = None):
    """Confirmed invoices still owing money, limited to the role's visible dates. Returns (rows, bounds)."""
    bounds = invoice_date_bounds(role, today or business_today())
    where = ["i.status = 'confirmed'", "i.payment_status IN ('unpaid', 'partially_paid')"]
    params: list = []
    if bounds:
        where.append("i.invoice_date BETWEEN %s AND %s")
        params.extend([bounds["from"], bounds["to"]])
    return _select_invoices(cur, where, params, limit), bounds


@router.post("", status_code=201)
def create_invoice(data: InvoiceCreateIn, profile=Depends(require(can_create_invoices))):
    discount = to_money(data.discount)
    if discount > 0 and not can_add_discount(profile["role"]):
        raise HTTPException(status_code=403, detail="discount not permitted")
    invoice_date = data.invoice_date or business_today()

    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            products = _load_products(cur, [str(i.product_id) for i in data.items])
            lines = _price_lines(data.items, products)
            subtotal = _invoice_subtotal(lines, data.charges)
            try:
                totals = calculate_totals(subtotal, discount, data.paid_amount)
            except PaymentValidationError as exc:
                json_log(
                    "info",
                    "invoice.rejected",
                    user_id=profile["user_id"],
                    subtotal=subtotal,
                    discount=discount,
                    paid_amount=data.paid_amount,
                    reason=str(exc),
                )
                raise

            cur.execute(
                """
                SELECT id, invoice_number
                FROM create_invoice(%s, %s, %s, %s, %s, %s, %s, %s::jsonb, %s::jsonb)
                """,
                (
                    profile["user_id"],
                    data.customer_name,
                    data.customer_phone,
                    data.reference_number,
                    invoice_date,
                    totals.discount,
                    totals.paid_amount if data.paid_amount is not None else None,
                    json.dumps([{"name": c.name, "amount": to_money(c.amount)} for c in data.charges], default=str),
                    json.dumps(
                        [
                            {"product_id": ln["product_id"], "quantity": ln["quantity"], "unit_price": ln["custom_price"]}
                            for ln in lines
                        ],
                        default=str,
                    ),
                ),
            )
            row = cur.fetchone()

    json_log(
        "info",
        "invoice.created",
        invoice_id=row["id"],
        invoice_number=row["invoice_number"],
        user_id=profile["user_id"],
        total=totals.total,
        payment_status=totals.payment_status,
    )
    return {"id": row["id"], "invoice_number": row["invoice_number"], "totals": totals.as_dict()}


@router.get("")
def list_invoices(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = None,
    payment_status: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 100,
    profile=Depends(get_current_profile),
):
    start, end, bounds = _resolve_list_window(profile["role"], from_, to)
    pay = _normalize_choice(payment_status, PAYMENT_STATUSES, "payment_status")
    st = _normalize_choice(status, INVOICE_STATUSES, "status")
    limit = max(1, min(int(limit or 100), MAX_LIST_LIMIT))

    where: list[str] = []
    params: list = []
    if start:
        where.append("i.invoice_date >= %s")
        params.append(start)
    if end:
        where.append("i.invoice_date <= %s")
        params.append(end)
    if pay:
        where.append("i.payment_status = %s")
        params.append(pay)
    if st:
        where.append("i.status = %s")
        params.append(st)

    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            rows = _select_invoices(cur, where, params, limit)
    return {"invoices": rows, "from": start, "to": end, "bounds": bounds}


@router.get("/receivables")
def list_receivables(profile=Depends(get_current_profile)):
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            rows, bounds = select_open_receivables(cur, profile["role"], MAX_LIST_LIMIT)
    return {"receivables": rows, "bounds": bounds}


@router.get("/{invoice_id}")
def get_invoice(invoice_id: uuid.UUID, profile=Depends(get_current_profile)):
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT i.id, i.invoice_number, i.invoice_date, i.created_at, i.created_by,
                       i.customer_name, i.customer_phone, i.reference_number,
                       i.subtotal, i.discount, i.total, i.paid_amount, i.remaining_amount,
                       i.payment_status, i.status, i.voided_at, i.voided_by, i.void_reason,
                       u.full_name AS created_by_name
                FROM invoices i
                LEFT JOIN users u ON u.id = i.created_by
                WHERE i.id = %s
                """,
                (str(invoice_id),),
            )
            inv = cur.fetchone()
            # Out-of-window invoices are indistinguishable from missing ones.
            if not inv or not _in_bounds(inv["invoice_date"], invoice_date_bounds(profile["role"], business_today())):
                raise HTTPException(status_code=404, detail="invoice not found")
            cur.execute(
                """
                SELECT ii.id, ii.product_id, p.sku, p.name AS product_name,
                       ii.quantity, ii.unit_price, ii.line_total
                FROM invoice_items ii
                JOIN products p ON p.id = ii.product_id
                WHERE ii.invoice_id = %s
                ORDER BY ii.id
                """,
                (str(invoice_id),),
            )
            items = cur.fetchall()
            cur.execute(
                """
                SELECT id, name, amount
                FROM invoice_charges
                WHERE invoice_id = %s
                ORDER BY id
                """,
                (str(invoice_id),),
            )
            charges = cur.fetchall()
    return {"invoice": inv, "items": items, "charges": charges}


@router.patch("/{invoice_id}")
def update_invoice_info(
    invoice_id: uuid.UUID,
    data: InvoiceInfoUpdate,
    profile=Depends(require(can_edit_invoice_info)),
):
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            cur.execute(
                "SELECT update_invoice_info(%s, %s, %s, %s, %s, %s)",
                (
                    str(invoice_id),
                    profile["user_id"],
                    data.customer_name,
                    data.customer_phone,
                    data.reference_number,
                    data.invoice_date,
                ),
            )
    json_log("info", "invoice.info_updated", invoice_id=str(invoice_id), user_id=profile["user_id"])
    return {"ok": True}


@router.patch("/{invoice_id}/payment")
def update_invoice_payment(
    invoice_id: uuid.UUID,
    data: PaymentUpdateIn,
    profile=Depends(require(can_edit_invoice_payments)),
):
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, subtotal, discount, status
                FROM invoices
                WHERE id = %s
                """,
                (str(invoice_id),),
            )
            inv = cur.fetchone()
            if not inv:
                raise HTTPException(status_code=404, detail="invoice not found")
            if inv["status"] == "void":
                raise HTTPException(status_code=400, detail="invoice is void")
            # Same derivation the procedure persists; over-payment is rejected here first.
            totals = calculate_totals(inv["subtotal"], inv["discount"], data.paid_amount)
            cur.execute(
                "SELECT update_invoice_payment(%s, %s, %s)",
                (str(invoice_id), totals.paid_amount, profile["user_id"]),
            )
    json_log(
        "info",
        "invoice.payment_updated",
        invoice_id=str(invoice_id),
        user_id=profile["user_id"],
        paid_amount=totals.paid_amount,
        payment_status=totals.payment_status,
    )
    return {"ok": True, "totals": totals.as_dict()}


@router.post("/{invoice_id}/void")
def void_invoice(invoice_id: uuid.UUID, data: VoidIn, profile=Depends(require(can_void_invoices))):
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            # Restores stock for every movement of the invoice; irreversible.
            cur.execute(
                "SELECT void_invoice(%s, %s, %s)",
                (str(invoice_id), profile["user_id"], data.reason),
            )
    json_log("info", "invoice.voided", invoice_id=str(invoice_id), user_id=profile["user_id"], reason=data.reason)
    return {"ok": True}


@router.delete("/{invoice_id}")
def delete_invoice(invoice_id: uuid.UUID, profile=Depends(require(can_delete_invoices))):
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            cur.execute(
                "SELECT delete_invoice(%s, %s)",
                (str(invoice_id), profile["user_id"]),
            )
    json_log("info", "invoice.deleted", invoice_id=str(invoice_id), user_id=profile["user_id"])
    return {"ok": True}
