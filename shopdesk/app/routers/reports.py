from fastapi import APIRouter, Depends, HTTPException, Query
from datetime import date
from typing import Optional
from ..db import get_conn, set_actor_context
from ..deps import get_current_profile, require
from ..authz import can_access_manager_routes
from .invoices import select_open_receivables
from ..business_dates import DATE_PRESETS, day_range_to_timestamps, month_bounds, parse_date, preset_range

router = APIRouter(prefix="/reports", tags=["reports"])

DEFAULT_BEST_SELLERS_LIMIT = 10
DASHBOARD_RECEIVABLES_LIMIT = 100
EMPTY_DASHBOARD_METRICS = {
    "invoices_today": 0,
    "invoices_month": 0,
    "revenue_today": 0,
    "revenue_month": 0,
    "low_stock_count": 0,
}


def _resolve_range(from_: Optional[str], to: Optional[str], preset: Optional[str], today: Optional[date] = None) -> tuple[date, date]:
    """
    Inclusive civil date range for a report request.

    - preset wins when given (unknown presets are rejected)
    - otherwise from/to, each defaulting to the current month's edge
    """
    if preset:
        p = preset.strip().lower()
        if p not in DATE_PRESETS:
            raise HTTPException(status_code=400, detail="invalid preset")
        return preset_range(p, today)
    first, last = month_bounds(today)
    start = parse_date(from_) if from_ else first
    end = parse_date(to) if to else last
    if start is None or end is None:
        raise HTTPException(status_code=400, detail="from/to must be YYYY-MM-DD")
    if start > end:
        raise HTTPException(status_code=400, detail="from must be on or before to")
    return start, end


def _range_out(start: date, end: date) -> dict:
    return {"from": start.isoformat(), "to": end.isoformat()}


@router.get("/dashboard")
def dashboard(profile=Depends(get_current_profile)):
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM dashboard_metrics()")
            metrics = cur.fetchone() or dict(EMPTY_DASHBOARD_METRICS)
            # Open to every role, so receivables stay inside the caller's invoice date window.
            receivables, bounds = select_open_receivables(cur, profile["role"], DASHBOARD_RECEIVABLES_LIMIT)
    return {"metrics": metrics, "receivables": receivables, "bounds": bounds}


@router.get("/sales")
def sales_report(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = None,
    preset: Optional[str] = None,
    profile=Depends(require(can_access_manager_routes)),
):
    start, end = _resolve_range(from_, to, preset)
    ts_from, ts_to = day_range_to_timestamps(start, end)
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            cur.execute(
                "SELECT day, invoice_count, revenue, total_discount FROM sales_report(%s, %s)",
                (ts_from, ts_to),
            )
            rows = cur.fetchall()
    return {**_range_out(start, end), "rows": rows}


@router.get("/best-sellers")
def best_sellers(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = None,
    preset: Optional[str] = None,
    limit: Optional[int] = None,
    profile=Depends(require(can_access_manager_routes)),
):
    start, end = _resolve_range(from_, to, preset)
    ts_from, ts_to = day_range_to_timestamps(start, end)
    if not limit or limit < 1:
        limit = DEFAULT_BEST_SELLERS_LIMIT
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT product_id, product_name, sku, qty_sold, revenue
                FROM best_selling_products(%s, %s, %s)
                """,
                (ts_from, ts_to, limit),
            )
            rows = cur.fetchall()
    return {**_range_out(start, end), "limit": limit, "rows": rows}


@router.get("/profit")
def net_profit(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = None,
    preset: Optional[str] = None,
    profile=Depends(require(can_access_manager_routes)),
):
    start, end = _resolve_range(from_, to, preset)
    ts_from, ts_to = day_range_to_timestamps(start, end)
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            # gross_profit = costed_revenue - total_cost, computed by the procedure.
            cur.execute(
                """
                SELECT total_revenue, costed_revenue, total_cost, gross_profit, uncosted_revenue
                FROM net_profit_summary(%s, %s)
                """,
                (ts_from, ts_to),
            )
            summary = cur.fetchone()
    return {**_range_out(start, end), "summary": summary}


@router.get("/stock-movements")
def stock_movements(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = None,
    preset: Optional[str] = None,
    profile=Depends(require(can_access_manager_routes)),
):
    start, end = _resolve_range(from_, to, preset)
    ts_from, ts_to = day_range_to_timestamps(start, end)
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT movement_id, movement_type, quantity_delta, product_name, sku,
                       invoice_number, actor, note, created_at
                FROM stock_movements_report(%s, %s)
                """,
                (ts_from, ts_to),
            )
            rows = cur.fetchall()
    return {**_range_out(start, end), "rows": rows}
