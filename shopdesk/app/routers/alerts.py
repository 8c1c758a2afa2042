from fastapi import APIRouter, Depends
from ..db import get_conn, set_actor_context
from ..deps import get_current_profile
from ..logs import json_log
from ..stock import is_low_stock

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("/low-stock")
def low_stock(profile=Depends(get_current_profile)):
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            cur.execute("SELECT id, sku, name, current_stock, threshold FROM low_stock_items()")
            rows = cur.fetchall()

    for r in rows:
        # `threshold` is already resolved server-side; the predicate must agree with it.
        if not is_low_stock(r["current_stock"], r["threshold"], r["threshold"]):
            json_log(
                "warning",
                "low_stock.threshold_drift",
                product_id=r["id"],
                sku=r["sku"],
                current_stock=r["current_stock"],
                threshold=r["threshold"],
            )
    return {"items": rows, "count": len(rows)}
