from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal
import json
import uuid
from ..config import settings
from ..db import get_conn, set_actor_context
from ..deps import get_current_profile, require
from ..authz import can_manage_products
from ..logs import json_log
from ..money import to_money
from ..sku import generate_sku
from ..stock import is_low_stock, resolve_low_stock_threshold
from ..validation import FullName, OptionalText, ProductStatus

router = APIRouter(prefix="/products", tags=["products"])


class ProductIn(BaseModel):
    sku: OptionalText = None
    name: FullName
    category: OptionalText = None
    sale_price: Decimal = Field(ge=0)
    cost_price: Optional[Decimal] = Field(default=None, ge=0)
    current_stock: int
    low_stock_threshold: Optional[int] = None
    status: ProductStatus = "active"
    is_digital: bool = False
    allow_price_override: bool = False


class ProductUpdate(BaseModel):
    sku: Optional[FullName] = None
    name: Optional[FullName] = None
    category: OptionalText = None
    sale_price: Optional[Decimal] = Field(default=None, ge=0)
    cost_price: Optional[Decimal] = Field(default=None, ge=0)
    current_stock: Optional[int] = None
    low_stock_threshold: Optional[int] = None
    status: Optional[ProductStatus] = None
    is_digital: Optional[bool] = None
    allow_price_override: Optional[bool] = None


def load_global_low_stock_threshold(cur) -> int:
    cur.execute(
        """
        SELECT value
        FROM app_settings
        WHERE key = 'low_stock_threshold'
        LIMIT 1
        """
    )
    row = cur.fetchone()
    if not row or row.get("value") is None:
        return settings.default_low_stock_threshold
    try:
        return int(str(row["value"]).strip())
    except ValueError:
        return settings.default_low_stock_threshold


def _with_stock_flags(row: dict, global_threshold: int) -> dict:
    threshold = resolve_low_stock_threshold(row.get("low_stock_threshold"), global_threshold)
    return {
        **row,
        "effective_threshold": threshold,
        "is_low_stock": is_low_stock(row["current_stock"], row.get("low_stock_threshold"), global_threshold),
    }


@router.get("")
def list_products(profile=Depends(get_current_profile)):
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            global_threshold = load_global_low_stock_threshold(cur)
            cur.execute(
                """
                SELECT id, sku, name, category, sale_price, cost_price,
                       current_stock, low_stock_threshold, status,
                       is_digital, allow_price_override
                FROM products
                ORDER BY name
                """
            )
            rows = cur.fetchall()
    return {
        "products": [_with_stock_flags(r, global_threshold) for r in rows],
        "global_low_stock_threshold": global_threshold,
    }


@router.get("/categories")
def list_categories(profile=Depends(get_current_profile)):
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT DISTINCT category
                FROM products
                WHERE category IS NOT NULL
                ORDER BY category
                """
            )
            return {"categories": [r["category"] for r in cur.fetchall()]}


@router.post("", status_code=201)
def create_product(data: ProductIn, profile=Depends(require(can_manage_products))):
    sku = data.sku or generate_sku(data.name)
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO products
                  (id, sku, name, category, sale_price, cost_price, current_stock,
                   low_stock_threshold, status, is_digital, allow_price_override, created_by)
                VALUES
                  (gen_random_uuid(), %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (
                    sku,
                    data.name,
                    data.category,
                    to_money(data.sale_price),
                    to_money(data.cost_price) if data.cost_price is not None else None,
                    data.current_stock,
                    data.low_stock_threshold,
                    data.status,
                    data.is_digital,
                    data.allow_price_override,
                    profile["user_id"],
                ),
            )
            product_id = cur.fetchone()["id"]
            cur.execute(
                """
                INSERT INTO audit_logs (id, user_id, action, entity_type, entity_id, details)
                VALUES (gen_random_uuid(), %s, 'product_create', 'product', %s, %s::jsonb)
                """,
                (profile["user_id"], product_id, json.dumps({**data.model_dump(), "sku": sku}, default=str)),
            )
    json_log("info", "product.created", product_id=product_id, sku=sku, user_id=profile["user_id"])
    return {"id": product_id, "sku": sku}


@router.patch("/{product_id}")
def update_product(product_id: uuid.UUID, data: ProductUpdate, profile=Depends(require(can_manage_products))):
    # exclude_unset so clients can explicitly clear nullable fields (category, low_stock_threshold).
    patch = data.model_dump(exclude_unset=True)
    if not patch:
        raise HTTPException(status_code=400, detail="no fields to update")
    for k in ("sale_price", "cost_price"):
        if patch.get(k) is not None:
            patch[k] = to_money(patch[k])
    fields = []
    params = []
    for k, v in patch.items():
        fields.append(f"{k} = %s")
        params.append(v)
    params.append(str(product_id))
    with get_conn() as conn:
        set_actor_context(conn, profile["user_id"], profile["role"])
        with conn.cursor() as cur:
            cur.execute(
                f"""
                UPDATE products
                SET {', '.join(fields)}
                WHERE id = %s
                RETURNING id
                """,
                params,
            )
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="product not found")
            cur.execute(
                """
                INSERT INTO audit_logs (id, user_id, action, entity_type, entity_id, details)
                VALUES (gen_random_uuid(), %s, 'product_update', 'product', %s, %s::jsonb)
                """,
                (profile["user_id"], str(product_id), json.dumps(patch, default=str)),
            )
    json_log("info", "product.updated", product_id=str(product_id), fields=sorted(patch), user_id=profile["user_id"])
    return {"ok": True}
