"""
mock_backend.py — Mock Implementation of the Hosted Storefront Backend (REST API)

This module provides a simulated backend for local runs of the settlement service.
It mimics the PostgREST-style endpoints the service calls and keeps all rows in
memory.

Simulation Scenarios:
    • Product IDs containing "OUT-OF-STOCK" → stock validation reports the item unavailable
    • Product IDs containing "RAISE" → stock routine raises (HTTP 400 with message)
    • Any other product → in stock

Endpoints:
    POST   /rest/v1/rpc/validate_stock_availability
    POST   /rest/v1/orders
    GET    /rest/v1/profiles
    PATCH  /rest/v1/profiles
    POST   /rest/v1/transactions
    DELETE /rest/v1/cart_items

Port:
    Default: 54321 (HTTP)
"""

import logging
import time
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

app = FastAPI(title="Mock Storefront Backend")
logging.basicConfig(level=logging.INFO)

ORDERS: List[dict] = []
TRANSACTIONS: List[dict] = []
CART_ITEMS: List[dict] = []
PROFILES: Dict[str, dict] = {
    "user-1": {"id": "user-1", "wallet_balance": "50000.00", "preferred_currency": "NGN"},
    "user-usd": {"id": "user-usd", "wallet_balance": "20000.00", "preferred_currency": "USD"},
}


class StockItem(BaseModel):
    product_id: str
    name: Optional[str] = None
    quantity: int


class StockRequest(BaseModel):
    order_items: List[StockItem]


def _eq(value: Optional[str]) -> Optional[str]:
    """Strips the PostgREST 'eq.' operator from a filter value."""
    if value is None:
        return None
    return value[3:] if value.startswith("eq.") else value


@app.post("/rest/v1/rpc/validate_stock_availability")
def validate_stock_availability(request: StockRequest):
    """
    Checks stock for every requested item.

    Returns:
        dict: ``{"available": true}`` or ``{"available": false, "unavailable": [...]}``,
        or HTTP 400 with a PostgREST error body if an item triggers the raising scenario.
    """
    unavailable = []
    for item in request.order_items:
        if "RAISE" in item.product_id:
            logging.warning(f"[BE] Stock routine raised for {item.product_id}.")
            return JSONResponse(status_code=400, content={"code": "P0001", "message": f"Insufficient stock for product {item.product_id}"})
        if "OUT-OF-STOCK" in item.product_id:
            unavailable.append({"product_id": item.product_id, "name": item.name,
                                "requested": item.quantity, "in_stock": 0})

    if unavailable:
        logging.warning(f"[BE] Unavailable items: {unavailable}")
        return {"available": False, "unavailable": unavailable}
    return {"available": True}


@app.post("/rest/v1/orders", status_code=201)
def insert_order(order: Dict[str, Any] = Body(...)):
    row = dict(order, id=str(uuid.uuid4()), created_at=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()))
    ORDERS.append(row)
    if row.get("payment_status") == "paid":
        # The real backend decrements stock in a trigger at this point
        logging.info(f"[BE] Order {row['id']} paid, stock decrement triggered.")
    return [row]


@app.get("/rest/v1/profiles")
def get_profiles(id: Optional[str] = Query(None), select: Optional[str] = Query(None)):
    profile = PROFILES.get(_eq(id))
    return [profile] if profile else []


@app.patch("/rest/v1/profiles")
def update_profiles(
        id: Optional[str] = Query(None),
        wallet_balance: Optional[str] = Query(None),
        changes: Dict[str, Any] = Body(...),
):
    profile = PROFILES.get(_eq(id))
    if profile is None:
        return []
    expected = _eq(wallet_balance)
    if expected is not None and Decimal(profile["wallet_balance"]) != Decimal(expected):
        logging.warning(f"[BE] Conditional update for {profile['id']} skipped, balance changed.")
        return []
    profile.update(changes)
    logging.info(f"[BE] Profile {profile['id']} updated: {changes}")
    return [profile]


@app.post("/rest/v1/transactions", status_code=201)
def insert_transaction(transaction: Dict[str, Any] = Body(...)):
    row = dict(transaction, id=str(uuid.uuid4()))
    TRANSACTIONS.append(row)
    logging.info(f"[BE] Ledger entry {row['id']} for reference {row.get('reference')}.")
    return [row]


@app.delete("/rest/v1/cart_items", status_code=204)
def delete_cart_items(user_id: Optional[str] = Query(None)):
    owner = _eq(user_id)
    CART_ITEMS[:] = [row for row in CART_ITEMS if row.get("user_id") != owner]
    logging.info(f"[BE] Cart of {owner} cleared.")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=54321)
