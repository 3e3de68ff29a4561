"""
Order helpers for the admin console and the profile order history.
"""
from datetime import datetime
from typing import Any, Dict, List

ORDER_STATUSES = ["pending", "completed", "shipped", "delivered", "cancelled"]
REVENUE_STATUSES = ("completed", "delivered")


def _display_date(created_at):
    if not created_at:
        return ""
    try:
        return datetime.fromisoformat(str(created_at).replace("Z", "+00:00")).strftime("%m/%d/%Y")
    except ValueError:
        return str(created_at)


def format_order(row: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten an order row joined with its profile and items."""
    profile = row.get("profiles") or {}
    items = row.get("order_items") or []
    return {
        "id": str(row["id"]),
        "customerEmail": profile.get("email") or "Unknown",
        "customerName": profile.get("full_name") or "Unknown",
        "items": len(items),
        "total": float(row.get("total") or 0),
        "status": row.get("status") or "pending",
        "date": _display_date(row.get("created_at")),
        "createdAt": row.get("created_at"),
    }


def filter_orders(orders: List[Dict[str, Any]], status: str = "all", search: str = "") -> List[Dict[str, Any]]:
    term = (search or "").lower()
    result = []
    for order in orders:
        if status and status != "all" and order["status"] != status:
            continue
        if term and not any(
            term in (order.get(key) or "").lower() for key in ("id", "customerEmail", "customerName")
        ):
            continue
        result.append(order)
    return result


def orders_for_customer(orders: List[Dict[str, Any]], email: str) -> List[Dict[str, Any]]:
    return [order for order in orders if order["customerEmail"] == email]


def total_revenue(orders: List[Dict[str, Any]]) -> float:
    return sum(order["total"] for order in orders if order["status"] in REVENUE_STATUSES)
