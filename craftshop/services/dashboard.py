from typing import Any, Dict, List

from craftshop.constants import ORDER_PROCESSING


def dashboard_stats(orders: List[Dict[str, Any]], products: List[Dict[str, Any]], recent: int = 5) -> Dict[str, Any]:
    revenue = 0.0
    for o in orders:
        revenue = round(revenue + float(o.get("total") or 0), 2)

    latest = sorted(orders, key=lambda o: o.get("date") or "", reverse=True)[:recent]
    return {
        "total_orders": len(orders),
        "total_products": len(products),
        "total_revenue": revenue,
        "pending_orders": sum(1 for o in orders if o.get("status") == ORDER_PROCESSING),
        "recent_orders": latest,
        "recent_products": products[:recent],
    }
