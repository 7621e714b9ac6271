from __future__ import annotations

import os
from typing import Any, Dict

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from craftshop.config import settings
from craftshop.utils.formatters import format_date


def _amount(v: Any) -> str:
    return f"{float(v):.{settings.decimals}f}"


def total_label(total: Any) -> str:
    # built-in PDF fonts lack most currency glyphs
    return f"TOTAL: {_amount(total)} {settings.currency_code}"


def generate_invoice_pdf(order: Dict[str, Any], company_name: str, out_dir: str | None = None) -> str:
    out_dir = out_dir or settings.export_dir
    os.makedirs(out_dir, exist_ok=True)

    filename = f"invoice_{order['order_number']}.pdf"
    path = os.path.join(out_dir, filename)

    c = canvas.Canvas(path, pagesize=A4)
    w, h = A4

    y = h - 50
    c.setFont("Helvetica-Bold", 14)
    c.drawString(40, y, f"{company_name} - INVOICE {order['order_number']}")
    y -= 20

    c.setFont("Helvetica", 11)
    c.drawString(40, y, f"Customer: {order.get('name', '')} <{order.get('email', '')}>")
    y -= 16
    address = ", ".join(p for p in (order.get("address"), order.get("city")) if p)
    c.drawString(40, y, f"Ship to: {address}")
    y -= 16
    c.drawString(40, y, f"Phone: {order.get('phone') or '-'}")
    y -= 16
    c.drawString(40, y, f"Date: {format_date(order.get('date'))}")
    y -= 16
    c.drawString(40, y, f"Status: {order.get('status', '')}")
    y -= 24

    # header
    c.setFont("Helvetica-Bold", 10)
    c.drawString(40, y, "Item")
    c.drawString(310, y, "Qty")
    c.drawString(360, y, "Price")
    c.drawString(440, y, "Total")
    y -= 10
    c.line(40, y, 550, y)
    y -= 16

    subtotal = 0.0
    c.setFont("Helvetica", 10)
    for it in order.get("items") or []:
        qty = int(it.get("quantity", 1))
        price = float(it.get("price", 0))
        line_total = round(qty * price, settings.decimals)
        subtotal = round(subtotal + line_total, settings.decimals)

        c.drawString(40, y, str(it.get("name", ""))[:45])
        c.drawRightString(340, y, str(qty))
        c.drawRightString(420, y, _amount(price))
        c.drawRightString(550, y, _amount(line_total))
        y -= 14
        if y < 80:
            c.showPage()
            y = h - 50
            c.setFont("Helvetica", 10)

    total = float(order.get("total") or 0)
    y -= 10
    c.line(40, y, 550, y)
    y -= 18
    c.drawRightString(550, y, f"Subtotal: {_amount(subtotal)}")
    y -= 14
    c.drawRightString(550, y, f"Shipping: {_amount(max(total - subtotal, 0))}")
    y -= 18
    c.setFont("Helvetica-Bold", 12)
    c.drawRightString(550, y, total_label(total))

    if order.get("notes"):
        y -= 30
        c.setFont("Helvetica", 10)
        c.drawString(40, y, f"Notes: {str(order['notes'])[:90]}")

    c.save()
    return path
