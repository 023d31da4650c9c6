# Overview: Service-layer operations for invoices; links a pre-issued invoice to the order its session produced.

from __future__ import annotations

from ..extensions import db
from ..models import Invoice, Order
from ..models.orders import ORDER_STATUS_PAID
from ..time_utils import utcnow
from .concurrency import run_with_retry


INVOICE_STATUS_PAID = "paid"


def find_invoice_for_order(order: Order, invoice_hint: str | None = None) -> Invoice | None:
    """By explicit invoice id (or invoice number) first, else by stored session id."""
    if invoice_hint:
        hint = str(invoice_hint).strip()
        if hint.isdigit():
            invoice = db.session.get(Invoice, int(hint))
            if invoice is not None:
                return invoice
        invoice = db.session.query(Invoice).filter(Invoice.invoice_number == hint).first()
        if invoice is not None:
            return invoice
    if order.stripe_session_id:
        return (
            db.session.query(Invoice)
            .filter(Invoice.stripe_session_id == order.stripe_session_id)
            .order_by(Invoice.id.asc())
            .first()
        )
    return None


def link_invoice(order: Order, invoice_hint: str | None = None) -> dict | None:
    def _op():
        invoice = find_invoice_for_order(order, invoice_hint)
        if invoice is None:
            return None
        current = db.session.get(Order, order.id)

        invoice.order_id = current.id
        if not invoice.order_number:
            invoice.order_number = current.order_number
        if not invoice.stripe_session_id:
            invoice.stripe_session_id = current.stripe_session_id
        if current.status == ORDER_STATUS_PAID and invoice.status != INVOICE_STATUS_PAID:
            invoice.status = INVOICE_STATUS_PAID
            invoice.paid_at = utcnow()
        current.invoice_id = invoice.id
        db.session.commit()
        return {"invoice_id": invoice.id, "invoice_number": invoice.invoice_number}

    return run_with_retry(_op)
