from __future__ import annotations

from ..extensions import db
from ..money import money_to_float
from ..time_utils import to_utc_z


class Invoice(db.Model):
    """
    Invoice issued ahead of payment (quotes converted to checkout links).

    LIFECYCLE:
    1. draft / sent: created in the back office, may carry stripe_session_id
    2. paid: linked to the reconciled order once its session completes

    invoice_number and order_number share the order-number space: the order
    number resolver treats either column as "already used".
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        db.Index("ix_invoices_stripe_session", "stripe_session_id"),
        db.Index("ix_invoices_order_number", "order_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), nullable=False)
    order_number = db.Column(db.String(16), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="draft", index=True)  # draft, sent, paid, void

    customer_email = db.Column(db.String(255), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    total_amount = db.Column(db.Numeric(12, 2), nullable=True)

    stripe_session_id = db.Column(db.String(255), nullable=True)
    order_id = db.Column(db.Integer, nullable=True, index=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "order_number": self.order_number,
            "status": self.status,
            "customer_email": self.customer_email,
            "customer_name": self.customer_name,
            "total_amount": money_to_float(self.total_amount),
            "stripe_session_id": self.stripe_session_id,
            "order_id": self.order_id,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
