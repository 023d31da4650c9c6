from __future__ import annotations

from ..extensions import db
from ..money import money_to_float
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer profile keyed by email.

    WHY: Order reconciliation keeps a snapshot of the latest purchase on the
    profile (address, last order, lifetime spend) so support staff can find
    a customer without scanning orders.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_customers_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=True)
    name = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    shipping_address = db.Column(db.JSON, nullable=True)

    # Denormalized aggregates (refreshed after each reconciled order)
    order_count = db.Column(db.Integer, nullable=False, default=0)
    lifetime_spend = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    last_order_number = db.Column(db.String(16), nullable=True)
    last_order_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "name": self.name,
            "phone": self.phone,
            "shipping_address": self.shipping_address,
            "order_count": self.order_count,
            "lifetime_spend": money_to_float(self.lifetime_spend),
            "last_order_number": self.last_order_number,
            "last_order_date": to_utc_z(self.last_order_date) if self.last_order_date else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
