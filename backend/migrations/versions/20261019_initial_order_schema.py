"""Initial back-office schema: customers, invoices, products, orders

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(128), nullable=True),
        sa.Column("last_name", sa.String(128), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("shipping_address", sa.JSON(), nullable=True),
        sa.Column("order_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("lifetime_spend", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("last_order_number", sa.String(16), nullable=True),
        sa.Column("last_order_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_customers_email"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("invoice_number", sa.String(32), nullable=False),
        sa.Column("order_number", sa.String(16), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("stripe_session_id", sa.String(255), nullable=True),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("invoices", schema=None) as batch_op:
        batch_op.create_index("ix_invoices_stripe_session", ["stripe_session_id"], unique=False)
        batch_op.create_index("ix_invoices_order_number", ["order_number"], unique=False)
        batch_op.create_index("ix_invoices_status", ["status"], unique=False)
        batch_op.create_index("ix_invoices_order_id", ["order_id"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.String(96), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("slug", sa.String(96), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("stripe_product_id", sa.String(255), nullable=True),
        sa.Column("stripe_price_id", sa.String(255), nullable=True),
        sa.Column("stripe_default_price_id", sa.String(255), nullable=True),
        sa.Column("stripe_price_ids", sa.JSON(), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=True),
        sa.Column("product_type", sa.String(32), nullable=True),
        sa.Column("categories", sa.JSON(), nullable=True),
        sa.Column("shipping_weight", sa.Float(), nullable=True),
        sa.Column("shipping_length", sa.Float(), nullable=True),
        sa.Column("shipping_width", sa.Float(), nullable=True),
        sa.Column("shipping_height", sa.Float(), nullable=True),
        sa.Column("box_dimensions", sa.String(64), nullable=True),
        sa.Column("shipping_class", sa.String(64), nullable=True),
        sa.Column("requires_shipping", sa.Boolean(), nullable=True),
        sa.Column("option_requirements", sa.JSON(), nullable=True),
        sa.Column("customization_requirements", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_sku", ["sku"], unique=False)
        batch_op.create_index("ix_products_slug", ["slug"], unique=False)
        batch_op.create_index("ix_products_stripe_price", ["stripe_price_id"], unique=False)
        batch_op.create_index("ix_products_stripe_product", ["stripe_product_id"], unique=False)
        batch_op.create_index("ix_products_is_active", ["is_active"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("stripe_session_id", sa.String(255), nullable=False),
        sa.Column("order_number", sa.String(16), nullable=False),
        sa.Column("slug", sa.String(96), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.String(255), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="paid"),
        sa.Column("payment_status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("stripe_checkout_status", sa.String(32), nullable=True),
        sa.Column("stripe_checkout_mode", sa.String(32), nullable=True),
        sa.Column("stripe_payment_intent_status", sa.String(32), nullable=True),
        sa.Column("checkout_draft", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.String(8), nullable=True),
        sa.Column("amount_subtotal", sa.Numeric(12, 2), nullable=True),
        sa.Column("amount_tax", sa.Numeric(12, 2), nullable=True),
        sa.Column("amount_shipping", sa.Numeric(12, 2), nullable=True),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("payment_intent_id", sa.String(255), nullable=True),
        sa.Column("charge_id", sa.String(255), nullable=True),
        sa.Column("card_brand", sa.String(32), nullable=True),
        sa.Column("card_last4", sa.String(4), nullable=True),
        sa.Column("receipt_url", sa.String(1024), nullable=True),
        sa.Column("cart", sa.JSON(), nullable=False),
        sa.Column("shipping_address", sa.JSON(), nullable=True),
        sa.Column("weight", sa.JSON(), nullable=True),
        sa.Column("dimensions", sa.JSON(), nullable=True),
        sa.Column("shipping_carrier", sa.String(64), nullable=True),
        sa.Column("selected_service", sa.JSON(), nullable=True),
        sa.Column("shipping_service_code", sa.String(128), nullable=True),
        sa.Column("shipping_service_name", sa.String(255), nullable=True),
        sa.Column("shipping_delivery_days", sa.Integer(), nullable=True),
        sa.Column("shipping_estimated_delivery_date", sa.String(32), nullable=True),
        sa.Column("shipping_metadata", sa.JSON(), nullable=True),
        sa.Column("amount_refunded", sa.Numeric(12, 2), nullable=True),
        sa.Column("last_refund_id", sa.String(255), nullable=True),
        sa.Column("last_refund_status", sa.String(32), nullable=True),
        sa.Column("last_refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ship_station_order_id", sa.String(64), nullable=True),
        sa.Column("tracking_number", sa.String(128), nullable=True),
        sa.Column("shipping_label_url", sa.String(1024), nullable=True),
        sa.Column("fulfillment_status", sa.String(32), nullable=False, server_default="unfulfilled"),
        sa.Column("fulfillment_notes", sa.Text(), nullable=True),
        sa.Column("packing_slip_url", sa.String(1024), nullable=True),
        sa.Column("invoice_id", sa.Integer(), nullable=True),
        sa.Column("webhook_notified", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("stripe_last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stripe_session_id", name="uq_orders_stripe_session"),
        sa.UniqueConstraint("order_number", name="uq_orders_order_number"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.create_index("ix_orders_status_created", ["status", "created_at"], unique=False)
        batch_op.create_index("ix_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_orders_customer_email", ["customer_email"], unique=False)
        batch_op.create_index("ix_orders_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_orders_payment_intent_id", ["payment_intent_id"], unique=False)
        batch_op.create_index("ix_orders_charge_id", ["charge_id"], unique=False)
        batch_op.create_index("ix_orders_invoice_id", ["invoice_id"], unique=False)


def downgrade():
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.drop_index("ix_orders_invoice_id")
        batch_op.drop_index("ix_orders_charge_id")
        batch_op.drop_index("ix_orders_payment_intent_id")
        batch_op.drop_index("ix_orders_customer_id")
        batch_op.drop_index("ix_orders_customer_email")
        batch_op.drop_index("ix_orders_status")
        batch_op.drop_index("ix_orders_status_created")
    op.drop_table("orders")

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.drop_index("ix_products_is_active")
        batch_op.drop_index("ix_products_stripe_product")
        batch_op.drop_index("ix_products_stripe_price")
        batch_op.drop_index("ix_products_slug")
        batch_op.drop_index("ix_products_sku")
    op.drop_table("products")

    with op.batch_alter_table("invoices", schema=None) as batch_op:
        batch_op.drop_index("ix_invoices_order_id")
        batch_op.drop_index("ix_invoices_status")
        batch_op.drop_index("ix_invoices_order_number")
        batch_op.drop_index("ix_invoices_stripe_session")
    op.drop_table("invoices")

    op.drop_table("customers")
