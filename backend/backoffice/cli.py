# Overview: Flask CLI command groups for order reprocessing, fulfillment sync and catalog import.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "backoffice:create_app".
# - Use: python -m flask <group> <command> [options]
#
# Orders:
# - python -m flask orders reprocess cs_live_... [--fulfill]
#   Reconcile a Stripe checkout session into its order (create or patch).
# - python -m flask orders sync-fulfillment 42 [--purchase-label]
#   Push order 42 to ShipStation (no-op when already synced).
# - python -m flask orders show ORD-123456
#   Print an order by order number.
#
# Catalog:
# - python -m flask catalog import products.json
#   Upsert catalog products from a JSON list (matched by id, then SKU).

import json

import click
from flask.cli import with_appcontext

from .extensions import db, get_collaborators
from .integrations.shipstation import FulfillmentProviderError
from .integrations.stripe_gateway import PaymentGatewayError
from .models import Order
from .services import catalog_import_service, fulfillment_service, order_service
from .services.catalog_import_service import CatalogImportError
from .services.fulfillment_service import FulfillmentValidationError
from .services.order_service import OrderNotFoundError, ReconciliationError
from .validation import ConfigurationError, ValidationError


@click.group("orders")
def orders_group():
    """Order reconciliation and fulfillment."""
    pass


@orders_group.command("reprocess")
@click.argument("session_id")
@click.option("--fulfill", is_flag=True, help="Push the order to ShipStation after reconciling")
@with_appcontext
def reprocess_session(session_id, fulfill):
    """Reconcile a checkout session into its order."""
    collaborators = get_collaborators()
    try:
        result = order_service.reconcile_session(
            session_id,
            gateway=collaborators.gateway,
            settings=collaborators.settings,
            shipstation=collaborators.shipstation,
            auto_fulfill=fulfill,
        )
    except (ValidationError, ConfigurationError, PaymentGatewayError, ReconciliationError) as e:
        raise click.ClickException(str(e))

    order = result.order
    action = "Created" if result.created else "Patched"
    click.echo(f"PASS {action} order {order.order_number} (ID: {order.id}) for {session_id}")
    click.echo(f"     status={order.status} payment={order.payment_status} total={order.total_amount}")
    for outcome in result.tasks:
        label = "FAIL" if outcome.status == "failed" else "    "
        detail = outcome.error or outcome.detail
        click.echo(f"{label} {outcome.name:<18} {outcome.status:<8} {detail if detail is not None else ''}")
    if result.catalog_degraded:
        click.echo("WARN  Catalog lookup failed; cart was stored without enrichment")


@orders_group.command("sync-fulfillment")
@click.argument("order_id", type=int)
@click.option("--purchase-label", is_flag=True, help="Also buy a label when carrier and service resolve")
@with_appcontext
def sync_fulfillment(order_id, purchase_label):
    """Push an order to ShipStation."""
    try:
        order = order_service.get_order(order_id)
        shipment_id = fulfillment_service.sync_order(
            order,
            get_collaborators().shipstation,
            purchase_label_after=purchase_label,
        )
    except FulfillmentValidationError as e:
        raise click.ClickException(f"{e} (missing: {', '.join(e.missing_fields)})")
    except (OrderNotFoundError, ConfigurationError, FulfillmentProviderError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Order {order.order_number} -> ShipStation order {shipment_id}")


@orders_group.command("show")
@click.argument("order_number")
@with_appcontext
def show_order(order_number):
    """Print one order as JSON."""
    order = db.session.query(Order).filter(Order.order_number == order_number.strip().upper()).first()
    if order is None:
        raise click.ClickException(f"Order {order_number} not found")
    click.echo(json.dumps(order.to_dict(), indent=2, default=str))


@click.group("catalog")
def catalog_group():
    """Catalog maintenance."""
    pass


@catalog_group.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def import_catalog(path):
    """Upsert products from a JSON export."""
    with open(path, encoding="utf-8") as handle:
        try:
            records = json.load(handle)
        except json.JSONDecodeError as e:
            raise click.ClickException(f"Invalid JSON: {e}")

    try:
        summary = catalog_import_service.import_products(records)
    except CatalogImportError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Imported catalog: {summary.created} created, {summary.updated} updated")
    for error in summary.errors:
        click.echo(f"WARN  Record {error['index']}: {error['error']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(orders_group)
    app.cli.add_command(catalog_group)
