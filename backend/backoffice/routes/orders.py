# Overview: Flask API routes for order operations; parses input and returns JSON responses.

"""
Order API Routes

WHY: Back-office staff reprocess sessions that failed to reconcile, push
orders to ShipStation, issue refunds and print packing slips.

ERRORS:
- 400 invalid input / fulfillment preconditions / refund rules
- 404 unknown order or session
- 502 Stripe or ShipStation rejected the call
- 503 the needed collaborator is not configured
- 500 anything else (logged, no details returned)
"""

from flask import Blueprint, current_app, jsonify, request

from ..extensions import get_collaborators
from ..integrations.shipstation import FulfillmentProviderError
from ..integrations.stripe_gateway import PaymentGatewayError
from ..services import fulfillment_service, order_service, packing_slip_service, refund_service
from ..services.fulfillment_service import FulfillmentValidationError
from ..services.order_service import OrderNotFoundError, ReconciliationError
from ..services.refund_service import RefundError
from ..validation import ConfigurationError, ValidationError, coerce_positive_int


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


# =============================================================================
# RECONCILIATION
# =============================================================================

@orders_bp.post("/reprocess")
def reprocess_order_route():
    """
    Reconcile a checkout session into its order (create or patch).

    Request body:
    {
        "session_id": "cs_test_...",
        "auto_fulfill": false  (optional)
    }

    Returns:
        200: {"order": {...}, "created": bool, "tasks": [...]}
    """
    try:
        data = request.get_json(silent=True) or {}
        session_id = data.get("session_id")
        if not session_id or not isinstance(session_id, str):
            return jsonify({"error": "session_id required"}), 400

        collaborators = get_collaborators()
        result = order_service.reconcile_session(
            session_id,
            gateway=collaborators.gateway,
            settings=collaborators.settings,
            shipstation=collaborators.shipstation,
            auto_fulfill=bool(data.get("auto_fulfill")),
        )
        return jsonify(result.to_dict()), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConfigurationError as e:
        return jsonify({"error": str(e)}), 503
    except PaymentGatewayError as e:
        return jsonify({"error": str(e)}), 502
    except ReconciliationError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to reprocess session")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify({"order": order.to_dict()}), 200
    except OrderNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/by-session/<session_id>")
def get_order_by_session_route(session_id: str):
    try:
        order = order_service.require_order_by_session(session_id)
        return jsonify({"order": order.to_dict()}), 200
    except OrderNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load order by session")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/packing-slip")
def packing_slip_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify({"packing_slip": packing_slip_service.build_packing_slip(order)}), 200
    except OrderNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to build packing slip")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# FULFILLMENT
# =============================================================================

@orders_bp.post("/<int:order_id>/fulfillment")
def sync_fulfillment_route(order_id: int):
    """
    Push an order to ShipStation (no-op when already synced).

    Request body (optional):
    {
        "purchase_label": false
    }

    Returns:
        200: {"ship_station_order_id": "...", "order": {...}}
        400: shipping address incomplete (names the missing fields)
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.get_order(order_id)
        shipment_id = fulfillment_service.sync_order(
            order,
            get_collaborators().shipstation,
            purchase_label_after=bool(data.get("purchase_label")),
        )
        order = order_service.get_order(order_id)
        return jsonify({"ship_station_order_id": shipment_id, "order": order.to_dict()}), 200

    except OrderNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except FulfillmentValidationError as e:
        return jsonify({"error": str(e), "missing_fields": e.missing_fields}), 400
    except ConfigurationError as e:
        return jsonify({"error": str(e)}), 503
    except FulfillmentProviderError as e:
        return jsonify({"error": str(e), "status_code": e.status_code}), 502
    except Exception:
        current_app.logger.exception("Failed to sync order to ShipStation")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# REFUNDS
# =============================================================================

@orders_bp.post("/<int:order_id>/refund")
def refund_order_route(order_id: int):
    """
    Refund an order through Stripe.

    Request body (optional):
    {
        "amount_cents": 1500,  (omit for a full refund)
        "reason": "requested_by_customer"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        amount_cents = None
        if data.get("amount_cents") is not None:
            amount_cents = coerce_positive_int(data.get("amount_cents"))
            if amount_cents is None:
                return jsonify({"error": "amount_cents must be a positive integer"}), 400

        result = refund_service.issue_refund(
            order_id,
            gateway=get_collaborators().gateway,
            amount_cents=amount_cents,
            reason=data.get("reason"),
        )
        return jsonify(result), 200

    except OrderNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except RefundError as e:
        return jsonify({"error": str(e)}), 400
    except ConfigurationError as e:
        return jsonify({"error": str(e)}), 503
    except PaymentGatewayError as e:
        return jsonify({"error": str(e)}), 502
    except Exception:
        current_app.logger.exception("Failed to refund order")
        return jsonify({"error": "Internal server error"}), 500
