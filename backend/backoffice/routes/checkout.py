# Overview: Flask API routes for checkout; validates storefront carts and opens Stripe sessions.

from flask import Blueprint, current_app, jsonify, request

from ..extensions import get_collaborators
from ..integrations.stripe_gateway import PaymentGatewayError
from ..services import checkout_service
from ..services.checkout_service import CheckoutValidationError
from ..validation import ConfigurationError, ValidationError


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


@checkout_bp.post("/sessions")
def create_session_route():
    """
    Open a checkout session for a cart.

    Request body:
    {
        "items": [{"sku": "BRK-001", "quantity": 1, "options": {"Size": "Large"}}],
        "customer_email": "ada@example.com",  (optional)
        "metadata": {"user_id": "42"},  (optional)
        "shipping_options": [{"shipping_rate": "shr_..."}]  (optional)
    }

    Returns:
        201: {"id": "cs_...", "url": "https://checkout.stripe.com/..."}
        409: items with missing selections, listed under "issues"
    """
    try:
        data = request.get_json(silent=True) or {}
        metadata = data.get("metadata")
        if metadata is not None and not isinstance(metadata, dict):
            return jsonify({"error": "metadata must be an object"}), 400

        session = checkout_service.create_checkout_session(
            data.get("items"),
            gateway=get_collaborators().gateway,
            customer_email=data.get("customer_email"),
            metadata=metadata,
            shipping_options=data.get("shipping_options"),
        )
        return jsonify(session), 201

    except CheckoutValidationError as e:
        return jsonify({"error": str(e), "issues": e.issues}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConfigurationError as e:
        return jsonify({"error": str(e)}), 503
    except PaymentGatewayError as e:
        return jsonify({"error": str(e)}), 502
    except Exception:
        current_app.logger.exception("Failed to create checkout session")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.post("/validate")
def validate_cart_route():
    """Enrich a cart against the catalog and report per-item issues."""
    try:
        data = request.get_json(silent=True) or {}
        cart = checkout_service.validate_cart(data.get("items"))
        return jsonify(cart.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to validate cart")
        return jsonify({"error": "Internal server error"}), 500
