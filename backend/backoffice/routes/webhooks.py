# Overview: Flask route receiving Stripe webhooks; verifies the signature before dispatching.

from flask import Blueprint, current_app, jsonify, request

from ..extensions import get_collaborators
from ..integrations.stripe_gateway import PaymentGatewayError, WebhookSignatureError, construct_webhook_event
from ..services import webhook_service
from ..validation import ConfigurationError, ValidationError


webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


@webhooks_bp.post("/stripe")
def stripe_webhook_route():
    """
    Stripe retries any non-2xx response. Malformed events get a 400; only
    configuration, upstream and unexpected failures are worth a retry.
    """
    collaborators = get_collaborators()
    try:
        event = construct_webhook_event(
            request.get_data(),
            request.headers.get("Stripe-Signature"),
            collaborators.settings.stripe_webhook_secret,
        )
    except WebhookSignatureError as e:
        return jsonify({"error": str(e)}), 400
    except ConfigurationError as e:
        return jsonify({"error": str(e)}), 503

    try:
        result = webhook_service.handle_event(
            event,
            gateway=collaborators.gateway,
            settings=collaborators.settings,
            shipstation=collaborators.shipstation,
        )
        return jsonify(result), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConfigurationError as e:
        return jsonify({"error": str(e)}), 503
    except PaymentGatewayError as e:
        return jsonify({"error": str(e)}), 502
    except Exception:
        current_app.logger.exception("Failed to handle Stripe event %s", event.get("id"))
        return jsonify({"error": "Internal server error"}), 500
