"""
Flask routing layer for dsyncpay.

create_blueprint() exposes a gateway's operations as JSON endpoints that a
host application mounts with app.register_blueprint(). Routes exist only for
the providers the gateway has configured.
"""

import logging
from functools import wraps
from typing import Any, Callable, Dict, Iterable, Optional

from flask import Blueprint, Request, jsonify, redirect, request
from werkzeug.exceptions import HTTPException

from .core import PaymentGateway
from .exceptions import DSyncPayError, SignatureError, ValidationError
from .models import CanonicalStatus
from .utils import redact_message
from .webhooks import SIGNATURE_HEADER

logger = logging.getLogger(__name__)

Guard = Callable[[Request], Any]
Hook = Callable[[Request, Any], Any]

# camelCase spellings accepted in request bodies
_BODY_ALIASES = {
    "returnUrl": "return_url",
    "cancelUrl": "cancel_url",
    "redirectUrl": "redirect_url",
    "customId": "custom_id",
    "planId": "plan_id",
    "subscriptionId": "subscription_id",
}

_ORDER_FIELDS = ("title", "price", "quantity", "currency", "return_url", "cancel_url", "custom_id", "metadata", "description")
_PLAN_FIELDS = ("name", "price", "interval", "frequency", "currency", "description")
_SUBSCRIPTION_FIELDS = ("plan_id", "return_url", "cancel_url", "custom_id", "metadata")
_CHARGE_FIELDS = ("title", "price", "quantity", "currency", "redirect_url", "cancel_url", "metadata", "description")

_REDIRECT_TARGETS = {
    CanonicalStatus.COMPLETED: "success",
    CanonicalStatus.ACTIVE: "success",
    CanonicalStatus.CREATED: "success",
    CanonicalStatus.CANCELLED: "cancelled",
    CanonicalStatus.FAILED: "error",
}


def _error(error: str, status_code: int, **extra: Any):
    return jsonify({"ok": False, "error": error, **extra}), status_code


def _ok(result: Any = None):
    payload = {"ok": True}
    if result is not None:
        payload.update(result.to_dict())
    return jsonify(payload)


def _body(fields: Iterable[str], required: Iterable[str] = ()) -> Dict[str, Any]:
    """Read the JSON body, keeping known fields. Missing required fields come back as None."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", field="body")
    normalized = {_BODY_ALIASES.get(key, key): value for key, value in data.items()}
    body = {key: normalized[key] for key in fields if key in normalized}
    for key in required:
        body.setdefault(key, None)
    return body


def _guarded(guard: Optional[Guard]):
    """Run guard(request) before the view: falsy answers 403, raising answers 500."""

    def decorator(view):
        if guard is None:
            return view

        @wraps(view)
        def wrapper(*args, **kwargs):
            try:
                allowed = guard(request)
            except Exception:
                logger.exception("Request guard raised for %s", request.path)
                return _error("server_error", 500)
            if not allowed:
                logger.info("Request guard rejected %s", request.path)
                return _error("forbidden", 403)
            return view(*args, **kwargs)

        return wrapper

    return decorator


def create_blueprint(
    gateway: PaymentGateway,
    base_path: str = "/payments",
    can_create: Optional[Guard] = None,
    can_verify: Optional[Guard] = None,
    on_payment_create: Optional[Hook] = None,
    on_payment_verify: Optional[Hook] = None,
    redirects: Optional[Dict[str, str]] = None,
    name: str = "dsyncpay",
) -> Blueprint:
    """
    Build a blueprint serving the gateway's payment routes.

    Args:
        gateway: Configured PaymentGateway
        base_path: URL prefix for every route
        can_create: Guard for creation routes, called with the Flask request
        can_verify: Guard for verification and cancellation routes
        on_payment_create: Called with (request, result) after a successful creation
        on_payment_verify: Called with (request, result) after a successful verification
        redirects: Optional {"success", "cancelled", "error"} URLs. When given, the
            GET verify routes redirect to the URL for the canonical status
            instead of answering with JSON.
        name: Blueprint name, for mounting more than one gateway
    """
    bp = Blueprint(name, __name__, url_prefix=base_path.rstrip("/") or None)
    create_guard = _guarded(can_create)
    verify_guard = _guarded(can_verify)

    @bp.errorhandler(ValidationError)
    def _validation_error(e: ValidationError):
        return _error(e.message, 400, field=e.field)

    @bp.errorhandler(DSyncPayError)
    def _gateway_error(e: DSyncPayError):
        return _error(redact_message(e.message), 500, code=e.error_code)

    @bp.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        return _error(e.name.lower().replace(" ", "_"), e.code or 500)

    @bp.errorhandler(Exception)
    def _unexpected_error(e: Exception):
        logger.exception("Unhandled error in %s", request.path)
        return _error("server_error", 500)

    def _created(result: Any):
        if on_payment_create is not None:
            on_payment_create(request, result)
        return _ok(result)

    def _verified(verify: Callable[[str], Any], reference: str):
        try:
            result = verify(reference)
        except DSyncPayError:
            if redirects and redirects.get("error"):
                return redirect(redirects["error"])
            raise
        if on_payment_verify is not None:
            on_payment_verify(request, result)
        if redirects:
            target = redirects.get(_REDIRECT_TARGETS.get(result.status, "error")) or redirects.get("error")
            if target:
                return redirect(target)
        return _ok(result)

    if gateway.paypal is not None:
        paypal = gateway.paypal

        @bp.route("/paypal/order", methods=["POST"])
        @create_guard
        def paypal_create_order():
            return _created(paypal.create_order(**_body(_ORDER_FIELDS, required=("title", "price"))))

        @bp.route("/paypal/verify", methods=["GET"])
        @verify_guard
        def paypal_verify_order():
            order_id = request.args.get("token")
            if not order_id:
                return _error("missing_token", 400)
            return _verified(paypal.verify_order, order_id)

        @bp.route("/paypal/plan", methods=["POST"])
        @create_guard
        def paypal_create_plan():
            return _ok(paypal.create_plan(**_body(_PLAN_FIELDS, required=("name", "price"))))

        @bp.route("/paypal/subscription", methods=["POST"])
        @create_guard
        def paypal_create_subscription():
            return _created(paypal.create_subscription(**_body(_SUBSCRIPTION_FIELDS, required=("plan_id",))))

        @bp.route("/paypal/subscription/verify", methods=["GET"])
        @verify_guard
        def paypal_verify_subscription():
            subscription_id = request.args.get("subscription_id")
            if not subscription_id:
                return _error("missing_subscription_id", 400)
            return _verified(paypal.verify_subscription, subscription_id)

        @bp.route("/paypal/subscription/cancel", methods=["POST"])
        @verify_guard
        def paypal_cancel_subscription():
            body = _body(("subscription_id", "reason"))
            if not body.get("subscription_id"):
                return _error("missing_subscription_id", 400)
            return _ok(paypal.cancel_subscription(body["subscription_id"], body.get("reason")))

    if gateway.coinbase is not None:
        coinbase = gateway.coinbase

        @bp.route("/coinbase/charge", methods=["POST"])
        @create_guard
        def coinbase_create_charge():
            return _created(coinbase.create_charge(**_body(_CHARGE_FIELDS, required=("title", "price"))))

        @bp.route("/coinbase/verify", methods=["GET"])
        @verify_guard
        def coinbase_verify_charge():
            charge_code = request.args.get("code")
            if not charge_code:
                return _error("missing_code", 400)
            return _verified(coinbase.verify_charge, charge_code)

        if coinbase.webhook_secret:

            @bp.route("/webhook/coinbase", methods=["POST"])
            def coinbase_webhook():
                try:
                    coinbase.handle_webhook(request.get_data(), request.headers.get(SIGNATURE_HEADER))
                except SignatureError:
                    return _error("invalid_signature", 401)
                except ValidationError:
                    raise
                except DSyncPayError:
                    return _error("webhook_error", 500)
                return jsonify({"ok": True})

    logger.info("Created payment blueprint %s at %s", name, base_path)
    return bp
