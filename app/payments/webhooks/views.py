"""
Webhook endpoint views for the payment gateways.

Both endpoints answer synchronously: the processor's work per callback is
one locked row update, so there is nothing to queue.

Response policy:
    - 200 {success: true}: event applied, already applied, or transient
    - 200 / 404 for unknown invoices, per gateway ACK_UNKNOWN_INVOICES
    - 400: payload failed structural validation
    - 403: signature mismatch
    - 200 with success=false: anything that went wrong on our side, so
      the gateway does not start a retry storm (the error is logged)

Every delivery is written to WebhookEvent for audit.

Usage:
    # In urls.py
    from payments.webhooks.views import card_binding_webhook, payment_webhook

    urlpatterns = [
        path("webhooks/<str:gateway>/", payment_webhook, name="payment_webhook"),
        path("webhooks/<str:gateway>/card-binding/", card_binding_webhook, name="card_binding_webhook"),
    ]
"""

from __future__ import annotations

import json
import logging
from typing import Any

from django.conf import settings
from django.db import DatabaseError
from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.exceptions import PaymentValidationError, SignatureError, TransactionNotFoundError
from payments.models import CardBindingSession, WebhookEvent
from payments.serializers import CardBindingCallbackSerializer, normalize_callback_payload
from payments.services import PaymentService, TransactionProcessor
from payments.state_machines import WebhookOutcome

logger = logging.getLogger(__name__)


def _parse_body(request: HttpRequest) -> Any:
    """JSON body, or form fields for gateways that post urlencoded callbacks."""
    if request.content_type == "application/json" or not request.POST:
        try:
            return json.loads(request.body or b"{}")
        except (ValueError, UnicodeDecodeError):
            return None
    return request.POST.dict()


def _ack_unknown(gateway: str) -> bool:
    return bool(settings.PAYMENT_GATEWAYS.get(gateway, {}).get("ACK_UNKNOWN_INVOICES", False))


def _respond(
    gateway: str,
    kind: str,
    payload: Any,
    outcome: str,
    status: int,
    error_code: str = "",
    error_message: str = "",
) -> JsonResponse:
    """Record the delivery and build the answer."""
    fields = normalize_callback_payload(payload) if isinstance(payload, dict) else {}
    try:
        WebhookEvent.objects.create(
            gateway=gateway,
            kind=kind,
            invoice_id=str(fields.get("invoice_id") or fields.get("session_id") or "")[:64],
            external_id=str(fields.get("external_id") or "")[:128],
            provider_status=str(fields.get("status") or "")[:32],
            payload=payload if isinstance(payload, dict) else {"body": payload},
            outcome=outcome,
            response_status=status,
            error_message=error_message,
        )
    except DatabaseError:
        logger.exception(
            "Failed to record webhook event",
            extra={"gateway": gateway, "outcome": outcome},
        )

    body: dict[str, Any] = {
        "success": outcome
        in (WebhookOutcome.APPLIED, WebhookOutcome.ALREADY_PROCESSED, WebhookOutcome.IGNORED_TRANSIENT),
        "outcome": outcome,
    }
    if error_code:
        body["error"] = {"code": error_code, "details": error_message}
    return JsonResponse(body, status=status)


def _not_found(gateway: str, kind: str, payload: Any, exc: TransactionNotFoundError) -> JsonResponse:
    logger.warning(exc.message, extra={"gateway": gateway, **exc.details})
    return _respond(
        gateway,
        kind,
        payload,
        WebhookOutcome.NOT_FOUND,
        200 if _ack_unknown(gateway) else exc.http_status,
        error_code=exc.error_code,
        error_message=exc.message,
    )


def _get_session(gateway: str, session_id: str) -> CardBindingSession:
    """
    Raises:
        TransactionNotFoundError: No session with this id on this gateway
    """
    session = CardBindingSession.objects.filter(gateway=gateway, session_id=session_id).first()
    if session is None:
        raise TransactionNotFoundError(
            "No card binding session matches this callback",
            details={"session_id": session_id},
        )
    return session


@csrf_exempt
@require_POST
def payment_webhook(request: HttpRequest, gateway: str) -> JsonResponse:
    """
    Receive a payment status callback.

    Signature and structure are checked before the transaction row is
    touched; see TransactionProcessor.handle_callback for the rest.
    """
    kind = "payment"
    if gateway not in settings.PAYMENT_GATEWAYS:
        logger.warning("Callback for unknown gateway", extra={"gateway": gateway})
        return JsonResponse(
            {"success": False, "error": {"code": "UNKNOWN_GATEWAY", "details": gateway}},
            status=404,
        )

    payload = _parse_body(request)
    if not isinstance(payload, dict):
        logger.warning("Callback body is not a JSON object", extra={"gateway": gateway})
        return _respond(
            gateway,
            kind,
            payload,
            WebhookOutcome.INVALID,
            400,
            error_code="INVALID_CALLBACK",
            error_message="Body must be a JSON object",
        )

    try:
        result = TransactionProcessor.handle_callback(gateway, payload)
    except SignatureError as exc:
        return _respond(
            gateway, kind, payload, WebhookOutcome.REJECTED, 403,
            error_code=exc.error_code, error_message=exc.message,
        )
    except PaymentValidationError as exc:
        logger.warning(
            "Invalid callback payload",
            extra={"gateway": gateway, "error_code": exc.error_code, "details": exc.details},
        )
        return _respond(
            gateway, kind, payload, WebhookOutcome.INVALID, 400,
            error_code=exc.error_code, error_message=json.dumps(exc.details, default=str),
        )
    except Exception as exc:
        logger.exception("Callback processing failed", extra={"gateway": gateway})
        return _respond(
            gateway, kind, payload, WebhookOutcome.ERROR, 200,
            error_code="PROCESSING_ERROR", error_message=f"{type(exc).__name__}: {exc}",
        )

    if result.outcome == WebhookOutcome.NOT_FOUND:
        fields = normalize_callback_payload(payload)
        return _not_found(
            gateway,
            kind,
            payload,
            TransactionNotFoundError(
                "No transaction matches this callback",
                details={"invoice_id": fields.get("invoice_id"), "external_id": fields.get("external_id")},
            ),
        )

    if result.outcome == WebhookOutcome.AMOUNT_MISMATCH:
        return _respond(
            gateway, kind, payload, result.outcome, 200,
            error_code="AMOUNT_MISMATCH",
            error_message="Reported amount differs from the invoice amount",
        )

    return _respond(gateway, kind, payload, result.outcome, 200)


@csrf_exempt
@require_POST
def card_binding_webhook(request: HttpRequest, gateway: str) -> JsonResponse:
    """
    Receive a card binding callback.

    The body only identifies the session. Its result and the card data
    are read back from the gateway by PaymentService.sync_card_binding.
    """
    kind = "card_binding"
    if gateway not in settings.PAYMENT_GATEWAYS:
        logger.warning("Card binding callback for unknown gateway", extra={"gateway": gateway})
        return JsonResponse(
            {"success": False, "error": {"code": "UNKNOWN_GATEWAY", "details": gateway}},
            status=404,
        )

    payload = _parse_body(request)
    serializer = CardBindingCallbackSerializer(data=payload)
    if not serializer.is_valid():
        return _respond(
            gateway, kind, payload, WebhookOutcome.INVALID, 400,
            error_code="INVALID_CALLBACK", error_message=json.dumps(serializer.errors, default=str),
        )

    session_id = serializer.validated_data["session_id"]
    try:
        session = _get_session(gateway, session_id)
    except TransactionNotFoundError as exc:
        return _not_found(gateway, kind, payload, exc)

    was_terminal = session.is_terminal
    try:
        result = PaymentService.sync_card_binding(session, payload=payload)
    except Exception as exc:
        logger.exception(
            "Card binding callback processing failed",
            extra={"gateway": gateway, "session_id": session_id},
        )
        return _respond(
            gateway, kind, payload, WebhookOutcome.ERROR, 200,
            error_code="PROCESSING_ERROR", error_message=f"{type(exc).__name__}: {exc}",
        )

    if not result.success:
        logger.error(
            "Card binding status could not be read back",
            extra={"gateway": gateway, "session_id": session_id, "error_code": result.error_code},
        )
        return _respond(
            gateway, kind, payload, WebhookOutcome.ERROR, 200,
            error_code=result.error_code or "GATEWAY_ERROR", error_message=result.error or "",
        )

    if was_terminal:
        outcome = WebhookOutcome.ALREADY_PROCESSED
    elif result.data.is_terminal:
        outcome = WebhookOutcome.APPLIED
    else:
        outcome = WebhookOutcome.IGNORED_TRANSIENT
    return _respond(gateway, kind, payload, outcome, 200)
