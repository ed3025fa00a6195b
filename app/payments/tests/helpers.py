"""
Test helpers for building gateway callbacks and HTTP responses.

Usage:
    from payments.tests.helpers import signed_callback

    payload = signed_callback(txn, "success")
    client.post(url, payload, content_type="application/json")
"""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import requests

from payments.signatures import compute_signature

CARD_CHECKOUT_CALLBACK_SECRET = "cc-callback-secret"
CARD_CHECKOUT_STORE_ID = "6"
INVOICE_QR_CALLBACK_SECRET = "qr-callback-secret"
INVOICE_QR_STORE_ID = "qr-store-42"

TEST_GATEWAYS = {
    "card_checkout": {
        "BASE_URL": "https://card-checkout.test",
        "APPLICATION_ID": "app-id",
        "SECRET": "cc-secret",
        "STORE_ID": CARD_CHECKOUT_STORE_ID,
        "CALLBACK_SECRET": CARD_CHECKOUT_CALLBACK_SECRET,
        "SIGNATURE_SCHEMES": ["md5", "sha1"],
        "ALLOW_UNSIGNED_CALLBACKS": False,
        "ACK_UNKNOWN_INVOICES": True,
        "TOKEN_EXPIRY_TZ_OFFSET_HOURS": 5,
    },
    "invoice_qr": {
        "BASE_URL": "https://invoice-qr.test",
        "CLIENT_ID": "client-id",
        "SECRET": "qr-secret",
        "STORE_ID": INVOICE_QR_STORE_ID,
        "CALLBACK_SECRET": INVOICE_QR_CALLBACK_SECRET,
        "SIGNATURE_SCHEMES": ["sha1"],
        "ALLOW_UNSIGNED_CALLBACKS": False,
        "ACK_UNKNOWN_INVOICES": False,
    },
}


def signed_callback(
    txn,
    status: str,
    scheme: str | None = None,
    amount: int | None = None,
    camel_case: bool | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """
    Build a callback body for ``txn`` signed the way its gateway signs.

    card_checkout callbacks default to md5 with snake_case fields,
    invoice_qr callbacks to sha1 with camelCase fields.
    """
    config = TEST_GATEWAYS[txn.gateway]
    scheme = scheme or config["SIGNATURE_SCHEMES"][0]
    amount = txn.amount_minor_units if amount is None else amount
    if camel_case is None:
        camel_case = txn.gateway == "invoice_qr"

    sign = compute_signature(
        scheme,
        config["CALLBACK_SECRET"],
        store_id=config["STORE_ID"],
        invoice_id=txn.internal_invoice_id,
        amount=amount,
        external_id=txn.external_id,
    )
    if camel_case:
        payload = {
            "storeId": config["STORE_ID"],
            "invoiceId": txn.internal_invoice_id,
            "externalId": txn.external_id,
            "status": status,
            "amount": amount,
            "sign": sign,
        }
    else:
        payload = {
            "store_id": config["STORE_ID"],
            "invoice_id": txn.internal_invoice_id,
            "uuid": txn.external_id,
            "status": status,
            "amount": amount,
            "sign": sign,
        }
    payload.update(extra)
    return payload


def gateway_response(status_code: int = 200, body: Any = None, data: Any = None) -> MagicMock:
    """
    Fake requests.Response.

    Pass ``data`` to wrap it in a success envelope, or ``body`` for the
    literal JSON body.
    """
    if body is None:
        body = {"success": True, "data": data if data is not None else {}}
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.ok = status_code < 400
    response.json.return_value = body
    response.text = str(body)
    return response
