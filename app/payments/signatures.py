"""
Inbound callback signature verification.

Two digest schemes are in use:

    md5:  md5(store_id + invoice_id + amount + secret)
    sha1: sha1(external_id + invoice_id + amount + secret)

Each gateway lists the schemes it accepts in
PAYMENT_GATEWAYS[...]["SIGNATURE_SCHEMES"]; a callback is authentic when
any listed scheme reproduces its ``sign`` field. md5 digests are compared
case-insensitively, sha1 digests exactly.

Development bypass:
    ALLOW_UNSIGNED_CALLBACKS lets unsigned or mis-signed callbacks through
    for local testing against a sandbox. It is ignored whenever
    settings.IS_PRODUCTION is true, and every use is logged on the
    ``payments.security`` logger.

Usage:
    from payments.signatures import SignatureVerifier

    verifier = SignatureVerifier.for_gateway("card_checkout")
    verifier.verify(
        invoice_id="PAY-PRO-4f1c2a9b8e7d",
        amount=45_500_000,
        sign=payload["sign"],
        store_id=payload.get("store_id"),
        external_id=payload.get("uuid"),
    )  # raises SignatureError on mismatch
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any

from django.conf import settings

from payments.exceptions import SignatureError

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("payments.security")


def _md5_digest(parts: dict[str, str], secret: str) -> str:
    message = f"{parts['store_id']}{parts['invoice_id']}{parts['amount']}{secret}"
    return hashlib.md5(message.encode("utf-8")).hexdigest()


def _sha1_digest(parts: dict[str, str], secret: str) -> str:
    message = f"{parts['external_id']}{parts['invoice_id']}{parts['amount']}{secret}"
    return hashlib.sha1(message.encode("utf-8")).hexdigest()


SIGNATURE_SCHEMES = {
    "md5": _md5_digest,
    "sha1": _sha1_digest,
}

CASE_INSENSITIVE_SCHEMES = frozenset({"md5"})


def compute_signature(scheme: str, secret: str, **parts: Any) -> str:
    """
    Digest a callback the way the gateway signs it.

    Missing parts are treated as empty strings. Also used by tests to
    build correctly signed fixtures.
    """
    digest = SIGNATURE_SCHEMES[scheme]
    values = {
        key: "" if parts.get(key) is None else str(parts[key])
        for key in ("store_id", "invoice_id", "amount", "external_id")
    }
    return digest(values, secret)


class SignatureVerifier:
    """
    Checks the ``sign`` field of callbacks from one gateway.

    Args:
        gateway: Gateway name, for logging
        secret: Shared callback secret
        schemes: Accepted scheme names, tried in order
        store_id: Fallback store id when the callback omits it
        allow_unsigned: Development bypass flag from configuration
        is_production: Deployment marker; disables the bypass when true
    """

    def __init__(
        self,
        gateway: str,
        secret: str,
        schemes: list[str],
        store_id: str = "",
        allow_unsigned: bool = False,
        is_production: bool = True,
    ):
        unknown = [scheme for scheme in schemes if scheme not in SIGNATURE_SCHEMES]
        if unknown:
            raise ValueError(f"Unknown signature scheme(s) for {gateway}: {unknown}")
        self.gateway = gateway
        self.secret = secret
        self.schemes = list(schemes)
        self.store_id = store_id
        self.allow_unsigned = allow_unsigned
        self.is_production = is_production

    @classmethod
    def for_gateway(cls, gateway: str, config: dict | None = None) -> SignatureVerifier:
        """Build a verifier from a PAYMENT_GATEWAYS entry."""
        if config is None:
            config = settings.PAYMENT_GATEWAYS.get(gateway, {})
        return cls(
            gateway=gateway,
            secret=config.get("CALLBACK_SECRET") or config.get("SECRET", ""),
            schemes=config.get("SIGNATURE_SCHEMES", []),
            store_id=str(config.get("STORE_ID", "")),
            allow_unsigned=bool(config.get("ALLOW_UNSIGNED_CALLBACKS", False)),
            is_production=settings.IS_PRODUCTION,
        )

    @property
    def bypass_enabled(self) -> bool:
        return self.allow_unsigned and not self.is_production

    def matching_scheme(
        self,
        sign: str,
        invoice_id: str,
        amount: Any,
        store_id: Any = None,
        external_id: Any = None,
    ) -> str | None:
        """Name of the first accepted scheme reproducing ``sign``, if any."""
        if not sign or not self.secret:
            return None
        received = str(sign).strip()
        for scheme in self.schemes:
            expected = compute_signature(
                scheme,
                self.secret,
                store_id=store_id if store_id not in (None, "") else self.store_id,
                invoice_id=invoice_id,
                amount=amount,
                external_id=external_id,
            )
            candidate = received.lower() if scheme in CASE_INSENSITIVE_SCHEMES else received
            if hmac.compare_digest(expected, candidate):
                return scheme
        return None

    def verify(
        self,
        sign: str,
        invoice_id: str,
        amount: Any,
        store_id: Any = None,
        external_id: Any = None,
    ) -> str:
        """
        Authenticate one callback.

        Returns:
            The matching scheme name, or "bypass" when the development
            bypass let the callback through

        Raises:
            SignatureError: No accepted scheme matched
        """
        scheme = self.matching_scheme(
            sign,
            invoice_id,
            amount,
            store_id=store_id,
            external_id=external_id,
        )
        if scheme is not None:
            logger.debug(
                "Callback signature verified",
                extra={"gateway": self.gateway, "invoice_id": invoice_id, "scheme": scheme},
            )
            return scheme

        if self.bypass_enabled:
            security_logger.warning(
                "Unsigned callback accepted by development bypass",
                extra={"gateway": self.gateway, "invoice_id": invoice_id, "has_sign": bool(sign)},
            )
            return "bypass"

        if self.allow_unsigned and self.is_production:
            security_logger.error(
                "ALLOW_UNSIGNED_CALLBACKS is set in production and was ignored",
                extra={"gateway": self.gateway},
            )

        security_logger.warning(
            "Callback signature rejected",
            extra={
                "gateway": self.gateway,
                "invoice_id": invoice_id,
                "external_id": external_id,
                "sign_prefix": str(sign or "")[:6],
            },
        )
        raise SignatureError(
            "Callback signature mismatch",
            details={"gateway": self.gateway, "invoice_id": invoice_id},
        )
