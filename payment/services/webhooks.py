import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from payment.exceptions import PaymentValidationError
from payment.models import WebhookLog
from .gateways import BaseGatewayAdapter, WebhookEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookVerdict:
    """
    Business acceptance of a webhook.

    The HTTP layer acknowledges every webhook with 200 regardless of the
    verdict so the gateway stops redelivering; ``accepted`` decides whether
    any ledger state may change.
    """

    accepted: bool
    event: Optional[WebhookEvent] = None
    reason: str = ""


class WebhookVerifier:
    def __init__(self, gateway: BaseGatewayAdapter) -> None:
        self.gateway = gateway

    def verify(self, raw_body: bytes, headers: Mapping[str, str], content_type: str = "") -> WebhookVerdict:
        if not self.gateway.verify_webhook(raw_body, headers, content_type):
            self._record_rejection(raw_body, content_type, "SIGNATURE_INVALID", headers)
            return WebhookVerdict(accepted=False, reason="Invalid signature")

        try:
            event = self.gateway.parse_webhook_event(raw_body, content_type)
        except PaymentValidationError as exc:
            self._record_rejection(raw_body, content_type, "MALFORMED_PAYLOAD", headers)
            return WebhookVerdict(accepted=False, reason=str(exc))

        if not event.tracker:
            self._record_rejection(raw_body, content_type, "MALFORMED_PAYLOAD", headers)
            return WebhookVerdict(accepted=False, reason="Webhook carries no transaction reference")

        return WebhookVerdict(accepted=True, event=event)

    def _record_rejection(self, raw_body, content_type: str, event_type: str, headers: Mapping[str, str]) -> None:
        payload = self._loggable_payload(raw_body, content_type)
        reference = str(payload.get("pp_TxnRefNo") or payload.get("tracker") or "")[:150]
        logger.warning(
            "Security event: %s webhook rejected (%s) reference=%s remote=%s",
            self.gateway.name,
            event_type,
            reference or "-",
            (headers or {}).get("X-Forwarded-For") or (headers or {}).get("Remote-Addr") or "-",
        )
        WebhookLog.objects.create(
            provider=self.gateway.name,
            event_type=event_type,
            reference=reference,
            payload=payload,
            processed=False,
            processing_attempts=1,
        )

    def _loggable_payload(self, raw_body, content_type: str) -> Dict[str, Any]:
        try:
            payload = self.gateway.parse_body(raw_body, content_type)
        except PaymentValidationError:
            body = raw_body.decode("utf-8", "replace") if isinstance(raw_body, bytes) else str(raw_body)
            return {"raw": body[:2000]}
        return payload
