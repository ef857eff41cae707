from __future__ import annotations

import hashlib
import hmac
import json
import logging
import os
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import parse_qsl, urlencode

import requests
from django.conf import settings
from django.utils import timezone

from payment.exceptions import (
    GatewayRejected,
    GatewayUnavailable,
    PaymentConfigurationError,
    PaymentValidationError,
)

logger = logging.getLogger(__name__)

SUCCESS = "SUCCESS"
FAILED = "FAILED"
PENDING = "PENDING"

DEFAULT_TIMEOUT = 30
REDACTED = "***"


def to_minor_units(amount: Any) -> int:
    """Convert a PKR amount to paisa. This is the only rounding point for outbound amounts."""
    try:
        dec = Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise PaymentValidationError(f"Invalid amount: {amount!r}") from exc
    if not dec.is_finite():
        raise PaymentValidationError(f"Invalid amount: {amount!r}")
    return int((dec * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(value: Any) -> Optional[Decimal]:
    try:
        return (Decimal(str(value)) / 100).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError, TypeError):
        return None


def sha256_upper(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest().upper()


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def signatures_match(expected: str, received: Any) -> bool:
    if not isinstance(received, str) or not received.strip():
        return False
    return hmac.compare_digest(
        expected.strip().upper().encode("utf-8"),
        received.strip().upper().encode("utf-8"),
    )


def numeric_reference(value: Any, prefix: str) -> str:
    """Short letter-prefixed number derived from an id; gateways reject CNIC-like pure digits."""
    if not value:
        return f"{prefix}0"
    digest = hashlib.md5(str(value).encode("utf-8")).hexdigest()
    return f"{prefix}{int(digest[:8], 16)}"


def _timeout_setting() -> int:
    return int(getattr(settings, "PAYMENT_GATEWAY_TIMEOUT", DEFAULT_TIMEOUT) or DEFAULT_TIMEOUT)


def _get_setting(key: str, required: bool = True) -> str:
    value = getattr(settings, key, None) or os.getenv(key)
    if required and not value:
        raise PaymentConfigurationError(
            f"Missing payment configuration: {key}. Set it in Django settings or environment variables."
        )
    return value or ""


def _get_bool_setting(key: str, default: bool = False) -> bool:
    value = getattr(settings, key, None)
    if value is None:
        raw_env = os.getenv(key)
        if raw_env is None:
            return default
        value = raw_env

    if isinstance(value, bool):
        return value

    return str(value).strip().lower() in {"1", "true", "yes", "on"}


# -----------------------------
# Value objects
# -----------------------------
@dataclass(frozen=True)
class GatewaySession:
    payment_url: str
    session_token: str
    transaction_ref: str
    form_fields: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookEvent:
    tracker: str
    amount: Optional[Decimal]
    currency: str
    status: str  # paid | failed | pending
    metadata: Dict[str, Any]
    timestamp: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def payment_status(self) -> str:
        return {"paid": SUCCESS, "failed": FAILED}.get(self.status, PENDING)


@dataclass(frozen=True)
class InquiryResult:
    reference: str
    status: str  # SUCCESS | FAILED | PENDING
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class JazzCashConfig:
    merchant_id: str
    password: str
    integrity_salt: str
    return_url: str = ""
    sandbox: bool = True
    timeout: int = DEFAULT_TIMEOUT

    SANDBOX_BASE_URL = "https://sandbox.jazzcash.com.pk"
    PRODUCTION_BASE_URL = "https://payments.jazzcash.com.pk"

    @property
    def base_url(self) -> str:
        return self.SANDBOX_BASE_URL if self.sandbox else self.PRODUCTION_BASE_URL

    @classmethod
    def from_settings(cls) -> "JazzCashConfig":
        return cls(
            merchant_id=_get_setting("JAZZCASH_MERCHANT_ID"),
            password=_get_setting("JAZZCASH_PASSWORD"),
            integrity_salt=_get_setting("JAZZCASH_INTEGRITY_SALT"),
            return_url=_get_setting("JAZZCASH_RETURN_URL", required=False),
            sandbox=_get_bool_setting("JAZZCASH_SANDBOX", default=True),
            timeout=_timeout_setting(),
        )


@dataclass(frozen=True)
class SafepayConfig:
    api_key: str
    secret_key: str
    webhook_secret: str
    success_url: str = ""
    cancel_url: str = ""
    sandbox: bool = True
    timeout: int = DEFAULT_TIMEOUT

    SANDBOX_BASE_URL = "https://sandbox.api.getsafepay.com"
    PRODUCTION_BASE_URL = "https://api.getsafepay.com"

    @property
    def base_url(self) -> str:
        return self.SANDBOX_BASE_URL if self.sandbox else self.PRODUCTION_BASE_URL

    @property
    def environment(self) -> str:
        return "sandbox" if self.sandbox else "production"

    @classmethod
    def from_settings(cls) -> "SafepayConfig":
        return cls(
            api_key=_get_setting("SAFEPAY_API_KEY"),
            secret_key=_get_setting("SAFEPAY_SECRET_KEY"),
            webhook_secret=_get_setting("SAFEPAY_WEBHOOK_SECRET"),
            success_url=_get_setting("SAFEPAY_SUCCESS_URL", required=False),
            cancel_url=_get_setting("SAFEPAY_CANCEL_URL", required=False),
            sandbox=_get_bool_setting("SAFEPAY_SANDBOX", default=True),
            timeout=_timeout_setting(),
        )


@dataclass(frozen=True)
class TransferConfig:
    name: str
    url: str
    api_key: str = ""
    timeout: int = DEFAULT_TIMEOUT

    @classmethod
    def from_settings(cls, name: str) -> "TransferConfig":
        prefix = name.upper()
        return cls(
            name=name,
            url=_get_setting(f"{prefix}_PAYOUT_URL", required=False),
            api_key=_get_setting(f"{prefix}_PAYOUT_API_KEY", required=False),
            timeout=_timeout_setting(),
        )


# -----------------------------
# Adapters
# -----------------------------
class BaseGatewayAdapter:
    """
    Common HTTP plumbing for gateway adapters.

    Every outbound call carries the configured timeout. Network errors,
    timeouts and 5xx answers become GatewayUnavailable because the outcome
    is unknown; 4xx answers become GatewayRejected.
    """

    name = ""

    def __init__(self, config) -> None:
        self.config = config

    def create_session(self, amount, buyer_id, item_id, seller_id, return_url=None, metadata=None) -> GatewaySession:
        raise NotImplementedError

    def verify_callback(self, payload: Mapping[str, Any]) -> bool:
        raise NotImplementedError

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str], content_type: str = "") -> bool:
        raise NotImplementedError

    def parse_webhook_event(self, raw_body, content_type: str = "") -> WebhookEvent:
        raise NotImplementedError

    def callback_result(self, payload: Mapping[str, Any]) -> Tuple[str, Optional[str]]:
        """Return (reference, status) for a verified browser return; status None means ask inquire()."""
        raise NotImplementedError

    def inquire(self, reference: str) -> InquiryResult:
        raise NotImplementedError

    def disburse(self, reference: str, account: str, amount: Decimal, description: str) -> str:
        raise GatewayRejected(f"{self.name} does not support disbursements")

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            response = getattr(requests, method)(url, timeout=self.config.timeout, **kwargs)
        except requests.Timeout as exc:
            logger.warning("%s %s timed out after %ss", self.name, url, self.config.timeout)
            raise GatewayUnavailable(f"{self.name} did not respond in time") from exc
        except requests.RequestException as exc:
            logger.warning("%s %s request failed: %s", self.name, url, exc)
            raise GatewayUnavailable(f"{self.name} is unreachable") from exc

        if response.status_code >= 500:
            logger.warning("%s %s answered HTTP %s", self.name, url, response.status_code)
            raise GatewayUnavailable(f"{self.name} returned HTTP {response.status_code}")
        if not response.ok:
            raise GatewayRejected(self._error_message(response), code=str(response.status_code))
        return response

    def _json(self, response: requests.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            try:
                data = self.parse_body(response.text or "")
            except PaymentValidationError:
                data = {}
            if not data:
                raise GatewayUnavailable(f"{self.name} returned an unreadable response")
        if not isinstance(data, dict):
            raise GatewayUnavailable(f"{self.name} returned an unexpected response")
        return data

    def _error_message(self, response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return (response.text or "")[:300] or f"{self.name} rejected the request"
        if isinstance(body, dict):
            for key in ("message", "detail", "error", "pp_ResponseMessage"):
                value = body.get(key)
                if isinstance(value, dict):
                    value = value.get("message")
                if value:
                    return str(value)
        return f"{self.name} rejected the request"

    @staticmethod
    def parse_body(raw_body, content_type: str = "") -> Dict[str, Any]:
        """Decode a JSON or form-urlencoded body into a flat dict."""
        if isinstance(raw_body, Mapping):
            return dict(raw_body)
        if isinstance(raw_body, bytes):
            try:
                raw_body = raw_body.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise PaymentValidationError("Body is not valid UTF-8") from exc
        text = (raw_body or "").strip()
        if not text:
            return {}
        if "json" in (content_type or "").lower() or text.startswith("{"):
            try:
                data = json.loads(text)
            except json.JSONDecodeError as exc:
                raise PaymentValidationError("Body is not valid JSON") from exc
            if not isinstance(data, dict):
                raise PaymentValidationError("JSON body must be an object")
            return data
        return dict(parse_qsl(text, keep_blank_values=True))


class JazzCashGateway(BaseGatewayAdapter):
    """
    JazzCash hosted checkout (page redirection) and mobile wallet transfers.

    Outbound integrity string, joined with "&" and hashed with SHA-256
    (uppercase hex):

        pp_Version & pp_TxnType & pp_Language & pp_MerchantID & pp_Password &
        pp_TxnRefNo & pp_Amount & pp_TxnCurrency & pp_TxnDateTime &
        pp_BillReference & pp_Description & pp_ReturnURL &
        ppmpf_1 & ppmpf_2 & ppmpf_3 & ppmpf_4 & ppmpf_5 & salt

    Callbacks are verified with:

        pp_ResponseCode & pp_TxnRefNo & pp_Amount & salt
    """

    name = "jazzcash"

    VERSION = "1.1"
    TRANSFER_VERSION = "2.0"
    TXN_TYPE = "MWALLET"
    INQUIRY_TXN_TYPE = "INQUIRY"
    LANGUAGE = "EN"
    CURRENCY = "PKR"

    CHECKOUT_PATH = "/CustomerPortal/transactionmanagement/merchantform/"
    INQUIRY_PATH = "/ApplicationAPI/API/Payment/InquireTransaction"
    TRANSFER_PATH = "/ApplicationAPI/API/Payment/DoTransaction"

    SUCCESS_CODE = "000"
    PENDING_CODES = {"124", "157"}

    SECRET_FIELDS = {"pp_Password"}

    @staticmethod
    def generate_transaction_ref(prefix: str = "TXN") -> str:
        return f"{prefix}{int(time.time() * 1000)}{secrets.randbelow(10000):04d}"

    @staticmethod
    def format_datetime(value: Optional[datetime] = None) -> str:
        return (value or timezone.now()).strftime("%Y%m%d%H%M%S")

    def integrity_hash(self, fields: List[Tuple[str, str]]) -> str:
        values = [str(value) for _, value in fields]
        integrity_string = "&".join(values + [self.config.integrity_salt])
        logger.debug(
            "JazzCash integrity string: %s",
            "&".join(
                [REDACTED if name in self.SECRET_FIELDS else str(value) for name, value in fields] + [REDACTED]
            ),
        )
        return sha256_upper(integrity_string)

    def callback_hash(self, response_code: str, txn_ref: str, amount: str) -> str:
        return sha256_upper(f"{response_code}&{txn_ref}&{amount}&{self.config.integrity_salt}")

    def create_session(
        self,
        amount,
        buyer_id,
        item_id,
        seller_id,
        return_url=None,
        metadata=None,
        transaction_ref: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> GatewaySession:
        metadata = metadata or {}
        amount_minor = to_minor_units(amount)
        if amount_minor <= 0:
            raise PaymentValidationError("amount must be greater than 0")
        resolved_return_url = return_url or self.config.return_url
        if not resolved_return_url:
            raise PaymentConfigurationError("JAZZCASH_RETURN_URL is required to create a JazzCash session")

        amount_display = Decimal(amount_minor) / 100
        txn_ref = transaction_ref or self.generate_transaction_ref()
        fields = [
            ("pp_Version", self.VERSION),
            ("pp_TxnType", self.TXN_TYPE),
            ("pp_Language", self.LANGUAGE),
            ("pp_MerchantID", self.config.merchant_id),
            ("pp_Password", self.config.password),
            ("pp_TxnRefNo", txn_ref),
            ("pp_Amount", str(amount_minor)),
            ("pp_TxnCurrency", self.CURRENCY),
            ("pp_TxnDateTime", self.format_datetime(now)),
            ("pp_BillReference", metadata.get("bill_reference") or f"BILL{amount_minor}"),
            ("pp_Description", metadata.get("description") or f"Purchase - PKR {amount_display}"),
            ("pp_ReturnURL", resolved_return_url),
            ("ppmpf_1", numeric_reference(item_id, "B")),
            ("ppmpf_2", numeric_reference(buyer_id, "U")),
            ("ppmpf_3", numeric_reference(seller_id, "S")),
            ("ppmpf_4", str(amount_minor)),
            ("ppmpf_5", str(metadata.get("ppmpf_5", "1"))),
        ]
        form_fields = dict(fields)
        form_fields["pp_SecureHash"] = self.integrity_hash(fields)
        return GatewaySession(
            payment_url=f"{self.config.base_url}{self.CHECKOUT_PATH}",
            session_token=txn_ref,
            transaction_ref=txn_ref,
            form_fields=form_fields,
        )

    def verify_callback(self, payload: Mapping[str, Any]) -> bool:
        if not isinstance(payload, Mapping):
            return False
        received = payload.get("pp_SecureHash")
        response_code = payload.get("pp_ResponseCode")
        txn_ref = payload.get("pp_TxnRefNo")
        amount = payload.get("pp_Amount")
        if not received or not txn_ref or response_code is None or amount is None:
            return False
        if not all(isinstance(v, str) for v in (received, response_code, txn_ref, amount)):
            return False
        return signatures_match(self.callback_hash(response_code, txn_ref, amount), received)

    def verify_webhook(self, raw_body, headers, content_type: str = "") -> bool:
        try:
            payload = self.parse_body(raw_body, content_type)
        except PaymentValidationError:
            return False
        return self.verify_callback(payload)

    def parse_webhook_event(self, raw_body, content_type: str = "") -> WebhookEvent:
        payload = self.parse_body(raw_body, content_type)
        code = str(payload.get("pp_ResponseCode", ""))
        if code == self.SUCCESS_CODE:
            status = "paid"
        elif code in self.PENDING_CODES:
            status = "pending"
        else:
            status = "failed"
        metadata = {k: v for k, v in payload.items() if k.startswith("ppmpf_")}
        if payload.get("pp_ResponseMessage"):
            metadata["response_message"] = payload["pp_ResponseMessage"]
        return WebhookEvent(
            tracker=str(payload.get("pp_TxnRefNo", "")),
            amount=from_minor_units(payload.get("pp_Amount")),
            currency=payload.get("pp_TxnCurrency") or self.CURRENCY,
            status=status,
            metadata=metadata,
            timestamp=payload.get("pp_TxnDateTime"),
            raw=payload,
        )

    def callback_result(self, payload):
        return str(payload.get("pp_TxnRefNo", "")), self._status_from_code(payload.get("pp_ResponseCode"))

    def inquire(self, reference: str, now: Optional[datetime] = None) -> InquiryResult:
        fields = [
            ("pp_Version", self.VERSION),
            ("pp_TxnType", self.INQUIRY_TXN_TYPE),
            ("pp_Language", self.LANGUAGE),
            ("pp_MerchantID", self.config.merchant_id),
            ("pp_Password", self.config.password),
            ("pp_TxnRefNo", reference),
            ("pp_TxnDateTime", self.format_datetime(now)),
        ]
        form = dict(fields)
        form["pp_SecureHash"] = self.integrity_hash(fields)
        response = self._send(
            "post",
            f"{self.config.base_url}{self.INQUIRY_PATH}",
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        data = self._json(response)
        if str(data.get("pp_ResponseCode", "")) != self.SUCCESS_CODE:
            raise GatewayRejected(
                data.get("pp_ResponseMessage") or "JazzCash inquiry failed",
                code=str(data.get("pp_ResponseCode", "")),
            )
        return InquiryResult(
            reference=reference,
            status=self._status_from_code(data.get("pp_PaymentResponseCode") or data.get("pp_Status")),
            raw=data,
        )

    def disburse(self, reference: str, account: str, amount: Decimal, description: str, now: Optional[datetime] = None) -> str:
        amount_minor = to_minor_units(amount)
        if amount_minor <= 0:
            raise PaymentValidationError("amount must be greater than 0")
        if not account:
            raise PaymentValidationError("Recipient mobile number is required for JazzCash transfers")
        fields = [
            ("pp_Version", self.TRANSFER_VERSION),
            ("pp_TxnType", self.TXN_TYPE),
            ("pp_Language", self.LANGUAGE),
            ("pp_MerchantID", self.config.merchant_id),
            ("pp_Password", self.config.password),
            ("pp_TxnRefNo", reference),
            ("pp_Amount", str(amount_minor)),
            ("pp_TxnCurrency", self.CURRENCY),
            ("pp_TxnDateTime", self.format_datetime(now)),
            ("pp_BillReference", f"payout_{account}"),
            ("pp_Description", description),
            ("pp_BankID", ""),
            ("pp_ProductID", ""),
            ("pp_MobileNumber", account),
            ("pp_CNIC", ""),
        ]
        form = dict(fields)
        form["pp_SecureHash"] = self.integrity_hash(fields)
        response = self._send(
            "post",
            f"{self.config.base_url}{self.TRANSFER_PATH}",
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        data = self._json(response)
        code = str(data.get("pp_ResponseCode", ""))
        if code in self.PENDING_CODES:
            raise GatewayUnavailable(data.get("pp_ResponseMessage") or "JazzCash transfer is pending")
        if code != self.SUCCESS_CODE:
            raise GatewayRejected(data.get("pp_ResponseMessage") or "JazzCash transfer was rejected", code=code)
        return str(data.get("pp_RetreivalReferenceNo") or data.get("pp_TxnRefNo") or reference)

    def _status_from_code(self, code) -> str:
        code = str(code or "")
        if code == self.SUCCESS_CODE:
            return SUCCESS
        if not code or code in self.PENDING_CODES:
            return PENDING
        return FAILED


class SafepayGateway(BaseGatewayAdapter):
    """
    Safepay v3 hosted checkout.

    Browser returns carry ``tracker`` and optionally ``sig`` where
    ``sig = hex(HMAC-SHA256(secret_key, tracker))``. The outcome of a return
    is always read back through inquire(), so an unsigned return is accepted
    and only a wrong ``sig`` is refused. Webhooks carry
    ``X-SFPY-Signature = hex(HMAC-SHA256(webhook_secret, raw_body))``.
    Amounts travel in paisa.
    """

    name = "safepay"

    SESSION_PATH = "/order/payments/v3/"
    PASSPORT_PATH = "/client/passport/v1/token"
    CHECKOUT_PATH = "/embedded/"
    REPORTER_PATH = "/reporter/api/v1/payments/{tracker}"
    SIGNATURE_HEADER = "X-SFPY-Signature"

    PAID_STATES = {"PAID", "TRACKER_ENDED", "COMPLETED", "SUCCESS"}
    FAILED_STATES = {"FAILED", "CANCELLED", "TRACKER_CANCELLED", "EXPIRED", "DECLINED"}

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "x-sfpy-merchant-secret": self.config.secret_key,
        }

    @staticmethod
    def generate_transaction_ref(buyer_id) -> str:
        return f"SP_{int(time.time() * 1000)}_{str(buyer_id).replace('-', '')[:8]}"

    def create_session(self, amount, buyer_id, item_id, seller_id, return_url=None, metadata=None) -> GatewaySession:
        amount_minor = to_minor_units(amount)
        if amount_minor <= 0:
            raise PaymentValidationError("amount must be greater than 0")
        redirect_url = return_url or self.config.success_url
        if not redirect_url or not self.config.cancel_url:
            raise PaymentConfigurationError("SAFEPAY_SUCCESS_URL and SAFEPAY_CANCEL_URL are required")

        txn_ref = self.generate_transaction_ref(buyer_id)
        session_payload = {
            "merchant_api_key": self.config.api_key,
            "intent": "CYBERSOURCE",
            "mode": "payment",
            "entry_mode": "raw",
            "currency": "PKR",
            "amount": amount_minor,
            "metadata": {"order_id": txn_ref},
            "include_fees": False,
        }
        logger.debug("Creating Safepay session ref=%s amount=%s", txn_ref, amount_minor)
        session_data = self._json(
            self._send("post", f"{self.config.base_url}{self.SESSION_PATH}", json=session_payload, headers=self._headers())
        )
        tracker = ((session_data.get("data") or {}).get("tracker") or {}).get("token")
        if not tracker:
            raise GatewayRejected("Safepay response is missing the tracker token")

        passport_data = self._json(
            self._send("post", f"{self.config.base_url}{self.PASSPORT_PATH}", json={}, headers=self._headers())
        )
        tbt = passport_data.get("data")
        if not tbt:
            raise GatewayRejected("Safepay did not issue a checkout token")

        query = urlencode(
            {
                "environment": self.config.environment,
                "tracker": tracker,
                "tbt": tbt,
                "source": "hosted",
                "redirect_url": redirect_url,
                "cancel_url": self.config.cancel_url,
            }
        )
        return GatewaySession(
            payment_url=f"{self.config.base_url}{self.CHECKOUT_PATH}?{query}",
            session_token=tracker,
            transaction_ref=txn_ref,
        )

    def return_signature(self, tracker: str) -> str:
        return hmac_sha256_hex(self.config.secret_key, tracker.encode("utf-8"))

    def verify_callback(self, payload: Mapping[str, Any]) -> bool:
        if not isinstance(payload, Mapping):
            return False
        tracker = payload.get("tracker")
        received = payload.get("sig")
        if not isinstance(tracker, str) or not tracker:
            return False
        if received is None:
            return True
        return signatures_match(self.return_signature(tracker), received)

    def verify_webhook(self, raw_body, headers, content_type: str = "") -> bool:
        signature = None
        for key, value in (headers or {}).items():
            if key.lower() == self.SIGNATURE_HEADER.lower():
                signature = value
                break
        if not signature:
            return False
        if isinstance(raw_body, str):
            raw_body = raw_body.encode("utf-8")
        if not isinstance(raw_body, bytes):
            return False
        return signatures_match(hmac_sha256_hex(self.config.webhook_secret, raw_body), signature)

    def parse_webhook_event(self, raw_body, content_type: str = "") -> WebhookEvent:
        event = self.parse_body(raw_body, content_type)
        data = event.get("data") if isinstance(event.get("data"), dict) else {}
        nested = data.get("tracker")
        if isinstance(nested, dict):
            nested = nested.get("token")
        tracker = event.get("tracker") or nested or ""
        raw_status = event.get("status") or data.get("state") or ""
        if event.get("event") == "payment.completed":
            status = "paid"
        elif str(raw_status).upper() in self.PAID_STATES:
            status = "paid"
        elif event.get("event") == "payment.failed" or str(raw_status).upper() in self.FAILED_STATES:
            status = "failed"
        else:
            status = "pending"
        amount = event.get("amount", data.get("amount"))
        return WebhookEvent(
            tracker=str(tracker),
            amount=from_minor_units(amount) if amount is not None else None,
            currency=event.get("currency") or data.get("currency") or "PKR",
            status=status,
            metadata=event.get("metadata") or data.get("metadata") or {},
            timestamp=event.get("timestamp"),
            raw=event,
        )

    def callback_result(self, payload):
        # The redirect carries no outcome; the caller confirms it through inquire().
        return str(payload.get("tracker", "")), None

    def inquire(self, reference: str) -> InquiryResult:
        response = self._send(
            "get",
            f"{self.config.base_url}{self.REPORTER_PATH.format(tracker=reference)}",
            headers=self._headers(),
        )
        data = self._json(response)
        body = data.get("data") if isinstance(data.get("data"), dict) else {}
        tracker_info = body.get("tracker") if isinstance(body.get("tracker"), dict) else {}
        state = str(body.get("state") or tracker_info.get("state") or data.get("state") or "").upper()
        if state in self.PAID_STATES:
            status = SUCCESS
        elif state in self.FAILED_STATES:
            status = FAILED
        else:
            status = PENDING
        return InquiryResult(reference=reference, status=status, raw=data)


class TransferGateway(BaseGatewayAdapter):
    """JSON disbursement API used for Easypaisa and bank payouts."""

    def __init__(self, config: TransferConfig) -> None:
        super().__init__(config)
        self.name = config.name

    def disburse(self, reference: str, account: str, amount: Decimal, description: str, recipient: Optional[Dict[str, Any]] = None) -> str:
        if not self.config.url:
            raise GatewayRejected(f"{self.name} payouts are not configured", code="NOT_CONFIGURED")
        amount_minor = to_minor_units(amount)
        if amount_minor <= 0:
            raise PaymentValidationError("amount must be greater than 0")
        payload = {
            "reference": reference,
            "account": account,
            "amount": amount_minor,
            "currency": "PKR",
            "description": description,
            "recipient": recipient or {},
        }
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        data = self._json(self._send("post", self.config.url, json=payload, headers=headers))
        status = str(data.get("status", "")).upper()
        if status in {"FAILED", "REJECTED", "DECLINED"}:
            raise GatewayRejected(data.get("message") or f"{self.name} transfer was rejected", code=status)
        if status and status not in {"SUCCESS", "COMPLETED", "PAID"}:
            raise GatewayUnavailable(f"{self.name} transfer is {status.lower()}")
        return str(data.get("transaction_id") or data.get("id") or reference)


GATEWAYS = {
    JazzCashGateway.name: (JazzCashGateway, JazzCashConfig),
    SafepayGateway.name: (SafepayGateway, SafepayConfig),
}


def get_gateway(name: str, config=None) -> BaseGatewayAdapter:
    try:
        adapter_cls, config_cls = GATEWAYS[(name or "").lower()]
    except KeyError as exc:
        raise PaymentValidationError(f"Unsupported payment gateway: {name}") from exc
    return adapter_cls(config or config_cls.from_settings())
