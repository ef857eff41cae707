import csv
import json
from datetime import datetime, timedelta
from decimal import Decimal
from io import StringIO
from unittest.mock import Mock, patch
from urllib.parse import urlencode

import requests
from apscheduler.schedulers.background import BackgroundScheduler
from django.core.exceptions import ImproperlyConfigured
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from account.models import PaymentMethod, User, Wallet
from catalog.models import Book
from notifications.models import Notification
from payment.exceptions import (
    ConflictingState,
    GatewayRejected,
    GatewayUnavailable,
    IntegrityMismatch,
    PaymentConfigurationError,
    PaymentNotFound,
    PaymentValidationError,
)
from payment.models import Commission, ItemType, Payment, Payout, Purchase, SellerType, WebhookLog
from payment.scheduler import PayoutScheduler
from payment.services.commission import CommissionCalculator, split
from payment.services.gateways import (
    JazzCashConfig,
    JazzCashGateway,
    SafepayConfig,
    SafepayGateway,
    hmac_sha256_hex,
    numeric_reference,
    to_minor_units,
)
from payment.services.ledger import PaymentLedger
from payment.services.payouts import JazzCashPayoutStrategy, ManualPayoutStrategy, PayoutEngine, PayoutOutcome
from payment.services.service import PaymentService

JAZZCASH_CONFIG = JazzCashConfig(
    merchant_id="MC12345",
    password="pass123",
    integrity_salt="salt123",
    return_url="https://example.com/payment/jazzcash/return/",
)
SAFEPAY_CONFIG = SafepayConfig(
    api_key="sp_api",
    secret_key="sp_secret",
    webhook_secret="whsec_test",
    success_url="https://example.com/ok",
    cancel_url="https://example.com/cancel",
)
JAZZCASH_SETTINGS = {
    "JAZZCASH_MERCHANT_ID": "MC12345",
    "JAZZCASH_PASSWORD": "pass123",
    "JAZZCASH_INTEGRITY_SALT": "salt123",
    "JAZZCASH_RETURN_URL": "https://example.com/payment/jazzcash/return/",
}
SAFEPAY_WEBHOOK_BODY = b'{"event":"payment.completed","tracker":"track_abc123","amount":50000,"currency":"PKR"}'
SAFEPAY_WEBHOOK_SIGNATURE = "674d25e658bfdd327c9118c222a66899c871e5751e9151af7cc3594ce31e4983"


def _response(status_code=200, payload=None):
    response = Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.json.return_value = payload if payload is not None else {}
    response.text = json.dumps(payload or {})
    return response


def _signed_return(gateway, reference, code="000", amount="50000"):
    return {
        "pp_ResponseCode": code,
        "pp_ResponseMessage": "Thank you for Using JazzCash",
        "pp_TxnRefNo": reference,
        "pp_Amount": amount,
        "pp_TxnCurrency": "PKR",
        "pp_SecureHash": gateway.callback_hash(code, reference, amount),
    }


class MarketplaceFixtureMixin:
    def create_marketplace(self):
        self.platform = User.objects.create_user(
            email="platform@books.pk",
            password="Pass123!",
            role=User.Role.SUPERADMIN,
        )
        self.seller = User.objects.create_user(
            email="seller@books.pk",
            password="Pass123!",
            role=User.Role.ADMIN,
        )
        self.buyer = User.objects.create_user(
            email="buyer@books.pk",
            password="Pass123!",
        )
        self.book = self.create_book("Law of Contract", Decimal("500.00"))

    def create_book(self, title, price, uploaded_by=None, **extra):
        return Book.objects.create(
            title=title,
            price=price,
            uploaded_by=uploaded_by or self.seller,
            status=Book.Status.APPROVED,
            **extra,
        )

    def create_pending_payment(self, book=None, gateway="jazzcash", transaction_ref="TXN-1", session_token=""):
        book = book or self.book
        return PaymentLedger().create_pending(
            buyer=self.buyer,
            item=book,
            item_type=ItemType.BOOK,
            seller=book.uploaded_by,
            seller_type=SellerType.ADMIN,
            amount=book.sale_price,
            gateway=gateway,
            transaction_ref=transaction_ref,
            session_token=session_token,
        )


class MinorUnitsTests(SimpleTestCase):
    def test_half_paisa_rounds_up(self):
        self.assertEqual(to_minor_units(Decimal("0.005")), 1)
        self.assertEqual(to_minor_units(Decimal("0.004")), 0)
        self.assertEqual(to_minor_units(Decimal("1.005")), 101)
        self.assertEqual(to_minor_units("500.00"), 50000)

    def test_rejects_non_numeric_amounts(self):
        with self.assertRaises(PaymentValidationError):
            to_minor_units("five hundred")
        with self.assertRaises(PaymentValidationError):
            to_minor_units(Decimal("NaN"))


class JazzCashGatewayTests(SimpleTestCase):
    def setUp(self):
        self.gateway = JazzCashGateway(JAZZCASH_CONFIG)

    def test_numeric_references_are_prefixed_hashes(self):
        self.assertEqual(numeric_reference("item-1", "B"), "B1981805867")
        self.assertEqual(numeric_reference("buyer-1", "U"), "U2140266624")
        self.assertEqual(numeric_reference("seller-1", "S"), "S1416989183")
        self.assertEqual(numeric_reference("", "B"), "B0")

    def test_session_form_is_signed_over_the_canonical_field_order(self):
        session = self.gateway.create_session(
            Decimal("500.00"),
            "buyer-1",
            "item-1",
            "seller-1",
            transaction_ref="TXN1700000000000",
            now=datetime(2024, 1, 2, 3, 4, 5),
        )
        fields = session.form_fields

        self.assertEqual(session.transaction_ref, "TXN1700000000000")
        self.assertEqual(session.session_token, "TXN1700000000000")
        self.assertEqual(
            session.payment_url,
            "https://sandbox.jazzcash.com.pk/CustomerPortal/transactionmanagement/merchantform/",
        )
        self.assertEqual(fields["pp_Amount"], "50000")
        self.assertEqual(fields["pp_TxnDateTime"], "20240102030405")
        self.assertEqual(fields["pp_Description"], "Purchase - PKR 500")
        self.assertEqual(fields["ppmpf_1"], "B1981805867")
        self.assertEqual(
            fields["pp_SecureHash"],
            "249166B136DB2C7CAC7A85F92B6840B2212E42D08159CDF5788A31722A9FC33C",
        )

    def test_any_field_change_changes_the_hash(self):
        kwargs = {"transaction_ref": "TXN1700000000000", "now": datetime(2024, 1, 2, 3, 4, 5)}
        original = self.gateway.create_session(Decimal("500.00"), "buyer-1", "item-1", "seller-1", **kwargs)
        changed = self.gateway.create_session(Decimal("500.01"), "buyer-1", "item-1", "seller-1", **kwargs)
        self.assertNotEqual(original.form_fields["pp_SecureHash"], changed.form_fields["pp_SecureHash"])

    def test_session_requires_a_positive_amount(self):
        with self.assertRaises(PaymentValidationError):
            self.gateway.create_session(Decimal("0.00"), "buyer-1", "item-1", "seller-1")

    def test_session_requires_a_return_url(self):
        gateway = JazzCashGateway(JazzCashConfig(merchant_id="MC1", password="p", integrity_salt="s"))
        with self.assertRaises(PaymentConfigurationError):
            gateway.create_session(Decimal("10.00"), "buyer-1", "item-1", "seller-1")

    def test_integrity_log_redacts_password_and_salt(self):
        with self.assertLogs("payment.services.gateways", "DEBUG") as logs:
            self.gateway.create_session(Decimal("500.00"), "buyer-1", "item-1", "seller-1")
        output = "\n".join(logs.output)
        self.assertIn("***", output)
        self.assertNotIn("pass123", output)
        self.assertNotIn("salt123", output)

    def test_callback_hash_matches_known_values(self):
        self.assertEqual(
            self.gateway.callback_hash("000", "TXN1700000000000", "50000"),
            "6C53E6061920F19D7CF1145480B76301D869D35BBE491CF968A021C3216450BA",
        )
        self.assertEqual(
            self.gateway.callback_hash("199", "TXN1700000000000", "50000"),
            "ABBF084EA885E939CCA26E4EE0FDD61B3F72625CDFB5F3B24810151FED13F5D0",
        )

    def test_verify_callback(self):
        payload = {
            "pp_ResponseCode": "000",
            "pp_TxnRefNo": "TXN1700000000000",
            "pp_Amount": "50000",
            "pp_SecureHash": "6C53E6061920F19D7CF1145480B76301D869D35BBE491CF968A021C3216450BA",
        }
        self.assertTrue(self.gateway.verify_callback(payload))
        self.assertTrue(self.gateway.verify_callback({**payload, "pp_SecureHash": payload["pp_SecureHash"].lower()}))
        self.assertFalse(self.gateway.verify_callback({**payload, "pp_Amount": "40000"}))
        self.assertFalse(self.gateway.verify_callback({**payload, "pp_ResponseCode": "199"}))
        self.assertFalse(self.gateway.verify_callback({k: v for k, v in payload.items() if k != "pp_SecureHash"}))
        self.assertFalse(self.gateway.verify_callback({**payload, "pp_SecureHash": ""}))

    def test_every_single_character_change_fails_verification(self):
        payload = _signed_return(self.gateway, "TXN1700000000000")
        self.assertTrue(self.gateway.verify_callback(payload))

        for field in ("pp_ResponseCode", "pp_TxnRefNo", "pp_Amount", "pp_SecureHash"):
            value = payload[field]
            for index, char in enumerate(value):
                replacement = "1" if char.upper() == "0" else "0"
                mutated = {**payload, field: value[:index] + replacement + value[index + 1:]}
                with self.subTest(field=field, index=index):
                    self.assertFalse(self.gateway.verify_callback(mutated))

    def test_callback_result_maps_response_codes(self):
        self.assertEqual(self.gateway.callback_result({"pp_TxnRefNo": "T1", "pp_ResponseCode": "000"}), ("T1", "SUCCESS"))
        self.assertEqual(self.gateway.callback_result({"pp_TxnRefNo": "T1", "pp_ResponseCode": "124"}), ("T1", "PENDING"))
        self.assertEqual(self.gateway.callback_result({"pp_TxnRefNo": "T1", "pp_ResponseCode": "199"}), ("T1", "FAILED"))

    def test_form_webhook_is_parsed(self):
        body = urlencode(_signed_return(self.gateway, "TXN1700000000000")).encode()
        self.assertTrue(self.gateway.verify_webhook(body, {}, "application/x-www-form-urlencoded"))
        event = self.gateway.parse_webhook_event(body, "application/x-www-form-urlencoded")
        self.assertEqual(event.tracker, "TXN1700000000000")
        self.assertEqual(event.amount, Decimal("500.00"))
        self.assertEqual(event.payment_status, "SUCCESS")

    @patch("payment.services.gateways.requests.post")
    def test_inquiry_reads_payment_response_code(self, mock_post):
        mock_post.return_value = _response(payload={"pp_ResponseCode": "000", "pp_PaymentResponseCode": "000"})

        result = self.gateway.inquire("TXN1700000000000")

        self.assertEqual(result.status, "SUCCESS")
        self.assertEqual(mock_post.call_args.kwargs["timeout"], 30)
        self.assertEqual(mock_post.call_args.kwargs["data"]["pp_TxnType"], "INQUIRY")

    @patch("payment.services.gateways.requests.post")
    def test_timeout_is_unavailable(self, mock_post):
        mock_post.side_effect = requests.Timeout("read timed out")
        with self.assertRaises(GatewayUnavailable):
            self.gateway.inquire("TXN1700000000000")

    @patch("payment.services.gateways.requests.post")
    def test_server_error_is_unavailable_and_client_error_is_rejected(self, mock_post):
        mock_post.return_value = _response(503, {"message": "maintenance"})
        with self.assertRaises(GatewayUnavailable):
            self.gateway.inquire("TXN1700000000000")

        mock_post.return_value = _response(400, {"message": "Invalid merchant"})
        with self.assertRaises(GatewayRejected) as ctx:
            self.gateway.inquire("TXN1700000000000")
        self.assertEqual(str(ctx.exception), "Invalid merchant")
        self.assertEqual(ctx.exception.code, "400")

    @patch("payment.services.gateways.requests.post")
    def test_disburse(self, mock_post):
        mock_post.return_value = _response(payload={"pp_ResponseCode": "000", "pp_RetreivalReferenceNo": "RRN-1"})
        self.assertEqual(self.gateway.disburse("PO1", "03001234567", Decimal("1080.00"), "Seller payout PO1"), "RRN-1")
        form = mock_post.call_args.kwargs["data"]
        self.assertEqual(form["pp_MobileNumber"], "03001234567")
        self.assertEqual(form["pp_Amount"], "108000")

        mock_post.return_value = _response(payload={"pp_ResponseCode": "121", "pp_ResponseMessage": "Invalid account"})
        with self.assertRaises(GatewayRejected) as ctx:
            self.gateway.disburse("PO2", "03001234567", Decimal("1080.00"), "Seller payout PO2")
        self.assertEqual(ctx.exception.code, "121")


class SafepayGatewayTests(SimpleTestCase):
    def setUp(self):
        self.gateway = SafepayGateway(SAFEPAY_CONFIG)

    def test_return_signature(self):
        signature = "4b6184393c2f5a539c120690b44229999a46137f5798db3790ef3a42ef9839b8"
        self.assertEqual(self.gateway.return_signature("track_abc123"), signature)
        self.assertTrue(self.gateway.verify_callback({"tracker": "track_abc123", "sig": signature}))
        self.assertFalse(self.gateway.verify_callback({"tracker": "track_other", "sig": signature}))
        self.assertFalse(self.gateway.verify_callback({"tracker": "track_abc123", "sig": ""}))
        self.assertFalse(self.gateway.verify_callback({"sig": signature}))

    def test_unsigned_return_is_accepted_for_inquiry(self):
        self.assertTrue(self.gateway.verify_callback({"tracker": "track_abc123"}))
        self.assertEqual(self.gateway.callback_result({"tracker": "track_abc123"}), ("track_abc123", None))

    def test_webhook_signature_header_is_case_insensitive(self):
        self.assertTrue(self.gateway.verify_webhook(SAFEPAY_WEBHOOK_BODY, {"X-SFPY-Signature": SAFEPAY_WEBHOOK_SIGNATURE}))
        self.assertTrue(self.gateway.verify_webhook(SAFEPAY_WEBHOOK_BODY, {"x-sfpy-signature": SAFEPAY_WEBHOOK_SIGNATURE}))
        self.assertFalse(self.gateway.verify_webhook(SAFEPAY_WEBHOOK_BODY + b" ", {"X-SFPY-Signature": SAFEPAY_WEBHOOK_SIGNATURE}))
        self.assertFalse(self.gateway.verify_webhook(SAFEPAY_WEBHOOK_BODY, {}))

    def test_webhook_event(self):
        event = self.gateway.parse_webhook_event(SAFEPAY_WEBHOOK_BODY, "application/json")
        self.assertEqual(event.tracker, "track_abc123")
        self.assertEqual(event.amount, Decimal("500.00"))
        self.assertEqual(event.payment_status, "SUCCESS")

    def test_webhook_event_reads_nested_tracker_shapes(self):
        as_string = self.gateway.parse_webhook_event(
            b'{"data":{"tracker":"track_abc","state":"PAID","amount":50000}}', "application/json"
        )
        self.assertEqual(as_string.tracker, "track_abc")
        self.assertEqual(as_string.payment_status, "SUCCESS")
        self.assertEqual(as_string.amount, Decimal("500.00"))

        as_object = self.gateway.parse_webhook_event(
            b'{"data":{"tracker":{"token":"track_def"},"state":"TRACKER_CANCELLED"}}', "application/json"
        )
        self.assertEqual(as_object.tracker, "track_def")
        self.assertEqual(as_object.payment_status, "FAILED")

    @patch("payment.services.gateways.requests.post")
    def test_create_session_builds_hosted_checkout_url(self, mock_post):
        mock_post.side_effect = [
            _response(payload={"data": {"tracker": {"token": "track_abc123"}}}),
            _response(payload={"data": "tbt_token"}),
        ]

        session = self.gateway.create_session(Decimal("500.00"), "buyer-1", "item-1", "seller-1")

        self.assertEqual(session.session_token, "track_abc123")
        self.assertTrue(session.transaction_ref.startswith("SP_"))
        self.assertIn("tracker=track_abc123", session.payment_url)
        self.assertIn("tbt=tbt_token", session.payment_url)
        self.assertEqual(mock_post.call_args_list[0].kwargs["json"]["amount"], 50000)

    @patch("payment.services.gateways.requests.post")
    def test_session_without_tracker_is_rejected(self, mock_post):
        mock_post.return_value = _response(payload={"data": {}})
        with self.assertRaises(GatewayRejected):
            self.gateway.create_session(Decimal("500.00"), "buyer-1", "item-1", "seller-1")

    @patch("payment.services.gateways.requests.get")
    def test_inquiry_maps_tracker_state(self, mock_get):
        mock_get.return_value = _response(payload={"data": {"state": "PAID"}})
        self.assertEqual(self.gateway.inquire("track_abc123").status, "SUCCESS")

        mock_get.return_value = _response(payload={"data": {"state": "TRACKER_CANCELLED"}})
        self.assertEqual(self.gateway.inquire("track_abc123").status, "FAILED")

        mock_get.return_value = _response(payload={"data": {"state": "TRACKER_STARTED"}})
        self.assertEqual(self.gateway.inquire("track_abc123").status, "PENDING")


class CommissionCalculatorTests(SimpleTestCase):
    def test_admin_seller_split(self):
        result = split(Decimal("500.00"), SellerType.ADMIN, 10)
        self.assertEqual(result.seller_amount, Decimal("450.00"))
        self.assertEqual(result.platform_amount, Decimal("50.00"))
        self.assertEqual(result.percentage, Decimal("10"))

    def test_superadmin_seller_keeps_nothing(self):
        result = split(Decimal("500.00"), SellerType.SUPERADMIN, 10)
        self.assertEqual(result.seller_amount, Decimal("0.00"))
        self.assertEqual(result.platform_amount, Decimal("500.00"))
        self.assertEqual(result.percentage, Decimal("100"))

    def test_platform_cut_is_floored(self):
        result = split(Decimal("0.99"), SellerType.ADMIN, 10)
        self.assertEqual(result.platform_amount, Decimal("0.09"))
        self.assertEqual(result.seller_amount, Decimal("0.90"))

    def test_parts_always_add_up(self):
        calculator = CommissionCalculator(Decimal("12.5"))
        for amount in ("0.01", "0.07", "1.99", "333.33", "999.99", "12345.67"):
            result = calculator.split(Decimal(amount), SellerType.ADMIN)
            self.assertEqual(result.seller_amount + result.platform_amount, Decimal(amount))
            self.assertGreaterEqual(result.seller_amount, 0)
            self.assertGreaterEqual(result.platform_amount, 0)

    def test_invalid_input(self):
        with self.assertRaises(PaymentValidationError):
            split(Decimal("-1.00"), SellerType.ADMIN, 10)
        with self.assertRaises(PaymentValidationError):
            split("abc", SellerType.ADMIN, 10)
        with self.assertRaises(PaymentValidationError):
            CommissionCalculator(10).split(Decimal("10.00"), SellerType.ADMIN, platform_percentage=101)
        with self.assertRaises(PaymentConfigurationError):
            CommissionCalculator("150")

    @override_settings(PLATFORM_COMMISSION_PERCENTAGE="20")
    def test_percentage_defaults_to_setting(self):
        self.assertEqual(CommissionCalculator().split(Decimal("100.00"), SellerType.ADMIN).platform_amount, Decimal("20.00"))


class PaymentLedgerTests(MarketplaceFixtureMixin, TestCase):
    def setUp(self):
        self.create_marketplace()
        self.ledger = PaymentLedger()

    def test_pending_payment_snapshots_the_split(self):
        payment = self.create_pending_payment()
        self.assertEqual(payment.status, Payment.Status.PENDING)
        self.assertEqual(payment.amount, Decimal("500.00"))
        self.assertEqual(payment.seller_amount, Decimal("450.00"))
        self.assertEqual(payment.platform_amount, Decimal("50.00"))
        self.assertEqual(payment.earnings_status, Payment.EarningsStatus.PENDING)

    def test_repeated_result_is_idempotent(self):
        self.create_pending_payment()
        first = self.ledger.mark_result("TXN-1", "SUCCESS", {"pp_ResponseCode": "000"})
        second = self.ledger.mark_result("TXN-1", "success", {"pp_ResponseCode": "000", "late": True})
        self.assertEqual(first.status, Payment.Status.SUCCESS)
        self.assertEqual(second.status, Payment.Status.SUCCESS)
        self.assertNotIn("late", second.gateway_response)

    def test_conflicting_result_is_refused_and_logged(self):
        self.create_pending_payment()
        self.ledger.mark_result("TXN-1", "SUCCESS")

        with self.assertRaises(ConflictingState):
            self.ledger.mark_result("TXN-1", "FAILED")

        self.assertEqual(Payment.objects.get(transaction_ref="TXN-1").status, Payment.Status.SUCCESS)
        anomaly = WebhookLog.objects.get(event_type="CONFLICTING_STATE")
        self.assertEqual(anomaly.payload["stored_status"], "SUCCESS")
        self.assertEqual(anomaly.payload["incoming_status"], "FAILED")

    def test_unknown_reference_and_status(self):
        with self.assertRaises(PaymentNotFound):
            self.ledger.mark_result("NOPE", "SUCCESS")
        with self.assertRaises(PaymentValidationError):
            self.ledger.normalize_status("MAYBE")

    def test_earnings_are_distributed_once(self):
        payment = self.create_pending_payment()
        self.assertFalse(self.ledger.distribute_earnings(payment))

        self.ledger.mark_result("TXN-1", "SUCCESS")
        self.assertTrue(self.ledger.distribute_earnings(payment))
        self.assertFalse(self.ledger.distribute_earnings(payment))

        self.assertEqual(Wallet.objects.get(user=self.seller).available_balance, Decimal("450.00"))
        self.assertEqual(Wallet.objects.get(user=self.platform).available_balance, Decimal("50.00"))
        commission = Commission.objects.get(payment=payment)
        self.assertEqual(commission.status, Commission.Status.PROCESSED)
        self.assertEqual(commission.seller_amount, Decimal("450.00"))
        payment.refresh_from_db()
        self.assertEqual(payment.earnings_status, Payment.EarningsStatus.PROCESSED)

    def test_earnings_status_only_moves_forward_one_step(self):
        payment = self.create_pending_payment()
        with self.assertRaises(PaymentValidationError):
            self.ledger.compare_and_swap_earnings_status(
                payment.pk, Payment.EarningsStatus.PENDING, Payment.EarningsStatus.PAID_OUT
            )
        with self.assertRaises(PaymentValidationError):
            self.ledger.compare_and_swap_earnings_status(
                payment.pk, Payment.EarningsStatus.PROCESSED, Payment.EarningsStatus.PENDING
            )
        self.assertTrue(
            self.ledger.compare_and_swap_earnings_status(
                payment.pk, Payment.EarningsStatus.PENDING, Payment.EarningsStatus.PROCESSED
            )
        )
        self.assertFalse(
            self.ledger.compare_and_swap_earnings_status(
                payment.pk, Payment.EarningsStatus.PENDING, Payment.EarningsStatus.PROCESSED
            )
        )

    @override_settings(PLATFORM_ACCOUNT_EMAIL="missing@books.pk")
    def test_missing_platform_account(self):
        with self.assertRaises(PaymentConfigurationError):
            self.ledger.resolve_platform_account()


class PaymentServiceTests(MarketplaceFixtureMixin, TestCase):
    def setUp(self):
        self.create_marketplace()
        self.jazzcash = JazzCashGateway(JAZZCASH_CONFIG)
        self.safepay = SafepayGateway(SAFEPAY_CONFIG)
        self.service = PaymentService(gateways={"jazzcash": self.jazzcash, "safepay": self.safepay})

    def _initiate(self, book=None):
        return self.service.initiate_purchase(self.buyer, ItemType.BOOK, (book or self.book).pk)

    def test_initiate_creates_pending_payment_and_signed_form(self):
        result = self._initiate()

        self.assertFalse(result.already_owned)
        self.assertEqual(result.payment.status, Payment.Status.PENDING)
        self.assertEqual(result.payment.seller, self.seller)
        self.assertEqual(result.payment.seller_type, SellerType.ADMIN)
        self.assertEqual(result.form_fields["pp_Amount"], "50000")
        self.assertEqual(result.form_fields["pp_TxnRefNo"], result.transaction_ref)
        self.assertIn("pp_SecureHash", result.form_fields)

    def test_discounted_price_is_charged(self):
        book = self.create_book("Equity", Decimal("800.00"), discounted_price=Decimal("600.00"))
        result = self._initiate(book)
        self.assertEqual(result.payment.amount, Decimal("600.00"))
        self.assertEqual(result.form_fields["pp_Amount"], "60000")

    def test_unavailable_items_are_refused(self):
        draft = Book.objects.create(title="Draft", price=Decimal("100.00"), uploaded_by=self.seller)
        with self.assertRaises(PaymentValidationError):
            self._initiate(draft)
        with self.assertRaises(PaymentValidationError):
            self.service.initiate_purchase(self.buyer, "magazine", self.book.pk)
        with self.assertRaises(PaymentNotFound):
            self.service.initiate_purchase(self.buyer, ItemType.JUDGMENT, self.book.pk)
        self.assertEqual(Payment.objects.count(), 0)

    def test_successful_return_distributes_and_grants_access(self):
        result = self._initiate()

        payment = self.service.handle_return("jazzcash", _signed_return(self.jazzcash, result.transaction_ref))

        self.assertEqual(payment.status, Payment.Status.SUCCESS)
        self.assertEqual(payment.earnings_status, Payment.EarningsStatus.PROCESSED)
        purchase = Purchase.objects.get(payment=payment)
        self.assertEqual(purchase.payment_status, Purchase.PaymentStatus.COMPLETED)
        self.assertEqual(purchase.earnings_status, Purchase.EarningsStatus.PROCESSED)
        self.assertEqual(Wallet.objects.get(user=self.seller).available_balance, Decimal("450.00"))
        self.assertEqual(Wallet.objects.get(user=self.platform).available_balance, Decimal("50.00"))
        self.assertTrue(Notification.objects.filter(user=self.buyer, type="payment_success").exists())
        self.assertTrue(Notification.objects.filter(user=self.seller, type="item_sold").exists())

    def test_replayed_return_changes_nothing(self):
        result = self._initiate()
        payload = _signed_return(self.jazzcash, result.transaction_ref)

        self.service.handle_return("jazzcash", payload)
        self.service.handle_return("jazzcash", payload)

        self.assertEqual(Wallet.objects.get(user=self.seller).available_balance, Decimal("450.00"))
        self.assertEqual(Commission.objects.count(), 1)
        self.assertEqual(Purchase.objects.count(), 1)
        self.assertEqual(Notification.objects.filter(type="payment_success").count(), 1)

    def test_second_purchase_of_owned_item_returns_existing(self):
        result = self._initiate()
        self.service.handle_return("jazzcash", _signed_return(self.jazzcash, result.transaction_ref))

        again = self._initiate()

        self.assertTrue(again.already_owned)
        self.assertEqual(again.purchase, Purchase.objects.get())
        self.assertEqual(Payment.objects.count(), 1)

    def test_superadmin_item_pays_platform_only(self):
        book = self.create_book("Constitution", Decimal("500.00"), uploaded_by=self.platform)
        result = self._initiate(book)
        self.assertEqual(result.payment.seller_type, SellerType.SUPERADMIN)

        self.service.handle_return("jazzcash", _signed_return(self.jazzcash, result.transaction_ref))

        self.assertEqual(Wallet.objects.get(user=self.platform).available_balance, Decimal("500.00"))
        self.assertFalse(Notification.objects.filter(type="item_sold").exists())

    def test_failed_return_notifies_buyer(self):
        result = self._initiate()

        payment = self.service.handle_return("jazzcash", _signed_return(self.jazzcash, result.transaction_ref, code="199"))

        self.assertEqual(payment.status, Payment.Status.FAILED)
        self.assertFalse(Purchase.objects.exists())
        self.assertEqual(Wallet.objects.get(user=self.seller).available_balance, Decimal("0.00"))
        self.assertTrue(Notification.objects.filter(user=self.buyer, type="payment_failed").exists())

    def test_failure_after_success_is_a_conflict(self):
        result = self._initiate()
        self.service.handle_return("jazzcash", _signed_return(self.jazzcash, result.transaction_ref))

        with self.assertRaises(ConflictingState):
            self.service.handle_return("jazzcash", _signed_return(self.jazzcash, result.transaction_ref, code="199"))

        self.assertEqual(Payment.objects.get().status, Payment.Status.SUCCESS)
        self.assertTrue(WebhookLog.objects.filter(event_type="CONFLICTING_STATE").exists())

    def test_badly_signed_jazzcash_return_is_rejected(self):
        result = self._initiate()
        payload = _signed_return(self.jazzcash, result.transaction_ref)
        payload["pp_SecureHash"] = "0" * 64

        with self.assertRaises(IntegrityMismatch):
            self.service.handle_return("jazzcash", payload)

        self.assertEqual(Payment.objects.get().status, Payment.Status.PENDING)
        self.assertTrue(WebhookLog.objects.filter(event_type="RETURN_SIGNATURE_INVALID").exists())

    def test_tampered_webhook_is_acknowledged_but_ignored(self):
        result = self._initiate()
        payload = _signed_return(self.jazzcash, result.transaction_ref)
        payload["pp_SecureHash"] = self.jazzcash.callback_hash("000", result.transaction_ref, "40000")

        ack = self.service.handle_webhook(
            "jazzcash", urlencode(payload).encode(), {}, "application/x-www-form-urlencoded"
        )

        self.assertEqual(ack.http_status, 200)
        self.assertFalse(ack.accepted)
        self.assertEqual(Payment.objects.get().status, Payment.Status.PENDING)
        self.assertFalse(Purchase.objects.exists())
        self.assertTrue(WebhookLog.objects.filter(event_type="SIGNATURE_INVALID").exists())

    def test_signed_webhook_settles_payment(self):
        result = self._initiate()
        body = urlencode(_signed_return(self.jazzcash, result.transaction_ref)).encode()

        ack = self.service.handle_webhook("jazzcash", body, {}, "application/x-www-form-urlencoded")

        self.assertTrue(ack.accepted)
        self.assertEqual(ack.as_dict(), {"received": True, "accepted": True, "detail": "Processed"})
        self.assertEqual(Payment.objects.get().status, Payment.Status.SUCCESS)
        self.assertTrue(WebhookLog.objects.filter(reference=result.transaction_ref, processed=True).exists())

    def test_webhook_amount_must_match(self):
        result = self._initiate()
        body = urlencode(_signed_return(self.jazzcash, result.transaction_ref, amount="40000")).encode()

        ack = self.service.handle_webhook("jazzcash", body, {}, "application/x-www-form-urlencoded")

        self.assertFalse(ack.accepted)
        self.assertEqual(ack.detail, "Amount mismatch")
        self.assertEqual(Payment.objects.get().status, Payment.Status.PENDING)

    def test_webhook_for_unknown_gateway_or_reference(self):
        self.assertEqual(self.service.handle_webhook("paypal", b"{}", {}).http_status, 404)

        body = urlencode(_signed_return(self.jazzcash, "TXN-UNKNOWN")).encode()
        ack = self.service.handle_webhook("jazzcash", body, {}, "application/x-www-form-urlencoded")
        self.assertEqual(ack.http_status, 200)
        self.assertEqual(ack.detail, "Unknown transaction")

    def test_safepay_webhook_matches_session_token(self):
        self.create_pending_payment(gateway="safepay", transaction_ref="SP_1_buyer", session_token="track_abc123")

        ack = self.service.handle_webhook(
            "safepay", SAFEPAY_WEBHOOK_BODY, {"X-SFPY-Signature": SAFEPAY_WEBHOOK_SIGNATURE}, "application/json"
        )

        self.assertTrue(ack.accepted)
        self.assertEqual(Payment.objects.get(transaction_ref="SP_1_buyer").status, Payment.Status.SUCCESS)

    def test_safepay_webhook_with_nested_string_tracker(self):
        self.create_pending_payment(gateway="safepay", transaction_ref="SP_2_buyer", session_token="track_abc")
        body = b'{"data":{"tracker":"track_abc","state":"PAID","amount":50000}}'

        ack = self.service.handle_webhook(
            "safepay", body, {"X-SFPY-Signature": hmac_sha256_hex("whsec_test", body)}, "application/json"
        )

        self.assertTrue(ack.accepted, ack.detail)
        self.assertEqual(Payment.objects.get(transaction_ref="SP_2_buyer").status, Payment.Status.SUCCESS)

    @patch("payment.services.gateways.requests.get")
    def test_unsigned_safepay_return_is_settled_from_inquiry(self, mock_get):
        self.create_pending_payment(gateway="safepay", transaction_ref="SP_3_buyer", session_token="track_xyz")
        mock_get.return_value = _response(payload={"data": {"state": "TRACKER_CANCELLED"}})

        payment = self.service.handle_return("safepay", {"tracker": "track_xyz"})

        self.assertEqual(payment.status, Payment.Status.FAILED)
        with self.assertRaises(IntegrityMismatch):
            self.service.handle_return("safepay", {"tracker": "track_xyz", "sig": "deadbeef"})

    @patch("payment.services.gateways.requests.get")
    def test_safepay_return_is_confirmed_by_inquiry(self, mock_get):
        self.create_pending_payment(gateway="safepay", transaction_ref="SP_1_buyer", session_token="track_abc123")
        mock_get.return_value = _response(payload={"data": {"state": "PAID"}})

        payment = self.service.handle_return(
            "safepay",
            {"tracker": "track_abc123", "sig": self.safepay.return_signature("track_abc123")},
        )

        self.assertEqual(payment.status, Payment.Status.SUCCESS)
        self.assertIn("track_abc123", mock_get.call_args.args[0])

    @patch("payment.services.gateways.requests.post")
    def test_reconcile_pending(self, mock_post):
        settled = self._initiate()
        stuck = self._initiate(self.create_book("Torts", Decimal("300.00")))
        fresh = self._initiate(self.create_book("Evidence", Decimal("200.00")))
        Payment.objects.filter(pk=settled.payment.pk).update(created_at=timezone.now() - timedelta(hours=2))
        Payment.objects.filter(pk=stuck.payment.pk).update(created_at=timezone.now() - timedelta(hours=1))
        mock_post.side_effect = [
            _response(payload={"pp_ResponseCode": "000", "pp_PaymentResponseCode": "000"}),
            requests.ConnectionError("connection reset"),
        ]

        summary = self.service.reconcile_pending()

        self.assertEqual(summary, {"checked": 2, "settled": 1, "pending": 0, "errors": 1})
        self.assertEqual(Payment.objects.get(pk=settled.payment.pk).status, Payment.Status.SUCCESS)
        self.assertEqual(Payment.objects.get(pk=stuck.payment.pk).status, Payment.Status.PENDING)
        self.assertEqual(Payment.objects.get(pk=fresh.payment.pk).status, Payment.Status.PENDING)

    @patch("payment.services.gateways.requests.post")
    def test_reconcile_leaves_pending_payment(self, mock_post):
        result = self._initiate()
        mock_post.return_value = _response(payload={"pp_ResponseCode": "000", "pp_PaymentResponseCode": "157"})

        payment = self.service.reconcile(result.payment)

        self.assertEqual(payment.status, Payment.Status.PENDING)


class PayoutEngineTests(MarketplaceFixtureMixin, TestCase):
    def setUp(self):
        self.create_marketplace()
        self.admin = User.objects.create_user(email="ops@books.pk", password="Pass123!", is_staff=True)
        self.service = PaymentService(gateways={"jazzcash": JazzCashGateway(JAZZCASH_CONFIG)})
        self.engine = PayoutEngine(
            strategies={
                "jazzcash": JazzCashPayoutStrategy(gateway=JazzCashGateway(JAZZCASH_CONFIG)),
                "manual": ManualPayoutStrategy(),
            }
        )
        self.sell(Decimal("1200.00"))
        self.configure_wallet(self.seller, method="jazzcash")
        PaymentMethod.objects.create(
            user=self.seller,
            payment_type=PaymentMethod.Type.JAZZCASH,
            phone_number="03001234567",
            is_verified=True,
        )

    def sell(self, price, seller=None):
        book = self.create_book(f"Book {Book.objects.count()}", price, uploaded_by=seller or self.seller)
        result = self.service.initiate_purchase(self.buyer, ItemType.BOOK, book.pk)
        return self.service.settle(result.transaction_ref, "SUCCESS")

    @staticmethod
    def configure_wallet(user, method="jazzcash", auto_payout=True, schedule="weekly"):
        Wallet.objects.filter(user=user).update(payout_method=method, auto_payout=auto_payout, payout_schedule=schedule)

    def wallet(self, user=None):
        return Wallet.objects.get(user=user or self.seller)

    def test_balance_below_minimum_creates_nothing(self):
        Wallet.objects.filter(user=self.seller).update(available_balance=Decimal("999.00"))

        outcome = self.engine.process_auto_payout(self.seller)

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.code, "INSUFFICIENT_BALANCE")
        self.assertIn("Insufficient balance", outcome.message)
        self.assertFalse(Payout.objects.exists())

    def test_auto_payout_must_be_enabled(self):
        self.configure_wallet(self.seller, auto_payout=False)
        self.assertEqual(self.engine.process_auto_payout(self.seller).code, "AUTO_PAYOUT_DISABLED")

    def test_unverified_wallet(self):
        PaymentMethod.objects.filter(user=self.seller).update(is_verified=False)

        outcome = self.engine.process_auto_payout(self.seller)

        self.assertEqual(outcome.code, "WALLET_NOT_VERIFIED")
        self.assertFalse(Payout.objects.exists())

    @patch("payment.services.gateways.requests.post")
    def test_successful_transfer_debits_wallet_and_marks_earnings_paid(self, mock_post):
        mock_post.return_value = _response(payload={"pp_ResponseCode": "000", "pp_RetreivalReferenceNo": "RRN-9"})

        outcome = self.engine.process_auto_payout(self.seller)

        self.assertTrue(outcome.success, outcome.message)
        self.assertEqual(outcome.code, "COMPLETED")
        payout = outcome.payout
        self.assertEqual(payout.status, Payout.Status.COMPLETED)
        self.assertEqual(payout.amount, Decimal("1080.00"))
        self.assertEqual(payout.external_ref, "RRN-9")
        self.assertEqual(mock_post.call_args.kwargs["data"]["pp_TxnRefNo"], payout.internal_ref)

        wallet = self.wallet()
        self.assertEqual(wallet.available_balance, Decimal("0.00"))
        self.assertEqual(wallet.total_withdrawn, Decimal("1080.00"))
        commission = Commission.objects.get(seller=self.seller)
        self.assertEqual(commission.payout, payout)
        self.assertEqual(commission.status, Commission.Status.PAID_OUT)
        self.assertIsNotNone(commission.paid_out_at)
        payment = commission.payment
        payment.refresh_from_db()
        self.assertEqual(payment.earnings_status, Payment.EarningsStatus.PAID_OUT)
        self.assertEqual(payment.payout, payout)
        self.assertEqual(Purchase.objects.get(payment=payment).earnings_status, Purchase.EarningsStatus.PAID_OUT)
        self.assertTrue(Notification.objects.filter(user=self.seller, type="payout_completed").exists())

    @patch("payment.services.gateways.requests.post")
    def test_rejected_transfer_releases_commissions(self, mock_post):
        mock_post.return_value = _response(payload={"pp_ResponseCode": "121", "pp_ResponseMessage": "Invalid account"})

        outcome = self.engine.process_auto_payout(self.seller)

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.code, "GATEWAY_REJECTED")
        payout = Payout.objects.get()
        self.assertEqual(payout.status, Payout.Status.FAILED)
        self.assertEqual(payout.failure_reason, "Invalid account")
        commission = Commission.objects.get(seller=self.seller)
        self.assertIsNone(commission.payout)
        self.assertEqual(commission.status, Commission.Status.PROCESSED)
        self.assertEqual(payout.metadata["released_commissions"], [str(commission.pk)])
        self.assertEqual(self.wallet().available_balance, Decimal("1080.00"))
        self.assertTrue(Notification.objects.filter(user=self.seller, type="payout_failed").exists())

    @patch("payment.services.gateways.requests.post")
    def test_unavailable_transfer_stays_processing_until_retried(self, mock_post):
        mock_post.side_effect = requests.Timeout("read timed out")

        outcome = self.engine.process_auto_payout(self.seller)

        self.assertEqual(outcome.code, "GATEWAY_UNAVAILABLE")
        payout = Payout.objects.get()
        self.assertEqual(payout.status, Payout.Status.PROCESSING)
        self.assertTrue(payout.failure_reason.startswith("Gateway unavailable"))
        self.assertEqual(self.wallet().available_balance, Decimal("1080.00"))
        self.assertEqual(Commission.objects.get().payout, payout)

        self.assertEqual(self.engine.process_auto_payout(self.seller).code, "PAYOUT_IN_PROGRESS")

        mock_post.side_effect = None
        mock_post.return_value = _response(payload={"pp_ResponseCode": "000", "pp_RetreivalReferenceNo": "RRN-10"})
        retried = self.engine.retry(payout.pk, admin=self.admin)

        self.assertEqual(retried.code, "COMPLETED")
        self.assertEqual(retried.payout.retry_count, 1)
        self.assertEqual(mock_post.call_args.kwargs["data"]["pp_TxnRefNo"], payout.internal_ref)
        self.assertEqual(self.wallet().available_balance, Decimal("0.00"))

    @override_settings(JAZZCASH_MERCHANT_ID="", JAZZCASH_PASSWORD="", JAZZCASH_INTEGRITY_SALT="")
    @patch.dict("os.environ", {"JAZZCASH_MERCHANT_ID": "", "JAZZCASH_PASSWORD": "", "JAZZCASH_INTEGRITY_SALT": ""})
    def test_unconfigured_gateway_fails_the_payout_and_releases_commissions(self):
        engine = PayoutEngine(strategies={"jazzcash": JazzCashPayoutStrategy()})

        outcome = engine.process_auto_payout(self.seller)

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.code, "GATEWAY_NOT_CONFIGURED")
        payout = Payout.objects.get()
        self.assertEqual(payout.status, Payout.Status.FAILED)
        self.assertIn("JAZZCASH_MERCHANT_ID", payout.failure_reason)
        commission = Commission.objects.get()
        self.assertIsNone(commission.payout)
        self.assertEqual(commission.status, Commission.Status.PROCESSED)
        self.assertEqual(self.wallet().available_balance, Decimal("1080.00"))

        self.assertEqual(engine.process_auto_payout(self.seller).code, "GATEWAY_NOT_CONFIGURED")
        self.assertEqual(Payout.objects.filter(status=Payout.Status.FAILED).count(), 2)

    @patch("payment.services.gateways.requests.post")
    def test_missing_recipient_number_is_not_reported_as_gateway_rejection(self, mock_post):
        with patch.object(JazzCashPayoutStrategy, "recipient_details", return_value={}):
            outcome = self.engine.process_auto_payout(self.seller)

        self.assertEqual(outcome.code, "INVALID_RECIPIENT")
        self.assertEqual(outcome.payout.status, Payout.Status.FAILED)
        mock_post.assert_not_called()

    def test_payout_links_at_most_the_batch_limit(self):
        self.sell(Decimal("500.00"))
        self.sell(Decimal("700.00"))
        engine = PayoutEngine(batch_limit=2)

        payout = engine.request_payout(self.seller).payout

        linked = Commission.objects.filter(payout=payout)
        self.assertEqual(linked.count(), 2)
        self.assertEqual(payout.amount, sum(c.seller_amount for c in linked))
        self.assertEqual(payout.amount, Decimal("1530.00"))
        left = Commission.objects.get(payout__isnull=True)
        self.assertEqual(left.status, Commission.Status.PROCESSED)
        self.assertEqual(left.seller_amount, Decimal("630.00"))

    @patch("payment.services.gateways.requests.post")
    def test_payout_amount_is_the_sum_of_linked_commissions(self, mock_post):
        mock_post.return_value = _response(payload={"pp_ResponseCode": "000", "pp_RetreivalReferenceNo": "RRN-12"})
        self.sell(Decimal("500.00"))
        self.sell(Decimal("333.33"))

        outcome = self.engine.process_auto_payout(self.seller)

        payout = outcome.payout
        linked = Commission.objects.filter(payout=payout)
        self.assertEqual(linked.count(), 3)
        self.assertEqual(payout.amount, sum(c.seller_amount for c in linked))
        self.assertEqual(payout.amount, Decimal("1830.00"))
        self.assertEqual(mock_post.call_args.kwargs["data"]["pp_Amount"], "183000")
        self.assertEqual(self.wallet().available_balance, Decimal("0.00"))
        self.assertFalse(Commission.objects.exclude(status=Commission.Status.PAID_OUT).exists())

    def test_requested_payout_waits_for_approval(self):
        outcome = self.engine.request_payout(self.seller)

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.code, "AWAITING_APPROVAL")
        self.assertEqual(outcome.payout.status, Payout.Status.PENDING)
        self.assertFalse(outcome.payout.is_automatic)

    @patch("payment.services.gateways.requests.post")
    def test_approving_a_requested_payout_sends_it(self, mock_post):
        mock_post.return_value = _response(payload={"pp_ResponseCode": "000", "pp_RetreivalReferenceNo": "RRN-11"})
        payout = self.engine.request_payout(self.seller).payout

        outcome = self.engine.approve(payout.pk, admin=self.admin)

        self.assertEqual(outcome.code, "COMPLETED")
        self.assertEqual(outcome.payout.processed_by, self.admin)

    def test_manual_payout_waits_for_approval_and_reject_releases_commissions(self):
        self.configure_wallet(self.seller, method="manual")

        outcome = self.engine.process_auto_payout(self.seller)

        self.assertEqual(outcome.code, "AWAITING_APPROVAL")
        payout = outcome.payout
        self.assertEqual(payout.status, Payout.Status.PENDING)
        self.assertEqual(payout.recipient_details, {"payment_type": "JAZZCASH", "account": "03001234567"})
        self.assertEqual(Commission.objects.get().status, Commission.Status.PAID_OUT)

        rejected = self.engine.reject(payout.pk, "Account title does not match", admin=self.admin)

        self.assertEqual(rejected.status, Payout.Status.CANCELLED)
        commission = Commission.objects.get()
        self.assertIsNone(commission.payout)
        self.assertEqual(commission.status, Commission.Status.PROCESSED)
        self.assertEqual(self.wallet().available_balance, Decimal("1080.00"))
        with self.assertRaises(ConflictingState):
            self.engine.approve(payout.pk, admin=self.admin)

    def test_manual_payout_is_completed_with_proof(self):
        self.configure_wallet(self.seller, method="manual")
        payout = self.engine.process_auto_payout(self.seller).payout

        approved = self.engine.approve(payout.pk, admin=self.admin)
        self.assertEqual(approved.code, "AWAITING_TRANSFER")
        self.assertEqual(approved.payout.status, Payout.Status.PROCESSING)

        with self.assertRaises(PaymentValidationError):
            self.engine.complete(payout.pk, {"transaction_ref": "  "}, admin=self.admin)

        done = self.engine.complete(
            payout.pk,
            {"transaction_ref": "IBFT-778", "receipt_url": "https://example.com/r/778", "notes": "Sent by ops"},
            admin=self.admin,
        )

        self.assertEqual(done.code, "COMPLETED")
        self.assertEqual(done.payout.proof_reference, "IBFT-778")
        self.assertEqual(done.payout.external_ref, "IBFT-778")
        self.assertEqual(done.payout.proof_url, "https://example.com/r/778")
        self.assertEqual(self.wallet().available_balance, Decimal("0.00"))

    def test_admin_operations_validate_state(self):
        with self.assertRaises(PaymentNotFound):
            self.engine.approve("00000000-0000-0000-0000-000000000000")
        payout = self.engine.request_payout(self.seller).payout
        with self.assertRaises(PaymentValidationError):
            self.engine.reject(payout.pk, "")
        with self.assertRaises(ConflictingState):
            self.engine.retry(payout.pk)
        with self.assertRaises(ConflictingState):
            self.engine.complete(payout.pk, {"transaction_ref": "IBFT-1"})

    def test_batch_isolates_failing_users(self):
        other = User.objects.create_user(email="seller2@books.pk", password="Pass123!", role=User.Role.ADMIN)
        for user in (self.seller, other):
            Wallet.objects.filter(user=user).update(available_balance=Decimal("1500.00"), auto_payout=True)

        with patch.object(
            self.engine,
            "process_auto_payout",
            side_effect=[RuntimeError("boom"), PayoutOutcome(True, "Payout completed", code="COMPLETED")],
        ):
            results = self.engine.process_all_auto_payouts()

        self.assertEqual(len(results), 2)
        self.assertEqual(results[0]["user_id"], str(self.seller.pk))
        self.assertEqual(results[0]["code"], "ERROR")
        self.assertTrue(results[1]["success"])

    def test_batch_filters_by_schedule(self):
        other = User.objects.create_user(email="seller2@books.pk", password="Pass123!", role=User.Role.ADMIN)
        Wallet.objects.filter(user=other).update(
            available_balance=Decimal("1500.00"), auto_payout=True, payout_schedule="daily"
        )

        with patch.object(
            self.engine,
            "process_auto_payout",
            return_value=PayoutOutcome(False, "Auto payout is not enabled", code="AUTO_PAYOUT_DISABLED"),
        ) as mock_process:
            results = self.engine.process_all_auto_payouts(schedule="daily")

        self.assertEqual([r["user_id"] for r in results], [str(other.pk)])
        mock_process.assert_called_once_with(other)

    def test_stats(self):
        self.engine.request_payout(self.seller)

        stats = PayoutEngine.stats()

        self.assertEqual(stats["total_payouts"], 1)
        self.assertEqual(stats["by_status"]["PENDING"]["count"], 1)
        self.assertEqual(Decimal(stats["by_status"]["PENDING"]["total"]), Decimal("1080.00"))
        self.assertEqual(stats["by_status"]["COMPLETED"]["count"], 0)


class PayoutSchedulerTests(TestCase):
    def test_registers_one_job_per_cadence(self):
        background = BackgroundScheduler(timezone="UTC")
        scheduler = PayoutScheduler(
            schedules={"daily": "0 2 * * *", "weekly": "0 3 * * 1"},
            scheduler=background,
        )

        job_ids = scheduler.register_jobs()

        self.assertEqual(job_ids, ["auto_payouts_daily", "auto_payouts_weekly"])
        self.assertIsNotNone(background.get_job("auto_payouts_weekly"))

    def test_invalid_configuration(self):
        with self.assertRaises(ImproperlyConfigured):
            PayoutScheduler(schedules={"hourly": "0 * * * *"}, scheduler=BackgroundScheduler()).register_jobs()
        with self.assertRaises(ImproperlyConfigured):
            PayoutScheduler(schedules={"daily": "every day"}, scheduler=BackgroundScheduler()).register_jobs()

    def test_run_batch_calls_the_engine(self):
        engine = Mock()
        engine.process_all_auto_payouts.return_value = [{"success": True}, {"success": False}]
        scheduler = PayoutScheduler(schedules={}, engine_factory=lambda: engine, scheduler=BackgroundScheduler())

        results = scheduler.run_batch("weekly")

        self.assertEqual(len(results), 2)
        engine.process_all_auto_payouts.assert_called_once_with(schedule="weekly")

    def test_run_payouts_once(self):
        out = StringIO()
        call_command("run_payouts", "--once", "--schedule", "weekly", stdout=out)
        self.assertIn("Processed: 0 | Success: 0 | Failed: 0", out.getvalue())

    def test_reconcile_payments_command(self):
        out = StringIO()
        call_command("reconcile_payments", "--older-than", "30", stdout=out)
        self.assertIn("Checked: 0 | Settled: 0 | Still pending: 0 | Errors: 0", out.getvalue())


@override_settings(FRONTEND_URL="https://app.example.com", **JAZZCASH_SETTINGS)
class PaymentApiTests(MarketplaceFixtureMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.create_marketplace()
        self.jazzcash = JazzCashGateway(JAZZCASH_CONFIG)

    def test_purchase_initiate(self):
        self.client.force_authenticate(self.buyer)

        resp = self.client.post(
            "/payment/purchase/",
            {"item_type": "book", "item_id": str(self.book.pk), "format": "pdf"},
            format="json",
        )

        self.assertEqual(resp.status_code, 201, resp.data)
        self.assertFalse(resp.data["already_purchased"])
        self.assertEqual(resp.data["amount"], "500.00")
        self.assertEqual(resp.data["form_fields"]["pp_Amount"], "50000")

    def test_purchase_of_missing_item(self):
        self.client.force_authenticate(self.buyer)
        resp = self.client.post(
            "/payment/purchase/",
            {"item_type": "judgment", "item_id": str(self.book.pk)},
            format="json",
        )
        self.assertEqual(resp.status_code, 404, resp.data)

    def test_return_redirects_to_frontend(self):
        payment = self.create_pending_payment(transaction_ref="TXN1700000000000")

        resp = self.client.get(
            "/payment/jazzcash/return/",
            _signed_return(self.jazzcash, payment.transaction_ref),
        )

        self.assertEqual(resp.status_code, 302)
        self.assertEqual(resp["Location"], "https://app.example.com/payment/result?status=success&ref=TXN1700000000000")

        tampered = _signed_return(self.jazzcash, payment.transaction_ref, code="199")
        tampered["pp_ResponseCode"] = "000"
        resp = self.client.get("/payment/jazzcash/return/", tampered)
        self.assertIn("status=invalid", resp["Location"])

    def test_webhook_always_answers_200(self):
        payment = self.create_pending_payment(transaction_ref="TXN1700000000000")
        payload = _signed_return(self.jazzcash, payment.transaction_ref)
        payload["pp_Amount"] = "1"

        resp = self.client.post(
            "/payment/jazzcash/webhook/",
            urlencode(payload),
            content_type="application/x-www-form-urlencoded",
        )

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["accepted"], False)
        self.assertEqual(Payment.objects.get().status, Payment.Status.PENDING)

    def test_verify_is_limited_to_the_buyer(self):
        payment = self.create_pending_payment()

        self.client.force_authenticate(self.buyer)
        resp = self.client.get(f"/payment/verify/{payment.pk}/")
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["status"], "PENDING")
        self.assertIsNone(resp.data["purchase_id"])

        self.client.force_authenticate(self.seller)
        resp = self.client.get(f"/payment/verify/{payment.pk}/")
        self.assertEqual(resp.status_code, 404)

    def test_only_sellers_request_payouts(self):
        self.client.force_authenticate(self.buyer)
        resp = self.client.post("/payment/payouts/request/", {}, format="json")
        self.assertEqual(resp.status_code, 403)

        self.client.force_authenticate(self.seller)
        resp = self.client.post("/payment/payouts/request/", {}, format="json")
        self.assertEqual(resp.status_code, 400, resp.data)
        self.assertEqual(resp.data["code"], "INSUFFICIENT_BALANCE")

    def test_admin_approves_manual_payout(self):
        staff = User.objects.create_user(email="ops@books.pk", password="Pass123!", is_staff=True)
        payment = self.create_pending_payment(book=self.create_book("Big Book", Decimal("2000.00")))
        PaymentLedger().mark_result(payment.transaction_ref, "SUCCESS")
        PaymentLedger().distribute_earnings(payment)
        payout = PayoutEngine().request_payout(self.seller).payout

        self.client.force_authenticate(self.seller)
        self.assertEqual(self.client.post(f"/payment/payouts/{payout.pk}/approve/").status_code, 403)

        self.client.force_authenticate(staff)
        resp = self.client.post(f"/payment/payouts/{payout.pk}/approve/")
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["code"], "AWAITING_TRANSFER")
        self.assertEqual(resp.data["payout"]["status"], "PROCESSING")

        resp = self.client.post(f"/payment/payouts/{payout.pk}/approve/")
        self.assertEqual(resp.status_code, 409)

        resp = self.client.get("/payment/payouts/stats/")
        self.assertEqual(resp.data["by_status"]["PROCESSING"]["count"], 1)


class ReportApiTests(MarketplaceFixtureMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.create_marketplace()
        self.staff = User.objects.create_user(email="ops@books.pk", password="Pass123!", is_staff=True)
        self.other_seller = User.objects.create_user(
            email="chambers@books.pk",
            password="Pass123!",
            role=User.Role.ADMIN,
        )
        self.service = PaymentService(gateways={"jazzcash": JazzCashGateway(JAZZCASH_CONFIG)})
        self.torts = self.sell("Law of Torts", Decimal("1200.00"))
        self.evidence = self.sell("Law of Evidence", Decimal("500.00"))
        self.crimes = self.sell("Criminal Procedure", Decimal("700.00"), seller=self.other_seller)

    def sell(self, title, price, seller=None):
        book = self.create_book(title, price, uploaded_by=seller or self.seller)
        result = self.service.initiate_purchase(self.buyer, ItemType.BOOK, book.pk)
        self.service.settle(result.transaction_ref, "SUCCESS")
        return book

    def test_seller_commission_list_is_scoped_and_summarised(self):
        self.client.force_authenticate(self.seller)

        resp = self.client.get("/payment/commissions/")

        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["count"], 2)
        self.assertEqual({row["seller_email"] for row in resp.data["results"]}, {"seller@books.pk"})
        summary = resp.data["summary"]
        self.assertEqual(summary["total_amount"], "1700.00")
        self.assertEqual(summary["total_seller_amount"], "1530.00")
        self.assertEqual(summary["total_platform_amount"], "170.00")
        self.assertEqual(summary["unpaid_count"], 2)
        self.assertEqual(summary["paid_amount"], "0.00")

        paid = self.client.get("/payment/commissions/", {"status": "paid_out"})
        self.assertEqual(paid.data["count"], 0)

    def test_commission_filters_are_validated(self):
        self.client.force_authenticate(self.seller)

        for params in ({"status": "settled"}, {"seller_type": "publisher"}, {"start_date": "yesterday"}):
            with self.subTest(params=params):
                resp = self.client.get("/payment/commissions/", params)
                self.assertEqual(resp.status_code, 400, resp.data)

        resp = self.client.get("/payment/commissions/", {"start_date": "2030-01-02", "end_date": "2030-01-01"})
        self.assertEqual(resp.status_code, 400, resp.data)

    def test_admin_commission_list_requires_staff(self):
        self.client.force_authenticate(self.seller)
        self.assertEqual(self.client.get("/payment/commissions/all/").status_code, 403)

        self.client.force_authenticate(self.staff)
        resp = self.client.get("/payment/commissions/all/")
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["count"], 3)

        resp = self.client.get("/payment/commissions/all/", {"seller_id": str(self.other_seller.pk)})
        self.assertEqual(resp.data["count"], 1)
        self.assertEqual(resp.data["summary"]["total_seller_amount"], "630.00")

    def test_summary_covers_own_sales_or_everything_for_the_platform(self):
        self.client.force_authenticate(self.seller)

        resp = self.client.get("/payment/commissions/summary/", {"period": "week"})

        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["period"], "week")
        self.assertEqual(resp.data["summary"]["total_commissions"], 2)
        self.assertEqual(len(resp.data["daily_trend"]), 1)
        self.assertEqual(resp.data["daily_trend"][0]["seller_amount"], "1530.00")
        self.assertEqual(len(resp.data["top_items"]), 2)

        self.client.force_authenticate(self.platform)
        resp = self.client.get("/payment/commissions/summary/", {"period": "fortnight"})
        self.assertEqual(resp.data["period"], "month")
        self.assertEqual(resp.data["summary"]["total_commissions"], 3)

    def test_item_report_only_shows_the_sellers_own_earnings(self):
        self.client.force_authenticate(self.seller)

        resp = self.client.get(f"/payment/commissions/book/{self.torts.pk}/")

        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["earnings"][0]["earnings"], "1080.00")
        self.assertEqual(resp.data["earnings"][0]["platform_amount"], "120.00")
        self.assertEqual(len(resp.data["commissions"]), 1)
        self.assertEqual(resp.data["commissions"][0]["item_title"], "Law of Torts")

        self.client.force_authenticate(self.other_seller)
        resp = self.client.get(f"/payment/commissions/book/{self.torts.pk}/")
        self.assertEqual(resp.data["earnings"], [])
        self.assertEqual(resp.data["commissions"], [])

        resp = self.client.get(f"/payment/commissions/magazine/{self.torts.pk}/")
        self.assertEqual(resp.status_code, 400, resp.data)

    def test_admin_stats(self):
        self.client.force_authenticate(self.seller)
        self.assertEqual(self.client.get("/payment/commissions/stats/").status_code, 403)

        self.client.force_authenticate(self.staff)
        resp = self.client.get("/payment/commissions/stats/")

        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["overall"]["total_commissions"], 3)
        self.assertEqual(resp.data["overall"]["total_platform_amount"], "240.00")
        self.assertEqual(resp.data["overall"]["average_percentage"], "10.00")
        self.assertEqual(resp.data["by_status"]["PROCESSED"]["count"], 3)
        self.assertEqual(resp.data["by_status"]["PAID_OUT"]["count"], 0)
        self.assertEqual(resp.data["by_seller_type"]["admin"]["seller_amount"], "2160.00")
        self.assertEqual(resp.data["top_sellers"][0]["seller_email"], "seller@books.pk")
        self.assertEqual(resp.data["top_sellers"][0]["earnings"], "1530.00")
        self.assertEqual(len(resp.data["monthly_trend"]), 1)

    def test_daily_report(self):
        self.client.force_authenticate(self.staff)

        resp = self.client.get("/payment/commissions/daily-report/")

        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["date"], timezone.localdate().isoformat())
        self.assertEqual(resp.data["summary"]["total_commissions"], 3)
        self.assertEqual(len(resp.data["commissions"]), 3)

        resp = self.client.get("/payment/commissions/daily-report/", {"date": "2001-01-01"})
        self.assertEqual(resp.data["summary"]["total_commissions"], 0)
        self.assertEqual(resp.data["summary"]["total_seller_amount"], "0.00")

        resp = self.client.get("/payment/commissions/daily-report/", {"date": "01/01/2001"})
        self.assertEqual(resp.status_code, 400, resp.data)

    def test_csv_export(self):
        self.client.force_authenticate(self.seller)
        self.assertEqual(self.client.get("/payment/commissions/export/").status_code, 403)

        self.client.force_authenticate(self.staff)
        resp = self.client.get("/payment/commissions/export/", {"seller_id": str(self.seller.pk)})

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp["Content-Type"], "text/csv")
        self.assertIn("attachment; filename=\"commissions_", resp["Content-Disposition"])
        rows = list(csv.reader(StringIO(resp.content.decode())))
        self.assertEqual(rows[0][:4], ["ID", "Date", "Seller", "Buyer"])
        self.assertEqual(len(rows), 3)
        torts = next(row for row in rows[1:] if row[5] == "Law of Torts")
        self.assertEqual(torts[2:4], ["seller@books.pk", "buyer@books.pk"])
        self.assertEqual(torts[6:9], ["1200.00", "1080.00", "120.00"])
        self.assertEqual(torts[10], "N/A")
        self.assertEqual(torts[11], "10.00%")

    def test_seller_sales(self):
        self.client.force_authenticate(self.buyer)
        self.assertEqual(self.client.get("/payment/sales/").status_code, 403)

        self.client.force_authenticate(self.seller)
        resp = self.client.get("/payment/sales/")

        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["count"], 2)
        self.assertEqual(resp.data["total_sales"], 2)
        self.assertEqual(resp.data["total_earnings"], "1530.00")
        self.assertEqual(resp.data["results"][0]["buyer_email"], "buyer@books.pk")

    def test_purchase_check_and_buyer_stats(self):
        self.client.force_authenticate(self.buyer)

        resp = self.client.get("/payment/purchases/check/", {"item_type": "book", "item_id": str(self.torts.pk)})
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertTrue(resp.data["has_purchased"])
        self.assertEqual(resp.data["purchase"]["item_title"], "Law of Torts")

        resp = self.client.get("/payment/purchases/check/", {"item_type": "book", "item_id": str(self.book.pk)})
        self.assertFalse(resp.data["has_purchased"])
        self.assertIsNone(resp.data["purchase"])

        resp = self.client.get(
            "/payment/purchases/check/",
            {"item_type": "book", "item_id": str(self.torts.pk), "format": "text"},
        )
        self.assertFalse(resp.data["can_download"])

        resp = self.client.get("/payment/purchases/check/", {"item_id": str(self.torts.pk)})
        self.assertEqual(resp.status_code, 400)

        resp = self.client.get("/payment/purchases/stats/")
        self.assertEqual(
            resp.data,
            {"total_purchases": 3, "total_spent": "2400.00", "total_books": 3, "total_judgments": 0},
        )

    def test_platform_purchase_stats(self):
        self.client.force_authenticate(self.buyer)
        self.assertEqual(self.client.get("/payment/purchases/platform-stats/").status_code, 403)

        self.client.force_authenticate(self.staff)
        resp = self.client.get("/payment/purchases/platform-stats/")

        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["completed_purchases"], 3)
        self.assertEqual(resp.data["total_revenue"], "2400.00")
        self.assertEqual(resp.data["monthly_revenue"], "2400.00")
        self.assertEqual(resp.data["book_purchases"], 3)
        self.assertEqual(resp.data["commission"]["total_platform_amount"], "240.00")
        self.assertEqual(resp.data["top_books"][0]["title"], "Law of Torts")
