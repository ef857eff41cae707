# payments/models.py

import uuid
from decimal import Decimal

from django.db import models
from django.conf import settings

from catalog.models import Book, Judgment


class ItemType(models.TextChoices):
    BOOK = "book", "Book"
    JUDGMENT = "judgment", "Judgment"


class ContentFormat(models.TextChoices):
    PDF = "pdf", "PDF"
    TEXT = "text", "Text"


class SellerType(models.TextChoices):
    ADMIN = "admin", "Admin"
    SUPERADMIN = "superadmin", "Super Admin"


class Payment(models.Model):

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        SUCCESS = "SUCCESS", "Success"
        FAILED = "FAILED", "Failed"
        REFUNDED = "REFUNDED", "Refunded"

    class EarningsStatus(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PROCESSED = "PROCESSED", "Processed"
        PAID_OUT = "PAID_OUT", "Paid Out"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="payments",
    )

    item_type = models.CharField(max_length=20, choices=ItemType.choices, default=ItemType.BOOK)
    book = models.ForeignKey(Book, on_delete=models.PROTECT, related_name="payments", null=True, blank=True)
    judgment = models.ForeignKey(Judgment, on_delete=models.PROTECT, related_name="payments", null=True, blank=True)
    format = models.CharField(max_length=10, choices=ContentFormat.choices, default=ContentFormat.PDF)

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=10, default="PKR")

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="sales",
    )
    seller_type = models.CharField(max_length=20, choices=SellerType.choices)
    commission_percentage = models.DecimalField(max_digits=5, decimal_places=2)
    seller_amount = models.DecimalField(max_digits=12, decimal_places=2)
    platform_amount = models.DecimalField(max_digits=12, decimal_places=2)

    gateway = models.CharField(max_length=30)  # e.g. jazzcash, safepay
    transaction_ref = models.CharField(max_length=100, unique=True)
    session_token = models.CharField(max_length=255, blank=True, db_index=True)

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING
    )
    gateway_response = models.JSONField(default=dict, blank=True)

    earnings_status = models.CharField(
        max_length=20,
        choices=EarningsStatus.choices,
        default=EarningsStatus.PENDING,
    )
    payout = models.ForeignKey(
        "payment.Payout",
        on_delete=models.SET_NULL,
        related_name="payments",
        null=True,
        blank=True,
    )

    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status"]),
            models.Index(fields=["earnings_status"]),
            models.Index(fields=["user", "status"]),
        ]

    def __str__(self):
        return f"{self.transaction_ref} - {self.status}"

    @property
    def item(self):
        return self.book if self.item_type == ItemType.BOOK else self.judgment

    @property
    def commission_snapshot(self):
        return {
            "seller_amount": str(self.seller_amount),
            "platform_amount": str(self.platform_amount),
            "percentage": str(self.commission_percentage),
        }


class Purchase(models.Model):
    """Grants the buyer permanent access to one item in one format."""

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"
        REFUNDED = "refunded", "Refunded"

    class EarningsStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        PROCESSED = "processed", "Processed"
        PAID_OUT = "paid_out", "Paid Out"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="purchases")

    item_type = models.CharField(max_length=20, choices=ItemType.choices)
    book = models.ForeignKey(Book, on_delete=models.PROTECT, related_name="purchases", null=True, blank=True)
    judgment = models.ForeignKey(Judgment, on_delete=models.PROTECT, related_name="purchases", null=True, blank=True)
    format = models.CharField(max_length=10, choices=ContentFormat.choices)

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment = models.OneToOneField(Payment, on_delete=models.PROTECT, related_name="purchase")
    payment_method = models.CharField(max_length=30)
    payment_status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    transaction_id = models.CharField(max_length=100)

    seller = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="sold_purchases")
    seller_type = models.CharField(max_length=20, choices=SellerType.choices)
    seller_amount = models.DecimalField(max_digits=12, decimal_places=2)
    platform_amount = models.DecimalField(max_digits=12, decimal_places=2)
    commission_percentage = models.DecimalField(max_digits=5, decimal_places=2)
    earnings_status = models.CharField(max_length=20, choices=EarningsStatus.choices, default=EarningsStatus.PENDING)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "book", "format"],
                condition=models.Q(payment_status="completed", book__isnull=False),
                name="unique_completed_book_purchase",
            ),
            models.UniqueConstraint(
                fields=["user", "judgment", "format"],
                condition=models.Q(payment_status="completed", judgment__isnull=False),
                name="unique_completed_judgment_purchase",
            ),
        ]
        indexes = [
            models.Index(fields=["user", "payment_status"]),
        ]

    def __str__(self):
        return f"{self.user_id} - {self.item_type} - {self.format}"

    @property
    def item(self):
        return self.book if self.item_type == ItemType.BOOK else self.judgment


class Commission(models.Model):
    """One seller's earned cut of one successful payment."""

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PROCESSED = "PROCESSED", "Processed"
        PAID_OUT = "PAID_OUT", "Paid Out"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    payment = models.OneToOneField(Payment, on_delete=models.PROTECT, related_name="commission")
    item_type = models.CharField(max_length=20, choices=ItemType.choices)
    book = models.ForeignKey(Book, on_delete=models.PROTECT, related_name="commissions", null=True, blank=True)
    judgment = models.ForeignKey(Judgment, on_delete=models.PROTECT, related_name="commissions", null=True, blank=True)
    buyer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    seller = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="commissions")
    seller_type = models.CharField(max_length=20, choices=SellerType.choices)

    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    seller_amount = models.DecimalField(max_digits=12, decimal_places=2)
    platform_amount = models.DecimalField(max_digits=12, decimal_places=2)
    percentage = models.DecimalField(max_digits=5, decimal_places=2)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    payout = models.ForeignKey(
        "payment.Payout",
        on_delete=models.SET_NULL,
        related_name="commissions",
        null=True,
        blank=True,
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    paid_out_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["seller", "status"]),
            models.Index(fields=["payout"]),
        ]

    def __str__(self):
        return f"{self.seller_id} - {self.seller_amount} - {self.status}"


class Payout(models.Model):

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PROCESSING = "PROCESSING", "Processing"
        COMPLETED = "COMPLETED", "Completed"
        FAILED = "FAILED", "Failed"
        CANCELLED = "CANCELLED", "Cancelled"

    class Method(models.TextChoices):
        JAZZCASH = "jazzcash", "JazzCash"
        EASYPAISA = "easypaisa", "Easypaisa"
        BANK = "bank", "Bank Transfer"
        MANUAL = "manual", "Manual"

    IN_FLIGHT = (Status.PENDING, Status.PROCESSING)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="payouts")

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_method = models.CharField(max_length=20, choices=Method.choices)
    recipient_details = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    is_automatic = models.BooleanField(default=False)

    internal_ref = models.CharField(max_length=64, unique=True, editable=False)
    external_ref = models.CharField(max_length=150, blank=True, null=True)
    failure_reason = models.TextField(blank=True)
    retry_count = models.PositiveIntegerField(default=0)

    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="processed_payouts",
        null=True,
        blank=True,
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    # Manual transfer proof
    proof_reference = models.CharField(max_length=150, blank=True)
    proof_url = models.URLField(blank=True)
    notes = models.TextField(blank=True)

    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user"],
                condition=models.Q(status__in=["PENDING", "PROCESSING"]),
                name="unique_in_flight_payout_per_user",
            ),
        ]
        indexes = [
            models.Index(fields=["status"]),
            models.Index(fields=["external_ref"]),
        ]

    def __str__(self):
        return f"{self.internal_ref} - {self.status}"

    @property
    def linked_total(self) -> Decimal:
        total = self.commissions.aggregate(total=models.Sum("seller_amount"))["total"]
        return total or Decimal("0.00")


class WebhookLog(models.Model):

    provider = models.CharField(max_length=50)
    event_type = models.CharField(max_length=100)

    reference = models.CharField(max_length=150)
    payload = models.JSONField()

    processed = models.BooleanField(default=False)
    processing_attempts = models.IntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["reference"]),
            models.Index(fields=["processed"]),
        ]
