import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import RegexValidator
from django.db import models
from django.contrib.auth.models import (
    AbstractBaseUser,
    PermissionsMixin,
    BaseUserManager,
)

mobile_wallet_number_validator = RegexValidator(
    regex=r"^03\d{9}$",
    message="Enter a valid mobile wallet number (03XXXXXXXXX).",
)


class UserManager(BaseUserManager):
    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError("Users must have an email")
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("role", User.Role.SUPERADMIN)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        return self.create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):

    class Role(models.TextChoices):
        CUSTOMER = "CUSTOMER", "Customer"
        ADMIN = "ADMIN", "Admin"
        SUPERADMIN = "SUPERADMIN", "Super Admin"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, unique=True)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.CUSTOMER)

    # Basic fields
    email = models.EmailField(unique=True)
    first_name = models.CharField(max_length=30, blank=True)
    last_name = models.CharField(max_length=30, blank=True)
    phone_number = models.CharField(max_length=20, blank=True)
    password = models.CharField(max_length=128)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # Auth
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)

    objects = UserManager()

    USERNAME_FIELD = "email"

    def __str__(self):
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.email

    @property
    def is_platform_admin(self) -> bool:
        return self.role == self.Role.SUPERADMIN

    @property
    def is_seller(self) -> bool:
        return self.role in {self.Role.ADMIN, self.Role.SUPERADMIN}


class Wallet(models.Model):
    """
    Running balance of a seller. Balance columns are written only through
    payment.services.wallet.WalletLedger; payout settings are user-editable.
    """

    class PayoutMethod(models.TextChoices):
        JAZZCASH = "jazzcash", "JazzCash"
        EASYPAISA = "easypaisa", "Easypaisa"
        BANK = "bank", "Bank Transfer"
        MANUAL = "manual", "Manual"

    class PayoutSchedule(models.TextChoices):
        DAILY = "daily", "Daily"
        WEEKLY = "weekly", "Weekly"
        MONTHLY = "monthly", "Monthly"
        MANUAL = "manual", "Manual"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="wallet")

    available_balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total_earnings = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total_withdrawn = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    last_payout_date = models.DateTimeField(null=True, blank=True)

    # Payout settings
    auto_payout = models.BooleanField(default=False)
    payout_method = models.CharField(max_length=20, choices=PayoutMethod.choices, default=PayoutMethod.MANUAL)
    payout_schedule = models.CharField(max_length=20, choices=PayoutSchedule.choices, default=PayoutSchedule.WEEKLY)
    minimum_payout = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("1000.00"))

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(available_balance__gte=0),
                name="wallet_available_balance_non_negative",
            ),
        ]
        indexes = [
            models.Index(fields=["auto_payout", "payout_schedule"]),
        ]

    def __str__(self):
        return f"{self.user.email} - {self.available_balance}"


class PaymentMethod(models.Model):
    """A payout destination registered by a seller, one per type."""

    class Type(models.TextChoices):
        JAZZCASH = "JAZZCASH", "JazzCash"
        EASYPAISA = "EASYPAISA", "Easypaisa"
        BANK = "BANK", "Bank"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="payment_methods"
    )
    payment_type = models.CharField(max_length=20, choices=Type.choices)

    # Mobile wallets
    phone_number = models.CharField(max_length=20, blank=True, null=True)

    # Bank accounts
    account_title = models.CharField(max_length=100, blank=True, null=True)
    account_number = models.CharField(max_length=50, blank=True, null=True)
    bank_name = models.CharField(max_length=100, blank=True, null=True)
    iban = models.CharField(max_length=34, blank=True, null=True)

    is_verified = models.BooleanField(default=False)
    verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="verified_payment_methods",
    )
    verified_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("user", "payment_type")  # each user can have 1 of each type
        constraints = [
            models.UniqueConstraint(
                fields=["payment_type", "phone_number"],
                condition=models.Q(phone_number__isnull=False),
                name="unique_mobile_wallet_number",
            ),
        ]

    def __str__(self):
        return f"{self.user.email} - {self.payment_type}"

    def get_identifier(self):
        """
        Returns the correct identifier based on the payment type
        """
        if self.payment_type == self.Type.BANK:
            return self.iban or self.account_number
        else:
            return self.phone_number
