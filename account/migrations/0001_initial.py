from decimal import Decimal
import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("auth", "0012_alter_user_first_name_max_length"),
    ]

    operations = [
        migrations.CreateModel(
            name="User",
            fields=[
                ("last_login", models.DateTimeField(blank=True, null=True, verbose_name="last login")),
                ("is_superuser", models.BooleanField(default=False, help_text="Designates that this user has all permissions without explicitly assigning them.", verbose_name="superuser status")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False, unique=True)),
                ("role", models.CharField(choices=[("CUSTOMER", "Customer"), ("ADMIN", "Admin"), ("SUPERADMIN", "Super Admin")], default="CUSTOMER", max_length=20)),
                ("email", models.EmailField(max_length=254, unique=True)),
                ("first_name", models.CharField(blank=True, max_length=30)),
                ("last_name", models.CharField(blank=True, max_length=30)),
                ("phone_number", models.CharField(blank=True, max_length=20)),
                ("password", models.CharField(max_length=128)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("is_active", models.BooleanField(default=True)),
                ("is_staff", models.BooleanField(default=False)),
                ("groups", models.ManyToManyField(blank=True, help_text="The groups this user belongs to. A user will get all permissions granted to each of their groups.", related_name="user_set", related_query_name="user", to="auth.group", verbose_name="groups")),
                ("user_permissions", models.ManyToManyField(blank=True, help_text="Specific permissions for this user.", related_name="user_set", related_query_name="user", to="auth.permission", verbose_name="user permissions")),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="Wallet",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("available_balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("total_earnings", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("total_withdrawn", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("last_payout_date", models.DateTimeField(blank=True, null=True)),
                ("auto_payout", models.BooleanField(default=False)),
                ("payout_method", models.CharField(choices=[("jazzcash", "JazzCash"), ("easypaisa", "Easypaisa"), ("bank", "Bank Transfer"), ("manual", "Manual")], default="manual", max_length=20)),
                ("payout_schedule", models.CharField(choices=[("daily", "Daily"), ("weekly", "Weekly"), ("monthly", "Monthly"), ("manual", "Manual")], default="weekly", max_length=20)),
                ("minimum_payout", models.DecimalField(decimal_places=2, default=Decimal("1000.00"), max_digits=12)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="wallet", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [models.Index(fields=["auto_payout", "payout_schedule"], name="account_wal_auto_pa_da1b55_idx")],
                "constraints": [models.CheckConstraint(condition=models.Q(("available_balance__gte", 0)), name="wallet_available_balance_non_negative")],
            },
        ),
        migrations.CreateModel(
            name="PaymentMethod",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("payment_type", models.CharField(choices=[("JAZZCASH", "JazzCash"), ("EASYPAISA", "Easypaisa"), ("BANK", "Bank")], max_length=20)),
                ("phone_number", models.CharField(blank=True, max_length=20, null=True)),
                ("account_title", models.CharField(blank=True, max_length=100, null=True)),
                ("account_number", models.CharField(blank=True, max_length=50, null=True)),
                ("bank_name", models.CharField(blank=True, max_length=100, null=True)),
                ("iban", models.CharField(blank=True, max_length=34, null=True)),
                ("is_verified", models.BooleanField(default=False)),
                ("verified_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="payment_methods", to=settings.AUTH_USER_MODEL)),
                ("verified_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="verified_payment_methods", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "unique_together": {("user", "payment_type")},
                "constraints": [models.UniqueConstraint(condition=models.Q(("phone_number__isnull", False)), fields=("payment_type", "phone_number"), name="unique_mobile_wallet_number")],
            },
        ),
    ]
