import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


ITEM_TYPES = [("book", "Book"), ("judgment", "Judgment")]
CONTENT_FORMATS = [("pdf", "PDF"), ("text", "Text")]
SELLER_TYPES = [("admin", "Admin"), ("superadmin", "Super Admin")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Payout",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("payment_method", models.CharField(choices=[("jazzcash", "JazzCash"), ("easypaisa", "Easypaisa"), ("bank", "Bank Transfer"), ("manual", "Manual")], max_length=20)),
                ("recipient_details", models.JSONField(blank=True, default=dict)),
                ("status", models.CharField(choices=[("PENDING", "Pending"), ("PROCESSING", "Processing"), ("COMPLETED", "Completed"), ("FAILED", "Failed"), ("CANCELLED", "Cancelled")], default="PENDING", max_length=20)),
                ("is_automatic", models.BooleanField(default=False)),
                ("internal_ref", models.CharField(editable=False, max_length=64, unique=True)),
                ("external_ref", models.CharField(blank=True, max_length=150, null=True)),
                ("failure_reason", models.TextField(blank=True)),
                ("retry_count", models.PositiveIntegerField(default=0)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("proof_reference", models.CharField(blank=True, max_length=150)),
                ("proof_url", models.URLField(blank=True)),
                ("notes", models.TextField(blank=True)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("processed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="processed_payouts", to=settings.AUTH_USER_MODEL)),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="payouts", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["status"], name="payment_pay_status_47a8a8_idx"),
                    models.Index(fields=["external_ref"], name="payment_pay_externa_d29106_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("status__in", ["PENDING", "PROCESSING"])), fields=("user",), name="unique_in_flight_payout_per_user"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("item_type", models.CharField(choices=ITEM_TYPES, default="book", max_length=20)),
                ("format", models.CharField(choices=CONTENT_FORMATS, default="pdf", max_length=10)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(default="PKR", max_length=10)),
                ("seller_type", models.CharField(choices=SELLER_TYPES, max_length=20)),
                ("commission_percentage", models.DecimalField(decimal_places=2, max_digits=5)),
                ("seller_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("platform_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("gateway", models.CharField(max_length=30)),
                ("transaction_ref", models.CharField(max_length=100, unique=True)),
                ("session_token", models.CharField(blank=True, db_index=True, max_length=255)),
                ("status", models.CharField(choices=[("PENDING", "Pending"), ("SUCCESS", "Success"), ("FAILED", "Failed"), ("REFUNDED", "Refunded")], default="PENDING", max_length=20)),
                ("gateway_response", models.JSONField(blank=True, default=dict)),
                ("earnings_status", models.CharField(choices=[("PENDING", "Pending"), ("PROCESSED", "Processed"), ("PAID_OUT", "Paid Out")], default="PENDING", max_length=20)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("book", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="payments", to="catalog.book")),
                ("judgment", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="payments", to="catalog.judgment")),
                ("payout", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="payments", to="payment.payout")),
                ("seller", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="sales", to=settings.AUTH_USER_MODEL)),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="payments", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["status"], name="payment_pay_status_124d3d_idx"),
                    models.Index(fields=["earnings_status"], name="payment_pay_earning_ebd36c_idx"),
                    models.Index(fields=["user", "status"], name="payment_pay_user_id_94fc9f_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Purchase",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("item_type", models.CharField(choices=ITEM_TYPES, max_length=20)),
                ("format", models.CharField(choices=CONTENT_FORMATS, max_length=10)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("payment_method", models.CharField(max_length=30)),
                ("payment_status", models.CharField(choices=[("pending", "Pending"), ("completed", "Completed"), ("failed", "Failed"), ("refunded", "Refunded")], default="pending", max_length=20)),
                ("transaction_id", models.CharField(max_length=100)),
                ("seller_type", models.CharField(choices=SELLER_TYPES, max_length=20)),
                ("seller_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("platform_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("commission_percentage", models.DecimalField(decimal_places=2, max_digits=5)),
                ("earnings_status", models.CharField(choices=[("pending", "Pending"), ("processed", "Processed"), ("paid_out", "Paid Out")], default="pending", max_length=20)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("book", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="purchases", to="catalog.book")),
                ("judgment", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="purchases", to="catalog.judgment")),
                ("payment", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="purchase", to="payment.payment")),
                ("seller", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="sold_purchases", to=settings.AUTH_USER_MODEL)),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="purchases", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["user", "payment_status"], name="payment_pur_user_id_305f85_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("payment_status", "completed"), ("book__isnull", False)), fields=("user", "book", "format"), name="unique_completed_book_purchase"),
                    models.UniqueConstraint(condition=models.Q(("payment_status", "completed"), ("judgment__isnull", False)), fields=("user", "judgment", "format"), name="unique_completed_judgment_purchase"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Commission",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("item_type", models.CharField(choices=ITEM_TYPES, max_length=20)),
                ("seller_type", models.CharField(choices=SELLER_TYPES, max_length=20)),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("seller_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("platform_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("percentage", models.DecimalField(decimal_places=2, max_digits=5)),
                ("status", models.CharField(choices=[("PENDING", "Pending"), ("PROCESSED", "Processed"), ("PAID_OUT", "Paid Out")], default="PENDING", max_length=20)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("paid_out_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("book", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="commissions", to="catalog.book")),
                ("buyer", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("judgment", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="commissions", to="catalog.judgment")),
                ("payment", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="commission", to="payment.payment")),
                ("payout", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="commissions", to="payment.payout")),
                ("seller", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="commissions", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["seller", "status"], name="payment_com_seller__32f3c7_idx"),
                    models.Index(fields=["payout"], name="payment_com_payout__da7da5_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("provider", models.CharField(max_length=50)),
                ("event_type", models.CharField(max_length=100)),
                ("reference", models.CharField(max_length=150)),
                ("payload", models.JSONField()),
                ("processed", models.BooleanField(default=False)),
                ("processing_attempts", models.IntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["reference"], name="payment_web_referen_56bbc2_idx"),
                    models.Index(fields=["processed"], name="payment_web_process_534837_idx"),
                ],
            },
        ),
    ]
