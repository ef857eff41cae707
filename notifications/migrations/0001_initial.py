import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Notification",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("type", models.CharField(choices=[("payment_success", "Payment Success"), ("payment_failed", "Payment Failed"), ("item_sold", "Item Sold"), ("payout_completed", "Payout Completed"), ("payout_failed", "Payout Failed")], max_length=50)),
                ("entity_type", models.CharField(choices=[("payment", "Payment"), ("payout", "Payout")], max_length=20)),
                ("entity_id", models.UUIDField()),
                ("title", models.CharField(max_length=255)),
                ("message", models.TextField()),
                ("data", models.JSONField(blank=True, default=dict)),
                ("is_read", models.BooleanField(default=False)),
                ("read_at", models.DateTimeField(blank=True, null=True)),
                ("email_status", models.CharField(choices=[("SENT", "Sent"), ("FAILED", "Failed"), ("SKIPPED", "Skipped")], default="SKIPPED", max_length=10)),
                ("emailed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="notifications", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["user", "is_read"], name="notificatio_user_id_427e4b_idx"),
                    models.Index(fields=["entity_type", "entity_id"], name="notificatio_entity__950da6_idx"),
                    models.Index(fields=["created_at"], name="notificatio_created_46ad24_idx"),
                ],
            },
        ),
    ]
