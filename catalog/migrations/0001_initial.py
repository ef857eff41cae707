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
            name="Book",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=255)),
                ("slug", models.SlugField(blank=True, max_length=280, null=True, unique=True)),
                ("price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("discounted_price", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("uploader_type", models.CharField(choices=[("admin", "Admin"), ("superadmin", "Super Admin")], default="admin", max_length=20)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("approved", "Approved"), ("rejected", "Rejected")], default="pending", max_length=20)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("author", models.CharField(blank=True, max_length=255)),
                ("isbn", models.CharField(blank=True, max_length=20)),
                ("uploaded_by", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [models.Index(fields=["status"], name="catalog_boo_status_b30b19_idx")],
            },
        ),
        migrations.CreateModel(
            name="Judgment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=255)),
                ("slug", models.SlugField(blank=True, max_length=280, null=True, unique=True)),
                ("price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("discounted_price", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("uploader_type", models.CharField(choices=[("admin", "Admin"), ("superadmin", "Super Admin")], default="admin", max_length=20)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("approved", "Approved"), ("rejected", "Rejected")], default="pending", max_length=20)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("court", models.CharField(blank=True, max_length=255)),
                ("citation", models.CharField(blank=True, max_length=255)),
                ("decided_on", models.DateField(blank=True, null=True)),
                ("uploaded_by", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [models.Index(fields=["status"], name="catalog_jud_status_561689_idx")],
            },
        ),
    ]
