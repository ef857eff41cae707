import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils.text import slugify


class CatalogItem(models.Model):
    """Shared columns of everything that can be sold on the marketplace."""

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"

    class UploaderType(models.TextChoices):
        ADMIN = "admin", "Admin"
        SUPERADMIN = "superadmin", "Super Admin"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=280, unique=True, blank=True, null=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    discounted_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="+",
    )
    uploader_type = models.CharField(max_length=20, choices=UploaderType.choices, default=UploaderType.ADMIN)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self.slug and self.title:
            base_slug = slugify(self.title) or f"item-{uuid.uuid4().hex[:8]}"
            candidate = base_slug
            counter = 1
            while type(self).objects.filter(slug=candidate).exclude(pk=self.pk).exists():
                candidate = f"{base_slug}-{counter}"
                counter += 1
            self.slug = candidate
        super().save(*args, **kwargs)

    def __str__(self):
        return self.title

    @property
    def sale_price(self) -> Decimal:
        if self.discounted_price is not None and Decimal("0") < self.discounted_price < self.price:
            return self.discounted_price
        return self.price

    @property
    def is_purchasable(self) -> bool:
        return self.status == self.Status.APPROVED and self.sale_price > 0


class Book(CatalogItem):
    author = models.CharField(max_length=255, blank=True)
    isbn = models.CharField(max_length=20, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["status"]),
        ]


class Judgment(CatalogItem):
    court = models.CharField(max_length=255, blank=True)
    citation = models.CharField(max_length=255, blank=True)
    decided_on = models.DateField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["status"]),
        ]
