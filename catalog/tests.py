from decimal import Decimal

from django.test import TestCase

from account.models import User
from catalog.models import Book, Judgment


class CatalogModelTests(TestCase):
    def setUp(self):
        self.uploader = User.objects.create_user(
            email="uploader@example.com",
            password="Pass123!",
            role=User.Role.ADMIN,
        )

    def test_book_str_returns_title(self):
        book = Book.objects.create(title="Law of Torts", price=Decimal("450.00"), uploaded_by=self.uploader)
        self.assertEqual(str(book), "Law of Torts")

    def test_slug_is_auto_generated_and_unique(self):
        first = Book.objects.create(title="Criminal Procedure", price=Decimal("300.00"), uploaded_by=self.uploader)
        second = Book.objects.create(title="Criminal Procedure", price=Decimal("350.00"), uploaded_by=self.uploader)

        self.assertEqual(first.slug, "criminal-procedure")
        self.assertEqual(second.slug, "criminal-procedure-1")

    def test_sale_price_uses_valid_discount_only(self):
        book = Book(title="Evidence", price=Decimal("500.00"), uploaded_by=self.uploader)
        self.assertEqual(book.sale_price, Decimal("500.00"))

        book.discounted_price = Decimal("400.00")
        self.assertEqual(book.sale_price, Decimal("400.00"))

        book.discounted_price = Decimal("600.00")
        self.assertEqual(book.sale_price, Decimal("500.00"))

        book.discounted_price = Decimal("0.00")
        self.assertEqual(book.sale_price, Decimal("500.00"))

    def test_only_approved_priced_items_are_purchasable(self):
        judgment = Judgment.objects.create(
            title="PLD 2020 SC 1",
            price=Decimal("150.00"),
            uploaded_by=self.uploader,
            court="Supreme Court",
        )
        self.assertFalse(judgment.is_purchasable)

        judgment.status = Judgment.Status.APPROVED
        self.assertTrue(judgment.is_purchasable)

        judgment.price = Decimal("0.00")
        self.assertFalse(judgment.is_purchasable)
