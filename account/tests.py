from decimal import Decimal

from django.test import TestCase
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIClient, APIRequestFactory

from account.models import PaymentMethod, User, Wallet
from account.serializers import PaymentMethodSerializer


class UserModelTests(TestCase):
    def test_create_user_hashes_password(self):
        user = User.objects.create_user(
            email="user@example.com",
            password="Pass123!",
        )

        self.assertNotEqual(user.password, "Pass123!")
        self.assertTrue(user.check_password("Pass123!"))

    def test_create_user_requires_email(self):
        with self.assertRaisesMessage(ValueError, "Users must have an email"):
            User.objects.create_user(
                email="",
                password="Pass123!",
            )

    def test_new_user_gets_an_empty_wallet(self):
        user = User.objects.create_user(email="seller@example.com", password="Pass123!", role=User.Role.ADMIN)

        wallet = Wallet.objects.get(user=user)
        self.assertEqual(wallet.available_balance, Decimal("0.00"))
        self.assertEqual(wallet.payout_method, Wallet.PayoutMethod.MANUAL)
        self.assertFalse(wallet.auto_payout)

    def test_roles(self):
        superadmin = User.objects.create_superuser(email="root@example.com", password="Pass123!")
        admin = User.objects.create_user(email="admin@example.com", password="Pass123!", role=User.Role.ADMIN)
        customer = User.objects.create_user(email="reader@example.com", password="Pass123!")

        self.assertTrue(superadmin.is_platform_admin)
        self.assertTrue(superadmin.is_seller)
        self.assertFalse(admin.is_platform_admin)
        self.assertTrue(admin.is_seller)
        self.assertFalse(customer.is_seller)


class PaymentMethodSerializerTests(TestCase):
    def setUp(self):
        self.factory = APIRequestFactory()
        self.seller = User.objects.create_user(
            email="seller@example.com",
            password="Pass123!",
            role=User.Role.ADMIN,
        )
        self.customer = User.objects.create_user(
            email="customer@example.com",
            password="Pass123!",
        )

    def _request(self, user):
        request = self.factory.post("/auth/payout-methods/")
        request.user = user
        return request

    def test_bank_payment_requires_account_details(self):
        serializer = PaymentMethodSerializer(
            data={"payment_type": "BANK", "account_title": "Ali Raza"}
        )

        self.assertFalse(serializer.is_valid())
        self.assertIn("account_number", serializer.errors)
        self.assertIn("bank_name", serializer.errors)

    def test_mobile_wallet_requires_valid_number(self):
        serializer = PaymentMethodSerializer(data={"payment_type": "JAZZCASH"})
        self.assertFalse(serializer.is_valid())
        self.assertIn("phone_number", serializer.errors)

        serializer = PaymentMethodSerializer(data={"payment_type": "JAZZCASH", "phone_number": "0911223344"})
        self.assertFalse(serializer.is_valid())
        self.assertIn("phone_number", serializer.errors)

    def test_mobile_number_cannot_be_shared(self):
        other = User.objects.create_user(email="other@example.com", password="Pass123!", role=User.Role.ADMIN)
        PaymentMethod.objects.create(user=other, payment_type="EASYPAISA", phone_number="03451234567")

        serializer = PaymentMethodSerializer(
            data={"payment_type": "EASYPAISA", "phone_number": "03451234567"},
            context={"request": self._request(self.seller)},
        )

        self.assertFalse(serializer.is_valid())
        self.assertIn("phone_number", serializer.errors)

    def test_serializer_assigns_seller_from_request_user(self):
        serializer = PaymentMethodSerializer(
            data={"payment_type": "JAZZCASH", "phone_number": "03001234567", "is_verified": True},
            context={"request": self._request(self.seller)},
        )

        self.assertTrue(serializer.is_valid(), serializer.errors)
        payment_method = serializer.save()

        self.assertEqual(payment_method.user_id, self.seller.id)
        self.assertFalse(payment_method.is_verified)
        self.assertEqual(payment_method.get_identifier(), "03001234567")

    def test_bank_identifier_prefers_iban(self):
        method = PaymentMethod.objects.create(
            user=self.seller,
            payment_type="BANK",
            account_title="Ali Raza",
            account_number="0012345678",
            bank_name="HBL",
            iban="PK36SCBL0000001123456702",
        )
        self.assertEqual(method.get_identifier(), "PK36SCBL0000001123456702")

    def test_customer_cannot_create_payment_method(self):
        serializer = PaymentMethodSerializer(
            data={"payment_type": "JAZZCASH", "phone_number": "03001234567"},
            context={"request": self._request(self.customer)},
        )
        self.assertTrue(serializer.is_valid(), serializer.errors)

        with self.assertRaises(ValidationError):
            serializer.save()


class PaymentMethodApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.seller = User.objects.create_user(email="seller@example.com", password="Pass123!", role=User.Role.ADMIN)
        self.staff = User.objects.create_user(email="ops@example.com", password="Pass123!", is_staff=True)

    def test_seller_adds_and_staff_verifies_payout_method(self):
        self.client.force_authenticate(self.seller)
        resp = self.client.post(
            "/auth/payout-methods/",
            {"payment_type": "JAZZCASH", "phone_number": "03001234567"},
            format="json",
        )
        self.assertEqual(resp.status_code, 201, resp.data)
        self.assertFalse(resp.data["is_verified"])

        verify_url = f"/auth/payout-methods/{resp.data['id']}/verify/"
        self.assertEqual(self.client.post(verify_url).status_code, 403)

        self.client.force_authenticate(self.staff)
        resp = self.client.post(verify_url)
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertTrue(resp.data["is_verified"])
        self.assertEqual(PaymentMethod.objects.get().verified_by, self.staff)
