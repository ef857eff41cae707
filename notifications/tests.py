import uuid
from unittest.mock import patch

from django.core import mail
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from account.models import User
from .models import Notification
from .services import NotificationMessage, NotificationService


def _message(notification_type="payout_completed", entity_type="payout", title="Payout Processed Successfully"):
    return NotificationMessage(
        type=notification_type,
        entity_type=entity_type,
        entity_id=uuid.uuid4(),
        title=title,
        body="PKR 1080.00 was sent to your JazzCash account.",
        data={"amount": "1080.00"},
    )


class NotificationServiceTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(email="seller@books.pk", password="Pass123!", role="ADMIN")

    def test_notify_stores_inbox_entry_and_sends_email(self):
        notification = NotificationService.notify(user=self.user, message=_message())

        self.assertEqual(Notification.objects.filter(user=self.user, type="payout_completed").count(), 1)
        self.assertEqual(notification.email_status, Notification.EmailStatus.SENT)
        self.assertIsNotNone(notification.emailed_at)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["seller@books.pk"])
        self.assertEqual(mail.outbox[0].subject, "Payout Processed Successfully")

    @override_settings(NOTIFICATION_EMAILS_ENABLED=False)
    def test_disabled_email_keeps_the_inbox_entry(self):
        notification = NotificationService.notify(user=self.user, message=_message())

        self.assertEqual(notification.email_status, Notification.EmailStatus.SKIPPED)
        self.assertEqual(len(mail.outbox), 0)
        self.assertTrue(Notification.objects.filter(pk=notification.pk).exists())

    def test_mail_failure_is_recorded_and_not_raised(self):
        with patch("notifications.services.send_mail", side_effect=OSError("smtp down")):
            notification = NotificationService.notify(user=self.user, message=_message())

        notification.refresh_from_db()
        self.assertEqual(notification.email_status, Notification.EmailStatus.FAILED)
        self.assertIsNone(notification.emailed_at)


class NotificationsApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(email="user@books.pk", password="Pass123!", role="CUSTOMER")
        self.other = User.objects.create_user(email="other@books.pk", password="Pass123!", role="CUSTOMER")
        self.client.force_authenticate(self.user)

        self.paid = NotificationService.notify(
            user=self.user,
            message=_message("payment_success", "payment", "Payment Successful"),
        )
        self.paid_out = NotificationService.notify(user=self.user, message=_message())
        self.foreign = NotificationService.notify(user=self.other, message=_message("item_sold", "payment", "Item Sold"))

    def test_inbox_lists_own_notifications_with_unread_count(self):
        response = self.client.get("/notifications/")

        self.assertEqual(response.status_code, 200, response.data)
        self.assertEqual(response.data["count"], 2)
        self.assertEqual(response.data["unread"], 2)
        ids = {row["id"] for row in response.data["results"]}
        self.assertNotIn(str(self.foreign.id), ids)

        filtered = self.client.get("/notifications/", {"entity_type": "payout"})
        self.assertEqual(filtered.data["count"], 1)
        self.assertEqual(filtered.data["results"][0]["id"], str(self.paid_out.id))

    def test_opening_a_notification_marks_it_read(self):
        response = self.client.get(f"/notifications/{self.paid.id}/")

        self.assertEqual(response.status_code, 200, response.data)
        self.assertTrue(response.data["is_read"])
        self.assertIsNotNone(response.data["read_at"])

        unread = self.client.get("/notifications/", {"unread": "true"})
        self.assertEqual(unread.data["count"], 1)
        self.assertEqual(unread.data["unread"], 1)

    def test_mark_read_by_ids_and_all(self):
        response = self.client.post("/notifications/read/", {"ids": [str(self.paid.id)]}, format="json")
        self.assertEqual(response.status_code, 200, response.data)
        self.assertEqual(response.data, {"updated": 1, "unread": 1})

        response = self.client.post("/notifications/read/", {"all": True}, format="json")
        self.assertEqual(response.data, {"updated": 1, "unread": 0})

        self.foreign.refresh_from_db()
        self.assertFalse(self.foreign.is_read)

    def test_mark_read_requires_ids_or_all(self):
        response = self.client.post("/notifications/read/", {}, format="json")
        self.assertEqual(response.status_code, 400)

    def test_cannot_open_other_users_notification(self):
        response = self.client.get(f"/notifications/{self.foreign.id}/")
        self.assertEqual(response.status_code, 404)
