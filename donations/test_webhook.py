import json
import re
from unittest.mock import patch

from django.core import mail
from django.test import TestCase, override_settings
from django.urls import reverse

from payments.integrations.razorpay import sign_payload
from sevatrust.tests.factories import make_collector, make_donation

from .models import Donation
from .receipts import receipt_path
from .webhook import reconcile_captured, reconcile_failed

RECEIPT_RE = re.compile(r"^GRD-\d{4}-[A-Z0-9]+$")


def captured_event(order_id, payment_id="pay_001", method="upi"):
    return {
        "event": "payment.captured",
        "payload": {"payment": {"entity": {"id": payment_id, "order_id": order_id, "method": method}}},
    }


def failed_event(order_id, description=None, reason=None):
    entity = {"id": "pay_fail", "order_id": order_id}
    if description is not None:
        entity["error_description"] = description
    if reason is not None:
        entity["error_reason"] = reason
    return {"event": "payment.failed", "payload": {"payment": {"entity": entity}}}


@override_settings(EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend")
class RazorpayWebhookTests(TestCase):
    def setUp(self):
        self.donation = make_donation(gateway_order_id="order_100")

    def _post(self, payload, secret="whsec_test", signature=None):
        raw = json.dumps(payload).encode("utf-8")
        sig = signature if signature is not None else sign_payload(raw, secret)
        return self.client.post(
            reverse("razorpay_webhook"), data=raw, content_type="application/json",
            HTTP_X_RAZORPAY_SIGNATURE=sig,
        )

    def test_captured_marks_success_with_receipt(self):
        resp = self._post(captured_event("order_100"))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, Donation.STATUS_SUCCESS)
        self.assertEqual(self.donation.gateway_payment_id, "pay_001")
        self.assertIsNotNone(self.donation.paid_at)
        self.assertRegex(self.donation.receipt_number, RECEIPT_RE)
        self.assertEqual(self.donation.receipt_file, receipt_path(self.donation).name)
        self.assertTrue(receipt_path(self.donation).exists())

    def test_replayed_capture_is_a_noop(self):
        payload = captured_event("order_100")
        first = self._post(payload)
        self.donation.refresh_from_db()
        receipt_number = self.donation.receipt_number

        second = self._post(payload)

        self.assertEqual(first.json(), second.json())
        self.assertEqual(second.status_code, 200)
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, Donation.STATUS_SUCCESS)
        self.assertEqual(self.donation.receipt_number, receipt_number)

    def test_only_first_delivery_transitions(self):
        self.assertTrue(reconcile_captured("order_100", "pay_001"))
        self.assertFalse(reconcile_captured("order_100", "pay_001"))
        self.assertFalse(reconcile_captured("order_100", "pay_002"))
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.gateway_payment_id, "pay_001")

    def test_terminal_status_never_changes(self):
        reconcile_failed("order_100", error_description="Card declined")
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, Donation.STATUS_FAILED)

        resp = self._post(captured_event("order_100"))

        self.assertEqual(resp.json(), {"status": "ok"})
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, Donation.STATUS_FAILED)
        self.assertIsNone(self.donation.receipt_number)

    def test_failed_after_success_is_ignored(self):
        self._post(captured_event("order_100"))
        self._post(failed_event("order_100", description="late failure"))
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, Donation.STATUS_SUCCESS)
        self.assertEqual(self.donation.failure_reason, "")

    def test_failure_reason_fallbacks(self):
        other = make_donation(gateway_order_id="order_200")
        third = make_donation(gateway_order_id="order_300")

        self._post(failed_event("order_100", description="Bank declined", reason="payment_failed"))
        self._post(failed_event("order_200", reason="payment_cancelled"))
        self._post(failed_event("order_300"))

        for donation, reason in ((self.donation, "Bank declined"), (other, "payment_cancelled"), (third, "Payment failed")):
            donation.refresh_from_db()
            self.assertEqual(donation.status, Donation.STATUS_FAILED)
            self.assertEqual(donation.failure_reason, reason)

    def test_unknown_order_acknowledged(self):
        resp = self._post(captured_event("order_missing"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})

    def test_bad_signature_rejected(self):
        resp = self._post(captured_event("order_100"), secret="wrong-secret")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"message": "Invalid signature"})
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, Donation.STATUS_PENDING)

    def test_missing_signature_rejected(self):
        resp = self._post(captured_event("order_100"), signature="")
        self.assertEqual(resp.status_code, 400)

    @override_settings(RAZORPAY_WEBHOOK_SECRET="")
    def test_unconfigured_secret_rejects_everything(self):
        resp = self._post(captured_event("order_100"), secret="anything")
        self.assertEqual(resp.status_code, 400)

    def test_other_events_ignored(self):
        resp = self._post({"event": "order.paid", "payload": {}})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ignored"})

    def test_receipt_email_requires_opt_in_and_verified_email(self):
        make_donation(gateway_order_id="order_unverified", donor_email_opt_in=True, donor_email_verified=False)
        verified = make_donation(gateway_order_id="order_verified", donor_email_opt_in=True, donor_email_verified=True)

        self._post(captured_event("order_unverified", payment_id="pay_a"))
        self._post(captured_event("order_verified", payment_id="pay_b"))

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["asha@example.com"])
        verified.refresh_from_db()
        self.assertTrue(verified.email_sent)

    def test_receipt_shows_collector_when_attributed(self):
        collector = make_collector()
        make_donation(
            gateway_order_id="order_attr", collector=collector,
            collector_name="Ravi Kumar", has_collector_attribution=True,
        )
        resp = self._post(captured_event("order_attr", payment_id="pay_c"))
        self.assertEqual(resp.status_code, 200)
        attributed = Donation.objects.get(gateway_order_id="order_attr")
        self.assertTrue(receipt_path(attributed).exists())

    @patch("donations.receipts.tempfile.mkstemp", side_effect=OSError(28, "No space left on device"))
    def test_receipt_storage_failure_keeps_success(self, _mkstemp):
        resp = self._post(captured_event("order_100"))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, Donation.STATUS_SUCCESS)
        self.assertRegex(self.donation.receipt_number, RECEIPT_RE)
        self.assertEqual(self.donation.receipt_file, "")

    @patch("donations.webhook.finalize_receipt", side_effect=RuntimeError("unexpected"))
    def test_unexpected_finalize_error_is_acknowledged(self, _finalize):
        resp = self._post(captured_event("order_100"))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, Donation.STATUS_SUCCESS)

    @patch("donations.emails.EmailMessage.send", side_effect=OSError("smtp down"))
    def test_email_failure_keeps_success(self, _send):
        make_donation(gateway_order_id="order_mail", donor_email_opt_in=True, donor_email_verified=True)

        resp = self._post(captured_event("order_mail", payment_id="pay_m"))

        self.assertEqual(resp.json(), {"status": "ok"})
        donation = Donation.objects.get(gateway_order_id="order_mail")
        self.assertEqual(donation.status, Donation.STATUS_SUCCESS)
        self.assertFalse(donation.email_sent)
        self.assertTrue(receipt_path(donation).exists())

    def test_non_ascii_signature_rejected(self):
        resp = self._post(captured_event("order_100"), signature="éabc")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"message": "Invalid signature"})

    def test_malformed_payload_shape_is_a_noop(self):
        resp = self._post({"event": "payment.captured", "payload": ["not", "an", "object"]})
        self.assertEqual(resp.status_code, 200)
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, Donation.STATUS_PENDING)
