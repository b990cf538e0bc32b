import json
from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

from django.core import mail
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from sevatrust.tests.factories import (
    auth_header,
    donation_payload,
    donor_payload,
    make_admin,
    make_collector,
    make_donation,
    make_user,
    years_ago,
)

from .address import LegacyAddress, StructuredAddress
from .exceptions import DonationNotFound, DonationValidationError
from .models import Donation
from .receipts import receipt_path
from .services import create_donation, get_status
from .validators import compute_age, validate_adult


class AgeTests(SimpleTestCase):
    def test_birthday_not_yet_reached(self):
        self.assertEqual(compute_age(date(2000, 6, 15), date(2018, 6, 14)), 17)
        self.assertEqual(compute_age(date(2000, 6, 15), date(2018, 6, 15)), 18)

    def test_leap_day_birthday_turns_over_on_first_of_march(self):
        self.assertEqual(compute_age(date(2008, 2, 29), date(2026, 2, 28)), 17)
        self.assertEqual(compute_age(date(2008, 2, 29), date(2026, 3, 1)), 18)

    def test_future_dob_rejected(self):
        with self.assertRaisesMessage(ValidationError, "Invalid date of birth"):
            validate_adult(date(2030, 1, 1), today=date(2026, 1, 1))


class CreateDonationTests(TestCase):
    def test_scenario_exactly_eighteen_today(self):
        payload = donation_payload(donor=donor_payload(dob=years_ago(18).isoformat()))

        donation = create_donation(payload)

        self.assertEqual(donation.status, Donation.STATUS_PENDING)
        self.assertEqual(donation.payment_method, Donation.METHOD_ONLINE)
        self.assertFalse(donation.has_collector_attribution)
        self.assertIsNone(donation.collector_id)
        self.assertEqual(donation.amount, Decimal("500"))

    def test_one_day_short_of_eighteen_rejected(self):
        dob = years_ago(18) + timedelta(days=1)
        with self.assertRaisesMessage(DonationValidationError, "Donor must be 18 years or older"):
            create_donation(donation_payload(donor=donor_payload(dob=dob.isoformat())))
        self.assertFalse(Donation.objects.exists())

    def test_client_cannot_set_trust_flags(self):
        payload = donation_payload(otpVerified=True)
        payload["donor"]["emailVerified"] = True

        donation = create_donation(payload)

        self.assertFalse(donation.otp_verified)
        self.assertFalse(donation.donor_email_verified)

    def test_email_verified_derived_from_authenticated_account(self):
        user = make_user(email="asha@example.com", email_verified=True)
        donation = create_donation(donation_payload(donor=donor_payload(email="ASHA@example.com")), user=user)
        self.assertTrue(donation.donor_email_verified)
        self.assertEqual(donation.user, user)

        other = create_donation(donation_payload(donor=donor_payload(email="someone@example.com")), user=user)
        self.assertFalse(other.donor_email_verified)

    def test_pan_is_uppercased(self):
        donation = create_donation(donation_payload(donor=donor_payload(idNumber="abcde1234f")))
        self.assertEqual(donation.donor_id_number, "ABCDE1234F")

    def test_invalid_ids_rejected(self):
        with self.assertRaisesMessage(DonationValidationError, "Invalid PAN format"):
            create_donation(donation_payload(donor=donor_payload(idNumber="ABCD1234F")))
        with self.assertRaisesMessage(DonationValidationError, "Invalid Aadhaar number"):
            create_donation(donation_payload(donor=donor_payload(idType="AADHAAR", idNumber="1234")))
        with self.assertRaisesMessage(DonationValidationError, "Invalid ID type"):
            create_donation(donation_payload(donor=donor_payload(idType="PASSPORT")))

    def test_aadhaar_accepted(self):
        donation = create_donation(donation_payload(donor=donor_payload(idType="AADHAAR", idNumber="1234 5678 9012")))
        self.assertEqual(donation.donor_id_type, Donation.ID_AADHAAR)
        self.assertEqual(donation.donor_id_number, "123456789012")

    def test_amount_bounds(self):
        for amount in (0, -5, "10000001"):
            with self.assertRaises(DonationValidationError):
                create_donation(donation_payload(amount=amount))
        self.assertFalse(Donation.objects.exists())

    def test_placeholder_donation_head_rejected(self):
        for head in ({"id": "select", "name": "Select"}, {"id": "0", "name": "Seva"}, {"id": "seva", "name": ""}):
            with self.assertRaisesMessage(DonationValidationError, "Please select a valid donation head"):
                create_donation(donation_payload(donationHead=head))

    def test_missing_donor_details(self):
        with self.assertRaisesMessage(DonationValidationError, "Missing required donor details"):
            create_donation(donation_payload(donor=donor_payload(name="")))
        with self.assertRaisesMessage(DonationValidationError, "Missing required donor details"):
            create_donation(donation_payload(donor=donor_payload(address="")))

    def test_referral_code_attributes_collector(self):
        collector = make_collector()

        donation = create_donation(donation_payload(referralCode=" colabc234 "))

        self.assertTrue(donation.has_collector_attribution)
        self.assertEqual(donation.collector, collector)
        self.assertEqual(donation.collector_name, "Ravi Kumar")

    def test_bad_referral_code_fails_whole_creation(self):
        make_collector(collector_disabled=True)
        for code in ("NOPE1234", "COLABC234"):
            with self.assertRaisesMessage(DonationValidationError, "Invalid or inactive referral code"):
                create_donation(donation_payload(referralCode=code))
        self.assertFalse(Donation.objects.exists())

    def test_address_union(self):
        legacy = create_donation(donation_payload())
        self.assertIsInstance(legacy.address, LegacyAddress)
        self.assertEqual(legacy.address.city(), "Lucknow")

        structured = create_donation(donation_payload(donor=donor_payload(
            address={"line": "4 Civil Lines", "city": "Prayagraj", "state": "Uttar Pradesh", "pincode": "211001"},
        )))
        self.assertIsInstance(structured.address, StructuredAddress)
        self.assertEqual(structured.address.city(), "Prayagraj")
        self.assertEqual(structured.address.display(), "4 Civil Lines, Prayagraj, Uttar Pradesh, India, 211001")


class DonationApiTests(TestCase):
    def setUp(self):
        cache.clear()

    def _post(self, name, payload, **extra):
        return self.client.post(reverse(name), data=json.dumps(payload), content_type="application/json", **extra)

    def test_create_endpoint(self):
        resp = self._post("donations:create", donation_payload())
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertEqual(body["status"], "PENDING")
        self.assertTrue(Donation.objects.filter(pk=body["donationId"]).exists())

    def test_create_endpoint_validation_error(self):
        resp = self._post("donations:create", donation_payload(amount="abc"))
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Invalid amount")

    @override_settings(DONATION_CREATE_RATE_LIMIT=2)
    def test_create_endpoint_rate_limited(self):
        for _ in range(2):
            self.assertEqual(self._post("donations:create", donation_payload()).status_code, 201)
        resp = self._post("donations:create", donation_payload())
        self.assertEqual(resp.status_code, 429)
        self.assertIn("Retry-After", resp)

    def test_status_excludes_pii(self):
        donation = make_donation()
        resp = self.client.get(reverse("donations:status", args=[donation.id]))
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(set(body), {"id", "status", "amount", "donationHead", "createdAt"})
        self.assertNotIn("9876543210", resp.content.decode())

    def test_status_unknown_donation(self):
        resp = self.client.get("/api/donations/5f0c4a8e-1111-4222-8333-944445555666/status")
        self.assertEqual(resp.status_code, 404)

    @patch("payments.integrations.razorpay.create_order")
    def test_create_order_reuses_existing_order(self, create_order):
        create_order.return_value = {"id": "order_ABC", "amount": 50000}
        donation = make_donation()

        first = self._post("donations:create_order", {"donationId": str(donation.id)})
        second = self._post("donations:create_order", {"donationId": str(donation.id)})

        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()["orderId"], "order_ABC")
        self.assertEqual(first.json()["amount"], 50000)
        self.assertEqual(first.json()["key"], "rzp_test_key")
        self.assertEqual(second.json()["orderId"], "order_ABC")
        create_order.assert_called_once()
        donation.refresh_from_db()
        self.assertEqual(donation.gateway_order_id, "order_ABC")
        self.assertEqual(donation.status, Donation.STATUS_PENDING)

    def test_create_order_for_terminal_donation(self):
        donation = make_donation(status=Donation.STATUS_FAILED)
        resp = self._post("donations:create_order", {"donationId": str(donation.id)})
        self.assertEqual(resp.status_code, 409)

    @patch("payments.integrations.razorpay.create_order")
    def test_create_order_gateway_error(self, create_order):
        from payments.integrations.razorpay import RazorpayError
        create_order.side_effect = RazorpayError("Create order failed")
        donation = make_donation()
        resp = self._post("donations:create_order", {"donationId": str(donation.id)})
        self.assertEqual(resp.status_code, 502)

    def test_create_order_malformed_id(self):
        resp = self._post("donations:create_order", {"donationId": "not-a-uuid"})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["message"], "Donation not found")

    def test_create_order_non_object_body(self):
        resp = self._post("donations:create_order", [1])
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Donation ID required")

    def test_get_status_malformed_id(self):
        with self.assertRaises(DonationNotFound):
            get_status("not-a-uuid")

    def test_receipt_unavailable_while_pending(self):
        donation = make_donation()
        resp = self.client.get(reverse("donations:receipt", args=[donation.id]))
        self.assertEqual(resp.status_code, 403)

    def test_receipt_regenerated_when_missing(self):
        donation = make_donation(status=Donation.STATUS_SUCCESS, receipt_number="GRD-2026-ABC123XYZ")
        path = receipt_path(donation)
        if path.exists():
            path.unlink()

        resp = self.client.get(reverse("donations:receipt", args=[donation.id]))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp["Content-Type"], "application/pdf")
        self.assertTrue(b"".join(resp.streaming_content).startswith(b"%PDF"))
        donation.refresh_from_db()
        self.assertEqual(donation.receipt_file, path.name)

    def test_mine_and_last_profile_require_auth(self):
        self.assertEqual(self.client.get(reverse("donations:mine")).status_code, 401)
        self.assertEqual(self.client.get(reverse("donations:last_profile")).status_code, 401)

    def test_mine_and_last_profile(self):
        user = make_user()
        make_donation(user=user, donor_name="Old Name", created_at=timezone.now() - timedelta(days=2))
        make_donation(user=user, donor_name="New Name", donor_anonymous_display=True)
        make_donation(donor_name="Someone Else")

        mine = self.client.get(reverse("donations:mine"), **auth_header(user)).json()
        self.assertEqual(len(mine), 2)

        profile = self.client.get(reverse("donations:last_profile"), **auth_header(user)).json()["profile"]
        self.assertEqual(profile["name"], "New Name")
        self.assertTrue(profile["anonymousDisplay"])
        self.assertNotIn("idNumber", profile)


@override_settings(EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend")
class OfflineDonationTests(TestCase):
    def setUp(self):
        self.admin = make_admin()

    def _post(self, payload, user=None):
        extra = auth_header(user or self.admin)
        return self.client.post(
            reverse("offline_donation"), data=json.dumps(payload), content_type="application/json", **extra
        )

    def test_requires_admin_role(self):
        resp = self._post(donation_payload(paymentMethod="CASH"), user=make_user("plain"))
        self.assertEqual(resp.status_code, 403)

    def test_cash_donation_recorded_as_success(self):
        resp = self._post(donation_payload(paymentMethod="CASH", donor=donor_payload(mobile="")))

        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertTrue(body["transactionRef"].startswith("CASH-"))
        self.assertRegex(body["receiptNumber"], r"^GRD-\d{4}-[A-Z0-9]+$")
        donation = Donation.objects.get(pk=body["donationId"])
        self.assertEqual(donation.status, Donation.STATUS_SUCCESS)
        self.assertEqual(donation.donor_mobile, "N/A")
        self.assertEqual(donation.added_by, self.admin)
        self.assertTrue(receipt_path(donation).exists())
        self.assertTrue(donation.email_sent)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].attachments[0][2], "application/pdf")

    def test_upi_requires_utr(self):
        resp = self._post(donation_payload(paymentMethod="UPI"))
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "UTR number is required for UPI payments")

    def test_cheque_requires_bank(self):
        resp = self._post(donation_payload(paymentMethod="CHEQUE", paymentDetails={"chequeNumber": "000123"}))
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Bank name is required for cheque payments")

    def test_cheque_donation(self):
        resp = self._post(donation_payload(
            paymentMethod="CHEQUE",
            paymentDetails={"chequeNumber": "000123", "bankName": "SBI", "chequeDate": "2026-01-15"},
        ))
        self.assertEqual(resp.status_code, 201)
        self.assertTrue(resp.json()["transactionRef"].startswith("CHQ-"))
        donation = Donation.objects.get(pk=resp.json()["donationId"])
        self.assertEqual(donation.bank_name, "SBI")
        self.assertEqual(donation.cheque_date, date(2026, 1, 15))

    def test_invalid_method(self):
        resp = self._post(donation_payload(paymentMethod="BITCOIN"))
        self.assertEqual(resp.status_code, 400)
        self.assertIn("Invalid payment method", resp.json()["message"])

    def test_offline_accepts_pan_only(self):
        donor = donor_payload(idType="AADHAAR", idNumber="234567890123")
        resp = self._post(donation_payload(paymentMethod="CASH", donor=donor))
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Only PAN is accepted")
        self.assertFalse(Donation.objects.exists())


class AdminDonationReportTests(TestCase):
    def setUp(self):
        self.admin = make_admin()
        self.collector = make_collector()
        day = timezone.make_aware(datetime(2026, 3, 10, 9, 0))
        make_donation(
            status=Donation.STATUS_SUCCESS, amount=Decimal("1000"), created_at=day,
            donation_head_name="Annadaan Seva",
        )
        make_donation(
            status=Donation.STATUS_SUCCESS, amount=Decimal("300"), payment_method=Donation.METHOD_CASH,
            created_at=day.replace(hour=23, minute=59), donation_head_name="Gau Seva",
            added_by=self.admin,
        )
        make_donation(
            status=Donation.STATUS_SUCCESS, amount=Decimal("700"), payment_method=Donation.METHOD_UPI,
            created_at=day + timedelta(days=1), donation_head_name="Gau Seva",
        )
        make_donation(status=Donation.STATUS_FAILED, amount=Decimal("5000"), created_at=day)

    def _get(self, name, user=None, **params):
        return self.client.get(reverse(name), params, **auth_header(user or self.admin))

    def test_admin_only(self):
        self.assertEqual(self._get("admin_donations", user=make_user("plain")).status_code, 403)
        self.assertEqual(self._get("admin_reports", user=self.collector).status_code, 403)

    def test_list_all_newest_first(self):
        rows = self._get("admin_donations").json()
        self.assertEqual(len(rows), 4)
        self.assertEqual(rows[0]["amount"], 700.0)
        self.assertEqual(rows[0]["donor"]["idNumber"], "ABCDE1234F")

    def test_list_filters(self):
        rows = self._get("admin_donations", paymentMethod="cash,UPI").json()
        self.assertEqual({r["paymentMethod"] for r in rows}, {"CASH", "UPI"})

        rows = self._get("admin_donations", status="FAILED").json()
        self.assertEqual([r["amount"] for r in rows], [5000.0])

        rows = self._get("admin_donations", startDate="2026-03-10", endDate="2026-03-10").json()
        self.assertEqual(len(rows), 3)
        cash = next(r for r in rows if r["paymentMethod"] == "CASH")
        self.assertEqual(cash["addedBy"], {"fullName": "Site Admin"})

    def test_list_invalid_date(self):
        resp = self._get("admin_donations", startDate="10/03/2026")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Invalid startDate")

    def test_reports(self):
        body = self._get("admin_reports").json()

        self.assertEqual(body["totalAmount"], 2000.0)
        self.assertEqual(body["totalCount"], 3)
        self.assertEqual(body["byPaymentMethod"], {
            "ONLINE": {"amount": 1000.0, "count": 1},
            "CASH": {"amount": 300.0, "count": 1},
            "UPI": {"amount": 700.0, "count": 1},
        })
        self.assertEqual(body["byDonationHead"], [
            {"name": "Annadaan Seva", "amount": 1000.0, "count": 1},
            {"name": "Gau Seva", "amount": 1000.0, "count": 2},
        ])

    def test_reports_date_range_includes_whole_end_day(self):
        body = self._get("admin_reports", startDate="2026-03-10", endDate="2026-03-10").json()

        self.assertEqual(body["totalAmount"], 1300.0)
        self.assertEqual(body["byDonationHead"][0], {"name": "Annadaan Seva", "amount": 1000.0, "count": 1})
        # method breakdown ignores the date filter
        self.assertEqual(body["byPaymentMethod"]["UPI"]["count"], 1)
