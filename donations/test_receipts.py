import re
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
from unittest.mock import patch

from django.core import mail
from django.test import SimpleTestCase, TestCase

from sevatrust.tests.factories import make_donation

from .emails import send_receipt_email
from .exceptions import ReceiptError
from .models import Donation
from .receipts import amount_in_words, generate_receipt, number_to_words, receipts_dir
from .utils import gen_receipt_number, mask_id_number


class AmountInWordsTests(SimpleTestCase):
    def test_indian_numbering(self):
        self.assertEqual(amount_in_words(500), "Five Hundred Rupees Only")
        self.assertEqual(amount_in_words(Decimal("1001")), "One Thousand One Rupees Only")
        self.assertEqual(amount_in_words(250000), "Two Lakh Fifty Thousand Rupees Only")
        self.assertEqual(amount_in_words(10000000), "One Crore Rupees Only")
        self.assertEqual(number_to_words(1234567), "Twelve Lakh Thirty Four Thousand Five Hundred Sixty Seven")

    def test_paise(self):
        self.assertEqual(amount_in_words(Decimal("101.50")), "One Hundred One Rupees and Fifty Paise Only")

    def test_zero(self):
        self.assertEqual(amount_in_words(0), "Zero Rupees Only")


class ReceiptNumberTests(SimpleTestCase):
    def test_format(self):
        number = gen_receipt_number(now=datetime(2026, 4, 1, tzinfo=dt_timezone.utc))
        self.assertRegex(number, r"^GRD-2026-[A-Z0-9]{4,}[A-Z]{3}$")

    def test_custom_prefix(self):
        self.assertTrue(gen_receipt_number(prefix="ABC").startswith("ABC-"))

    def test_numbers_differ(self):
        numbers = {gen_receipt_number() for _ in range(20)}
        self.assertEqual(len(numbers), 20)

    def test_mask_id(self):
        self.assertEqual(mask_id_number("ABCDE1234F"), "XXXXXX234F")
        self.assertEqual(mask_id_number("12"), "12")


class GenerateReceiptTests(TestCase):
    def test_requires_receipt_number(self):
        donation = make_donation()
        with self.assertRaises(ReceiptError):
            generate_receipt(donation)

    def test_regeneration_overwrites_same_file(self):
        donation = make_donation(status=Donation.STATUS_SUCCESS, receipt_number="GRD-2026-TEST01ABC")

        first = generate_receipt(donation)
        second = generate_receipt(donation)

        self.assertEqual(first, second)
        self.assertEqual(first.name, f"receipt_{donation.id}.pdf")
        self.assertTrue(first.read_bytes().startswith(b"%PDF"))
        leftovers = [p for p in first.parent.iterdir() if re.match(r"^\.receipt_", p.name)]
        self.assertEqual(leftovers, [])

    def test_render_failure_leaves_no_temp_file(self):
        donation = make_donation(status=Donation.STATUS_SUCCESS, receipt_number="GRD-2026-TEST02ABC")
        with patch("donations.receipts._draw", side_effect=RuntimeError("font missing")):
            with self.assertRaises(ReceiptError):
                generate_receipt(donation)
        leftovers = [p for p in receipts_dir().iterdir() if p.name.startswith(".receipt_")]
        self.assertEqual(leftovers, [])


class ReceiptEmailTests(TestCase):
    def test_attaches_pdf(self):
        donation = make_donation(status=Donation.STATUS_SUCCESS, receipt_number="GRD-2026-TEST03ABC")
        path = generate_receipt(donation)

        self.assertTrue(send_receipt_email(donation, path))

        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertIn("GRD-2026-TEST03ABC", message.subject)
        self.assertEqual(message.attachments[0][0], "receipt_GRD-2026-TEST03ABC.pdf")

    def test_failure_returns_false(self):
        donation = make_donation(status=Donation.STATUS_SUCCESS, receipt_number="GRD-2026-TEST04ABC")
        with patch("donations.emails.EmailMessage.send", side_effect=OSError("smtp down")):
            self.assertFalse(send_receipt_email(donation, generate_receipt(donation)))
