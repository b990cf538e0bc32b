import json
from datetime import timedelta
from unittest.mock import patch

from django.core.cache import cache
from django.test import RequestFactory, SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from . import otp
from .exceptions import InvalidMobile, OtpDeliveryFailed, OtpExpired, OtpInvalid, OtpRateLimited
from .models import OtpRecord
from .ratelimit import client_ip
from .whatsapp import SendResult, format_destination, send_text

FIXED_NOW = 1_700_000_000.0


class NormalizeMobileTests(SimpleTestCase):
    def test_accepted_forms(self):
        for raw in ("9876543210", "+91-9876543210", "919876543210", "09876543210", "98765 43210"):
            self.assertEqual(otp.normalize_mobile(raw), "9876543210")

    def test_rejected_forms(self):
        for raw in ("", None, "12345", "+1 415 555 0100 22", "abcdefghij"):
            with self.assertRaises(InvalidMobile):
                otp.normalize_mobile(raw)


@patch("donations.ratelimit._now", return_value=FIXED_NOW)
@patch("donations.otp.generate_code", return_value="482913")
@patch("donations.whatsapp.send_otp_message", return_value=SendResult(True, message_id="m1"))
class OtpFlowTests(TestCase):
    def setUp(self):
        cache.clear()

    def test_scenario_wrong_then_right_then_replay(self, send, _code, _now):
        self.assertEqual(otp.send_otp("+91-9876543210"), "9876543210")
        send.assert_called_once_with("919876543210", "482913")

        with self.assertRaises(OtpInvalid):
            otp.verify_otp("9876543210", "000000")

        otp.verify_otp("9876543210", "482913")
        self.assertFalse(OtpRecord.objects.filter(mobile="9876543210").exists())

        with self.assertRaises(OtpInvalid):
            otp.verify_otp("9876543210", "482913")

    def test_code_stored_hashed(self, send, _code, _now):
        otp.send_otp("9876543210")
        record = OtpRecord.objects.get(mobile="9876543210")
        self.assertNotEqual(record.otp_hash, "482913")
        self.assertNotIn("482913", record.otp_hash)

    def test_resend_replaces_previous_code(self, send, code, _now):
        otp.send_otp("9876543210")
        code.return_value = "111222"
        otp.send_otp("9876543210")

        self.assertEqual(OtpRecord.objects.filter(mobile="9876543210").count(), 1)
        with self.assertRaises(OtpInvalid):
            otp.verify_otp("9876543210", "482913")
        otp.verify_otp("9876543210", "111222")

    def test_expired_code(self, send, _code, _now):
        otp.send_otp("9876543210")
        OtpRecord.objects.update(expires_at=timezone.now() - timedelta(seconds=1))

        with self.assertRaises(OtpExpired):
            otp.verify_otp("9876543210", "482913")
        self.assertFalse(OtpRecord.objects.exists())

    def test_legacy_prefixed_record_is_found(self, send, _code, _now):
        from django.contrib.auth.hashers import make_password
        OtpRecord.objects.create(
            mobile="919876543210", otp_hash=make_password("654321"),
            expires_at=timezone.now() + timedelta(minutes=5),
        )
        otp.verify_otp("9876543210", "654321")
        self.assertFalse(OtpRecord.objects.exists())

    def test_malformed_code_is_invalid(self, send, _code, _now):
        otp.send_otp("9876543210")
        for bad in ("", "12345", "abcdef", None):
            with self.assertRaises(OtpInvalid):
                otp.verify_otp("9876543210", bad)

    def test_delivery_failure_removes_record(self, send, _code, _now):
        send.return_value = SendResult(False, error="provider down")
        with self.assertRaises(OtpDeliveryFailed):
            otp.send_otp("9876543210")
        self.assertFalse(OtpRecord.objects.exists())

    def test_per_mobile_limit(self, send, _code, _now):
        for _ in range(3):
            otp.send_otp("9876543210")
        with self.assertRaises(OtpRateLimited) as ctx:
            otp.send_otp("+919876543210")
        self.assertGreater(ctx.exception.retry_after, 0)
        otp.send_otp("9123456789")

    def test_per_ip_limit(self, send, _code, _now):
        numbers = ["90000000%02d" % i for i in range(6)]
        for number in numbers[:5]:
            otp.send_otp(number, client_ip="10.0.0.1")
        with self.assertRaises(OtpRateLimited):
            otp.send_otp(numbers[5], client_ip="10.0.0.1")
        otp.send_otp(numbers[5], client_ip="10.0.0.2")

    def test_limits_reset_in_next_window(self, send, _code, now):
        for _ in range(3):
            otp.send_otp("9876543210")
        now.return_value = FIXED_NOW + 300
        otp.send_otp("9876543210")


@patch("donations.ratelimit._now", return_value=FIXED_NOW)
@patch("donations.otp.generate_code", return_value="482913")
@patch("donations.whatsapp.send_otp_message", return_value=SendResult(True, message_id="m1"))
class OtpApiTests(TestCase):
    def setUp(self):
        cache.clear()

    def _post(self, name, payload):
        return self.client.post(reverse(name), data=json.dumps(payload), content_type="application/json")

    def test_send_and_verify(self, send, _code, _now):
        resp = self._post("donations:send_otp", {"mobile": "+91 98765 43210"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["mobile"], "9876543210")

        bad = self._post("donations:verify_otp", {"mobile": "9876543210", "otp": "123123"})
        self.assertEqual(bad.status_code, 400)
        self.assertEqual(bad.json()["message"], "Invalid OTP")

        ok = self._post("donations:verify_otp", {"mobile": "9876543210", "otp": "482913"})
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(ok.json()["verified"], True)

    def test_invalid_mobile(self, send, _code, _now):
        resp = self._post("donations:send_otp", {"mobile": "123"})
        self.assertEqual(resp.status_code, 400)
        send.assert_not_called()

    def test_rate_limited_response(self, send, _code, _now):
        for _ in range(3):
            self._post("donations:send_otp", {"mobile": "9876543210"})
        resp = self._post("donations:send_otp", {"mobile": "9876543210"})
        self.assertEqual(resp.status_code, 429)
        self.assertEqual(resp["Retry-After"], str(resp.json()["retryAfter"]))

    def test_delivery_failure(self, send, _code, _now):
        send.return_value = SendResult(False, error="down")
        resp = self._post("donations:send_otp", {"mobile": "9876543210"})
        self.assertEqual(resp.status_code, 502)

    def test_spoofed_forwarded_for_shares_the_peer_counter(self, send, _code, _now):
        numbers = ["90000001%02d" % i for i in range(6)]
        for i, number in enumerate(numbers[:5]):
            resp = self.client.post(
                reverse("donations:send_otp"), data=json.dumps({"mobile": number}),
                content_type="application/json", HTTP_X_FORWARDED_FOR=f"203.0.113.{i}",
            )
            self.assertEqual(resp.status_code, 200)
        resp = self.client.post(
            reverse("donations:send_otp"), data=json.dumps({"mobile": numbers[5]}),
            content_type="application/json", HTTP_X_FORWARDED_FOR="198.51.100.77",
        )
        self.assertEqual(resp.status_code, 429)

    def test_non_object_body(self, send, _code, _now):
        resp = self._post("donations:send_otp", ["9876543210"])
        self.assertEqual(resp.status_code, 400)
        resp = self._post("donations:verify_otp", ["9876543210", "482913"])
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["verified"], False)
        send.assert_not_called()


class ClientIpTests(SimpleTestCase):
    def setUp(self):
        self.factory = RequestFactory()

    def test_forwarded_for_ignored_without_trusted_proxy(self):
        request = self.factory.get("/", HTTP_X_FORWARDED_FOR="1.2.3.4", REMOTE_ADDR="10.0.0.9")
        self.assertEqual(client_ip(request), "10.0.0.9")

    @override_settings(TRUSTED_PROXY_COUNT=1)
    def test_rightmost_entry_behind_one_proxy(self):
        request = self.factory.get("/", HTTP_X_FORWARDED_FOR="1.2.3.4, 198.51.100.7", REMOTE_ADDR="10.0.0.9")
        self.assertEqual(client_ip(request), "198.51.100.7")

    @override_settings(TRUSTED_PROXY_COUNT=2)
    def test_short_header_falls_back_to_peer(self):
        request = self.factory.get("/", HTTP_X_FORWARDED_FOR="198.51.100.7", REMOTE_ADDR="10.0.0.9")
        self.assertEqual(client_ip(request), "10.0.0.9")


class WhatsAppClientTests(SimpleTestCase):
    def test_destination_format(self):
        self.assertEqual(format_destination("919876543210"), "+91-9876543210")
        self.assertEqual(format_destination("9876543210"), "+91-9876543210")

    @patch("donations.whatsapp.requests.post")
    def test_send_success(self, post):
        post.return_value.status_code = 200
        post.return_value.json.return_value = {"messageId": "abc"}

        result = send_text("919876543210", "hello")

        self.assertTrue(result.success)
        self.assertEqual(result.message_id, "abc")
        _, kwargs = post.call_args
        self.assertEqual(kwargs["headers"]["ApiKey"], "wa-test-key")
        self.assertEqual(kwargs["json"]["receiver"], "+91-9876543210")
        self.assertEqual(kwargs["timeout"], 10)

    @patch("donations.whatsapp.requests.post")
    def test_send_never_raises(self, post):
        from requests import ConnectionError
        post.side_effect = ConnectionError("boom")
        result = send_text("9876543210", "hello")
        self.assertFalse(result.success)
        self.assertTrue(result.error)

    @override_settings(WA_API_KEY="")
    def test_missing_key(self):
        self.assertFalse(send_text("9876543210", "hello").success)
