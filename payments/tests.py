from unittest.mock import patch

from django.test import SimpleTestCase, override_settings
from requests import Timeout

from .integrations import razorpay


class FakeResponse:
    def __init__(self, status_code, data=None, text=""):
        self.status_code = status_code
        self._data = data
        self.text = text

    def json(self):
        if self._data is None:
            raise ValueError("no json")
        return self._data


class CreateOrderTests(SimpleTestCase):
    @patch("payments.integrations.razorpay.requests.post")
    def test_posts_order_with_basic_auth(self, post):
        post.return_value = FakeResponse(200, {"id": "order_abc", "amount": 50000, "currency": "INR"})

        order = razorpay.create_order(50000, receipt="d" * 60, notes={"donationId": "x"})

        self.assertEqual(order["id"], "order_abc")
        args, kwargs = post.call_args
        self.assertEqual(args[0], "https://api.razorpay.com/v1/orders")
        self.assertEqual(kwargs["auth"], ("rzp_test_key", "rzp_test_secret"))
        self.assertEqual(kwargs["timeout"], 15)
        self.assertEqual(kwargs["json"]["amount"], 50000)
        self.assertEqual(len(kwargs["json"]["receipt"]), 40)
        self.assertEqual(kwargs["json"]["notes"], {"donationId": "x"})

    @patch("payments.integrations.razorpay.requests.post")
    def test_non_200_raises_with_hint(self, post):
        post.return_value = FakeResponse(401, {"error": {"description": "Authentication failed"}})
        with self.assertRaises(razorpay.RazorpayError) as ctx:
            razorpay.create_order(100)
        self.assertIn("RAZORPAY_KEY_ID", str(ctx.exception))

    @patch("payments.integrations.razorpay.requests.post")
    def test_non_json_response(self, post):
        post.return_value = FakeResponse(502, text="<html>bad gateway</html>")
        with self.assertRaises(razorpay.RazorpayError) as ctx:
            razorpay.create_order(100)
        self.assertIn("Gateway error 502", str(ctx.exception))

    @patch("payments.integrations.razorpay.requests.post", side_effect=Timeout("slow"))
    def test_network_error(self, post):
        with self.assertRaises(razorpay.RazorpayError):
            razorpay.create_order(100)

    @patch("payments.integrations.razorpay.requests.post")
    def test_rejects_bad_amount(self, post):
        with self.assertRaises(razorpay.RazorpayError):
            razorpay.create_order(0)
        post.assert_not_called()

    @override_settings(RAZORPAY_KEY_SECRET="")
    @patch("payments.integrations.razorpay.requests.post")
    def test_missing_credentials(self, post):
        with self.assertRaises(razorpay.RazorpayError):
            razorpay.create_order(100)
        post.assert_not_called()


class WebhookSignatureTests(SimpleTestCase):
    body = b'{"event":"payment.captured"}'

    def test_valid(self):
        sig = razorpay.sign_payload(self.body, "whsec_test")
        self.assertTrue(razorpay.verify_webhook_signature(self.body, sig))

    def test_tampered_body(self):
        sig = razorpay.sign_payload(self.body, "whsec_test")
        self.assertFalse(razorpay.verify_webhook_signature(self.body + b" ", sig))

    def test_missing_signature(self):
        self.assertFalse(razorpay.verify_webhook_signature(self.body, None))
        self.assertFalse(razorpay.verify_webhook_signature(self.body, ""))

    @override_settings(RAZORPAY_WEBHOOK_SECRET="")
    def test_unconfigured_secret(self):
        sig = razorpay.sign_payload(self.body, "")
        self.assertFalse(razorpay.verify_webhook_signature(self.body, sig))

    def test_non_ascii_signature(self):
        self.assertFalse(razorpay.verify_webhook_signature(self.body, "éabc"))
