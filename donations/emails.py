from django.core.mail import EmailMessage
from django.conf import settings
import logging

logger = logging.getLogger(__name__)


def _from_email():
    return getattr(settings, "DONATIONS_FROM_EMAIL", None) or getattr(settings, "DEFAULT_FROM_EMAIL", "noreply@example.org")


def send_receipt_email(donation, pdf_path) -> bool:
    """Email the receipt PDF to the donor. Returns False instead of raising."""
    if not donation.donor_email:
        return False
    trust_name = getattr(settings, "TRUST_NAME", "Seva Trust")
    subject = f"Donation Receipt: {donation.receipt_number} ({trust_name})"
    body = (
        f"Dear {donation.donor_name},\n\n"
        f"Thank you for your donation of Rs. {donation.amount} towards {donation.donation_head_name}.\n"
        f"Your receipt number is {donation.receipt_number}. The receipt is attached to this email.\n\n"
        f"With gratitude,\n{trust_name}\n"
    )
    try:
        msg = EmailMessage(subject, body, _from_email(), [donation.donor_email])
        with open(pdf_path, "rb") as fh:
            msg.attach(f"receipt_{donation.receipt_number}.pdf", fh.read(), "application/pdf")
        msg.send(fail_silently=False)
    except Exception:
        logger.exception("Failed to send receipt email for donation %s", donation.id)
        return False
    logger.info("Receipt email sent for donation %s", donation.id)
    return True
