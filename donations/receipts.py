"""PDF donation receipts rendered with ReportLab.

Files are named after the donation id, so regenerating overwrites the same
path. The PDF is written to a temporary file in the same directory and moved
into place with ``os.replace``; readers never see a half-written receipt.
"""

import logging
import os
import tempfile
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path

from django.conf import settings
from django.utils import timezone
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from .exceptions import ReceiptError
from .utils import mask_id_number

logger = logging.getLogger(__name__)

ONES = ["", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine"]
TEENS = ["Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen", "Seventeen", "Eighteen", "Nineteen"]
TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]

METHOD_LABELS = {
    "ONLINE": "Online Payment",
    "CASH": "Cash",
    "UPI": "UPI",
    "CHEQUE": "Cheque",
}


def _below_thousand(n: int) -> str:
    if n == 0:
        return ""
    if n < 10:
        return ONES[n]
    if n < 20:
        return TEENS[n - 10]
    if n < 100:
        return TENS[n // 10] + (" " + ONES[n % 10] if n % 10 else "")
    rest = _below_thousand(n % 100)
    return ONES[n // 100] + " Hundred" + (" " + rest if rest else "")


def number_to_words(num: int) -> str:
    """Indian numbering: crore, lakh, thousand, hundred."""
    if num == 0:
        return "Zero"
    parts = []
    crores, num = divmod(num, 10_000_000)
    if crores:
        parts.append(number_to_words(crores) + " Crore")
    lakhs, num = divmod(num, 100_000)
    if lakhs:
        parts.append(_below_thousand(lakhs) + " Lakh")
    thousands, num = divmod(num, 1000)
    if thousands:
        parts.append(_below_thousand(thousands) + " Thousand")
    if num:
        parts.append(_below_thousand(num))
    return " ".join(parts)


def amount_in_words(amount) -> str:
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    rupees = int(value)
    paise = int((value - rupees) * 100)
    words = f"{number_to_words(rupees)} Rupees"
    if paise:
        words += f" and {number_to_words(paise)} Paise"
    return words + " Only"


def receipts_dir() -> Path:
    path = Path(getattr(settings, "RECEIPTS_DIR", Path(settings.BASE_DIR) / "receipts"))
    path.mkdir(parents=True, exist_ok=True)
    return path


def receipt_path(donation) -> Path:
    return receipts_dir() / f"receipt_{donation.id}.pdf"


def _format_amount(amount) -> str:
    return f"Rs. {Decimal(str(amount)):,.2f}"


def _draw(c, donation):
    width, height = A4
    trust_name = getattr(settings, "TRUST_NAME", "Seva Trust")

    c.setFont("Helvetica-Bold", 16)
    c.drawCentredString(width / 2, height - 70, trust_name)
    c.setFont("Helvetica", 10)
    y = height - 88
    for line in filter(None, [getattr(settings, "TRUST_ADDRESS", ""), _trust_pan_line()]):
        c.drawCentredString(width / 2, y, line)
        y -= 15

    c.setFont("Helvetica-Bold", 14)
    c.drawCentredString(width / 2, y - 25, "DONATION RECEIPT")

    paid_at = timezone.localtime(donation.paid_at or donation.created_at or timezone.now())
    address = donation.address.display()
    rows = [
        ("Receipt No.", donation.receipt_number),
        ("Date", paid_at.strftime("%d/%m/%Y")),
        ("Received with thanks from", donation.donor_name),
        ("Mobile", donation.donor_mobile),
        ("Address", address),
        ("ID", f"{donation.donor_id_type} {mask_id_number(donation.donor_id_number)}"),
        ("Purpose", donation.donation_head_name),
        ("Amount (in figures)", _format_amount(donation.amount)),
        ("Amount (in words)", amount_in_words(donation.amount)),
        ("Mode of Payment", METHOD_LABELS.get(donation.payment_method, donation.payment_method)),
        ("Transaction Ref.", donation.transaction_ref or donation.gateway_payment_id or "-"),
    ]
    if donation.has_collector_attribution and donation.collector_name:
        rows.append(("Collected by", donation.collector_name))

    y -= 70
    for label, value in rows:
        c.setFont("Helvetica-Bold", 11)
        c.drawString(50, y, f"{label}:")
        c.setFont("Helvetica", 11)
        c.drawString(210, y, str(value or "")[:70])
        y -= 24

    y -= 30
    c.drawRightString(width - 50, y, "(Authorized Signatory)")
    c.setFont("Helvetica-Oblique", 9)
    c.drawCentredString(width / 2, 50, "This is a computer generated receipt.")


def _trust_pan_line():
    pan = getattr(settings, "TRUST_PAN", "")
    return f"PAN: {pan}" if pan else ""


def generate_receipt(donation) -> Path:
    """Render the receipt PDF for a finalized donation and return its path."""
    if not donation.receipt_number:
        raise ReceiptError(f"Donation {donation.id} has no receipt number")

    tmp_name = None
    try:
        target = receipt_path(donation)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".receipt_", suffix=".pdf")
        os.close(fd)
        c = canvas.Canvas(tmp_name, pagesize=A4)
        c.setTitle(f"Receipt {donation.receipt_number}")
        _draw(c, donation)
        c.save()
        os.replace(tmp_name, target)
    except Exception as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        logger.exception("Receipt rendering failed for donation %s", donation.id)
        raise ReceiptError(f"Could not render receipt: {e}") from e

    logger.info("Receipt %s written to %s", donation.receipt_number, target.name)
    return target
