import uuid

from django.conf import settings
from django.db import models

from .address import DonorAddress, LegacyAddress, StructuredAddress


class Donation(models.Model):
    STATUS_PENDING = "PENDING"
    STATUS_SUCCESS = "SUCCESS"
    STATUS_FAILED = "FAILED"
    STATUS_CHOICES = [
        (STATUS_PENDING, "PENDING"),
        (STATUS_SUCCESS, "SUCCESS"),
        (STATUS_FAILED, "FAILED"),
    ]
    TERMINAL_STATUSES = (STATUS_SUCCESS, STATUS_FAILED)

    METHOD_ONLINE = "ONLINE"
    METHOD_CASH = "CASH"
    METHOD_UPI = "UPI"
    METHOD_CHEQUE = "CHEQUE"
    METHOD_CHOICES = [
        (METHOD_ONLINE, "Online"),
        (METHOD_CASH, "Cash"),
        (METHOD_UPI, "UPI"),
        (METHOD_CHEQUE, "Cheque"),
    ]

    ID_PAN = "PAN"
    ID_AADHAAR = "AADHAAR"
    ID_TYPE_CHOICES = [(ID_PAN, "PAN"), (ID_AADHAAR, "Aadhaar")]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True,
        on_delete=models.SET_NULL, related_name="donations",
    )

    # collector attribution; the flag, not collector_id, decides what counts
    collector = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True,
        on_delete=models.SET_NULL, related_name="collected_donations",
    )
    collector_name = models.CharField(max_length=150, null=True, blank=True)
    has_collector_attribution = models.BooleanField(default=False)

    # donor snapshot, captured once at creation
    donor_name = models.CharField(max_length=150)
    donor_mobile = models.CharField(max_length=16)
    donor_email = models.EmailField(blank=True, default="")
    donor_email_opt_in = models.BooleanField(default=False)
    donor_email_verified = models.BooleanField(default=False)
    donor_address = models.TextField(blank=True, default="")
    donor_address_line = models.CharField(max_length=255, blank=True, default="")
    donor_address_city = models.CharField(max_length=100, blank=True, default="")
    donor_address_state = models.CharField(max_length=100, blank=True, default="")
    donor_address_country = models.CharField(max_length=100, blank=True, default="India")
    donor_address_pincode = models.CharField(max_length=12, blank=True, default="")
    donor_anonymous_display = models.BooleanField(default=False)
    donor_dob = models.DateField()
    donor_id_type = models.CharField(max_length=8, choices=ID_TYPE_CHOICES, default=ID_PAN)
    donor_id_number = models.CharField(max_length=16)

    donation_head_id = models.CharField(max_length=64)
    donation_head_name = models.CharField(max_length=150, db_index=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)

    payment_method = models.CharField(max_length=8, choices=METHOD_CHOICES, default=METHOD_ONLINE, db_index=True)
    gateway_order_id = models.CharField(max_length=64, blank=True, default="", db_index=True)
    gateway_payment_id = models.CharField(max_length=64, blank=True, default="")
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    transaction_ref = models.CharField(max_length=64, blank=True, default="")
    failure_reason = models.CharField(max_length=255, blank=True, default="")
    paid_at = models.DateTimeField(null=True, blank=True)
    utr_number = models.CharField(max_length=64, blank=True, default="")
    cheque_number = models.CharField(max_length=32, blank=True, default="")
    bank_name = models.CharField(max_length=100, blank=True, default="")
    cheque_date = models.DateField(null=True, blank=True)

    receipt_number = models.CharField(max_length=40, unique=True, null=True, blank=True)
    receipt_file = models.CharField(max_length=255, blank=True, default="")
    email_sent = models.BooleanField(default=False)

    # informational only; OTP gating happens before creation
    otp_verified = models.BooleanField(default=False, editable=False)

    added_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True,
        on_delete=models.SET_NULL, related_name="recorded_donations",
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=["has_collector_attribution", "status"], name="donation_attr_status_idx"),
            models.Index(fields=["collector", "created_at"], name="donation_collector_idx"),
            models.Index(fields=["user", "created_at"], name="donation_user_idx"),
            models.Index(fields=["donor_mobile"], name="donation_donor_mobile_idx"),
        ]

    def __str__(self):
        return f"{self.id} {self.status} ₹{self.amount}"

    @property
    def address(self) -> DonorAddress:
        if self.donor_address_line or self.donor_address_city:
            return StructuredAddress(
                line=self.donor_address_line,
                city_name=self.donor_address_city,
                state=self.donor_address_state,
                country=self.donor_address_country or "India",
                pincode=self.donor_address_pincode,
            )
        return LegacyAddress(self.donor_address)

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    @property
    def public_donor_name(self) -> str:
        if self.donor_anonymous_display:
            return "Anonymous"
        return self.donor_name or "Unknown"

    @property
    def should_email_receipt(self) -> bool:
        return bool(self.donor_email_opt_in and self.donor_email_verified and self.donor_email)


class OtpRecord(models.Model):
    """Hashed one-time code bound to a normalized mobile number."""

    mobile = models.CharField(max_length=16, db_index=True)
    otp_hash = models.CharField(max_length=128)
    expires_at = models.DateTimeField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"OTP for ******{self.mobile[-4:]}"
