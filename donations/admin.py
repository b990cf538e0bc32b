from django.contrib import admin
from .models import Donation, OtpRecord


@admin.register(Donation)
class DonationAdmin(admin.ModelAdmin):
    list_display = ("id", "donor_name", "amount", "donation_head_name", "payment_method", "status",
                    "receipt_number", "collector_name", "created_at")
    search_fields = ("id", "donor_name", "donor_mobile", "donor_email", "gateway_order_id",
                     "gateway_payment_id", "receipt_number", "transaction_ref")
    list_filter = ("status", "payment_method", "has_collector_attribution", "created_at")
    raw_id_fields = ("user", "collector", "added_by")
    readonly_fields = ("status", "gateway_order_id", "gateway_payment_id", "receipt_number",
                       "paid_at", "otp_verified", "created_at", "updated_at")


@admin.register(OtpRecord)
class OtpRecordAdmin(admin.ModelAdmin):
    list_display = ("mobile", "expires_at", "created_at")
    search_fields = ("mobile",)
    readonly_fields = ("otp_hash",)
