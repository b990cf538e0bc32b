from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import CollectorProfile, User


@admin.register(User)
class TrustUserAdmin(UserAdmin):
    list_display = ("username", "full_name", "mobile", "role", "referral_code", "collector_disabled", "date_joined")
    search_fields = ("username", "full_name", "mobile", "email", "referral_code")
    list_filter = ("role", "collector_disabled", "email_verified", "is_staff")
    fieldsets = UserAdmin.fieldsets + (
        ("Trust", {"fields": ("full_name", "mobile", "email_verified", "role", "referral_code", "collector_disabled")}),
    )
    readonly_fields = ("referral_code",)


@admin.register(CollectorProfile)
class CollectorProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "full_name", "status", "submitted_at", "approved_at")
    search_fields = ("full_name", "user__username", "user__mobile", "pan_number")
    list_filter = ("status",)
    raw_id_fields = ("user",)
