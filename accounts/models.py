from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Registered account. Every user is a potential collector."""

    ROLE_USER = "USER"
    ROLE_COLLECTOR_PENDING = "COLLECTOR_PENDING"
    ROLE_COLLECTOR_APPROVED = "COLLECTOR_APPROVED"
    ROLE_WEBSITE_ADMIN = "WEBSITE_ADMIN"
    ROLE_SYSTEM_ADMIN = "SYSTEM_ADMIN"
    ROLE_CHOICES = [
        (ROLE_USER, "User"),
        (ROLE_COLLECTOR_PENDING, "Collector (pending)"),
        (ROLE_COLLECTOR_APPROVED, "Collector (approved)"),
        (ROLE_WEBSITE_ADMIN, "Website admin"),
        (ROLE_SYSTEM_ADMIN, "System admin"),
    ]
    ADMIN_ROLES = (ROLE_WEBSITE_ADMIN, ROLE_SYSTEM_ADMIN)

    full_name = models.CharField(max_length=150, blank=True, default="")
    mobile = models.CharField(max_length=10, blank=True, default="", db_index=True)
    email_verified = models.BooleanField(default=False)
    role = models.CharField(max_length=24, choices=ROLE_CHOICES, default=ROLE_USER, db_index=True)
    # assigned at most once; NULL keeps the unique index sparse
    referral_code = models.CharField(max_length=16, unique=True, null=True, blank=True)
    collector_disabled = models.BooleanField(default=False)

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        profile = getattr(self, "collector_profile", None)
        return (profile.full_name if profile else "") or ""

    @property
    def is_trust_admin(self) -> bool:
        return self.role in self.ADMIN_ROLES

    def __str__(self):
        return self.full_name or self.mobile or self.username


class CollectorProfile(models.Model):
    STATUS_NONE = "none"
    STATUS_PENDING = "pending"
    STATUS_APPROVED = "approved"
    STATUS_REJECTED = "rejected"
    STATUS_CHOICES = [
        (STATUS_NONE, "None"),
        (STATUS_PENDING, "Pending"),
        (STATUS_APPROVED, "Approved"),
        (STATUS_REJECTED, "Rejected"),
    ]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="collector_profile")
    full_name = models.CharField(max_length=150, blank=True, default="")
    address = models.TextField(blank=True, default="")
    pan_number = models.CharField(max_length=10, blank=True, default="")
    aadhaar_front_key = models.CharField(max_length=255, blank=True, default="")
    aadhaar_back_key = models.CharField(max_length=255, blank=True, default="")
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_NONE, db_index=True)
    submitted_at = models.DateTimeField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_reason = models.CharField(max_length=255, blank=True, default="")

    def __str__(self):
        return f"{self.full_name or self.user} ({self.status})"
