from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from accounts.auth import issue_token
from accounts.models import User
from donations.models import Donation


def years_ago(years, today=None):
    today = today or timezone.localdate()
    try:
        return today.replace(year=today.year - years)
    except ValueError:
        # 29 February in a non-leap target year
        return today.replace(year=today.year - years, day=28)


def donor_payload(**overrides):
    donor = {
        "name": "Asha Verma",
        "mobile": "9876543210",
        "email": "asha@example.com",
        "emailOptIn": True,
        "address": "12 MG Road, Lucknow, Uttar Pradesh 226001",
        "anonymousDisplay": False,
        "dob": years_ago(30).isoformat(),
        "idType": "PAN",
        "idNumber": "ABCDE1234F",
    }
    donor.update(overrides)
    return donor


def donation_payload(donor=None, **overrides):
    body = {
        "donor": donor if donor is not None else donor_payload(),
        "donationHead": {"id": "annadaan", "name": "Annadaan Seva"},
        "amount": 500,
    }
    body.update(overrides)
    return body


def make_user(username="donor1", **kwargs):
    kwargs.setdefault("full_name", "")
    return User.objects.create_user(username=username, password="pass12345", **kwargs)


def make_collector(username="collector1", full_name="Ravi Kumar", referral_code="COLABC234", **kwargs):
    kwargs.setdefault("role", User.ROLE_COLLECTOR_APPROVED)
    return make_user(username=username, full_name=full_name, referral_code=referral_code, **kwargs)


def make_admin(username="admin1"):
    return make_user(username=username, full_name="Site Admin", role=User.ROLE_SYSTEM_ADMIN)


def auth_header(user):
    return {"HTTP_AUTHORIZATION": f"Bearer {issue_token(user)}"}


def make_donation(**kwargs):
    created_at = kwargs.pop("created_at", None)
    defaults = {
        "donor_name": "Asha Verma",
        "donor_mobile": "9876543210",
        "donor_email": "asha@example.com",
        "donor_address": "12 MG Road, Lucknow",
        "donor_dob": years_ago(30),
        "donor_id_type": Donation.ID_PAN,
        "donor_id_number": "ABCDE1234F",
        "donation_head_id": "annadaan",
        "donation_head_name": "Annadaan Seva",
        "amount": Decimal("500.00"),
    }
    defaults.update(kwargs)
    donation = Donation.objects.create(**defaults)
    if created_at is not None:
        Donation.objects.filter(pk=donation.pk).update(created_at=created_at)
        donation.refresh_from_db()
    return donation


def hours_ago(hours):
    return timezone.now() - timedelta(hours=hours)
