from django.contrib import admin
from django.urls import include, path

from donations import views as donation_views
from donations import webhook

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/donations/", include("donations.urls")),
    path("api/webhooks/razorpay", webhook.razorpay_webhook, name="razorpay_webhook"),
    path("api/admin/donations", donation_views.admin_donations_view, name="admin_donations"),
    path("api/admin/donations/offline", donation_views.offline_donation_view, name="offline_donation"),
    path("api/admin/reports", donation_views.admin_reports_view, name="admin_reports"),
    path("api/", include("collectors.urls")),
    path("api/", include("accounts.urls")),
]

handler404 = "sevatrust.views.error_404_view"
handler500 = "sevatrust.views.error_500_view"
