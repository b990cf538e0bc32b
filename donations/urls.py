from django.urls import path

from collectors import views as collector_views

from . import views

app_name = "donations"
urlpatterns = [
    path("send-otp", views.send_otp_view, name="send_otp"),
    path("verify-otp", views.verify_otp_view, name="verify_otp"),

    path("create", views.create_donation_view, name="create"),
    path("create-order", views.create_order_view, name="create_order"),
    path("<uuid:donation_id>/status", views.donation_status_view, name="status"),
    path("<uuid:donation_id>/receipt", views.download_receipt_view, name="receipt"),

    path("mine", views.my_donations_view, name="mine"),
    path("me/last-profile", views.last_profile_view, name="last_profile"),
    path("leaderboard", collector_views.leaderboard_view, name="leaderboard"),
    path("my-collector-stats", views.my_collector_stats_view, name="my_collector_stats"),
]
