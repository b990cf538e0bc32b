from django.urls import path

from . import views

app_name = "collectors"

urlpatterns = [
    path("referral/validate/<str:code>", views.validate_referral_view, name="validate_referral"),
    path("leaderboard/top", views.leaderboard_view, name="leaderboard_top"),
    path("collector/dashboard", views.collector_dashboard_view, name="dashboard"),
]
