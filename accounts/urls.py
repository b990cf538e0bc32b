from django.urls import path

from . import views

app_name = "accounts"

urlpatterns = [
    path("user/generate-referral-code", views.generate_referral_code_view, name="generate_referral_code"),
    path("admin/collectors", views.collectors_view, name="collectors"),
    path("admin/collectors/summary", views.collector_summary_view, name="collector_summary"),
    path("admin/collectors/<int:user_id>", views.collector_details_view, name="collector_details"),
    path("admin/collectors/<int:user_id>/toggle-status", views.toggle_collector_status_view, name="toggle_collector"),
    path("admin/collectors/<int:user_id>/approve", views.approve_collector_view, name="approve_collector"),
    path("admin/collectors/<int:user_id>/reject", views.reject_collector_view, name="reject_collector"),
    path("admin/collectors/<int:user_id>/revoke", views.revoke_collector_view, name="revoke_collector"),
]
