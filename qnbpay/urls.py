from django.urls import path

from . import views

app_name = "qnbpay"

urlpatterns = [
    path("webhook/", views.webhook_view, name="webhook"),
    path("result/<int:order_id>/", views.result_view, name="result"),
    path("form/<int:order_id>/", views.form_view, name="form"),
    path("bin/", views.bin_view, name="bin"),
    path("recheck/", views.recheck_view, name="recheck"),
    path("debug/download/", views.debug_download_view, name="debug-download"),
    path("debug/clear/", views.debug_clear_view, name="debug-clear"),
    path("test/", views.gateway_test_view, name="test"),
]
