from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("qnbpay/", include("qnbpay.urls")),
    path("", include("orders.urls")),
]
