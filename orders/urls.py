from django.urls import path

from . import views

app_name = "orders"

urlpatterns = [
    path("checkout/", views.checkout_view, name="checkout"),
    path("orders/<int:order_id>/pay/", views.order_pay_view, name="pay"),
    path("orders/<int:order_id>/received/", views.order_received_view, name="received"),
]
