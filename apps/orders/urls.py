from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.orders.views import OrderViewSet, PublicCheckoutView

router = DefaultRouter()
router.register("orders", OrderViewSet, basename="order")

urlpatterns = [
    path("public/checkout/", PublicCheckoutView.as_view(), name="public-checkout"),
]
urlpatterns += router.urls
