from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.inventory.views import LowStockView, StockAdjustmentView, StockMovementViewSet

router = DefaultRouter()
router.register("movements", StockMovementViewSet, basename="stock-movement")

urlpatterns = [
    path("adjustments/", StockAdjustmentView.as_view(), name="stock-adjustment"),
    path("low-stock/", LowStockView.as_view(), name="low-stock"),
]
urlpatterns += router.urls
