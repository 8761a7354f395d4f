from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.sales.views import SaleReversalListView, SaleViewSet
from apps.sales.views_metrics import CreditSummaryView, DashboardView, SalesMetricsView

router = DefaultRouter()
router.register("sales", SaleViewSet, basename="sale")

urlpatterns = [
    path("sale-reversals/", SaleReversalListView.as_view(), name="sale-reversal-list"),
    path("metrics/", SalesMetricsView.as_view(), name="sales-metrics"),
    path("metrics/credit/", CreditSummaryView.as_view(), name="credit-summary"),
    path("dashboard/", DashboardView.as_view(), name="dashboard"),
]
urlpatterns += router.urls
