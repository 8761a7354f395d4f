from django.db.models import Count, F, Sum
from django.db.models.functions import Coalesce
from rest_framework import generics
from rest_framework.response import Response

from apps.catalog.models import Product
from apps.common.permissions import RolePermission
from apps.customers.models import Customer
from apps.orders.models import Order, OrderStatus
from apps.orders.serializers import OrderSerializer
from apps.sales.models import PaymentMethod, Sale
from apps.sales.querysets import MONEY_FIELD, ZERO, with_paid_total
from apps.sales.views import filter_sales


class SalesMetricsMixin:
    permission_classes = [RolePermission]
    capability_map = {"get": ["metrics.view"]}

    @classmethod
    def _summary_for(cls, sales):
        summary = sales.aggregate(
            total_sales=Coalesce(Sum("total"), ZERO, output_field=MONEY_FIELD),
            total_cost=Coalesce(Sum("total_cost"), ZERO, output_field=MONEY_FIELD),
            total_profit=Coalesce(Sum("total_profit"), ZERO, output_field=MONEY_FIELD),
            total_discount=Coalesce(Sum("discount"), ZERO, output_field=MONEY_FIELD),
            sales_count=Count("id"),
        )
        pending = with_paid_total(sales.filter(is_paid=False)).aggregate(
            pending_credit=Coalesce(Sum(F("total") - F("paid_total"), output_field=MONEY_FIELD), ZERO, output_field=MONEY_FIELD),
            unpaid_count=Count("id"),
        )
        return {**summary, **pending}

    @staticmethod
    def _by_payment_method(sales):
        return list(
            sales.values("payment_method")
            .annotate(
                total_sales=Coalesce(Sum("total"), ZERO, output_field=MONEY_FIELD),
                sales_count=Count("id"),
            )
            .order_by("payment_method")
        )


class SalesMetricsView(SalesMetricsMixin, generics.GenericAPIView):
    def get(self, request, *args, **kwargs):
        sales = filter_sales(Sale.objects.all(), request.query_params)
        return Response(
            {
                **self._summary_for(sales),
                "period": request.query_params.get("period", "all"),
                "by_payment_method": self._by_payment_method(sales),
            }
        )


class CreditSummaryView(SalesMetricsMixin, generics.GenericAPIView):
    """Outstanding credit grouped by customer."""

    capability_map = {"get": ["sales.view"]}

    def get(self, request, *args, **kwargs):
        unpaid = with_paid_total(Sale.objects.filter(payment_method=PaymentMethod.CREDITO, is_paid=False))
        rows = list(
            unpaid.values("customer_id", "customer__first_name", "customer__last_name", "customer__phone")
            .annotate(
                pending_balance=Coalesce(Sum(F("total") - F("paid_total"), output_field=MONEY_FIELD), ZERO, output_field=MONEY_FIELD),
                sales_count=Count("id"),
            )
            .order_by("-pending_balance")
        )
        return Response(rows)


class DashboardView(SalesMetricsMixin, generics.GenericAPIView):
    def get(self, request, *args, **kwargs):
        recent_pending = (
            Order.objects.filter(status=OrderStatus.PENDING)
            .select_related("customer")
            .prefetch_related("items")
            .order_by("-created_at")[:5]
        )
        return Response(
            {
                "products_count": Product.objects.count(),
                "customers_count": Customer.objects.count(),
                "orders_count": Order.objects.count(),
                "pending_orders_count": Order.objects.filter(status=OrderStatus.PENDING).count(),
                "sales": self._summary_for(Sale.objects.all()),
                "recent_pending_orders": OrderSerializer(recent_pending, many=True).data,
            }
        )
