from datetime import timedelta

from django.db.models import Q
from django.utils import timezone
from rest_framework import generics, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.common.exceptions import ValidationError
from apps.common.exports import local_date, money, xlsx_response
from apps.common.permissions import RolePermission
from apps.sales.models import PaymentMethod, Sale, SaleReversal
from apps.sales.querysets import with_paid_total
from apps.sales.serializers import (
    CounterSaleSerializer,
    PaymentCreateSerializer,
    PaymentSerializer,
    SaleAdjustSerializer,
    SaleDetailSerializer,
    SaleInvoiceSerializer,
    SaleReversalSerializer,
    SaleSerializer,
    SettleOrderSerializer,
)
from apps.sales.services import add_payment, adjust_sale, create_counter_sale, reverse_settlement, settle_order

TRUTHY = {"1", "true", "yes"}
FALSY = {"0", "false", "no"}
PERIODS = {"day", "week", "month", "all"}


def filter_by_period(queryset, period, *, field="created_at"):
    period = (period or "all").strip().lower()
    if period not in PERIODS:
        raise ValidationError("Periodo invalido.", fields={"period": "Usa day, week, month o all."})
    if period == "all":
        return queryset

    now = timezone.localtime()
    if period == "day":
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elif period == "week":
        start = now - timedelta(days=7)
    else:
        start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return queryset.filter(**{f"{field}__gte": start})


def filter_sales(queryset, params):
    queryset = filter_by_period(queryset, params.get("period"))

    payment_method = params.get("payment_method")
    if payment_method and payment_method.strip().lower() != "all":
        payment_method = payment_method.strip().upper()
        if payment_method not in PaymentMethod.values:
            raise ValidationError("Metodo de pago invalido.", fields={"payment_method": "Usa CONTADO o CREDITO."})
        queryset = queryset.filter(payment_method=payment_method)

    is_paid = params.get("is_paid")
    if is_paid is not None:
        normalized = is_paid.strip().lower()
        if normalized in TRUTHY:
            queryset = queryset.filter(is_paid=True)
        elif normalized in FALSY:
            queryset = queryset.filter(is_paid=False)

    query = params.get("q")
    if query:
        query = query.strip()
        name_filter = Q()
        for token in query.split():
            name_filter &= Q(customer__first_name__icontains=token) | Q(customer__last_name__icontains=token)
        queryset = queryset.filter(name_filter | Q(id__istartswith=query))
    return queryset


class SaleViewSet(viewsets.ModelViewSet):
    queryset = Sale.objects.select_related("order__customer", "customer", "created_by").order_by("-created_at")
    serializer_class = SaleSerializer
    permission_classes = [RolePermission]
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]
    capability_map = {
        "list": ["sales.view"],
        "retrieve": ["sales.view"],
        "invoice": ["sales.view"],
        "export": ["reports.export"],
        "create": ["orders.create", "sales.settle"],
        "settle": ["sales.settle"],
        "partial_update": ["sales.edit"],
        "payments": ["sales.view"],
        "record_payment": ["payments.create"],
        "destroy": ["sales.reverse"],
    }

    def get_serializer_class(self):
        if self.action == "retrieve":
            return SaleDetailSerializer
        if self.action == "create":
            return CounterSaleSerializer
        if self.action == "partial_update":
            return SaleAdjustSerializer
        return SaleSerializer

    def get_queryset(self):
        queryset = with_paid_total(super().get_queryset())
        if self.action in {"list", "export"}:
            queryset = filter_sales(queryset, self.request.query_params)
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        sale = create_counter_sale(
            customer=data.get("customer"),
            items=data["items"],
            payment_method=data["payment_method"],
            discount=data.get("discount"),
            use_loyalty_discount=data["use_loyalty_discount"],
            notes=data["notes"],
            actor=request.user,
        )
        return Response(SaleInvoiceSerializer.bundle(sale).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        sale = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        sale = adjust_sale(
            sale_id=sale.id,
            actor=request.user,
            discount=serializer.validated_data.get("discount"),
            payment_method=serializer.validated_data.get("payment_method"),
        )
        return Response(SaleSerializer(sale).data)

    def destroy(self, request, *args, **kwargs):
        sale = self.get_object()
        reason = request.data.get("reason") or request.query_params.get("reason") or "Venta eliminada"
        reversal = reverse_settlement(sale_id=sale.id, actor=request.user, reason=reason)
        return Response(SaleReversalSerializer(reversal).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["post"], url_path=r"settle/(?P<order_id>[0-9a-f-]+)")
    def settle(self, request, order_id=None):
        serializer = SettleOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        sale = settle_order(
            order_id=order_id,
            payment_method=serializer.validated_data["payment_method"],
            discount=serializer.validated_data.get("discount"),
            use_loyalty_discount=serializer.validated_data["use_loyalty_discount"],
            actor=request.user,
        )
        return Response(SaleInvoiceSerializer.bundle(sale).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"])
    def export(self, request):
        sales = self.get_queryset().prefetch_related("order__items")
        return xlsx_response(
            file_name="Historial_Ventas_Luxessence",
            sheet_name="Ventas",
            headers=["ID", "Fecha", "Cliente", "Total", "Descuento", "Metodo", "Estado", "Abonado", "Items"],
            rows=(
                [
                    str(sale.id)[:8],
                    local_date(sale.created_at),
                    sale.order.customer_name,
                    money(sale.total),
                    money(sale.discount),
                    sale.payment_method,
                    "Pagado" if sale.is_paid else "Pendiente",
                    money(sale.paid_total),
                    ", ".join(f"{item.name} ({item.quantity})" for item in sale.order.items.all()),
                ]
                for sale in sales
            ),
        )

    @action(detail=True, methods=["get"])
    def invoice(self, request, pk=None):
        return Response(SaleInvoiceSerializer.bundle(self.get_object()).data)

    @action(detail=True, methods=["get"])
    def payments(self, request, pk=None):
        sale = self.get_object()
        return Response(PaymentSerializer(sale.payments.select_related("created_by"), many=True).data)

    @payments.mapping.post
    def record_payment(self, request, pk=None):
        sale = self.get_object()
        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = add_payment(
            sale_id=sale.id,
            amount=serializer.validated_data["amount"],
            notes=serializer.validated_data["notes"],
            actor=request.user,
        )
        sale = self.get_queryset().get(pk=sale.pk)
        return Response(
            {"payment": PaymentSerializer(payment).data, "sale": SaleSerializer(sale).data},
            status=status.HTTP_201_CREATED,
        )


class SaleReversalListView(generics.ListAPIView):
    queryset = SaleReversal.objects.select_related("actor").order_by("-created_at")
    serializer_class = SaleReversalSerializer
    permission_classes = [RolePermission]
    capability_map = {"get": ["sales.reverse"]}

