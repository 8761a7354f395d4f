import logging

from django.db.models import Q
from rest_framework import generics, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from apps.catalog.throttles import PublicCheckoutAnonThrottle
from apps.common.exports import local_date, money, xlsx_response
from apps.common.permissions import RolePermission
from apps.customers.models import normalize_phone
from apps.orders.models import Order, OrderStatus
from apps.orders.serializers import CounterOrderSerializer, OrderSerializer, StorefrontCheckoutSerializer
from apps.orders.services import create_counter_order, create_storefront_order, delete_pending_order, whatsapp_link
from apps.sales.services import reverse_order

logger = logging.getLogger(__name__)


class PublicCheckoutView(generics.GenericAPIView):
    serializer_class = StorefrontCheckoutSerializer
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [PublicCheckoutAnonThrottle]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        order = create_storefront_order(
            customer_data={
                "first_name": data["first_name"],
                "last_name": data["last_name"],
                "phone": data["phone"],
                "address": data["address"],
            },
            items=data["items"],
            delivery_mode=data["delivery_mode"],
            city=data["city"],
            department=data["department"],
            client_email=data["email"],
            notes=data["notes"],
        )
        logger.info("Storefront order %s received (total %s)", order.id, order.total)
        return Response(
            {"order": OrderSerializer(order).data, "whatsapp_url": whatsapp_link(order)},
            status=status.HTTP_201_CREATED,
        )


class OrderViewSet(viewsets.ModelViewSet):
    queryset = (
        Order.objects.select_related("customer", "created_by", "sale")
        .prefetch_related("items")
        .order_by("-created_at")
    )
    serializer_class = OrderSerializer
    permission_classes = [RolePermission]
    http_method_names = ["get", "post", "delete", "head", "options"]
    capability_map = {
        "list": ["orders.view"],
        "retrieve": ["orders.view"],
        "export": ["reports.export"],
        "create": ["orders.create"],
        "destroy": ["orders.delete"],
    }

    def get_serializer_class(self):
        if self.action == "create":
            return CounterOrderSerializer
        return OrderSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        status_filter = self.request.query_params.get("status")
        delivery_mode = self.request.query_params.get("delivery_mode")
        query = self.request.query_params.get("q")
        if status_filter:
            queryset = queryset.filter(status=status_filter.strip().upper())
        if delivery_mode:
            queryset = queryset.filter(delivery_mode=delivery_mode.strip().upper())
        if query:
            query = query.strip()
            name_filter = Q()
            for token in query.split():
                name_filter &= Q(customer__first_name__icontains=token) | Q(customer__last_name__icontains=token)
            normalized = normalize_phone(query)
            if normalized:
                name_filter |= Q(customer__phone_normalized__icontains=normalized)
            queryset = queryset.filter(name_filter)
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = create_counter_order(
            customer=serializer.validated_data.get("customer"),
            items=serializer.validated_data["items"],
            actor=request.user,
            notes=serializer.validated_data["notes"],
        )
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    def destroy(self, request, *args, **kwargs):
        order = self.get_object()
        if order.status == OrderStatus.PROCESSED:
            reason = request.data.get("reason") or request.query_params.get("reason") or "Pedido eliminado"
            reverse_order(order_id=order.id, actor=request.user, reason=reason)
        else:
            delete_pending_order(order_id=order.id, actor=request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=["get"])
    def export(self, request):
        return xlsx_response(
            file_name="Pedidos_Luxessence",
            sheet_name="Pedidos",
            headers=["ID", "Fecha", "Cliente", "Estado", "Entrega", "Total", "Articulos"],
            rows=(
                [
                    str(order.id)[:8],
                    local_date(order.created_at),
                    order.customer_name,
                    order.get_status_display(),
                    order.get_delivery_mode_display(),
                    money(order.total),
                    ", ".join(f"{item.name} (x{item.quantity})" for item in order.items.all()),
                ]
                for order in self.get_queryset()
            ),
        )
