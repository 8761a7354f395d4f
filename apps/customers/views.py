from django.db.models import Q
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.audit.services import record_audit
from apps.common.exceptions import ConflictError
from apps.common.exports import local_date, xlsx_response
from apps.common.permissions import RolePermission
from apps.customers.models import Customer, normalize_phone
from apps.customers.serializers import CustomerSerializer, LoyaltyEventSerializer
from apps.customers.services import fold_events, replay_stamps


class CustomerViewSet(viewsets.ModelViewSet):
    queryset = Customer.objects.order_by("-created_at")
    serializer_class = CustomerSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["customers.view"],
        "retrieve": ["customers.view"],
        "loyalty": ["customers.view"],
        "export": ["reports.export"],
        "replay_loyalty": ["customers.manage"],
        "create": ["customers.manage"],
        "update": ["customers.manage"],
        "partial_update": ["customers.manage"],
        "destroy": ["customers.manage"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        phone = self.request.query_params.get("phone")
        query = self.request.query_params.get("q")
        if phone:
            queryset = queryset.filter(phone_normalized=normalize_phone(phone))
        if query:
            query = query.strip()
            name_filter = Q()
            for token in query.split():
                name_filter &= Q(first_name__icontains=token) | Q(last_name__icontains=token)
            normalized = normalize_phone(query)
            phone_filter = Q(phone_normalized__icontains=normalized) if normalized else Q(pk__in=[])
            queryset = queryset.filter(name_filter | phone_filter)
        return queryset

    def perform_create(self, serializer):
        customer = serializer.save()
        record_audit(
            actor=self.request.user,
            action="customers.create",
            entity_type="customer",
            entity_id=customer.id,
            payload={"name": customer.full_name, "phone": customer.phone},
        )

    def perform_update(self, serializer):
        customer = serializer.save()
        record_audit(
            actor=self.request.user,
            action="customers.update",
            entity_type="customer",
            entity_id=customer.id,
            payload={"name": customer.full_name, "phone": customer.phone},
        )

    def perform_destroy(self, instance):
        if instance.orders.exists() or instance.sales.exists():
            raise ConflictError("El cliente tiene pedidos o ventas registradas y no se puede eliminar.")
        record_audit(
            actor=self.request.user,
            action="customers.delete",
            entity_type="customer",
            entity_id=instance.id,
            payload={"name": instance.full_name, "phone": instance.phone},
        )
        super().perform_destroy(instance)

    @action(detail=False, methods=["get"])
    def export(self, request):
        return xlsx_response(
            file_name="Directorio_Clientes_Luxessence",
            sheet_name="Clientes",
            headers=["Nombre", "Apellido", "Email", "Telefono", "Direccion", "Sellos", "Registro"],
            rows=(
                [
                    customer.first_name,
                    customer.last_name,
                    customer.email or "N/A",
                    customer.phone,
                    customer.address or "N/A",
                    customer.loyalty_stamps,
                    local_date(customer.created_at),
                ]
                for customer in self.get_queryset()
            ),
        )

    @action(detail=True, methods=["get"])
    def loyalty(self, request, pk=None):
        customer = self.get_object()
        events = list(customer.loyalty_events.order_by("created_at"))
        replayed = fold_events(event.event_type for event in events)
        return Response(
            {
                "customer": str(customer.id),
                "loyalty_stamps": customer.loyalty_stamps,
                "replayed_stamps": replayed,
                "in_sync": replayed == customer.loyalty_stamps,
                "events": LoyaltyEventSerializer(events[::-1], many=True).data,
            }
        )

    @action(detail=True, methods=["post"], url_path="replay-loyalty")
    def replay_loyalty(self, request, pk=None):
        customer = self.get_object()
        before = customer.loyalty_stamps
        stamps = replay_stamps(customer)
        if stamps != before:
            record_audit(
                actor=request.user,
                action="customers.loyalty.replay",
                entity_type="customer",
                entity_id=customer.id,
                payload={"before": before, "after": stamps},
            )
        return Response({"customer": str(customer.id), "loyalty_stamps": stamps, "repaired": stamps != before})
