from rest_framework import generics, status, viewsets
from rest_framework.response import Response

from apps.audit.services import record_audit
from apps.catalog.models import Product
from apps.common.permissions import RolePermission
from apps.inventory.models import StockMovement
from apps.inventory.serializers import LowStockProductSerializer, StockAdjustmentSerializer, StockMovementSerializer
from apps.inventory.services import set_stock


class StockMovementViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = StockMovement.objects.select_related("product", "created_by")
    serializer_class = StockMovementSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["inventory.view"],
        "retrieve": ["inventory.view"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        product_id = self.request.query_params.get("product")
        movement_type = self.request.query_params.get("movement_type")
        reference_id = self.request.query_params.get("reference_id")
        if product_id:
            queryset = queryset.filter(product_id=product_id)
        if movement_type:
            queryset = queryset.filter(movement_type=movement_type)
        if reference_id:
            queryset = queryset.filter(reference_id=reference_id)
        return queryset


class StockAdjustmentView(generics.GenericAPIView):
    serializer_class = StockAdjustmentSerializer
    permission_classes = [RolePermission]
    capability_map = {"post": ["inventory.manage"]}

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        product = serializer.validated_data["product"]
        movement = set_stock(
            product=product,
            target_stock=serializer.validated_data["stock"],
            reason=serializer.validated_data["reason"],
            actor=request.user,
        )
        if movement is None:
            return Response({"code": "unchanged", "detail": "El stock ya tenia ese valor.", "fields": {}}, status=200)

        record_audit(
            actor=request.user,
            action="inventory.adjustment.create",
            entity_type="stock_movement",
            entity_id=movement.id,
            payload={
                "product_id": str(product.id),
                "quantity_delta": movement.quantity_delta,
                "stock_after": movement.stock_after,
                "reason": movement.note,
            },
        )
        return Response(StockMovementSerializer(movement).data, status=status.HTTP_201_CREATED)


class LowStockView(generics.ListAPIView):
    serializer_class = LowStockProductSerializer
    permission_classes = [RolePermission]
    capability_map = {"get": ["inventory.view"]}

    def get_queryset(self):
        try:
            threshold = int(self.request.query_params.get("threshold", 3))
        except (TypeError, ValueError):
            threshold = 3
        return (
            Product.objects.select_related("category")
            .filter(is_active=True, is_coming_soon=False, stock__lte=threshold)
            .order_by("stock", "name")
        )
