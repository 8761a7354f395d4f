import logging

from django.db.models import Q
from rest_framework import generics, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from apps.audit.services import record_audit
from apps.catalog.throttles import PublicCatalogAnonThrottle, PublicCheckoutAnonThrottle
from apps.common.permissions import RolePermission
from apps.storefront.models import ProductRequest, SiteSetting
from apps.storefront.serializers import ProductRequestSerializer, SiteSettingBulkSerializer, SiteSettingSerializer
from apps.storefront.services import public_settings, upsert_settings

logger = logging.getLogger(__name__)


class PublicProductRequestView(generics.CreateAPIView):
    serializer_class = ProductRequestSerializer
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [PublicCheckoutAnonThrottle]

    def perform_create(self, serializer):
        product_request = serializer.save()
        logger.info("Product request %s for %s", product_request.id, product_request.product_name)


class ProductRequestViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    queryset = ProductRequest.objects.order_by("-created_at")
    serializer_class = ProductRequestSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["storefront.manage"],
        "retrieve": ["storefront.manage"],
        "destroy": ["storefront.manage"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        query = self.request.query_params.get("q")
        if query:
            query = query.strip()
            queryset = queryset.filter(
                Q(customer_name__icontains=query) | Q(product_name__icontains=query) | Q(whatsapp__icontains=query)
            )
        return queryset

    def perform_destroy(self, instance):
        record_audit(
            actor=self.request.user,
            action="storefront.request.delete",
            entity_type="product_request",
            entity_id=instance.id,
            payload={"customer_name": instance.customer_name, "product_name": instance.product_name},
        )
        super().perform_destroy(instance)


class SiteSettingViewSet(viewsets.ModelViewSet):
    queryset = SiteSetting.objects.order_by("category", "key")
    serializer_class = SiteSettingSerializer
    permission_classes = [RolePermission]
    lookup_field = "key"
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]
    capability_map = {
        "list": ["storefront.manage"],
        "retrieve": ["storefront.manage"],
        "create": ["storefront.manage"],
        "partial_update": ["storefront.manage"],
        "destroy": ["storefront.manage"],
        "bulk": ["storefront.manage"],
    }

    @action(detail=False, methods=["post"])
    def bulk(self, request):
        serializer = SiteSettingBulkSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        settings = upsert_settings(entries=serializer.validated_data["settings"], actor=request.user)
        return Response(SiteSettingSerializer(settings, many=True).data, status=status.HTTP_200_OK)


class PublicSiteSettingsView(generics.GenericAPIView):
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [PublicCatalogAnonThrottle]

    def get(self, request, *args, **kwargs):
        return Response(public_settings())
