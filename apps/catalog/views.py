from django.conf import settings
from django.db.models import Q
from django.utils.decorators import method_decorator
from django.views.decorators.cache import cache_page
from django.utils import timezone
from rest_framework import generics, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny

from apps.audit.services import record_audit
from apps.catalog.models import Category, ComboPack, Product, Promotion
from apps.catalog.promotions import on_promotion, with_active_promotions
from apps.catalog.serializers import (
    CategorySerializer,
    ComboPackSerializer,
    ProductSerializer,
    PromotionSerializer,
    PublicCatalogProductSerializer,
)
from apps.catalog.throttles import PublicCatalogAnonThrottle
from apps.common.exports import money, xlsx_response
from apps.common.permissions import RolePermission

TRUTHY = {"1", "true", "yes"}
FALSY = {"0", "false", "no"}


def _product_snapshot(product):
    return {
        "name": product.name,
        "price": str(product.price),
        "cost": str(product.cost),
        "category_id": str(product.category_id) if product.category_id else None,
        "is_active": product.is_active,
        "is_coming_soon": product.is_coming_soon,
    }


class ProductViewSet(viewsets.ModelViewSet):
    serializer_class = ProductSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["catalog.view"],
        "retrieve": ["catalog.view"],
        "export": ["reports.export"],
        "create": ["catalog.manage"],
        "partial_update": ["catalog.manage"],
        "update": ["catalog.manage"],
        "destroy": ["catalog.manage"],
    }

    def get_queryset(self):
        queryset = Product.objects.select_related("category")
        query = self.request.query_params.get("q")
        if query:
            queryset = queryset.filter(name__icontains=query.strip())

        category_id = self.request.query_params.get("category")
        if category_id:
            queryset = queryset.filter(category_id=category_id)

        has_stock = self.request.query_params.get("has_stock")
        if has_stock is not None:
            normalized_has_stock = has_stock.strip().lower()
            if normalized_has_stock in TRUTHY:
                queryset = queryset.filter(stock__gt=0)
            elif normalized_has_stock in FALSY:
                queryset = queryset.filter(stock__lte=0)

        coming_soon = self.request.query_params.get("coming_soon")
        if coming_soon is not None:
            queryset = queryset.filter(is_coming_soon=coming_soon.strip().lower() in TRUTHY)
        return queryset

    def perform_create(self, serializer):
        product = serializer.save()
        record_audit(
            actor=self.request.user,
            action="catalog.product.create",
            entity_type="product",
            entity_id=product.id,
            payload={**_product_snapshot(product), "stock": product.stock},
        )

    def perform_update(self, serializer):
        before = _product_snapshot(self.get_object())
        product = serializer.save()
        record_audit(
            actor=self.request.user,
            action="catalog.product.update",
            entity_type="product",
            entity_id=product.id,
            payload={"before": before, "after": _product_snapshot(product)},
        )

    def perform_destroy(self, instance):
        record_audit(
            actor=self.request.user,
            action="catalog.product.delete",
            entity_type="product",
            entity_id=instance.id,
            payload={**_product_snapshot(instance), "stock": instance.stock},
        )
        super().perform_destroy(instance)

    @action(detail=False, methods=["get"])
    def export(self, request):
        products = self.get_queryset().order_by("name")
        return xlsx_response(
            file_name="Inventario_Luxessence",
            sheet_name="Productos",
            headers=["Nombre", "Categoria", "Precio", "Costo", "Existencia", "Descripcion"],
            rows=(
                [
                    product.name,
                    product.category.name if product.category_id else "",
                    money(product.price),
                    money(product.cost),
                    product.stock,
                    product.description,
                ]
                for product in products
            ),
        )


class CategoryViewSet(viewsets.ModelViewSet):
    queryset = Category.objects.all().order_by("name")
    serializer_class = CategorySerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["catalog.view"],
        "retrieve": ["catalog.view"],
        "create": ["catalog.manage"],
        "update": ["catalog.manage"],
        "partial_update": ["catalog.manage"],
        "destroy": ["catalog.manage"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        query = self.request.query_params.get("q")
        if query:
            queryset = queryset.filter(name__icontains=query.strip())
        return queryset


@method_decorator(cache_page(settings.PUBLIC_CATALOG_CACHE_TTL_SECONDS), name="dispatch")
class PublicCatalogListView(generics.ListAPIView):
    serializer_class = PublicCatalogProductSerializer
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [PublicCatalogAnonThrottle]

    def get_queryset(self):
        queryset = Product.objects.filter(is_active=True).select_related("category").order_by("name")
        query = self.request.query_params.get("q")
        if query:
            query = query.strip()
            queryset = queryset.filter(Q(name__icontains=query) | Q(description__icontains=query))

        category_id = self.request.query_params.get("category")
        if category_id:
            queryset = queryset.filter(category_id=category_id)

        if str(self.request.query_params.get("new_arrivals", "")).lower() in TRUTHY:
            queryset = queryset.filter(is_new_arrival=True)

        coming_soon = self.request.query_params.get("coming_soon")
        if coming_soon is not None:
            queryset = queryset.filter(is_coming_soon=coming_soon.strip().lower() in TRUTHY)

        if str(self.request.query_params.get("promo", "")).lower() in TRUTHY:
            queryset = on_promotion(queryset)
        return with_active_promotions(queryset)


@method_decorator(cache_page(settings.PUBLIC_CATALOG_CACHE_TTL_SECONDS), name="dispatch")
class PublicCatalogDetailView(generics.RetrieveAPIView):
    serializer_class = PublicCatalogProductSerializer
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [PublicCatalogAnonThrottle]

    def get_queryset(self):
        return with_active_promotions(Product.objects.filter(is_active=True).select_related("category"))


@method_decorator(cache_page(settings.PUBLIC_CATALOG_CACHE_TTL_SECONDS), name="dispatch")
class PublicCategoryListView(generics.ListAPIView):
    serializer_class = CategorySerializer
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [PublicCatalogAnonThrottle]
    pagination_class = None

    def get_queryset(self):
        queryset = Category.objects.all().order_by("name")
        if str(self.request.query_params.get("featured", "")).lower() in TRUTHY:
            queryset = queryset.filter(is_featured=True)
        return queryset


class ComboPackViewSet(viewsets.ModelViewSet):
    queryset = ComboPack.objects.select_related("category").order_by("category__name", "units")
    serializer_class = ComboPackSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["catalog.view"],
        "retrieve": ["catalog.view"],
        "create": ["catalog.manage"],
        "update": ["catalog.manage"],
        "partial_update": ["catalog.manage"],
        "destroy": ["catalog.manage"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        category_id = self.request.query_params.get("category")
        if category_id:
            queryset = queryset.filter(category_id=category_id)
        return queryset


class PublicComboPackListView(generics.ListAPIView):
    serializer_class = ComboPackSerializer
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [PublicCatalogAnonThrottle]
    pagination_class = None

    def get_queryset(self):
        queryset = ComboPack.objects.filter(is_active=True).select_related("category").order_by("units")
        category_id = self.request.query_params.get("category")
        if category_id:
            queryset = queryset.filter(category_id=category_id)
        return queryset


class PromotionViewSet(viewsets.ModelViewSet):
    queryset = Promotion.objects.prefetch_related("lines__product").order_by("-created_at")
    serializer_class = PromotionSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["catalog.view"],
        "retrieve": ["catalog.view"],
        "create": ["catalog.manage"],
        "update": ["catalog.manage"],
        "partial_update": ["catalog.manage"],
        "destroy": ["catalog.manage"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        if str(self.request.query_params.get("active", "")).lower() in TRUTHY:
            queryset = queryset.active_on(timezone.localdate())
        return queryset

    def perform_create(self, serializer):
        promotion = serializer.save()
        record_audit(
            actor=self.request.user,
            action="catalog.promotion.create",
            entity_type="promotion",
            entity_id=promotion.id,
            payload={"title": promotion.title, "promo_type": promotion.promo_type},
        )

    def perform_update(self, serializer):
        promotion = serializer.save()
        record_audit(
            actor=self.request.user,
            action="catalog.promotion.update",
            entity_type="promotion",
            entity_id=promotion.id,
            payload={"title": promotion.title, "promo_type": promotion.promo_type, "is_active": promotion.is_active},
        )

    def perform_destroy(self, instance):
        record_audit(
            actor=self.request.user,
            action="catalog.promotion.delete",
            entity_type="promotion",
            entity_id=instance.id,
            payload={"title": instance.title},
        )
        super().perform_destroy(instance)


class PublicPromotionListView(generics.ListAPIView):
    serializer_class = PromotionSerializer
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [PublicCatalogAnonThrottle]
    pagination_class = None

    def get_queryset(self):
        return Promotion.objects.active_on(timezone.localdate()).prefetch_related("lines__product")
