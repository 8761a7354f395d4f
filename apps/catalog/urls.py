from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.catalog.views import (
    CategoryViewSet,
    ComboPackViewSet,
    ProductViewSet,
    PromotionViewSet,
    PublicCatalogDetailView,
    PublicCatalogListView,
    PublicCategoryListView,
    PublicComboPackListView,
    PublicPromotionListView,
)

router = DefaultRouter()
router.register("products", ProductViewSet, basename="product")
router.register("categories", CategoryViewSet, basename="category")
router.register("combo-packs", ComboPackViewSet, basename="combo-pack")
router.register("promotions", PromotionViewSet, basename="promotion")

urlpatterns = [
    path("public/catalog/", PublicCatalogListView.as_view(), name="public-catalog-list"),
    path("public/catalog/<uuid:pk>/", PublicCatalogDetailView.as_view(), name="public-catalog-detail"),
    path("public/categories/", PublicCategoryListView.as_view(), name="public-category-list"),
    path("public/combo-packs/", PublicComboPackListView.as_view(), name="public-combo-pack-list"),
    path("public/promotions/", PublicPromotionListView.as_view(), name="public-promotion-list"),
]
urlpatterns += router.urls
