from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.storefront.views import (
    ProductRequestViewSet,
    PublicProductRequestView,
    PublicSiteSettingsView,
    SiteSettingViewSet,
)

router = DefaultRouter()
router.register("product-requests", ProductRequestViewSet, basename="product-request")
router.register("site-settings", SiteSettingViewSet, basename="site-setting")

urlpatterns = [
    path("public/product-requests/", PublicProductRequestView.as_view(), name="public-product-request"),
    path("public/site-settings/", PublicSiteSettingsView.as_view(), name="public-site-settings"),
]
urlpatterns += router.urls
