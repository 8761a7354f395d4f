from django.contrib import admin

from apps.storefront.models import ProductRequest, SiteSetting


@admin.register(ProductRequest)
class ProductRequestAdmin(admin.ModelAdmin):
    list_display = ("product_name", "customer_name", "whatsapp", "created_at")
    search_fields = ("product_name", "customer_name", "whatsapp")


@admin.register(SiteSetting)
class SiteSettingAdmin(admin.ModelAdmin):
    list_display = ("key", "category", "description", "updated_at")
    list_filter = ("category",)
    search_fields = ("key", "value")
