from django.contrib import admin

from apps.catalog.models import Category, ComboPack, Product, Promotion, PromotionProduct


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "price", "cost", "stock", "is_active", "is_coming_soon", "updated_at")
    list_filter = ("is_active", "is_coming_soon", "is_new_arrival", "is_bogo", "category")
    search_fields = ("name", "description")
    readonly_fields = ("stock",)


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ("name", "is_featured", "created_at")
    list_filter = ("is_featured",)
    search_fields = ("name",)


@admin.register(ComboPack)
class ComboPackAdmin(admin.ModelAdmin):
    list_display = ("category", "label", "units", "price", "is_active")
    list_filter = ("is_active", "category")


class PromotionProductInline(admin.TabularInline):
    model = PromotionProduct
    extra = 0
    autocomplete_fields = ("product",)


@admin.register(Promotion)
class PromotionAdmin(admin.ModelAdmin):
    list_display = ("title", "promo_type", "discount_badge", "start_date", "end_date", "is_active")
    list_filter = ("promo_type", "is_active")
    search_fields = ("title",)
    inlines = [PromotionProductInline]
