from django.contrib import admin

from apps.orders.models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ("product", "name", "quantity", "unit_price", "unit_cost", "is_combo", "combo_multiplier", "is_bogo")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "customer", "status", "delivery_mode", "subtotal", "delivery_fee", "total", "created_at")
    list_filter = ("status", "delivery_mode")
    search_fields = ("id", "customer__first_name", "customer__last_name", "customer__phone")
    readonly_fields = ("status", "subtotal", "total", "created_at")
    inlines = [OrderItemInline]
