from django.contrib import admin

from apps.sales.models import Payment, Sale, SaleReversal


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    readonly_fields = ("amount", "notes", "created_by", "created_at")


@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    list_display = ("id", "customer", "payment_method", "total", "discount", "is_paid", "total_profit", "created_at")
    list_filter = ("payment_method", "is_paid")
    search_fields = ("id", "customer__first_name", "customer__last_name", "customer__phone")
    readonly_fields = ("order", "total", "total_cost", "total_profit", "is_paid", "created_at")
    inlines = [PaymentInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("sale", "amount", "notes", "created_by", "created_at")
    search_fields = ("sale__id",)


@admin.register(SaleReversal)
class SaleReversalAdmin(admin.ModelAdmin):
    list_display = ("sale_id", "order_id", "sale_total", "paid_amount", "actor", "reason", "created_at")
    search_fields = ("sale_id", "order_id", "reason")
