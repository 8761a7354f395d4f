from django.contrib import admin

from apps.inventory.models import StockMovement


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = (
        "product_name",
        "movement_type",
        "quantity_delta",
        "stock_after",
        "reference_type",
        "reference_id",
        "created_by",
        "created_at",
    )
    list_filter = ("movement_type", "reference_type")
    search_fields = ("product_name", "reference_type", "reference_id", "note")
    readonly_fields = [field.name for field in StockMovement._meta.fields]
