from django.contrib import admin

from apps.customers.models import Customer, LoyaltyEvent


class LoyaltyEventInline(admin.TabularInline):
    model = LoyaltyEvent
    extra = 0
    readonly_fields = ("event_type", "sale_id", "stamps_after", "created_at")
    can_delete = False


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ("first_name", "last_name", "phone", "loyalty_stamps", "created_at")
    search_fields = ("first_name", "last_name", "phone", "phone_normalized")
    readonly_fields = ("phone_normalized", "loyalty_stamps")
    inlines = [LoyaltyEventInline]
