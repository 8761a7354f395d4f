from decimal import Decimal

from django.db.models import DecimalField, OuterRef, Subquery, Sum, Value
from django.db.models.functions import Coalesce

from apps.sales.models import Payment

MONEY_FIELD = DecimalField(max_digits=16, decimal_places=2)
ZERO = Value(Decimal("0.00"))


def with_paid_total(queryset):
    paid_subquery = (
        Payment.objects.filter(sale=OuterRef("pk"))
        .values("sale")
        .annotate(total=Sum("amount"))
        .values("total")
    )
    return queryset.annotate(
        paid_total=Coalesce(Subquery(paid_subquery, output_field=MONEY_FIELD), ZERO, output_field=MONEY_FIELD)
    )
