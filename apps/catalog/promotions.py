"""
Active promotion lookup.

A product may sit in several overlapping campaigns; the most recently created
active one wins. Combo lines never take a promotion.
"""
from django.db.models import Prefetch
from django.utils import timezone

from apps.catalog.models import Promotion, PromotionProduct, PromotionType


def _active_lines(day):
    return (
        PromotionProduct.objects.filter(promotion__in=Promotion.objects.active_on(day or timezone.localdate()))
        .select_related("promotion")
        .order_by("promotion__created_at")
    )


def active_promotion_lines(product_ids, *, day=None):
    """Map product id to the ``PromotionProduct`` of the promotion in force on ``day``."""
    lines = _active_lines(day).filter(product_id__in=list(product_ids))
    return {line.product_id: line for line in lines}


def with_active_promotions(queryset, *, day=None):
    return queryset.prefetch_related(Prefetch("promotion_lines", queryset=_active_lines(day), to_attr="active_promotions"))


def on_promotion(queryset, *, day=None):
    active = Promotion.objects.active_on(day or timezone.localdate())
    return queryset.filter(promotion_lines__promotion__in=active).distinct()


def current_promotion_line(product):
    lines = getattr(product, "active_promotions", None)
    if lines is None:
        return active_promotion_lines([product.id]).get(product.id)
    return lines[-1] if lines else None


def is_bogo_line(promotion_line):
    return promotion_line is not None and promotion_line.promotion.promo_type == PromotionType.BOGO


def promotional_price(product, promotion_line):
    if promotion_line is None or is_bogo_line(promotion_line) or promotion_line.promo_price is None:
        return product.price
    return promotion_line.promo_price
