"""
Loyalty stamps.

A registered customer earns one stamp per settled sale, up to
``LOYALTY_MAX_STAMPS``. A full card can be redeemed for a
``LOYALTY_DISCOUNT_RATE`` discount, which resets the card to zero. Each change
is appended to ``LoyaltyEvent``; ``Customer.loyalty_stamps`` is the fold of
those events, cached on the row.
"""
import logging

from django.conf import settings
from django.db import transaction

from apps.common.exceptions import InvariantViolation, ValidationError
from apps.customers.models import Customer, LoyaltyEvent, LoyaltyEventType

logger = logging.getLogger(__name__)


def next_stamps(stamps, *, redeemed):
    if redeemed:
        return 0
    return min(stamps + 1, settings.LOYALTY_MAX_STAMPS)


def fold_events(event_types):
    stamps = 0
    for event_type in event_types:
        stamps = next_stamps(stamps, redeemed=event_type == LoyaltyEventType.REDEEMED)
    return stamps


def can_redeem(customer):
    return customer is not None and customer.loyalty_stamps >= settings.LOYALTY_MAX_STAMPS


def ensure_can_redeem(customer):
    if customer is None:
        raise ValidationError(
            "El descuento de lealtad requiere un cliente registrado.",
            fields={"use_loyalty_discount": "Selecciona un cliente registrado."},
        )
    if not can_redeem(customer):
        raise ValidationError(
            f"El cliente tiene {customer.loyalty_stamps} sellos; se requieren {settings.LOYALTY_MAX_STAMPS}.",
            fields={"use_loyalty_discount": "Sellos insuficientes."},
        )


@transaction.atomic
def apply_sale_loyalty(*, customer, sale_id, redeemed):
    """Record the stamp change for one settled sale and return the new count."""
    customer = Customer.objects.select_for_update().get(pk=customer.pk)
    if redeemed and not can_redeem(customer):
        raise InvariantViolation("Se intento canjear sellos sin tarjeta completa.")

    stamps = next_stamps(customer.loyalty_stamps, redeemed=redeemed)
    LoyaltyEvent.objects.create(
        customer=customer,
        event_type=LoyaltyEventType.REDEEMED if redeemed else LoyaltyEventType.EARNED,
        sale_id=sale_id,
        stamps_after=stamps,
    )
    customer.loyalty_stamps = stamps
    customer.save(update_fields=["loyalty_stamps", "updated_at"])
    logger.info("Customer %s loyalty stamps -> %s (redeemed=%s)", customer.pk, stamps, redeemed)
    return stamps


@transaction.atomic
def replay_stamps(customer):
    """Recompute the cached counter from the event log."""
    customer = Customer.objects.select_for_update().get(pk=customer.pk)
    event_types = customer.loyalty_events.order_by("created_at").values_list("event_type", flat=True)
    stamps = fold_events(event_types)
    if stamps != customer.loyalty_stamps:
        logger.warning("Customer %s stamps drifted: cached=%s replayed=%s", customer.pk, customer.loyalty_stamps, stamps)
        customer.loyalty_stamps = stamps
        customer.save(update_fields=["loyalty_stamps", "updated_at"])
    return stamps
