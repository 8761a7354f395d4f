"""
Stock mutations.

Every change to ``Product.stock`` goes through this module and leaves a
``StockMovement`` row behind. Movements are unique per
``(reference_type, reference_id, product)``, which is what makes a restock
for a given reversal happen at most once.
"""
import logging
import uuid

from django.db import transaction
from django.db.models import F

from apps.catalog.models import Product
from apps.common.exceptions import InsufficientStockError, NotFoundError, ValidationError
from apps.inventory.models import MovementType, StockMovement

logger = logging.getLogger(__name__)


def _record(product, *, movement_type, quantity_delta, reference_type, reference_id, actor, note):
    product.refresh_from_db(fields=["stock"])
    return StockMovement.objects.create(
        product=product,
        product_name=product.name,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        stock_after=product.stock,
        reference_type=reference_type,
        reference_id=str(reference_id),
        note=note,
        created_by=actor,
    )


@transaction.atomic
def decrement_stock(*, product_id, quantity, reference_type, reference_id, actor=None, note=""):
    """Take ``quantity`` units out of stock, refusing to go below zero."""
    if quantity <= 0:
        raise ValidationError("La cantidad a descontar debe ser mayor a 0.")

    updated = Product.objects.filter(pk=product_id, stock__gte=quantity).update(stock=F("stock") - quantity)
    if not updated:
        product = Product.objects.filter(pk=product_id).only("name", "stock").first()
        if product is None:
            raise NotFoundError(f"El producto {product_id} ya no existe.")
        logger.warning(
            "Insufficient stock for %s: requested=%s available=%s", product_id, quantity, product.stock
        )
        raise InsufficientStockError(
            f"Stock insuficiente para {product.name}: disponible {product.stock}, solicitado {quantity}.",
            product_id=product_id,
            requested=quantity,
            available=product.stock,
        )

    product = Product.objects.get(pk=product_id)
    return _record(
        product,
        movement_type=MovementType.SALE,
        quantity_delta=-quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        actor=actor,
        note=note,
    )


@transaction.atomic
def restock(*, product_id, quantity, reference_type, reference_id, actor=None, note=""):
    """
    Return ``quantity`` units to stock once per reference.

    Returns ``None`` when the product no longer exists or when a movement for
    the same reference was already written.
    """
    if quantity <= 0:
        raise ValidationError("La cantidad a reintegrar debe ser mayor a 0.")

    product = Product.objects.select_for_update().filter(pk=product_id).first()
    if product is None:
        logger.info("Skipping restock of deleted product %s (%s %s)", product_id, reference_type, reference_id)
        return None

    already_applied = StockMovement.objects.filter(
        product=product, reference_type=reference_type, reference_id=str(reference_id)
    ).exists()
    if already_applied:
        logger.warning("Restock already applied for %s %s on %s", reference_type, reference_id, product_id)
        return None

    Product.objects.filter(pk=product.pk).update(stock=F("stock") + quantity)
    return _record(
        product,
        movement_type=MovementType.REVERSAL,
        quantity_delta=quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        actor=actor,
        note=note,
    )


@transaction.atomic
def set_stock(*, product, target_stock, reason, actor=None, reference_type="manual_stock_adjustment"):
    if target_stock < 0:
        raise ValidationError("El stock no puede ser negativo.", fields={"stock": "Debe ser mayor o igual a 0."})

    product = Product.objects.select_for_update().get(pk=product.pk)
    quantity_delta = target_stock - product.stock
    if quantity_delta == 0:
        return None
    if not (reason or "").strip():
        raise ValidationError(
            "La razon del ajuste de stock es obligatoria.",
            fields={"stock_adjust_reason": "La razon del ajuste de stock es obligatoria."},
        )

    Product.objects.filter(pk=product.pk).update(stock=target_stock)
    return _record(
        product,
        movement_type=MovementType.ADJUSTMENT,
        quantity_delta=quantity_delta,
        reference_type=reference_type,
        reference_id=uuid.uuid4(),
        actor=actor,
        note=reason.strip(),
    )
