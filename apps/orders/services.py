"""
Order intake.

Orders are captured as PENDING with a snapshot of each line taken from the
current product rows. Stock is not reserved here; settlement takes it with an
atomic conditional update.
"""
import logging
from decimal import Decimal
from urllib.parse import quote

from django.conf import settings
from django.db import transaction

from apps.audit.services import record_audit
from apps.catalog.promotions import active_promotion_lines, is_bogo_line, promotional_price
from apps.common.exceptions import InvalidStateError, NotFoundError, ValidationError
from apps.customers.models import MIN_PHONE_DIGITS, Customer, normalize_phone
from apps.orders.models import DeliveryMode, Order, OrderItem, OrderStatus

logger = logging.getLogger(__name__)

STOREFRONT_DELIVERY_MODES = (DeliveryMode.DOMICILIO, DeliveryMode.PICKUP)


def delivery_fee_for(delivery_mode):
    if delivery_mode == DeliveryMode.DOMICILIO:
        return settings.STOREFRONT_DELIVERY_FEE
    return Decimal("0.00")


def snapshot_line(*, product, quantity, combo_pack=None, combo_multiplier=None, unit_price=None, promotion_line=None):
    """
    Build an unsaved ``OrderItem`` from the product as it is right now.

    Single-unit lines take the active promotion unless the counter quoted its
    own ``unit_price``.
    """
    if quantity <= 0:
        raise ValidationError("La cantidad debe ser mayor a 0.", fields={"items": "La cantidad debe ser mayor a 0."})
    if not product.is_sellable:
        raise ValidationError(
            f"{product.name} no esta disponible para la venta.",
            fields={"items": f"{product.name} no esta disponible para la venta."},
        )

    if combo_pack is not None:
        if not combo_pack.is_active or combo_pack.category_id != product.category_id:
            raise ValidationError(
                "El combo seleccionado no aplica a este producto.",
                fields={"items": "El combo seleccionado no aplica a este producto."},
            )
        multiplier = combo_pack.units
        price = combo_pack.price
        name = f"{product.name} ({combo_pack.label})"
    elif combo_multiplier and combo_multiplier > 1:
        if unit_price is None:
            raise ValidationError(
                "Los combos requieren el precio del paquete.",
                fields={"items": "Los combos requieren el precio del paquete."},
            )
        multiplier = combo_multiplier
        price = unit_price
        name = f"{product.name} (Combo x{multiplier})"
    else:
        multiplier = 1
        price = promotional_price(product, promotion_line) if unit_price is None else unit_price
        name = product.name

    is_combo = multiplier > 1 or combo_pack is not None
    return OrderItem(
        product=product,
        name=name,
        quantity=quantity,
        unit_price=price,
        unit_cost=product.cost * multiplier,
        is_combo=is_combo,
        combo_multiplier=multiplier,
        is_bogo=(product.is_bogo or is_bogo_line(promotion_line)) and not is_combo,
    )


def _persist_order(order, lines):
    if not lines:
        raise ValidationError("El pedido debe tener al menos un producto.", fields={"items": "Agrega al menos un producto."})

    order.recalculate_totals(lines)
    order.save()
    for line in lines:
        line.order = order
    OrderItem.objects.bulk_create(lines)
    return order


@transaction.atomic
def create_storefront_order(
    *,
    customer_data,
    items,
    delivery_mode,
    city="",
    department="",
    client_email="",
    notes="",
):
    """Public checkout: upsert the customer by phone and store a PENDING order."""
    if delivery_mode not in STOREFRONT_DELIVERY_MODES:
        raise ValidationError("Modo de entrega invalido.", fields={"delivery_mode": "Usa DOMICILIO o PICKUP."})
    phone = customer_data.get("phone", "")
    if len(normalize_phone(phone)) < MIN_PHONE_DIGITS:
        raise ValidationError(
            "Telefono invalido.",
            fields={"phone": f"El telefono debe tener al menos {MIN_PHONE_DIGITS} digitos."},
        )

    customer, created = Customer.upsert_by_phone(
        phone=phone,
        first_name=customer_data.get("first_name", ""),
        last_name=customer_data.get("last_name", ""),
        address=customer_data.get("address", ""),
        email=client_email,
    )
    promotions = active_promotion_lines(item["product"].id for item in items)
    lines = [
        snapshot_line(
            product=item["product"],
            quantity=item["quantity"],
            combo_pack=item.get("combo_pack"),
            promotion_line=promotions.get(item["product"].id),
        )
        for item in items
    ]
    order = _persist_order(
        Order(
            customer=customer,
            status=OrderStatus.PENDING,
            delivery_mode=delivery_mode,
            delivery_fee=delivery_fee_for(delivery_mode),
            client_email=client_email or "",
            city=city or "",
            department=department or "",
            address=customer_data.get("address", "") or "",
            notes=notes or "",
        ),
        lines,
    )
    record_audit(
        actor=None,
        action="order.checkout",
        entity_type="order",
        entity_id=order.id,
        payload={"customer_id": str(customer.id), "customer_created": created, "total": str(order.total)},
    )
    return order


@transaction.atomic
def create_counter_order(*, customer, items, actor, notes=""):
    """Point-of-sale intake: no delivery fee and the customer may be a walk-in."""
    promotions = active_promotion_lines(item["product"].id for item in items)
    lines = [
        snapshot_line(
            product=item["product"],
            quantity=item["quantity"],
            combo_pack=item.get("combo_pack"),
            combo_multiplier=item.get("combo_multiplier"),
            unit_price=item.get("unit_price"),
            promotion_line=promotions.get(item["product"].id),
        )
        for item in items
    ]
    order = _persist_order(
        Order(
            customer=customer,
            status=OrderStatus.PENDING,
            delivery_mode=DeliveryMode.MOSTRADOR,
            delivery_fee=Decimal("0.00"),
            address=customer.address if customer else "",
            notes=notes or "",
            created_by=actor,
        ),
        lines,
    )
    record_audit(
        actor=actor,
        action="order.create",
        entity_type="order",
        entity_id=order.id,
        payload={"customer_id": str(customer.id) if customer else None, "total": str(order.total)},
    )
    return order


@transaction.atomic
def delete_pending_order(*, order_id, actor):
    """Drop an order that was never settled. It never touched stock."""
    order = Order.objects.select_for_update().filter(pk=order_id).first()
    if order is None:
        raise NotFoundError("El pedido no existe.")
    if order.status != OrderStatus.PENDING:
        raise InvalidStateError("Solo puedes eliminar pedidos pendientes sin revertir la venta.")

    payload = {"customer_id": str(order.customer_id) if order.customer_id else None, "total": str(order.total)}
    order.delete()
    record_audit(actor=actor, action="order.delete", entity_type="order", entity_id=order_id, payload=payload)
    logger.info("Deleted pending order %s", order_id)


def whatsapp_message(order):
    customer = order.customer
    lines = [
        "*NUEVO PEDIDO LUXESSENCE*",
        "--------------------------",
        f"*Cliente:* {order.customer_name}",
        f"*Telefono:* {customer.phone if customer else ''}",
        f"*Entrega:* {order.get_delivery_mode_display().upper()}",
    ]
    if order.city or order.department:
        lines.append(f"*Ubicacion:* {order.city}, {order.department}")
    if order.address:
        lines.append(f"*Direccion:* {order.address}")
    lines.append("--------------------------")
    for item in order.items.all():
        bogo = " [BOGO]" if item.is_bogo else ""
        lines.append(f"- {item.name} (x{item.quantity}){bogo}: L. {item.line_total}")
    lines.append("--------------------------")
    if order.delivery_fee > 0:
        lines.append(f"*Envio:* L. {order.delivery_fee}")
    lines.append(f"*TOTAL: L. {order.total}*")
    lines.append("--------------------------")
    lines.append("_Espere nuestra confirmacion para el envio._")
    return "\n".join(lines)


def whatsapp_link(order):
    number = normalize_phone(settings.STORE_WHATSAPP_NUMBER)
    return f"https://wa.me/{number}?text={quote(whatsapp_message(order))}"
