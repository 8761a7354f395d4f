"""
Sale settlement workflow.

Settling turns a PENDING order into exactly one ``Sale``: stock is taken with
conditional decrements, the order flips to PROCESSED, a cash sale gets its
payment and the customer's loyalty card moves, all in one transaction.

Credit sales collect ``Payment`` rows until the balance reaches zero; the sum
of payments never exceeds the sale total.

``reverse_settlement`` is the only way a sale leaves the system. Both the order
list and the sales ledger go through it, and the ``SaleReversal`` intent row
plus the ``(sale_reversal, sale_id, product)`` movement key make the restock
happen once.
"""
import logging
from collections import OrderedDict
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import DecimalField, Sum, Value
from django.db.models.functions import Coalesce

from apps.audit.services import record_audit
from apps.common.db import run_with_retry
from apps.common.exceptions import (
    ConflictError,
    InvalidStateError,
    InvariantViolation,
    NotFoundError,
    OverpaymentError,
    ValidationError,
)
from apps.customers.services import apply_sale_loyalty, ensure_can_redeem
from apps.inventory.services import decrement_stock, restock
from apps.orders.models import Order, OrderStatus
from apps.orders.services import create_counter_order
from apps.sales.models import Payment, PaymentMethod, Sale, SaleReversal

logger = logging.getLogger(__name__)

MONEY = Decimal("0.01")
SETTLEMENT_REFERENCE = "sale_settlement"
REVERSAL_REFERENCE = "sale_reversal"


def _money(value):
    return Decimal(value).quantize(MONEY)


def paid_amount(sale):
    annotated = getattr(sale, "paid_total", None)
    if annotated is not None:
        return _money(annotated)
    total = sale.payments.aggregate(
        total=Coalesce(Sum("amount"), Value(Decimal("0.00")), output_field=DecimalField(max_digits=14, decimal_places=2))
    )["total"]
    return _money(total)


def pending_balance(sale):
    return max(Decimal("0.00"), _money(sale.total - paid_amount(sale)))


def stock_units_by_product(items):
    """Units per product across all lines, in a stable lock order. Lines of deleted products are skipped."""
    units = {}
    for item in items:
        if item.product_id is None:
            continue
        units[item.product_id] = units.get(item.product_id, 0) + item.stock_units
    return OrderedDict(sorted(units.items(), key=lambda pair: str(pair[0])))


def resolve_discount(order, *, discount=None, use_loyalty_discount=False):
    if use_loyalty_discount:
        ensure_can_redeem(order.customer)
        return _money(order.subtotal * settings.LOYALTY_DISCOUNT_RATE)

    discount = _money(discount or 0)
    if discount < 0:
        raise ValidationError("El descuento no puede ser negativo.", fields={"discount": "Debe ser mayor o igual a 0."})
    if discount > order.total:
        raise ValidationError(
            "El descuento no puede exceder el total del pedido.",
            fields={"discount": f"El maximo permitido es {order.total}."},
        )
    return discount


def _ensure_payment_method(payment_method):
    if payment_method not in PaymentMethod.values:
        raise ValidationError("Metodo de pago invalido.", fields={"payment_method": "Usa CONTADO o CREDITO."})


def _settle_locked(order, *, payment_method, discount, use_loyalty_discount, actor):
    if order.status != OrderStatus.PENDING:
        raise InvalidStateError("El pedido ya fue procesado.")
    _ensure_payment_method(payment_method)

    discount = resolve_discount(order, discount=discount, use_loyalty_discount=use_loyalty_discount)
    final_total = _money(order.total - discount)
    items = list(order.items.all())
    total_cost = _money(sum((item.line_cost for item in items), Decimal("0.00")))

    sale = Sale.objects.create(
        order=order,
        customer=order.customer,
        total=final_total,
        discount=discount,
        payment_method=payment_method,
        is_paid=payment_method == PaymentMethod.CONTADO or final_total == 0,
        total_cost=total_cost,
        total_profit=_money(final_total - total_cost),
        loyalty_redeemed=use_loyalty_discount,
        created_by=actor,
    )

    for product_id, units in stock_units_by_product(items).items():
        decrement_stock(
            product_id=product_id,
            quantity=units,
            reference_type=SETTLEMENT_REFERENCE,
            reference_id=sale.id,
            actor=actor,
            note=f"Venta {str(sale.id)[:8]}",
        )

    order.status = OrderStatus.PROCESSED
    order.save(update_fields=["status"])

    if payment_method == PaymentMethod.CONTADO and final_total > 0:
        Payment.objects.create(sale=sale, amount=final_total, notes="Pago de contado", created_by=actor)

    if order.customer_id:
        apply_sale_loyalty(customer=order.customer, sale_id=sale.id, redeemed=use_loyalty_discount)

    record_audit(
        actor=actor,
        action="sale.settle",
        entity_type="sale",
        entity_id=sale.id,
        payload={
            "order_id": str(order.id),
            "payment_method": payment_method,
            "discount": str(discount),
            "total": str(final_total),
            "loyalty_redeemed": use_loyalty_discount,
        },
    )
    logger.info("Settled order %s as sale %s (%s, total %s)", order.id, sale.id, payment_method, final_total)
    return sale


def settle_order(*, order_id, payment_method, actor, discount=None, use_loyalty_discount=False):
    """Settle a pending order. A second attempt on the same order fails with ``InvalidStateError``."""

    def _settle():
        with transaction.atomic():
            order = Order.objects.select_for_update().filter(pk=order_id).first()
            if order is None:
                raise NotFoundError("El pedido no existe.")
            return _settle_locked(
                order,
                payment_method=payment_method,
                discount=discount,
                use_loyalty_discount=use_loyalty_discount,
                actor=actor,
            )

    return run_with_retry(_settle)


def create_counter_sale(*, customer, items, payment_method, actor, discount=None, use_loyalty_discount=False, notes=""):
    """Point-of-sale one-shot: capture the order and settle it in the same transaction."""

    def _sell():
        with transaction.atomic():
            order = create_counter_order(customer=customer, items=items, actor=actor, notes=notes)
            order = Order.objects.select_for_update().get(pk=order.pk)
            return _settle_locked(
                order,
                payment_method=payment_method,
                discount=discount,
                use_loyalty_discount=use_loyalty_discount,
                actor=actor,
            )

    return run_with_retry(_sell)


def adjust_sale(*, sale_id, actor, discount=None, payment_method=None):
    """Ledger edit of discount and payment method. ``is_paid`` is always re-derived from payments."""

    def _adjust():
        with transaction.atomic():
            sale = Sale.objects.select_for_update().filter(pk=sale_id).first()
            if sale is None:
                raise NotFoundError("La venta no existe.")
            order = sale.order
            before = {"discount": str(sale.discount), "total": str(sale.total), "payment_method": sale.payment_method}

            if discount is not None:
                sale.discount = resolve_discount(order, discount=discount)
                sale.total = _money(order.total - sale.discount)
                sale.total_profit = _money(sale.total - sale.total_cost)

            paid = paid_amount(sale)
            if paid > sale.total:
                raise OverpaymentError(
                    f"El total ajustado ({sale.total}) es menor a lo ya abonado ({paid}).",
                    fields={"discount": "Reduce el descuento o revierte la venta."},
                )

            if payment_method is not None:
                _ensure_payment_method(payment_method)
                sale.payment_method = payment_method

            if sale.payment_method == PaymentMethod.CONTADO and paid < sale.total:
                outstanding = _money(sale.total - paid)
                Payment.objects.create(sale=sale, amount=outstanding, notes="Saldo liquidado", created_by=actor)
                paid += outstanding

            sale.is_paid = paid >= sale.total
            sale.save(update_fields=["discount", "total", "total_profit", "payment_method", "is_paid"])
            record_audit(
                actor=actor,
                action="sale.adjust",
                entity_type="sale",
                entity_id=sale.id,
                payload={
                    "before": before,
                    "after": {"discount": str(sale.discount), "total": str(sale.total), "payment_method": sale.payment_method},
                },
            )
            return sale

    return run_with_retry(_adjust)


def add_payment(*, sale_id, amount, actor, notes=""):
    """Register an installment on a credit sale, refusing anything beyond the pending balance."""
    if amount is None or amount <= 0:
        raise ValidationError("El abono debe ser mayor a 0.", fields={"amount": "Debe ser mayor a 0."})
    amount = _money(amount)

    def _pay():
        with transaction.atomic():
            sale = Sale.objects.select_for_update().filter(pk=sale_id).first()
            if sale is None:
                raise NotFoundError("La venta no existe.")
            if sale.payment_method != PaymentMethod.CREDITO:
                raise ValidationError(
                    "Solo las ventas a credito aceptan abonos.",
                    fields={"payment_method": "La venta no es a credito."},
                )

            paid = paid_amount(sale)
            balance = _money(sale.total - paid)
            if amount > balance:
                logger.warning("Rejected overpayment on sale %s: amount=%s balance=%s", sale.id, amount, balance)
                raise OverpaymentError(
                    f"El abono ({amount}) excede el saldo pendiente ({balance}).",
                    fields={"amount": f"El maximo permitido es {balance}."},
                )

            payment = Payment.objects.create(sale=sale, amount=amount, notes=(notes or "").strip(), created_by=actor)
            paid += amount
            if paid >= sale.total and not sale.is_paid:
                sale.is_paid = True
                sale.save(update_fields=["is_paid"])

            record_audit(
                actor=actor,
                action="sale.payment.create",
                entity_type="sale",
                entity_id=sale.id,
                payload={"payment_id": str(payment.id), "amount": str(amount), "pending": str(sale.total - paid)},
            )
            logger.info("Payment %s on sale %s, pending %s", amount, sale.id, sale.total - paid)
            return payment

    return run_with_retry(_pay)


def reverse_settlement(*, sale_id, actor, reason=""):
    """
    Undo a settlement: restock once, then delete payments, sale and order.

    A sale that no longer exists raises ``NotFoundError``; nothing is
    restocked twice.
    """

    def _reverse():
        with transaction.atomic():
            sale = Sale.objects.select_for_update().filter(pk=sale_id).first()
            if sale is None:
                raise NotFoundError("La venta no existe o ya fue revertida.")
            order = sale.order
            paid = paid_amount(sale)
            units = stock_units_by_product(order.items.all())

            try:
                with transaction.atomic():
                    reversal = SaleReversal.objects.create(
                        sale_id=sale.id,
                        order_id=order.id,
                        customer_id=sale.customer_id,
                        sale_total=sale.total,
                        payment_method=sale.payment_method,
                        paid_amount=paid,
                        reason=(reason or "").strip()[:255],
                        actor=actor if getattr(actor, "is_authenticated", False) else None,
                    )
            except IntegrityError as exc:
                raise ConflictError("La venta ya fue revertida por otra operacion.") from exc

            restocked_lines = []
            for product_id, quantity in units.items():
                movement = restock(
                    product_id=product_id,
                    quantity=quantity,
                    reference_type=REVERSAL_REFERENCE,
                    reference_id=sale.id,
                    actor=actor,
                    note=f"Reversion venta {str(sale.id)[:8]}",
                )
                restocked_lines.append(
                    {"product_id": str(product_id), "quantity": quantity, "applied": movement is not None}
                )
            reversal.restocked_lines = restocked_lines
            reversal.save(update_fields=["restocked_lines"])

            payments_deleted, _ = sale.payments.all().delete()
            sale.delete()
            order.delete()

            record_audit(
                actor=actor,
                action="sale.reverse",
                entity_type="sale",
                entity_id=sale_id,
                payload={
                    "order_id": str(reversal.order_id),
                    "reason": reversal.reason,
                    "total": str(reversal.sale_total),
                    "paid_amount": str(paid),
                    "payments_deleted": payments_deleted,
                    "restocked_lines": restocked_lines,
                },
            )
            logger.info("Reversed sale %s (order %s), restocked %s products", sale_id, reversal.order_id, len(units))
            return reversal

    return run_with_retry(_reverse)


def reverse_order(*, order_id, actor, reason=""):
    """Entry point from the order list; resolves the sale and shares ``reverse_settlement``."""
    sale_id = Sale.objects.filter(order_id=order_id).values_list("id", flat=True).first()
    if sale_id is None:
        order = Order.objects.filter(pk=order_id).only("status").first()
        if order is None:
            raise NotFoundError("El pedido no existe o ya fue revertido.")
        if order.status == OrderStatus.PROCESSED:
            raise InvariantViolation("El pedido procesado no tiene una venta asociada.")
        raise InvalidStateError("El pedido no ha sido procesado.")
    return reverse_settlement(sale_id=sale_id, actor=actor, reason=reason)
