import io
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.db import OperationalError, connection
from django.test.utils import CaptureQueriesContext
from django.utils import timezone
from openpyxl import load_workbook
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Product
from apps.common.db import run_with_retry
from apps.common.exceptions import (
    ConflictError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    OverpaymentError,
    TransientIOError,
    ValidationError,
)
from apps.customers.models import Customer, LoyaltyEvent
from apps.inventory.models import MovementType, StockMovement
from apps.orders.models import Order, OrderItem, OrderStatus
from apps.sales.models import Payment, PaymentMethod, Sale, SaleReversal
from apps.sales.services import (
    add_payment,
    adjust_sale,
    pending_balance,
    reverse_order,
    reverse_settlement,
    settle_order,
)

User = get_user_model()


class SettlementFixtureMixin:
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.cashier = User.objects.create_user(username="cashier", password="cashier123", role="CASHIER")
        self.customer = Customer.objects.create(first_name="Ana", last_name="Lopez", phone="99990000")
        self.product_a = Product.objects.create(name="Oud", price=Decimal("100.00"), cost=Decimal("60.00"), stock=10)
        self.product_b = Product.objects.create(name="Musk", price=Decimal("50.00"), cost=Decimal("20.00"), stock=5)

    def pending_order(self, customer=None, lines=None):
        order = Order.objects.create(customer=customer if customer is not None else self.customer)
        for product, quantity in lines or [(self.product_a, 2), (self.product_b, 1)]:
            OrderItem.objects.create(
                order=order,
                product=product,
                name=product.name,
                quantity=quantity,
                unit_price=product.price,
                unit_cost=product.cost,
            )
        order.recalculate_totals()
        order.save(update_fields=["subtotal", "total"])
        return order

    def stock_of(self, product):
        product.refresh_from_db()
        return product.stock

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")


class SettlementServiceTests(SettlementFixtureMixin, APITestCase):
    def test_contado_settlement_scenario(self):
        order = self.pending_order()
        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)

        self.assertEqual(sale.total, Decimal("250.00"))
        self.assertEqual(sale.discount, Decimal("0.00"))
        self.assertEqual(sale.total_cost, Decimal("140.00"))
        self.assertEqual(sale.total_profit, Decimal("110.00"))
        self.assertTrue(sale.is_paid)
        self.assertEqual(self.stock_of(self.product_a), 8)
        self.assertEqual(self.stock_of(self.product_b), 4)

        payments = list(sale.payments.values_list("amount", flat=True))
        self.assertEqual(payments, [Decimal("250.00")])

        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.PROCESSED)
        self.assertEqual(Sale.objects.filter(order=order).count(), 1)
        self.assertTrue(AuditLog.objects.filter(action="sale.settle", entity_id=str(sale.id)).exists())

        movements = StockMovement.objects.filter(reference_type="sale_settlement", reference_id=str(sale.id))
        self.assertEqual(movements.count(), 2)
        self.assertTrue(all(m.movement_type == MovementType.SALE for m in movements))

    def test_second_settlement_is_rejected(self):
        order = self.pending_order()
        settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)

        with self.assertRaises(InvalidStateError):
            settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        self.assertEqual(Sale.objects.count(), 1)
        self.assertEqual(self.stock_of(self.product_a), 8)

    def test_insufficient_stock_rolls_back_everything(self):
        order = self.pending_order(lines=[(self.product_a, 2), (self.product_b, 6)])

        with self.assertRaises(InsufficientStockError) as ctx:
            settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        self.assertEqual(ctx.exception.product_id, self.product_b.id)

        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertFalse(Sale.objects.exists())
        self.assertFalse(Payment.objects.exists())
        self.assertFalse(StockMovement.objects.exists())
        self.assertEqual(self.stock_of(self.product_a), 10)
        self.assertEqual(self.stock_of(self.product_b), 5)

    def test_quantities_are_aggregated_per_product(self):
        order = self.pending_order(lines=[(self.product_b, 3), (self.product_b, 2)])
        settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        self.assertEqual(self.stock_of(self.product_b), 0)
        self.assertEqual(StockMovement.objects.filter(product=self.product_b).count(), 1)

    def test_combo_lines_consume_multiplier_units(self):
        order = Order.objects.create(customer=self.customer)
        OrderItem.objects.create(
            order=order,
            product=self.product_a,
            name="Oud (Trio)",
            quantity=2,
            unit_price=Decimal("250.00"),
            unit_cost=Decimal("180.00"),
            is_combo=True,
            combo_multiplier=3,
        )
        order.recalculate_totals()
        order.save(update_fields=["subtotal", "total"])

        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        self.assertEqual(self.stock_of(self.product_a), 4)
        self.assertEqual(sale.total, Decimal("500.00"))
        self.assertEqual(sale.total_cost, Decimal("360.00"))

    def test_lines_of_deleted_products_have_no_stock_effect(self):
        ghost = Product.objects.create(name="Descontinuado", price=Decimal("30.00"), cost=Decimal("10.00"), stock=1)
        order = self.pending_order(lines=[(self.product_a, 1), (ghost, 1)])
        ghost.delete()

        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        self.assertEqual(sale.total, Decimal("130.00"))
        self.assertEqual(self.stock_of(self.product_a), 9)

    def test_discount_must_be_within_order_total(self):
        order = self.pending_order()
        with self.assertRaises(ValidationError):
            settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, discount=Decimal("-1"), actor=self.admin)
        with self.assertRaises(ValidationError):
            settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, discount=Decimal("251"), actor=self.admin)
        self.assertFalse(Sale.objects.exists())

        sale = settle_order(
            order_id=order.id, payment_method=PaymentMethod.CONTADO, discount=Decimal("250"), actor=self.admin
        )
        self.assertEqual(sale.total, Decimal("0.00"))
        self.assertTrue(sale.is_paid)
        self.assertFalse(sale.payments.exists())

    def test_unknown_order_and_payment_method(self):
        order = self.pending_order()
        with self.assertRaises(ValidationError):
            settle_order(order_id=order.id, payment_method="TARJETA", actor=self.admin)
        with self.assertRaises(NotFoundError):
            settle_order(order_id=self.customer.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)


class LoyaltySettlementTests(SettlementFixtureMixin, APITestCase):
    def test_each_settled_sale_adds_a_stamp(self):
        for _ in range(6):
            order = self.pending_order(lines=[(self.product_a, 1)])
            settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.loyalty_stamps, 5)
        self.assertEqual(LoyaltyEvent.objects.filter(customer=self.customer).count(), 6)

    def test_redeeming_resets_stamps_and_discounts_ten_percent(self):
        Customer.objects.filter(pk=self.customer.pk).update(loyalty_stamps=5)
        order = self.pending_order()

        sale = settle_order(
            order_id=order.id, payment_method=PaymentMethod.CONTADO, use_loyalty_discount=True, actor=self.admin
        )
        self.assertEqual(sale.discount, Decimal("25.00"))
        self.assertEqual(sale.total, Decimal("225.00"))
        self.assertTrue(sale.loyalty_redeemed)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.loyalty_stamps, 0)

    def test_redeeming_without_full_card_is_rejected(self):
        Customer.objects.filter(pk=self.customer.pk).update(loyalty_stamps=4)
        order = self.pending_order()
        with self.assertRaises(ValidationError):
            settle_order(
                order_id=order.id, payment_method=PaymentMethod.CONTADO, use_loyalty_discount=True, actor=self.admin
            )
        self.assertFalse(Sale.objects.exists())

    def test_walk_in_sale_touches_no_loyalty(self):
        order = Order.objects.create(customer=None)
        OrderItem.objects.create(order=order, product=self.product_b, name="Musk", quantity=1, unit_price=Decimal("50.00"))
        order.recalculate_totals()
        order.save(update_fields=["subtotal", "total"])

        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        self.assertIsNone(sale.customer)
        self.assertFalse(LoyaltyEvent.objects.exists())

    def test_reversal_keeps_stamps(self):
        order = self.pending_order()
        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        reverse_settlement(sale_id=sale.id, actor=self.admin)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.loyalty_stamps, 1)


class CreditLedgerTests(SettlementFixtureMixin, APITestCase):
    def test_credit_installments_scenario(self):
        order = self.pending_order()
        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CREDITO, actor=self.admin)
        self.assertFalse(sale.is_paid)
        self.assertFalse(sale.payments.exists())
        self.assertEqual(pending_balance(sale), Decimal("250.00"))

        add_payment(sale_id=sale.id, amount=Decimal("100"), actor=self.admin)
        sale.refresh_from_db()
        self.assertEqual(pending_balance(sale), Decimal("150.00"))
        self.assertFalse(sale.is_paid)

        add_payment(sale_id=sale.id, amount=Decimal("150"), notes="Liquidacion", actor=self.admin)
        sale.refresh_from_db()
        self.assertEqual(pending_balance(sale), Decimal("0.00"))
        self.assertTrue(sale.is_paid)
        self.assertEqual(sale.payments.count(), 2)

    def test_overpayment_and_non_positive_amounts_are_rejected(self):
        order = self.pending_order()
        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CREDITO, actor=self.admin)

        with self.assertRaises(ValidationError):
            add_payment(sale_id=sale.id, amount=Decimal("0"), actor=self.admin)
        with self.assertRaises(ValidationError):
            add_payment(sale_id=sale.id, amount=Decimal("-5"), actor=self.admin)
        with self.assertRaises(OverpaymentError):
            add_payment(sale_id=sale.id, amount=Decimal("250.01"), actor=self.admin)

        add_payment(sale_id=sale.id, amount=Decimal("250"), actor=self.admin)
        with self.assertRaises(OverpaymentError):
            add_payment(sale_id=sale.id, amount=Decimal("1"), actor=self.admin)
        self.assertEqual(sale.payments.count(), 1)

    def test_cash_sales_do_not_take_installments(self):
        order = self.pending_order()
        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        with self.assertRaises(ValidationError):
            add_payment(sale_id=sale.id, amount=Decimal("1"), actor=self.admin)

    def test_adjust_sale_recomputes_and_switches_to_contado(self):
        order = self.pending_order()
        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CREDITO, actor=self.admin)
        add_payment(sale_id=sale.id, amount=Decimal("100"), actor=self.admin)

        sale = adjust_sale(sale_id=sale.id, discount=Decimal("50"), actor=self.admin)
        self.assertEqual(sale.total, Decimal("200.00"))
        self.assertEqual(sale.total_profit, Decimal("60.00"))
        self.assertFalse(sale.is_paid)

        with self.assertRaises(OverpaymentError):
            adjust_sale(sale_id=sale.id, discount=Decimal("200"), actor=self.admin)

        sale = adjust_sale(sale_id=sale.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        self.assertTrue(sale.is_paid)
        self.assertEqual(pending_balance(sale), Decimal("0.00"))
        self.assertEqual(sale.payments.count(), 2)

    def test_fully_discounted_credit_sale_is_paid(self):
        order = self.pending_order()
        sale = settle_order(
            order_id=order.id,
            payment_method=PaymentMethod.CREDITO,
            discount=Decimal("250"),
            actor=self.admin,
        )

        self.assertEqual(sale.total, Decimal("0.00"))
        self.assertTrue(sale.is_paid)
        self.assertEqual(pending_balance(sale), Decimal("0.00"))
        self.assertFalse(sale.payments.exists())
        with self.assertRaises(OverpaymentError):
            add_payment(sale_id=sale.id, amount=Decimal("0.01"), actor=self.admin)
        self.assertFalse(Sale.objects.filter(payment_method=PaymentMethod.CREDITO, is_paid=False).exists())


class ReversalTests(SettlementFixtureMixin, APITestCase):
    def test_reversing_credit_sale_scenario(self):
        order = self.pending_order()
        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CREDITO, actor=self.admin)
        add_payment(sale_id=sale.id, amount=Decimal("100"), actor=self.admin)
        self.assertEqual(self.stock_of(self.product_a), 8)

        reversal = reverse_settlement(sale_id=sale.id, actor=self.admin, reason="Devolucion")

        self.assertEqual(self.stock_of(self.product_a), 10)
        self.assertEqual(self.stock_of(self.product_b), 5)
        self.assertFalse(Payment.objects.exists())
        self.assertFalse(Sale.objects.filter(pk=sale.id).exists())
        self.assertFalse(Order.objects.filter(pk=order.id).exists())
        self.assertEqual(reversal.paid_amount, Decimal("100.00"))
        self.assertEqual(len(reversal.restocked_lines), 2)
        self.assertTrue(AuditLog.objects.filter(action="sale.reverse", entity_id=str(sale.id)).exists())

    def test_second_reversal_is_not_found_and_never_restocks(self):
        order = self.pending_order()
        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        reverse_settlement(sale_id=sale.id, actor=self.admin)

        with self.assertRaises(NotFoundError):
            reverse_settlement(sale_id=sale.id, actor=self.admin)
        with self.assertRaises(NotFoundError):
            reverse_order(order_id=order.id, actor=self.admin)

        self.assertEqual(self.stock_of(self.product_a), 10)
        self.assertEqual(SaleReversal.objects.filter(sale_id=sale.id).count(), 1)
        self.assertEqual(
            StockMovement.objects.filter(reference_type="sale_reversal", reference_id=str(sale.id)).count(),
            2,
        )

    def test_order_entry_point_shares_the_reversal(self):
        order = self.pending_order()
        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)

        reversal = reverse_order(order_id=order.id, actor=self.admin)
        self.assertEqual(reversal.sale_id, sale.id)
        self.assertEqual(self.stock_of(self.product_a), 10)

        with self.assertRaises(NotFoundError):
            reverse_settlement(sale_id=sale.id, actor=self.admin)
        self.assertEqual(self.stock_of(self.product_a), 10)

    def test_reversal_skips_deleted_products(self):
        order = self.pending_order()
        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        self.product_b.delete()

        reversal = reverse_settlement(sale_id=sale.id, actor=self.admin)
        self.assertEqual(self.stock_of(self.product_a), 10)
        self.assertEqual([line["product_id"] for line in reversal.restocked_lines], [str(self.product_a.id)])

    def test_existing_reversal_record_conflicts_and_leaves_stock_alone(self):
        order = self.pending_order()
        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        SaleReversal.objects.create(
            sale_id=sale.id,
            order_id=order.id,
            customer_id=self.customer.id,
            sale_total=sale.total,
            payment_method=sale.payment_method,
        )

        with self.assertRaises(ConflictError):
            reverse_settlement(sale_id=sale.id, actor=self.admin)

        self.assertEqual(self.stock_of(self.product_a), 8)
        self.assertEqual(self.stock_of(self.product_b), 4)
        self.assertTrue(Sale.objects.filter(pk=sale.id).exists())
        self.assertTrue(Order.objects.filter(pk=order.id).exists())
        self.assertEqual(sale.payments.count(), 1)
        self.assertFalse(StockMovement.objects.filter(reference_type="sale_reversal").exists())


class RetryTests(APITestCase):
    def test_operational_errors_are_retried_then_reported_as_transient(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise OperationalError("database is locked")
            return "ok"

        with mock.patch("apps.common.db.time.sleep"):
            self.assertEqual(run_with_retry(flaky, attempts=3, backoff_base=0), "ok")
        self.assertEqual(len(calls), 3)

        def always_locked():
            raise OperationalError("database is locked")

        with mock.patch("apps.common.db.time.sleep"):
            with self.assertRaises(TransientIOError):
                run_with_retry(always_locked, attempts=2, backoff_base=0)


class SalesApiTests(SettlementFixtureMixin, APITestCase):
    def test_settle_endpoint_returns_invoice_bundle(self):
        order = self.pending_order()
        self.auth_as("cashier", "cashier123")

        response = self.client.post(
            f"/api/v1/sales/settle/{order.id}/",
            {"payment_method": PaymentMethod.CONTADO},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["sale"]["total"], "250.00")
        self.assertEqual(response.data["sale"]["pending_balance"], "0.00")
        self.assertEqual(response.data["order"]["status"], OrderStatus.PROCESSED)
        self.assertEqual(response.data["customer"]["full_name"], "Ana Lopez")
        self.assertEqual(len(response.data["items"]), 2)
        self.assertEqual(len(response.data["payments"]), 1)

        again = self.client.post(
            f"/api/v1/sales/settle/{order.id}/",
            {"payment_method": PaymentMethod.CONTADO},
            format="json",
        )
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.data["code"], "invalid_state")

    def test_settle_endpoint_reports_insufficient_stock(self):
        order = self.pending_order(lines=[(self.product_b, 9)])
        self.auth_as("cashier", "cashier123")
        response = self.client.post(
            f"/api/v1/sales/settle/{order.id}/",
            {"payment_method": PaymentMethod.CREDITO},
            format="json",
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "insufficient_stock")
        self.assertEqual(response.data["fields"]["product"], str(self.product_b.id))

    def test_counter_sale_in_one_call(self):
        self.auth_as("cashier", "cashier123")
        response = self.client.post(
            "/api/v1/sales/",
            {
                "customer": str(self.customer.id),
                "payment_method": PaymentMethod.CREDITO,
                "discount": "10.00",
                "items": [
                    {"product": str(self.product_a.id), "quantity": 1},
                    {"product": str(self.product_b.id), "quantity": 2, "combo_multiplier": 2, "unit_price": "90.00"},
                ],
            },
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["sale"]["total"], "270.00")
        self.assertFalse(response.data["sale"]["is_paid"])
        self.assertEqual(self.stock_of(self.product_a), 9)
        self.assertEqual(self.stock_of(self.product_b), 1)

    def test_counter_sale_with_shortage_leaves_no_order(self):
        self.auth_as("cashier", "cashier123")
        response = self.client.post(
            "/api/v1/sales/",
            {"payment_method": PaymentMethod.CONTADO, "items": [{"product": str(self.product_b.id), "quantity": 6}]},
            format="json",
        )
        self.assertEqual(response.status_code, 409)
        self.assertFalse(Order.objects.exists())

    def test_payments_endpoint(self):
        order = self.pending_order()
        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CREDITO, actor=self.admin)
        self.auth_as("cashier", "cashier123")

        first = self.client.post(f"/api/v1/sales/{sale.id}/payments/", {"amount": "100.00"}, format="json")
        self.assertEqual(first.status_code, 201)
        self.assertEqual(first.data["sale"]["pending_balance"], "150.00")
        self.assertFalse(first.data["sale"]["is_paid"])

        over = self.client.post(f"/api/v1/sales/{sale.id}/payments/", {"amount": "200.00"}, format="json")
        self.assertEqual(over.status_code, 400)
        self.assertEqual(over.data["code"], "overpayment")
        self.assertIn("amount", over.data["fields"])

        rest = self.client.post(f"/api/v1/sales/{sale.id}/payments/", {"amount": "150.00"}, format="json")
        self.assertTrue(rest.data["sale"]["is_paid"])

        listed = self.client.get(f"/api/v1/sales/{sale.id}/payments/")
        self.assertEqual([row["amount"] for row in listed.data], ["100.00", "150.00"])

    def test_delete_sale_then_order_never_restocks_twice(self):
        order = self.pending_order()
        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CREDITO, actor=self.admin)
        add_payment(sale_id=sale.id, amount=Decimal("100"), actor=self.admin)
        self.auth_as("admin", "admin123")

        response = self.client.delete(f"/api/v1/sales/{sale.id}/", {"reason": "Cliente devolvio"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["reason"], "Cliente devolvio")
        self.assertEqual(self.stock_of(self.product_a), 10)
        self.assertEqual(self.stock_of(self.product_b), 5)

        again = self.client.delete(f"/api/v1/sales/{sale.id}/")
        self.assertEqual(again.status_code, 404)
        via_order = self.client.delete(f"/api/v1/orders/{order.id}/")
        self.assertEqual(via_order.status_code, 404)
        self.assertEqual(self.stock_of(self.product_a), 10)

    def test_delete_processed_order_reverses_sale(self):
        order = self.pending_order()
        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        self.auth_as("admin", "admin123")

        response = self.client.delete(f"/api/v1/orders/{order.id}/")
        self.assertEqual(response.status_code, 204)
        self.assertFalse(Sale.objects.filter(pk=sale.id).exists())
        self.assertEqual(self.stock_of(self.product_a), 10)

        again = self.client.delete(f"/api/v1/sales/{sale.id}/")
        self.assertEqual(again.status_code, 404)
        self.assertEqual(self.stock_of(self.product_a), 10)

    def test_cashier_cannot_reverse_or_adjust(self):
        order = self.pending_order()
        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        self.auth_as("cashier", "cashier123")

        self.assertEqual(self.client.delete(f"/api/v1/sales/{sale.id}/").status_code, 403)
        self.assertEqual(self.client.patch(f"/api/v1/sales/{sale.id}/", {"discount": "1"}, format="json").status_code, 403)
        self.assertEqual(self.client.get("/api/v1/metrics/").status_code, 403)

    def test_adjust_endpoint(self):
        order = self.pending_order()
        sale = settle_order(order_id=order.id, payment_method=PaymentMethod.CREDITO, actor=self.admin)
        self.auth_as("admin", "admin123")

        response = self.client.patch(f"/api/v1/sales/{sale.id}/", {"discount": "25.00"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["total"], "225.00")
        self.assertTrue(AuditLog.objects.filter(action="sale.adjust").exists())

        negative = self.client.patch(f"/api/v1/sales/{sale.id}/", {"discount": "-5.00"}, format="json")
        self.assertEqual(negative.status_code, 400)

    def test_ledger_filters_and_metrics(self):
        cash = settle_order(order_id=self.pending_order().id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        credit = settle_order(order_id=self.pending_order().id, payment_method=PaymentMethod.CREDITO, actor=self.admin)
        add_payment(sale_id=credit.id, amount=Decimal("100"), actor=self.admin)
        old = settle_order(order_id=self.pending_order().id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        Sale.objects.filter(pk=old.id).update(created_at=timezone.now() - timedelta(days=40))
        self.auth_as("admin", "admin123")

        month = self.client.get("/api/v1/sales/?period=month")
        self.assertNotIn(str(old.id), [row["id"] for row in month.data["results"]])
        self.assertIn(str(cash.id), [row["id"] for row in month.data["results"]])

        unpaid = self.client.get("/api/v1/sales/?is_paid=false")
        self.assertEqual([row["id"] for row in unpaid.data["results"]], [str(credit.id)])

        credito = self.client.get("/api/v1/sales/?payment_method=credito")
        self.assertEqual(credito.data["count"], 1)

        by_name = self.client.get("/api/v1/sales/?q=ana")
        self.assertEqual(by_name.data["count"], 3)

        bad_period = self.client.get("/api/v1/sales/?period=year")
        self.assertEqual(bad_period.status_code, 400)

        metrics = self.client.get("/api/v1/metrics/")
        self.assertEqual(metrics.status_code, 200)
        self.assertEqual(metrics.data["sales_count"], 3)
        self.assertEqual(metrics.data["total_sales"], Decimal("750.00"))
        self.assertEqual(metrics.data["total_cost"], Decimal("420.00"))
        self.assertEqual(metrics.data["total_profit"], Decimal("330.00"))
        self.assertEqual(metrics.data["pending_credit"], Decimal("150.00"))

        credit_summary = self.client.get("/api/v1/metrics/credit/")
        self.assertEqual(credit_summary.data[0]["pending_balance"], Decimal("150.00"))

    def test_dashboard(self):
        self.pending_order()
        settle_order(order_id=self.pending_order().id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        self.auth_as("admin", "admin123")

        response = self.client.get("/api/v1/dashboard/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["products_count"], 2)
        self.assertEqual(response.data["customers_count"], 1)
        self.assertEqual(response.data["orders_count"], 2)
        self.assertEqual(response.data["pending_orders_count"], 1)
        self.assertEqual(len(response.data["recent_pending_orders"]), 1)
        self.assertEqual(response.data["sales"]["sales_count"], 1)

    def test_ledger_listing_query_count_does_not_grow_with_rows(self):
        self.auth_as("admin", "admin123")
        first = settle_order(
            order_id=self.pending_order(lines=[(self.product_a, 1)]).id,
            payment_method=PaymentMethod.CREDITO,
            actor=self.admin,
        )
        add_payment(sale_id=first.id, amount=Decimal("40"), actor=self.admin)

        with CaptureQueriesContext(connection) as single:
            response = self.client.get("/api/v1/sales/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["results"][0]["paid_amount"], "40.00")
        self.assertEqual(response.data["results"][0]["pending_balance"], "60.00")

        walk_in = Order.objects.create(customer=None)
        OrderItem.objects.create(
            order=walk_in, product=self.product_b, name="Musk", quantity=1, unit_price=Decimal("50.00"), unit_cost=Decimal("20.00")
        )
        walk_in.recalculate_totals()
        walk_in.save(update_fields=["subtotal", "total"])
        settle_order(order_id=walk_in.id, payment_method=PaymentMethod.CONTADO, actor=self.admin)
        settle_order(
            order_id=self.pending_order(lines=[(self.product_a, 1)]).id,
            payment_method=PaymentMethod.CREDITO,
            actor=self.admin,
        )

        with CaptureQueriesContext(connection) as several:
            response = self.client.get("/api/v1/sales/")
        self.assertEqual(response.data["count"], 3)
        self.assertEqual(len(several), len(single))

        rows = {row["id"]: row for row in response.data["results"]}
        self.assertEqual(rows[str(first.id)]["paid_amount"], "40.00")
        self.assertEqual(sorted(row["pending_balance"] for row in rows.values()), ["0.00", "100.00", "60.00"])

    def test_export_writes_filtered_sales_workbook(self):
        credit = settle_order(order_id=self.pending_order().id, payment_method=PaymentMethod.CREDITO, actor=self.admin)
        add_payment(sale_id=credit.id, amount=Decimal("100"), actor=self.admin)
        settle_order(
            order_id=self.pending_order(lines=[(self.product_a, 1)]).id,
            payment_method=PaymentMethod.CONTADO,
            actor=self.admin,
        )
        self.auth_as("cashier", "cashier123")
        self.assertEqual(self.client.get("/api/v1/sales/export/").status_code, 403)

        self.auth_as("admin", "admin123")
        response = self.client.get("/api/v1/sales/export/?payment_method=credito")
        self.assertEqual(response.status_code, 200)
        self.assertIn('filename="Historial_Ventas_Luxessence_', response["Content-Disposition"])

        rows = list(load_workbook(io.BytesIO(response.content)).active.iter_rows(values_only=True))
        self.assertEqual(
            rows[0], ("ID", "Fecha", "Cliente", "Total", "Descuento", "Metodo", "Estado", "Abonado", "Items")
        )
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[1][0], str(credit.id)[:8])
        self.assertEqual(rows[1][2], "Ana Lopez")
        self.assertEqual(rows[1][3], 250)
        self.assertEqual(rows[1][5], PaymentMethod.CREDITO)
        self.assertEqual(rows[1][6], "Pendiente")
        self.assertEqual(rows[1][7], 100)
        self.assertCountEqual(rows[1][8].split(", "), ["Oud (2)", "Musk (1)"])

        bad = self.client.get("/api/v1/sales/export/?period=year")
        self.assertEqual(bad.status_code, 400)
