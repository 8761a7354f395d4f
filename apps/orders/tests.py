import io
from datetime import timedelta
from decimal import Decimal
from urllib.parse import unquote

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import override_settings
from django.utils import timezone
from openpyxl import load_workbook
from rest_framework.test import APITestCase

from apps.catalog.models import Category, ComboPack, Product, Promotion, PromotionProduct, PromotionType
from apps.common.exports import XLSX_CONTENT_TYPE
from apps.customers.models import Customer
from apps.inventory.models import StockMovement
from apps.orders.models import DeliveryMode, Order, OrderItem, OrderStatus

User = get_user_model()


class OrderItemArithmeticTests(APITestCase):
    def test_bogo_pays_for_pairs(self):
        item = OrderItem(name="Oud", quantity=3, unit_price=Decimal("100.00"), is_bogo=True)
        self.assertEqual(item.billable_quantity, 2)
        self.assertEqual(item.line_total, Decimal("200.00"))

        item.quantity = 4
        self.assertEqual(item.line_total, Decimal("200.00"))

    def test_combo_consumes_multiplier_units(self):
        item = OrderItem(
            name="Oud (Trio)",
            quantity=2,
            unit_price=Decimal("250.00"),
            unit_cost=Decimal("180.00"),
            is_combo=True,
            combo_multiplier=3,
        )
        self.assertEqual(item.stock_units, 6)
        self.assertEqual(item.line_total, Decimal("500.00"))
        self.assertEqual(item.line_cost, Decimal("360.00"))

    def test_totals_from_unsaved_lines_include_delivery_fee(self):
        order = Order(delivery_fee=Decimal("50.00"))
        lines = [
            OrderItem(name="Oud", quantity=3, unit_price=Decimal("100.00"), is_bogo=True),
            OrderItem(name="Musk", quantity=1, unit_price=Decimal("45.50")),
        ]
        order.recalculate_totals(lines)
        self.assertEqual(order.subtotal, Decimal("245.50"))
        self.assertEqual(order.total, Decimal("295.50"))


@override_settings(STOREFRONT_DELIVERY_FEE=Decimal("50.00"), STORE_WHATSAPP_NUMBER="504-3313-5869")
class StorefrontCheckoutTests(APITestCase):
    def setUp(self):
        cache.clear()
        self.perfumes = Category.objects.create(name="Perfumes")
        self.oud = Product.objects.create(
            name="Oud", price=Decimal("100.00"), cost=Decimal("60.00"), stock=5, category=self.perfumes
        )
        self.musk = Product.objects.create(
            name="Musk", price=Decimal("80.00"), cost=Decimal("30.00"), stock=5, is_bogo=True, category=self.perfumes
        )
        self.soon = Product.objects.create(name="Pronto", price=Decimal("90.00"), is_coming_soon=True)
        self.trio = ComboPack.objects.create(category=self.perfumes, label="Trio", units=3, price=Decimal("250.00"))

    def checkout(self, **overrides):
        payload = {
            "first_name": "Ana",
            "last_name": "Lopez",
            "phone": "9999-0000",
            "address": "Col. Palmira",
            "city": "Tegucigalpa",
            "department": "Francisco Morazan",
            "delivery_mode": DeliveryMode.DOMICILIO,
            "items": [
                {"product": str(self.oud.id), "quantity": 2},
                {"product": str(self.musk.id), "quantity": 3},
            ],
        }
        payload.update(overrides)
        return self.client.post("/api/v1/public/checkout/", payload, format="json")

    def test_checkout_creates_pending_order_with_server_prices(self):
        response = self.checkout(
            items=[
                {"product": str(self.oud.id), "quantity": 2, "unit_price": "1.00"},
                {"product": str(self.musk.id), "quantity": 3},
            ]
        )
        self.assertEqual(response.status_code, 201)

        order = Order.objects.get(pk=response.data["order"]["id"])
        self.assertEqual(order.status, OrderStatus.PENDING)
        # 2 x 100 + BOGO 3 x 80 billed as 2 + delivery 50
        self.assertEqual(order.subtotal, Decimal("360.00"))
        self.assertEqual(order.delivery_fee, Decimal("50.00"))
        self.assertEqual(order.total, Decimal("410.00"))
        self.assertEqual(order.customer.phone_normalized, "99990000")
        self.assertEqual(order.items.count(), 2)

        self.oud.refresh_from_db()
        self.assertEqual(self.oud.stock, 5)
        self.assertFalse(StockMovement.objects.exists())

    def test_checkout_returns_whatsapp_handoff(self):
        response = self.checkout()
        url = response.data["whatsapp_url"]
        self.assertTrue(url.startswith("https://wa.me/50433135869?text="))
        message = unquote(url.split("?text=", 1)[1])
        self.assertIn("*NUEVO PEDIDO LUXESSENCE*", message)
        self.assertIn("Ana Lopez", message)
        self.assertIn("- Musk (x3) [BOGO]: L. 160.00", message)
        self.assertIn("*TOTAL: L. 410.00*", message)

    def test_pickup_has_no_delivery_fee(self):
        response = self.checkout(delivery_mode=DeliveryMode.PICKUP, address="")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Decimal(response.data["order"]["delivery_fee"]), Decimal("0.00"))
        self.assertEqual(Decimal(response.data["order"]["total"]), Decimal("360.00"))

    def test_checkout_upserts_customer_by_phone(self):
        existing = Customer.objects.create(first_name="Ana", last_name="", phone="99990000", address="Vieja")
        self.checkout(phone="9999 0000")
        self.assertEqual(Customer.objects.count(), 1)
        existing.refresh_from_db()
        self.assertEqual(existing.last_name, "Lopez")
        self.assertEqual(existing.address, "Col. Palmira")

    def test_checkout_rejects_invalid_input(self):
        short_phone = self.checkout(phone="1234")
        self.assertEqual(short_phone.status_code, 400)
        self.assertIn("phone", short_phone.data["fields"])

        empty = self.checkout(items=[])
        self.assertEqual(empty.status_code, 400)

        no_address = self.checkout(address="")
        self.assertEqual(no_address.status_code, 400)
        self.assertIn("address", no_address.data["fields"])

        coming_soon = self.checkout(items=[{"product": str(self.soon.id), "quantity": 1}])
        self.assertEqual(coming_soon.status_code, 400)
        self.assertFalse(Order.objects.exists())

    def test_checkout_with_combo_pack(self):
        response = self.checkout(items=[{"product": str(self.oud.id), "quantity": 1, "combo_pack": str(self.trio.id)}])
        self.assertEqual(response.status_code, 201)
        item = OrderItem.objects.get(order_id=response.data["order"]["id"])
        self.assertTrue(item.is_combo)
        self.assertEqual(item.combo_multiplier, 3)
        self.assertEqual(item.unit_price, Decimal("250.00"))
        self.assertEqual(item.unit_cost, Decimal("180.00"))
        self.assertEqual(item.name, "Oud (Trio)")
    def test_active_promotion_sets_snapshot_price_and_bogo(self):
        rose = Product.objects.create(name="Rose", price=Decimal("60.00"), cost=Decimal("25.00"), stock=5)
        discount = Promotion.objects.create(title="Semana Oud", discount_badge="25% OFF")
        PromotionProduct.objects.create(promotion=discount, product=self.oud, promo_price=Decimal("75.00"))
        bogo = Promotion.objects.create(title="Rosas 2x1", promo_type=PromotionType.BOGO)
        PromotionProduct.objects.create(promotion=bogo, product=rose)

        response = self.checkout(
            items=[
                {"product": str(self.oud.id), "quantity": 2},
                {"product": str(rose.id), "quantity": 2},
                {"product": str(self.oud.id), "quantity": 1, "combo_pack": str(self.trio.id)},
            ]
        )
        self.assertEqual(response.status_code, 201)

        order = Order.objects.get(pk=response.data["order"]["id"])
        oud_line = order.items.get(product=self.oud, is_combo=False)
        rose_line = order.items.get(product=rose)
        combo_line = order.items.get(product=self.oud, is_combo=True)
        self.assertEqual(oud_line.unit_price, Decimal("75.00"))
        self.assertTrue(rose_line.is_bogo)
        self.assertEqual(rose_line.line_total, Decimal("60.00"))
        self.assertEqual(combo_line.unit_price, Decimal("250.00"))
        self.assertFalse(combo_line.is_bogo)
        # 2 x 75 + 2x1 on 60 + trio 250 + delivery 50
        self.assertEqual(order.total, Decimal("510.00"))

    def test_expired_inactive_and_future_promotions_are_ignored(self):
        today = timezone.localdate()
        expired = Promotion.objects.create(
            title="Pasada", start_date=today - timedelta(days=10), end_date=today - timedelta(days=1)
        )
        inactive = Promotion.objects.create(title="Pausada", is_active=False)
        future = Promotion.objects.create(title="Proxima", start_date=today + timedelta(days=1))
        for promotion, price in ((expired, "50.00"), (inactive, "40.00"), (future, "30.00")):
            PromotionProduct.objects.create(promotion=promotion, product=self.oud, promo_price=Decimal(price))

        response = self.checkout(items=[{"product": str(self.oud.id), "quantity": 1}])
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Decimal(response.data["order"]["subtotal"]), Decimal("100.00"))

    def test_newest_active_promotion_wins(self):
        today = timezone.localdate()
        older = Promotion.objects.create(title="Vieja", start_date=today - timedelta(days=5), end_date=today)
        newer = Promotion.objects.create(title="Nueva")
        Promotion.objects.filter(pk=older.pk).update(created_at=timezone.now() - timedelta(days=5))
        PromotionProduct.objects.create(promotion=older, product=self.oud, promo_price=Decimal("90.00"))
        PromotionProduct.objects.create(promotion=newer, product=self.oud, promo_price=Decimal("80.00"))

        response = self.checkout(items=[{"product": str(self.oud.id), "quantity": 1}])
        self.assertEqual(Decimal(response.data["order"]["subtotal"]), Decimal("80.00"))


class OrderApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.cashier = User.objects.create_user(username="cashier", password="cashier123", role="CASHIER")
        self.customer = Customer.objects.create(first_name="Ana", last_name="Lopez", phone="99990000")
        self.product = Product.objects.create(name="Oud", price=Decimal("100.00"), cost=Decimal("60.00"), stock=5)

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def create_order(self, **overrides):
        payload = {"customer": str(self.customer.id), "items": [{"product": str(self.product.id), "quantity": 2}]}
        payload.update(overrides)
        return self.client.post("/api/v1/orders/", payload, format="json")

    def test_counter_order_is_pending_without_delivery_fee(self):
        self.auth_as("cashier", "cashier123")
        response = self.create_order()
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], OrderStatus.PENDING)
        self.assertEqual(response.data["delivery_mode"], DeliveryMode.MOSTRADOR)
        self.assertEqual(Decimal(response.data["total"]), Decimal("200.00"))
        self.assertIsNone(response.data["sale_id"])

    def test_walk_in_order_and_counter_combo_price(self):
        self.auth_as("cashier", "cashier123")
        response = self.create_order(
            customer=None,
            items=[{"product": str(self.product.id), "quantity": 1, "combo_multiplier": 2, "unit_price": "180.00"}],
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["customer_name"], "Consumidor Final")
        item = response.data["items"][0]
        self.assertTrue(item["is_combo"])
        self.assertEqual(item["stock_units"], 2)
        self.assertEqual(Decimal(item["unit_cost"]), Decimal("120.00"))

    def test_counter_combo_without_price_is_rejected(self):
        self.auth_as("cashier", "cashier123")
        response = self.create_order(items=[{"product": str(self.product.id), "quantity": 1, "combo_multiplier": 2}])
        self.assertEqual(response.status_code, 400)
        self.assertFalse(Order.objects.exists())

    def test_list_filters_by_status_and_customer(self):
        self.auth_as("admin", "admin123")
        self.create_order()
        self.create_order(customer=None)
        Order.objects.filter(customer__isnull=True).update(status=OrderStatus.PROCESSED)

        pending = self.client.get("/api/v1/orders/?status=pending")
        self.assertEqual(pending.data["count"], 1)

        by_name = self.client.get("/api/v1/orders/?q=lopez")
        self.assertEqual(by_name.data["count"], 1)
        by_phone = self.client.get("/api/v1/orders/?q=9999")
        self.assertEqual(by_phone.data["count"], 1)

    def test_deleting_pending_order_has_no_stock_effect(self):
        self.auth_as("admin", "admin123")
        order_id = self.create_order().data["id"]

        response = self.client.delete(f"/api/v1/orders/{order_id}/")
        self.assertEqual(response.status_code, 204)
        self.assertFalse(Order.objects.filter(pk=order_id).exists())
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 5)

        again = self.client.delete(f"/api/v1/orders/{order_id}/")
        self.assertEqual(again.status_code, 404)
        self.assertEqual(again.data["code"], "not_found")

    def test_cashier_cannot_delete_orders(self):
        self.auth_as("cashier", "cashier123")
        order_id = self.create_order().data["id"]
        response = self.client.delete(f"/api/v1/orders/{order_id}/")
        self.assertEqual(response.status_code, 403)

    def test_order_snapshot_survives_product_deletion(self):
        self.auth_as("admin", "admin123")
        order_id = self.create_order().data["id"]
        self.product.delete()

        response = self.client.get(f"/api/v1/orders/{order_id}/")
        self.assertEqual(response.status_code, 200)
        item = response.data["items"][0]
        self.assertIsNone(item["product"])
        self.assertEqual(item["name"], "Oud")
        self.assertEqual(Decimal(item["unit_price"]), Decimal("100.00"))

    def test_counter_quote_overrides_active_promotion(self):
        promotion = Promotion.objects.create(title="Semana Oud")
        PromotionProduct.objects.create(promotion=promotion, product=self.product, promo_price=Decimal("70.00"))
        self.auth_as("cashier", "cashier123")

        promoted = self.create_order(items=[{"product": str(self.product.id), "quantity": 1}])
        self.assertEqual(Decimal(promoted.data["total"]), Decimal("70.00"))

        quoted = self.create_order(items=[{"product": str(self.product.id), "quantity": 1, "unit_price": "95.00"}])
        self.assertEqual(Decimal(quoted.data["total"]), Decimal("95.00"))

    def test_export_lists_orders_as_workbook(self):
        self.auth_as("cashier", "cashier123")
        self.create_order()
        self.create_order(customer=None)
        self.assertEqual(self.client.get("/api/v1/orders/export/").status_code, 403)

        self.auth_as("admin", "admin123")
        response = self.client.get("/api/v1/orders/export/?status=pending")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], XLSX_CONTENT_TYPE)
        self.assertIn('filename="Pedidos_Luxessence_', response["Content-Disposition"])

        sheet = load_workbook(io.BytesIO(response.content)).active
        rows = list(sheet.iter_rows(values_only=True))
        self.assertEqual(sheet.title, "Pedidos")
        self.assertEqual(rows[0], ("ID", "Fecha", "Cliente", "Estado", "Entrega", "Total", "Articulos"))
        self.assertEqual(len(rows), 3)
        self.assertCountEqual([row[2] for row in rows[1:]], ["Ana Lopez", "Consumidor Final"])
        self.assertEqual(rows[1][5], 200)
        self.assertEqual(rows[1][6], "Oud (x2)")
