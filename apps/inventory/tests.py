import uuid
from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Product
from apps.common.exceptions import InsufficientStockError, NotFoundError
from apps.inventory.models import MovementType, StockMovement
from apps.inventory.services import decrement_stock, restock, set_stock

User = get_user_model()


class StockServiceTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.product = Product.objects.create(name="Oud", price=Decimal("100.00"), cost=Decimal("60.00"), stock=5)

    def test_decrement_stock_is_conditional(self):
        reference = uuid.uuid4()
        movement = decrement_stock(product_id=self.product.id, quantity=3, reference_type="test", reference_id=reference)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 2)
        self.assertEqual(movement.movement_type, MovementType.SALE)
        self.assertEqual(movement.quantity_delta, -3)
        self.assertEqual(movement.stock_after, 2)

        with self.assertRaises(InsufficientStockError) as ctx:
            decrement_stock(product_id=self.product.id, quantity=3, reference_type="test", reference_id=uuid.uuid4())
        self.assertEqual(ctx.exception.available, 2)
        self.assertEqual(ctx.exception.requested, 3)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 2)

    def test_decrement_stock_of_missing_product(self):
        with self.assertRaises(NotFoundError):
            decrement_stock(product_id=uuid.uuid4(), quantity=1, reference_type="test", reference_id=uuid.uuid4())

    def test_restock_applies_once_per_reference(self):
        reference = uuid.uuid4()
        first = restock(product_id=self.product.id, quantity=2, reference_type="sale_reversal", reference_id=reference)
        second = restock(product_id=self.product.id, quantity=2, reference_type="sale_reversal", reference_id=reference)

        self.assertIsNotNone(first)
        self.assertIsNone(second)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 7)
        self.assertEqual(
            StockMovement.objects.filter(product=self.product, reference_type="sale_reversal").count(),
            1,
        )

    def test_restock_skips_deleted_product(self):
        self.assertIsNone(
            restock(product_id=uuid.uuid4(), quantity=1, reference_type="sale_reversal", reference_id=uuid.uuid4())
        )

    def test_set_stock_without_change_writes_nothing(self):
        self.assertIsNone(set_stock(product=self.product, target_stock=5, reason=""))
        self.assertFalse(StockMovement.objects.exists())


class InventoryApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.cashier = User.objects.create_user(username="cashier", password="cashier123", role="CASHIER")
        self.product = Product.objects.create(name="Oud", price=Decimal("100.00"), stock=5)
        self.low = Product.objects.create(name="Musk", price=Decimal("100.00"), stock=1)

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_adjustment_creates_movement_and_audit(self):
        self.auth_as("admin", "admin123")
        response = self.client.post(
            "/api/v1/inventory/adjustments/",
            {"product": str(self.product.id), "stock": 2, "reason": "Merma"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["quantity_delta"], -3)
        self.assertEqual(response.data["stock_after"], 2)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 2)
        self.assertTrue(AuditLog.objects.filter(action="inventory.adjustment.create").exists())

        unchanged = self.client.post(
            "/api/v1/inventory/adjustments/",
            {"product": str(self.product.id), "stock": 2, "reason": "Merma"},
            format="json",
        )
        self.assertEqual(unchanged.status_code, 200)
        self.assertEqual(unchanged.data["code"], "unchanged")

    def test_adjustment_requires_reason_and_non_negative_stock(self):
        self.auth_as("admin", "admin123")
        no_reason = self.client.post(
            "/api/v1/inventory/adjustments/",
            {"product": str(self.product.id), "stock": 2},
            format="json",
        )
        self.assertEqual(no_reason.status_code, 400)

        negative = self.client.post(
            "/api/v1/inventory/adjustments/",
            {"product": str(self.product.id), "stock": -1, "reason": "x"},
            format="json",
        )
        self.assertEqual(negative.status_code, 400)

    def test_cashier_can_view_but_not_adjust(self):
        self.auth_as("cashier", "cashier123")
        self.assertEqual(self.client.get("/api/v1/inventory/movements/").status_code, 200)
        forbidden = self.client.post(
            "/api/v1/inventory/adjustments/",
            {"product": str(self.product.id), "stock": 1, "reason": "x"},
            format="json",
        )
        self.assertEqual(forbidden.status_code, 403)

    def test_low_stock_and_movement_filters(self):
        set_stock(product=self.product, target_stock=8, reason="Compra", actor=self.admin)
        self.auth_as("admin", "admin123")

        low = self.client.get("/api/v1/inventory/low-stock/?threshold=2")
        self.assertEqual([row["name"] for row in low.data["results"]], ["Musk"])

        movements = self.client.get(f"/api/v1/inventory/movements/?product={self.product.id}")
        self.assertEqual(movements.data["count"], 1)
        self.assertEqual(movements.data["results"][0]["quantity_delta"], 3)
