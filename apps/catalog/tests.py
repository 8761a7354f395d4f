import io
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.cache import cache
from openpyxl import load_workbook
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Category, ComboPack, Product, Promotion, PromotionProduct, PromotionType
from apps.inventory.models import MovementType, StockMovement

User = get_user_model()


class CatalogApiTests(APITestCase):
    def setUp(self):
        cache.clear()
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.cashier = User.objects.create_user(username="cashier", password="cashier123", role="CASHIER")
        self.perfumes = Category.objects.create(name="Perfumes")
        self.relojes = Category.objects.create(name="Relojes")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_product_create_update_delete_are_audited(self):
        self.auth_as("admin", "admin123")
        created = self.client.post(
            "/api/v1/products/",
            {"name": "Oud Royal", "price": "1200.00", "cost": "700.00", "category": str(self.perfumes.id)},
            format="json",
        )
        self.assertEqual(created.status_code, 201)
        product_id = created.data["id"]

        updated = self.client.patch(f"/api/v1/products/{product_id}/", {"price": "1100.00"}, format="json")
        self.assertEqual(updated.status_code, 200)

        deleted = self.client.delete(f"/api/v1/products/{product_id}/")
        self.assertEqual(deleted.status_code, 204)

        actions = AuditLog.objects.filter(entity_id=product_id).values_list("action", flat=True)
        self.assertCountEqual(actions, ["catalog.product.create", "catalog.product.update", "catalog.product.delete"])
        update_log = AuditLog.objects.get(entity_id=product_id, action="catalog.product.update")
        self.assertEqual(update_log.payload["before"]["price"], "1200.00")
        self.assertEqual(update_log.payload["after"]["price"], "1100.00")

    def test_product_create_with_stock_records_initial_movement(self):
        self.auth_as("admin", "admin123")
        response = self.client.post(
            "/api/v1/products/",
            {"name": "Bleu", "price": "900.00", "cost": "500.00", "stock": 6},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["stock"], 6)

        movement = StockMovement.objects.get(product_id=response.data["id"])
        self.assertEqual(movement.movement_type, MovementType.ADJUSTMENT)
        self.assertEqual(movement.reference_type, "product_create_adjustment")
        self.assertEqual(movement.quantity_delta, 6)
        self.assertEqual(movement.stock_after, 6)

    def test_product_stock_change_requires_reason(self):
        product = Product.objects.create(name="Sauvage", price=Decimal("950.00"), cost=Decimal("600.00"), stock=4)
        self.auth_as("admin", "admin123")

        missing_reason = self.client.patch(f"/api/v1/products/{product.id}/", {"stock": 10}, format="json")
        self.assertEqual(missing_reason.status_code, 400)
        self.assertEqual(missing_reason.data["code"], "validation_error")
        self.assertIn("stock_adjust_reason", missing_reason.data["fields"])
        product.refresh_from_db()
        self.assertEqual(product.stock, 4)

        with_reason = self.client.patch(
            f"/api/v1/products/{product.id}/",
            {"stock": 10, "stock_adjust_reason": "Conteo fisico"},
            format="json",
        )
        self.assertEqual(with_reason.status_code, 200)
        product.refresh_from_db()
        self.assertEqual(product.stock, 10)
        movement = StockMovement.objects.get(product=product, reference_type="manual_stock_adjustment")
        self.assertEqual(movement.quantity_delta, 6)
        self.assertEqual(movement.note, "Conteo fisico")

    def test_cashier_cannot_manage_catalog(self):
        self.auth_as("cashier", "cashier123")
        listed = self.client.get("/api/v1/products/")
        self.assertEqual(listed.status_code, 200)

        created = self.client.post("/api/v1/products/", {"name": "X", "price": "10.00"}, format="json")
        self.assertEqual(created.status_code, 403)

    def test_products_list_filters_by_category_and_stock(self):
        Product.objects.create(name="Oud", price=Decimal("100.00"), stock=3, category=self.perfumes)
        Product.objects.create(name="Musk", price=Decimal("100.00"), stock=0, category=self.perfumes)
        Product.objects.create(name="Casio", price=Decimal("100.00"), stock=2, category=self.relojes)
        self.auth_as("admin", "admin123")

        by_category = self.client.get(f"/api/v1/products/?category={self.perfumes.id}")
        self.assertEqual({row["name"] for row in by_category.data["results"]}, {"Oud", "Musk"})

        in_stock = self.client.get(f"/api/v1/products/?category={self.perfumes.id}&has_stock=true")
        self.assertEqual([row["name"] for row in in_stock.data["results"]], ["Oud"])

        out_of_stock = self.client.get("/api/v1/products/?has_stock=false")
        self.assertEqual([row["name"] for row in out_of_stock.data["results"]], ["Musk"])

    def test_public_catalog_is_anonymous_and_hides_inactive_products(self):
        Product.objects.create(name="Visible", price=Decimal("100.00"), stock=1, is_new_arrival=True)
        Product.objects.create(name="Oculto", price=Decimal("100.00"), stock=1, is_active=False)

        response = self.client.get("/api/v1/public/catalog/")
        self.assertEqual(response.status_code, 200)
        names = [row["name"] for row in response.data["results"]]
        self.assertEqual(names, ["Visible"])
        self.assertTrue(response.data["results"][0]["in_stock"])
        self.assertNotIn("cost", response.data["results"][0])

        write = self.client.post("/api/v1/public/catalog/", {"name": "Nope"}, format="json")
        self.assertEqual(write.status_code, 405)

    def test_public_catalog_filters(self):
        Product.objects.create(name="Oud Nuevo", price=Decimal("100.00"), is_new_arrival=True, category=self.perfumes)
        Product.objects.create(name="Reloj Pronto", price=Decimal("100.00"), is_coming_soon=True, category=self.relojes)

        new_arrivals = self.client.get("/api/v1/public/catalog/?new_arrivals=1")
        self.assertEqual([row["name"] for row in new_arrivals.data["results"]], ["Oud Nuevo"])

        coming_soon = self.client.get("/api/v1/public/catalog/?coming_soon=true")
        self.assertEqual([row["name"] for row in coming_soon.data["results"]], ["Reloj Pronto"])

        by_query = self.client.get("/api/v1/public/catalog/?q=reloj")
        self.assertEqual([row["name"] for row in by_query.data["results"]], ["Reloj Pronto"])

    def test_public_catalog_detail_and_categories(self):
        product = Product.objects.create(name="Oud", price=Decimal("100.00"), category=self.perfumes)

        detail = self.client.get(f"/api/v1/public/catalog/{product.id}/")
        self.assertEqual(detail.status_code, 200)
        self.assertEqual(detail.data["category_name"], "Perfumes")

        categories = self.client.get("/api/v1/public/categories/")
        self.assertEqual([row["name"] for row in categories.data], ["Perfumes", "Relojes"])

    def test_combo_packs_are_managed_by_admin_and_listed_publicly(self):
        self.auth_as("admin", "admin123")
        created = self.client.post(
            "/api/v1/combo-packs/",
            {"category": str(self.perfumes.id), "label": "Trio", "units": 3, "price": "2500.00"},
            format="json",
        )
        self.assertEqual(created.status_code, 201)

        invalid = self.client.post(
            "/api/v1/combo-packs/",
            {"category": str(self.perfumes.id), "label": "Vacio", "units": 0, "price": "10.00"},
            format="json",
        )
        self.assertEqual(invalid.status_code, 400)

        ComboPack.objects.create(category=self.perfumes, label="Duo", units=2, price=Decimal("1800.00"), is_active=False)
        self.client.credentials()
        public = self.client.get(f"/api/v1/public/combo-packs/?category={self.perfumes.id}")
        self.assertEqual(public.status_code, 200)
        self.assertEqual([row["label"] for row in public.data], ["Trio"])

    def test_featured_categories_are_toggled_by_admin(self):
        self.auth_as("admin", "admin123")
        response = self.client.patch(
            f"/api/v1/categories/{self.perfumes.id}/",
            {"is_featured": True, "image_url": "https://cdn.example.com/perfumes.jpg"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)

        self.client.credentials()
        featured = self.client.get("/api/v1/public/categories/?featured=true")
        self.assertEqual([row["name"] for row in featured.data], ["Perfumes"])
        self.assertEqual(featured.data[0]["image_url"], "https://cdn.example.com/perfumes.jpg")

    def test_product_export_follows_list_filters(self):
        Product.objects.create(name="Oud", price=Decimal("100.00"), cost=Decimal("60.00"), stock=3, category=self.perfumes)
        Product.objects.create(name="Casio", price=Decimal("80.00"), stock=2, category=self.relojes)
        self.auth_as("cashier", "cashier123")
        self.assertEqual(self.client.get("/api/v1/products/export/").status_code, 403)

        self.auth_as("admin", "admin123")
        response = self.client.get(f"/api/v1/products/export/?category={self.perfumes.id}")
        self.assertEqual(response.status_code, 200)
        self.assertIn('filename="Inventario_Luxessence_', response["Content-Disposition"])

        sheet = load_workbook(io.BytesIO(response.content)).active
        rows = list(sheet.iter_rows(values_only=True))
        self.assertEqual(sheet.title, "Productos")
        self.assertEqual(rows[0], ("Nombre", "Categoria", "Precio", "Costo", "Existencia", "Descripcion"))
        self.assertEqual(rows[1][:5], ("Oud", "Perfumes", 100, 60, 3))
        self.assertEqual(len(rows), 2)


class PromotionApiTests(APITestCase):
    def setUp(self):
        cache.clear()
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.cashier = User.objects.create_user(username="cashier", password="cashier123", role="CASHIER")
        self.oud = Product.objects.create(name="Oud", price=Decimal("100.00"), stock=3)
        self.musk = Product.objects.create(name="Musk", price=Decimal("50.00"), stock=3)
        self.casio = Product.objects.create(name="Casio", price=Decimal("80.00"), stock=3)

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_promotions_are_managed_by_admin_and_audited(self):
        self.auth_as("admin", "admin123")
        created = self.client.post(
            "/api/v1/promotions/",
            {
                "title": "Semana Oud",
                "discount_badge": "20% OFF",
                "lines": [{"product": str(self.oud.id), "promo_price": "80.00"}],
            },
            format="json",
        )
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.data["promo_type"], PromotionType.DISCOUNT)
        self.assertEqual(created.data["lines"][0]["product_name"], "Oud")
        self.assertEqual(created.data["lines"][0]["promo_price"], "80.00")
        self.assertTrue(AuditLog.objects.filter(action="catalog.promotion.create", entity_id=created.data["id"]).exists())

        bogo = self.client.post(
            "/api/v1/promotions/",
            {
                "title": "Musk 2x1",
                "promo_type": PromotionType.BOGO,
                "lines": [{"product": str(self.musk.id), "promo_price": "10.00"}],
            },
            format="json",
        )
        self.assertEqual(bogo.status_code, 201)
        self.assertEqual(bogo.data["badge"], "2x1")
        self.assertIsNone(bogo.data["lines"][0]["promo_price"])

        missing_price = self.client.post(
            "/api/v1/promotions/",
            {"title": "Sin precio", "lines": [{"product": str(self.casio.id)}]},
            format="json",
        )
        self.assertEqual(missing_price.status_code, 400)

        backwards = self.client.post(
            "/api/v1/promotions/",
            {
                "title": "Fechas",
                "start_date": "2026-05-10",
                "end_date": "2026-05-01",
                "lines": [{"product": str(self.casio.id), "promo_price": "70.00"}],
            },
            format="json",
        )
        self.assertEqual(backwards.status_code, 400)

        self.auth_as("cashier", "cashier123")
        self.assertEqual(self.client.get("/api/v1/promotions/").status_code, 200)
        denied = self.client.post("/api/v1/promotions/", {"title": "X", "lines": []}, format="json")
        self.assertEqual(denied.status_code, 403)

    def test_public_catalog_shows_promotional_prices(self):
        discount = Promotion.objects.create(title="Semana Oud", discount_badge="20% OFF")
        PromotionProduct.objects.create(promotion=discount, product=self.oud, promo_price=Decimal("80.00"))
        bogo = Promotion.objects.create(title="Musk 2x1", promo_type=PromotionType.BOGO)
        PromotionProduct.objects.create(promotion=bogo, product=self.musk)
        paused = Promotion.objects.create(title="Pausada", is_active=False)
        PromotionProduct.objects.create(promotion=paused, product=self.casio, promo_price=Decimal("1.00"))

        response = self.client.get("/api/v1/public/catalog/")
        rows = {row["name"]: row for row in response.data["results"]}
        self.assertEqual(rows["Oud"]["price"], "80.00")
        self.assertEqual(rows["Oud"]["original_price"], "100.00")
        self.assertEqual(rows["Oud"]["promo_badge"], "20% OFF")
        self.assertTrue(rows["Musk"]["is_bogo"])
        self.assertEqual(rows["Musk"]["price"], "50.00")
        self.assertIsNone(rows["Musk"]["original_price"])
        self.assertEqual(rows["Musk"]["promo_badge"], "2x1")
        self.assertEqual(rows["Casio"]["price"], "80.00")
        self.assertIsNone(rows["Casio"]["promo_badge"])

        detail = self.client.get(f"/api/v1/public/catalog/{self.oud.id}/")
        self.assertEqual(detail.data["price"], "80.00")

        on_sale = self.client.get("/api/v1/public/catalog/?promo=true")
        self.assertEqual([row["name"] for row in on_sale.data["results"]], ["Musk", "Oud"])

        promotions = self.client.get("/api/v1/public/promotions/")
        self.assertEqual(promotions.status_code, 200)
        self.assertCountEqual([row["title"] for row in promotions.data], ["Semana Oud", "Musk 2x1"])
