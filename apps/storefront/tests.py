from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.storefront.models import ProductRequest, SiteSetting

User = get_user_model()


class StorefrontContentTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.cashier = User.objects.create_user(username="cashier", password="cashier123", role="CASHIER")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_shoppers_leave_product_requests(self):
        response = self.client.post(
            "/api/v1/public/product-requests/",
            {
                "customer_name": " Ana Lopez ",
                "whatsapp": "9999-0000",
                "product_name": "Baccarat Rouge 540",
                "product_link": "https://example.com/baccarat",
            },
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["customer_name"], "Ana Lopez")

        invalid = self.client.post(
            "/api/v1/public/product-requests/",
            {"customer_name": "Ana", "whatsapp": "123", "product_name": ""},
            format="json",
        )
        self.assertEqual(invalid.status_code, 400)
        self.assertIn("whatsapp", invalid.data["fields"])
        self.assertIn("product_name", invalid.data["fields"])
        self.assertEqual(ProductRequest.objects.count(), 1)

    def test_request_inbox_is_searchable_and_deletable_by_admin(self):
        first = ProductRequest.objects.create(customer_name="Ana", whatsapp="99990000", product_name="Oud Wood")
        ProductRequest.objects.create(customer_name="Luis", whatsapp="88887777", product_name="Sauvage")

        self.auth_as("cashier", "cashier123")
        self.assertEqual(self.client.get("/api/v1/product-requests/").status_code, 403)

        self.auth_as("admin", "admin123")
        listed = self.client.get("/api/v1/product-requests/")
        self.assertEqual(listed.data["count"], 2)

        by_product = self.client.get("/api/v1/product-requests/?q=oud")
        self.assertEqual([row["id"] for row in by_product.data["results"]], [str(first.id)])
        by_phone = self.client.get("/api/v1/product-requests/?q=8888")
        self.assertEqual(by_phone.data["results"][0]["customer_name"], "Luis")

        deleted = self.client.delete(f"/api/v1/product-requests/{first.id}/")
        self.assertEqual(deleted.status_code, 204)
        self.assertFalse(ProductRequest.objects.filter(pk=first.pk).exists())
        self.assertTrue(AuditLog.objects.filter(action="storefront.request.delete", entity_id=str(first.id)).exists())

    def test_public_settings_fall_back_to_defaults(self):
        SiteSetting.objects.create(key="hero_title", value="Aromas de Honduras", category="Home")

        response = self.client.get("/api/v1/public/site-settings/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["hero_title"], "Aromas de Honduras")
        self.assertTrue(response.data["hero_banner"].startswith("https://"))
        self.assertIn("about_story_description", response.data)

    def test_bulk_upsert_creates_and_updates_by_key(self):
        SiteSetting.objects.create(key="hero_title", value="Viejo", category="Home", description="Titulo principal del Home")
        payload = {
            "settings": [
                {"key": "hero_title", "value": "Nuevo titulo"},
                {"key": "about_story_title", "value": "Nuestra historia"},
                {"key": "promo_banner", "value": "https://cdn.example.com/promo.jpg", "category": "Promos"},
            ]
        }

        self.auth_as("cashier", "cashier123")
        self.assertEqual(self.client.post("/api/v1/site-settings/bulk/", payload, format="json").status_code, 403)

        self.auth_as("admin", "admin123")
        response = self.client.post("/api/v1/site-settings/bulk/", payload, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 3)

        self.assertEqual(SiteSetting.objects.get(pk="hero_title").value, "Nuevo titulo")
        about = SiteSetting.objects.get(pk="about_story_title")
        self.assertEqual(about.category, "Nosotros")
        self.assertEqual(SiteSetting.objects.get(pk="promo_banner").category, "Promos")
        self.assertTrue(AuditLog.objects.filter(action="storefront.settings.upsert").exists())

        duplicated = self.client.post(
            "/api/v1/site-settings/bulk/",
            {"settings": [{"key": "hero_title", "value": "A"}, {"key": "hero_title", "value": "B"}]},
            format="json",
        )
        self.assertEqual(duplicated.status_code, 400)

        self.client.credentials()
        public = self.client.get("/api/v1/public/site-settings/")
        self.assertEqual(public.data["promo_banner"], "https://cdn.example.com/promo.jpg")

    def test_single_setting_is_edited_by_key(self):
        SiteSetting.objects.create(key="hero_title", value="Viejo")
        self.auth_as("admin", "admin123")

        response = self.client.patch("/api/v1/site-settings/hero_title/", {"value": "Nuevo"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["value"], "Nuevo")

        listed = self.client.get("/api/v1/site-settings/")
        self.assertEqual([row["key"] for row in listed.data["results"]], ["hero_title"])
