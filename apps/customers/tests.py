import io

from django.contrib.auth import get_user_model
from django.test import override_settings
from openpyxl import load_workbook
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.common.exceptions import InvariantViolation, ValidationError
from apps.customers.models import Customer, LoyaltyEvent, LoyaltyEventType
from apps.customers.services import apply_sale_loyalty, ensure_can_redeem, fold_events, next_stamps, replay_stamps
from apps.orders.models import Order

User = get_user_model()


class LoyaltyCounterTests(APITestCase):
    def setUp(self):
        self.customer = Customer.objects.create(first_name="Ana", last_name="Lopez", phone="9999-0000")

    def test_next_stamps_caps_at_five_and_resets_on_redeem(self):
        self.assertEqual(next_stamps(0, redeemed=False), 1)
        self.assertEqual(next_stamps(4, redeemed=False), 5)
        self.assertEqual(next_stamps(5, redeemed=False), 5)
        self.assertEqual(next_stamps(5, redeemed=True), 0)
        self.assertEqual(next_stamps(3, redeemed=True), 0)

    def test_fold_events_stays_within_range(self):
        events = [LoyaltyEventType.EARNED] * 7 + [LoyaltyEventType.REDEEMED, LoyaltyEventType.EARNED]
        self.assertEqual(fold_events(events), 1)
        self.assertEqual(fold_events([]), 0)

    def test_apply_sale_loyalty_appends_events(self):
        for _ in range(6):
            apply_sale_loyalty(customer=self.customer, sale_id=None, redeemed=False)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.loyalty_stamps, 5)

        apply_sale_loyalty(customer=self.customer, sale_id=None, redeemed=True)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.loyalty_stamps, 0)

        event_types = list(LoyaltyEvent.objects.filter(customer=self.customer).values_list("event_type", flat=True))
        self.assertEqual(event_types.count(LoyaltyEventType.EARNED), 6)
        self.assertEqual(event_types.count(LoyaltyEventType.REDEEMED), 1)

    def test_redeem_without_full_card_is_rejected(self):
        with self.assertRaises(ValidationError):
            ensure_can_redeem(self.customer)
        with self.assertRaises(ValidationError):
            ensure_can_redeem(None)
        with self.assertRaises(InvariantViolation):
            apply_sale_loyalty(customer=self.customer, sale_id=None, redeemed=True)
        self.assertFalse(LoyaltyEvent.objects.exists())

    def test_replay_repairs_drifted_counter(self):
        apply_sale_loyalty(customer=self.customer, sale_id=None, redeemed=False)
        apply_sale_loyalty(customer=self.customer, sale_id=None, redeemed=False)
        Customer.objects.filter(pk=self.customer.pk).update(loyalty_stamps=5)

        self.assertEqual(replay_stamps(self.customer), 2)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.loyalty_stamps, 2)

    @override_settings(LOYALTY_MAX_STAMPS=3)
    def test_card_size_comes_from_settings(self):
        self.assertEqual(next_stamps(3, redeemed=False), 3)


class CustomerApiTests(APITestCase):
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

    def test_create_requires_valid_unique_phone(self):
        self.auth_as("cashier", "cashier123")
        created = self.client.post(
            "/api/v1/customers/",
            {"first_name": "Ana", "last_name": "Lopez", "phone": "+504 9999-0000"},
            format="json",
        )
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.data["loyalty_stamps"], 0)
        self.assertTrue(AuditLog.objects.filter(action="customers.create").exists())

        duplicate = self.client.post(
            "/api/v1/customers/",
            {"first_name": "Otra", "phone": "504 99990000"},
            format="json",
        )
        self.assertEqual(duplicate.status_code, 400)
        self.assertIn("phone", duplicate.data["fields"])

        short = self.client.post("/api/v1/customers/", {"first_name": "Corto", "phone": "123"}, format="json")
        self.assertEqual(short.status_code, 400)

    def test_loyalty_stamps_are_read_only(self):
        customer = Customer.objects.create(first_name="Ana", phone="99990000")
        self.auth_as("admin", "admin123")
        response = self.client.patch(f"/api/v1/customers/{customer.id}/", {"loyalty_stamps": 5}, format="json")
        self.assertEqual(response.status_code, 200)
        customer.refresh_from_db()
        self.assertEqual(customer.loyalty_stamps, 0)

    def test_search_by_name_and_phone(self):
        Customer.objects.create(first_name="Ana", last_name="Lopez", phone="9999-0000")
        Customer.objects.create(first_name="Luis", last_name="Mejia", phone="8888-1111")
        self.auth_as("cashier", "cashier123")

        by_name = self.client.get("/api/v1/customers/?q=ana lop")
        self.assertEqual([row["first_name"] for row in by_name.data["results"]], ["Ana"])

        by_phone = self.client.get("/api/v1/customers/?q=8888")
        self.assertEqual([row["first_name"] for row in by_phone.data["results"]], ["Luis"])

        exact_phone = self.client.get("/api/v1/customers/?phone=9999 0000")
        self.assertEqual([row["first_name"] for row in exact_phone.data["results"]], ["Ana"])

    def test_delete_is_refused_when_customer_has_orders(self):
        customer = Customer.objects.create(first_name="Ana", phone="99990000")
        Order.objects.create(customer=customer)
        self.auth_as("admin", "admin123")

        response = self.client.delete(f"/api/v1/customers/{customer.id}/")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "conflict")
        self.assertTrue(Customer.objects.filter(pk=customer.pk).exists())

    def test_loyalty_endpoint_lists_events(self):
        customer = Customer.objects.create(first_name="Ana", phone="99990000")
        apply_sale_loyalty(customer=customer, sale_id=None, redeemed=False)
        self.auth_as("cashier", "cashier123")

        response = self.client.get(f"/api/v1/customers/{customer.id}/loyalty/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["loyalty_stamps"], 1)
        self.assertEqual(len(response.data["events"]), 1)
        self.assertEqual(response.data["events"][0]["event_type"], LoyaltyEventType.EARNED)

    def test_loyalty_read_reports_drift_and_replay_repairs_it(self):
        customer = Customer.objects.create(first_name="Ana", phone="99990000")
        apply_sale_loyalty(customer=customer, sale_id=None, redeemed=False)
        apply_sale_loyalty(customer=customer, sale_id=None, redeemed=False)
        Customer.objects.filter(pk=customer.pk).update(loyalty_stamps=5)
        self.auth_as("cashier", "cashier123")

        read = self.client.get(f"/api/v1/customers/{customer.id}/loyalty/")
        self.assertEqual(read.status_code, 200)
        self.assertEqual(read.data["loyalty_stamps"], 5)
        self.assertEqual(read.data["replayed_stamps"], 2)
        self.assertFalse(read.data["in_sync"])
        customer.refresh_from_db()
        self.assertEqual(customer.loyalty_stamps, 5)
        self.assertFalse(AuditLog.objects.filter(action="customers.loyalty.replay").exists())

        repaired = self.client.post(f"/api/v1/customers/{customer.id}/replay-loyalty/")
        self.assertEqual(repaired.status_code, 200)
        self.assertEqual(repaired.data["loyalty_stamps"], 2)
        self.assertTrue(repaired.data["repaired"])
        customer.refresh_from_db()
        self.assertEqual(customer.loyalty_stamps, 2)
        self.assertTrue(AuditLog.objects.filter(action="customers.loyalty.replay", entity_id=str(customer.id)).exists())

        again = self.client.get(f"/api/v1/customers/{customer.id}/loyalty/")
        self.assertTrue(again.data["in_sync"])

    def test_export_lists_customer_directory(self):
        Customer.objects.create(first_name="Ana", last_name="Lopez", phone="99990000", email="ana@example.com")
        Customer.objects.create(first_name="Luis", phone="88887777")
        self.auth_as("cashier", "cashier123")
        self.assertEqual(self.client.get("/api/v1/customers/export/").status_code, 403)

        self.auth_as("admin", "admin123")
        response = self.client.get("/api/v1/customers/export/?q=luis")
        self.assertEqual(response.status_code, 200)
        self.assertIn('filename="Directorio_Clientes_Luxessence_', response["Content-Disposition"])

        rows = list(load_workbook(io.BytesIO(response.content)).active.iter_rows(values_only=True))
        self.assertEqual(rows[0], ("Nombre", "Apellido", "Email", "Telefono", "Direccion", "Sellos", "Registro"))
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[1][0], "Luis")
        self.assertEqual(rows[1][2:6], ("N/A", "88887777", "N/A", 0))
