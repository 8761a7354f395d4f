import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


PAYMENT_METHOD_CHOICES = [("CONTADO", "Contado"), ("CREDITO", "Credito")]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("customers", "0001_initial"),
        ("orders", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Sale",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("total", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("discount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                (
                    "payment_method",
                    models.CharField(choices=PAYMENT_METHOD_CHOICES, default="CONTADO", max_length=10),
                ),
                ("is_paid", models.BooleanField(default=False)),
                ("total_cost", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("total_profit", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("loyalty_redeemed", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "order",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sale",
                        to="orders.order",
                    ),
                ),
                (
                    "customer",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sales",
                        to="customers.customer",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="sales",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["payment_method", "is_paid"], name="sale_method_paid_idx"),
                    models.Index(fields=["created_at"], name="sale_created_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(total__gte=0), name="sale_total_gte_zero"),
                    models.CheckConstraint(condition=models.Q(discount__gte=0), name="sale_discount_gte_zero"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("notes", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "sale",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payments",
                        to="sales.sale",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["sale", "created_at"], name="payment_sale_created_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(amount__gt=0), name="payment_amount_gt_zero"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SaleReversal",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sale_id", models.UUIDField(unique=True)),
                ("order_id", models.UUIDField()),
                ("customer_id", models.UUIDField(blank=True, null=True)),
                ("sale_total", models.DecimalField(decimal_places=2, max_digits=12)),
                ("payment_method", models.CharField(choices=PAYMENT_METHOD_CHOICES, max_length=10)),
                ("paid_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("restocked_lines", models.JSONField(default=list)),
                ("reason", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
