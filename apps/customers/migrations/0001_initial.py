import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Customer",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("first_name", models.CharField(max_length=120)),
                ("last_name", models.CharField(blank=True, max_length=120)),
                ("phone", models.CharField(max_length=50)),
                ("phone_normalized", models.CharField(max_length=50, unique=True)),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("address", models.CharField(blank=True, max_length=255)),
                ("loyalty_stamps", models.PositiveSmallIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["first_name", "last_name"], name="customer_name_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("loyalty_stamps__gte", 0), ("loyalty_stamps__lte", 5)),
                        name="customer_loyalty_stamps_range",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="LoyaltyEvent",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "event_type",
                    models.CharField(choices=[("EARNED", "Earned"), ("REDEEMED", "Redeemed")], max_length=12),
                ),
                ("sale_id", models.UUIDField(blank=True, null=True)),
                ("stamps_after", models.PositiveSmallIntegerField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="loyalty_events",
                        to="customers.customer",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["customer", "created_at"], name="loyalty_customer_created_idx"),
                ],
            },
        ),
    ]
