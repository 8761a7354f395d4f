import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("catalog", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="category",
            name="image_url",
            field=models.URLField(blank=True, max_length=500),
        ),
        migrations.AddField(
            model_name="category",
            name="is_featured",
            field=models.BooleanField(default=False),
        ),
        migrations.CreateModel(
            name="Promotion",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=120)),
                ("description", models.TextField(blank=True)),
                ("discount_badge", models.CharField(blank=True, max_length=40)),
                (
                    "promo_type",
                    models.CharField(
                        choices=[("DISCOUNT", "Precio promocional"), ("BOGO", "Compra 1 lleva 1 gratis")],
                        default="DISCOUNT",
                        max_length=10,
                    ),
                ),
                ("image_url", models.URLField(blank=True, max_length=500)),
                ("start_date", models.DateField(default=django.utils.timezone.localdate)),
                ("end_date", models.DateField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("end_date__isnull", True), ("end_date__gte", models.F("start_date")), _connector="OR"),
                        name="promotion_end_after_start",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PromotionProduct",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("promo_price", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="promotion_lines",
                        to="catalog.product",
                    ),
                ),
                (
                    "promotion",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lines",
                        to="catalog.promotion",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("promotion", "product"), name="unique_product_per_promotion"),
                    models.CheckConstraint(
                        condition=models.Q(("promo_price__isnull", True), ("promo_price__gte", 0), _connector="OR"),
                        name="promotion_price_gte_zero",
                    ),
                ],
            },
        ),
        migrations.AddField(
            model_name="promotion",
            name="products",
            field=models.ManyToManyField(
                related_name="promotions",
                through="catalog.PromotionProduct",
                to="catalog.product",
            ),
        ),
    ]
