import uuid

from django.db import models


class PaymentMethod(models.TextChoices):
    CONTADO = "CONTADO", "Contado"
    CREDITO = "CREDITO", "Credito"


class Sale(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.OneToOneField("orders.Order", on_delete=models.PROTECT, related_name="sale")
    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="sales",
    )
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    payment_method = models.CharField(max_length=10, choices=PaymentMethod.choices, default=PaymentMethod.CONTADO)
    is_paid = models.BooleanField(default=False)
    total_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_profit = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    loyalty_redeemed = models.BooleanField(default=False)
    created_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sales",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["payment_method", "is_paid"], name="sale_method_paid_idx"),
            models.Index(fields=["created_at"], name="sale_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(total__gte=0), name="sale_total_gte_zero"),
            models.CheckConstraint(condition=models.Q(discount__gte=0), name="sale_discount_gte_zero"),
        ]

    def __str__(self):
        return f"Venta {str(self.id)[:8]}"


class Payment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name="payments")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    notes = models.CharField(max_length=255, blank=True)
    created_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["sale", "created_at"], name="payment_sale_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(amount__gt=0), name="payment_amount_gt_zero"),
        ]


class SaleReversal(models.Model):
    """Intent record of a reversal. Outlives the sale, order and payments it removed."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sale_id = models.UUIDField(unique=True)
    order_id = models.UUIDField()
    customer_id = models.UUIDField(null=True, blank=True)
    sale_total = models.DecimalField(max_digits=12, decimal_places=2)
    payment_method = models.CharField(max_length=10, choices=PaymentMethod.choices)
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    restocked_lines = models.JSONField(default=list)
    reason = models.CharField(max_length=255, blank=True)
    actor = models.ForeignKey("accounts.User", on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
