import uuid
from decimal import Decimal

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PROCESSED = "PROCESSED", "Processed"


class DeliveryMode(models.TextChoices):
    DOMICILIO = "DOMICILIO", "Envio a domicilio"
    PICKUP = "PICKUP", "Retiro en tienda"
    MOSTRADOR = "MOSTRADOR", "Venta en mostrador"


WALK_IN_CUSTOMER_NAME = "Consumidor Final"


class Order(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
    )
    status = models.CharField(max_length=12, choices=OrderStatus.choices, default=OrderStatus.PENDING)
    delivery_mode = models.CharField(max_length=12, choices=DeliveryMode.choices, default=DeliveryMode.MOSTRADOR)
    delivery_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    client_email = models.EmailField(blank=True)
    city = models.CharField(max_length=120, blank=True)
    department = models.CharField(max_length=120, blank=True)
    address = models.CharField(max_length=255, blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_orders",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="order_status_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(total__gte=0), name="order_total_gte_zero"),
            models.CheckConstraint(condition=models.Q(delivery_fee__gte=0), name="order_delivery_fee_gte_zero"),
        ]

    @property
    def customer_name(self):
        return self.customer.full_name if self.customer_id else WALK_IN_CUSTOMER_NAME

    def recalculate_totals(self, items=None):
        if items is None:
            items = self.items.all()
        subtotal = sum((item.line_total for item in items), Decimal("0.00"))
        self.subtotal = subtotal.quantize(Decimal("0.01"))
        self.total = (self.subtotal + self.delivery_fee).quantize(Decimal("0.01"))

    def __str__(self):
        return f"Pedido {str(self.id)[:8]} ({self.customer_name})"


class OrderItem(models.Model):
    """Denormalized snapshot of a cart line; stays readable after the product changes or is deleted."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(
        "catalog.Product",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="order_items",
    )
    name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    is_combo = models.BooleanField(default=False)
    combo_multiplier = models.PositiveIntegerField(default=1)
    is_bogo = models.BooleanField(default=False)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gte=1), name="orderitem_quantity_gte_one"),
            models.CheckConstraint(condition=models.Q(combo_multiplier__gte=1), name="orderitem_multiplier_gte_one"),
        ]

    @property
    def stock_units(self):
        return self.quantity * self.combo_multiplier

    @property
    def billable_quantity(self):
        # Buy one, get one: pay for pairs.
        if self.is_bogo:
            return (self.quantity + 1) // 2
        return self.quantity

    @property
    def line_total(self):
        return (self.unit_price * self.billable_quantity).quantize(Decimal("0.01"))

    @property
    def line_cost(self):
        return (self.unit_cost * self.quantity).quantize(Decimal("0.01"))

    def __str__(self):
        return f"{self.name} x{self.quantity}"
