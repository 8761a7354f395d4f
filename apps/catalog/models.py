import uuid

from django.db import models
from django.utils import timezone


class Category(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=80, unique=True)
    image_url = models.URLField(max_length=500, blank=True)
    is_featured = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "categories"

    def save(self, *args, **kwargs):
        self.name = (self.name or "").strip()
        super().save(*args, **kwargs)

    def __str__(self):
        return self.name


class Product(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, db_index=True)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    stock = models.IntegerField(default=0)
    category = models.ForeignKey(Category, null=True, blank=True, on_delete=models.SET_NULL, related_name="products")
    image_url = models.URLField(max_length=500, blank=True)
    is_new_arrival = models.BooleanField(default=False)
    is_coming_soon = models.BooleanField(default=False)
    is_gift_option = models.BooleanField(default=False)
    is_bogo = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["category", "is_active"], name="product_category_active_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(stock__gte=0), name="product_stock_gte_zero"),
            models.CheckConstraint(condition=models.Q(price__gte=0), name="product_price_gte_zero"),
            models.CheckConstraint(condition=models.Q(cost__gte=0), name="product_cost_gte_zero"),
        ]

    @property
    def is_sellable(self):
        return self.is_active and not self.is_coming_soon

    def __str__(self):
        return self.name


class ComboPack(models.Model):
    """A multi-unit pack sold at a fixed price for every product of a category."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    category = models.ForeignKey(Category, on_delete=models.CASCADE, related_name="combo_packs")
    label = models.CharField(max_length=60)
    units = models.PositiveIntegerField()
    price = models.DecimalField(max_digits=12, decimal_places=2)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["category", "units"]
        constraints = [
            models.UniqueConstraint(fields=["category", "units"], name="unique_combo_units_per_category"),
            models.CheckConstraint(condition=models.Q(units__gte=1), name="combo_units_gte_one"),
        ]

    def __str__(self):
        return f"{self.category.name}: {self.label}"


class PromotionType(models.TextChoices):
    DISCOUNT = "DISCOUNT", "Precio promocional"
    BOGO = "BOGO", "Compra 1 lleva 1 gratis"


class PromotionQuerySet(models.QuerySet):
    def active_on(self, day):
        return self.filter(is_active=True, start_date__lte=day).filter(
            models.Q(end_date__isnull=True) | models.Q(end_date__gte=day)
        )


class Promotion(models.Model):
    """A dated campaign that reprices its products or turns them into 2x1."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=120)
    description = models.TextField(blank=True)
    discount_badge = models.CharField(max_length=40, blank=True)
    promo_type = models.CharField(max_length=10, choices=PromotionType.choices, default=PromotionType.DISCOUNT)
    image_url = models.URLField(max_length=500, blank=True)
    start_date = models.DateField(default=timezone.localdate)
    end_date = models.DateField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    products = models.ManyToManyField(Product, through="PromotionProduct", related_name="promotions")
    created_at = models.DateTimeField(auto_now_add=True)

    objects = PromotionQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_date__isnull=True) | models.Q(end_date__gte=models.F("start_date")),
                name="promotion_end_after_start",
            ),
        ]

    @property
    def badge(self):
        if self.discount_badge:
            return self.discount_badge
        return "2x1" if self.promo_type == PromotionType.BOGO else ""

    def __str__(self):
        return self.title


class PromotionProduct(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE, related_name="lines")
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="promotion_lines")
    promo_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["promotion", "product"], name="unique_product_per_promotion"),
            models.CheckConstraint(
                condition=models.Q(promo_price__isnull=True) | models.Q(promo_price__gte=0),
                name="promotion_price_gte_zero",
            ),
        ]

    def __str__(self):
        return f"{self.promotion.title}: {self.product.name}"
