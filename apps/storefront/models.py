import uuid

from django.db import models


class ProductRequest(models.Model):
    """A shopper asking the boutique to stock something it does not carry."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    customer_name = models.CharField(max_length=120)
    whatsapp = models.CharField(max_length=50)
    product_name = models.CharField(max_length=255)
    product_link = models.URLField(max_length=500, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.product_name} ({self.customer_name})"


class SiteSetting(models.Model):
    key = models.SlugField(max_length=80, primary_key=True)
    value = models.TextField(blank=True)
    category = models.CharField(max_length=40, blank=True)
    description = models.CharField(max_length=255, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["category", "key"]

    def __str__(self):
        return self.key
