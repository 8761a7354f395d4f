import re
import uuid

from django.core.exceptions import ValidationError
from django.db import models

MIN_PHONE_DIGITS = 8


def normalize_phone(value):
    return re.sub(r"\D+", "", str(value or ""))


class Customer(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    first_name = models.CharField(max_length=120)
    last_name = models.CharField(max_length=120, blank=True)
    phone = models.CharField(max_length=50)
    phone_normalized = models.CharField(max_length=50, unique=True)
    email = models.EmailField(blank=True)
    address = models.CharField(max_length=255, blank=True)
    loyalty_stamps = models.PositiveSmallIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["first_name", "last_name"], name="customer_name_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(loyalty_stamps__gte=0) & models.Q(loyalty_stamps__lte=5),
                name="customer_loyalty_stamps_range",
            ),
        ]

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def clean(self):
        if len(normalize_phone(self.phone)) < MIN_PHONE_DIGITS:
            raise ValidationError({"phone": f"El telefono debe tener al menos {MIN_PHONE_DIGITS} digitos."})

    def save(self, *args, **kwargs):
        self.phone = str(self.phone or "").strip()
        self.first_name = str(self.first_name or "").strip()
        self.last_name = str(self.last_name or "").strip()
        self.phone_normalized = normalize_phone(self.phone)
        super().save(*args, **kwargs)

    @classmethod
    def upsert_by_phone(cls, *, phone, first_name="", last_name="", address="", email=""):
        """Find the customer owning ``phone`` and refresh the given fields, or create one."""
        normalized = normalize_phone(phone)
        customer = cls.objects.filter(phone_normalized=normalized).first()
        incoming = {
            "phone": str(phone or "").strip(),
            "first_name": str(first_name or "").strip(),
            "last_name": str(last_name or "").strip(),
            "address": str(address or "").strip(),
            "email": str(email or "").strip(),
        }
        if customer is None:
            customer = cls(**incoming)
            customer.full_clean(exclude=["phone_normalized"])
            customer.save()
            return customer, True

        updated_fields = [name for name, value in incoming.items() if value and getattr(customer, name) != value]
        for name in updated_fields:
            setattr(customer, name, incoming[name])
        if updated_fields:
            customer.save(update_fields=updated_fields + ["phone_normalized", "updated_at"])
        return customer, False

    def __str__(self):
        return f"{self.full_name} ({self.phone})"


class LoyaltyEventType(models.TextChoices):
    EARNED = "EARNED", "Earned"
    REDEEMED = "REDEEMED", "Redeemed"


class LoyaltyEvent(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name="loyalty_events")
    event_type = models.CharField(max_length=12, choices=LoyaltyEventType.choices)
    sale_id = models.UUIDField(null=True, blank=True)
    stamps_after = models.PositiveSmallIntegerField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["customer", "created_at"], name="loyalty_customer_created_idx"),
        ]
