# customers/models/customer.py

import uuid

from django.core.exceptions import ValidationError
from django.db import models


class Customer(models.Model):
    """
    Customer master.

    Every customer owns exactly one CustomerCreditLimit row
    (created by customers.services.customer_service.create_customer).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    code = models.CharField(max_length=32, unique=True)
    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True, default="")
    phone = models.CharField(max_length=50, blank=True, default="")
    address = models.TextField(blank=True, default="")

    payment_terms_days = models.PositiveIntegerField(default=30)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["name"], name="customer_name_idx"),
            models.Index(fields=["is_active"], name="customer_active_idx"),
        ]

    def clean(self):
        if not (self.code or "").strip():
            raise ValidationError({"code": "code is required"})
        if not (self.name or "").strip():
            raise ValidationError({"name": "name is required"})

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().upper()
        self.name = (self.name or "").strip()
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.name} ({self.code})"
