# customers/admin.py

from django.contrib import admin

from customers.models import Customer


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "payment_terms_days", "is_active", "created_at")
    search_fields = ("code", "name", "email")
    list_filter = ("is_active",)
