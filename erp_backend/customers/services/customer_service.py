# customers/services/customer_service.py

import logging

from django.db import transaction

from customers.models import Customer
from receivables.conf import receivables_setting
from receivables.services.credit_service import open_credit_account

logger = logging.getLogger("receivables")


@transaction.atomic
def create_customer(
    *,
    code: str,
    name: str,
    email: str = "",
    phone: str = "",
    address: str = "",
    payment_terms_days: int | None = None,
    credit_limit=None,
    user=None,
    now=None,
) -> Customer:
    """
    Create a customer together with its credit-limit aggregate row.
    """
    fields = {
        "code": code,
        "name": name,
        "email": email,
        "phone": phone,
        "address": address,
        "payment_terms_days": (
            payment_terms_days
            if payment_terms_days is not None
            else receivables_setting("DEFAULT_PAYMENT_TERMS_DAYS")
        ),
    }

    customer = Customer.objects.create(**fields)

    open_credit_account(
        customer,
        credit_limit=credit_limit,
        approved_by=user,
        now=now,
    )

    logger.info(
        "Customer created",
        extra={"customer_id": str(customer.id), "code": customer.code},
    )
    return customer
