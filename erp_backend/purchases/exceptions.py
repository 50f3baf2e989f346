# purchases/exceptions.py


class SupplierPaymentError(ValueError):
    pass
