from spendsmart.models.receipt import ReceiptModel  # noqa: F401
