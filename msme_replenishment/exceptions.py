"""
Exception hierarchy for the replenishment core.

All errors raised deliberately by this package derive from
``ReplenishmentError`` so batch callers can isolate per-product failures
with a single ``except`` clause:

  - ``ProductNotFoundError`` : product absent from the owner's catalog.
  - ``DataUnavailableError`` : sales history (or another upstream read)
    failed or timed out.
  - ``InvalidRuleError``     : a reorder rule upsert is missing required
    fields or carries out-of-range values.
  - ``InvoiceNotFoundError`` : a status change names an unknown invoice.
"""

from __future__ import annotations


class ReplenishmentError(RuntimeError):
    """Base class for all replenishment errors."""


class ProductNotFoundError(ReplenishmentError):
    """Raised when a product id does not exist in the owner's catalog.

    Attributes:
        owner_id:   The catalog owner that was searched.
        product_id: The missing product id.
    """

    def __init__(self, owner_id: str, product_id: str) -> None:
        self.owner_id   = owner_id
        self.product_id = product_id
        super().__init__(f"Product '{product_id}' not found for owner '{owner_id}'.")


class DataUnavailableError(ReplenishmentError):
    """Raised when an upstream read (usually sales history) fails.

    Attributes:
        product_id: Product whose data could not be read, if known.
    """

    def __init__(self, message: str, product_id: str | None = None) -> None:
        self.product_id = product_id
        super().__init__(message)


class InvalidRuleError(ReplenishmentError):
    """Raised when a reorder rule upsert is rejected.

    Attributes:
        product_id: Product the rule was meant for.
        problems:   Individual validation messages.
    """

    def __init__(self, product_id: str, problems: list[str]) -> None:
        self.product_id = product_id
        self.problems   = problems
        super().__init__(
            f"Invalid reorder rule for product '{product_id}': " + "; ".join(problems)
        )


class InvoiceNotFoundError(ReplenishmentError):
    """Raised when an invoice id does not exist for the owner.

    Attributes:
        owner_id:   Business the invoice was looked up for.
        invoice_id: The missing invoice id.
    """

    def __init__(self, owner_id: str, invoice_id: str) -> None:
        self.owner_id   = owner_id
        self.invoice_id = invoice_id
        super().__init__(f"Invoice '{invoice_id}' not found for owner '{owner_id}'.")
