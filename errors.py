"""Exceptions raised by the Amazon order reconciliation code."""

from __future__ import annotations


class ReconciliationError(Exception):
    """Base class for every error raised while importing or matching orders."""


class RowSkipped(ReconciliationError):
    """A CSV row was malformed or incomplete and was left out of the import."""

    def __init__(self, line_number: int, reason: str):
        super().__init__(f"Skipping row {line_number}: {reason}")
        self.line_number = line_number
        self.reason = reason


class DateParseError(ReconciliationError, ValueError):
    def __init__(self, value: str):
        super().__init__(f"Invalid date format: {value}")
        self.value = value


class EmptyExportError(ReconciliationError):
    """The export has no header or no data rows."""


class ExportNotFound(ReconciliationError):
    pass


class OrderImportError(ReconciliationError):
    def __init__(self, order_id: str, cause: Exception):
        super().__init__(f"Error importing order {order_id}: {cause}")
        self.order_id = order_id
        self.cause = cause


class OrderNotFound(ReconciliationError, LookupError):
    def __init__(self, order_id: str):
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id


class TransactionNotFound(ReconciliationError, LookupError):
    def __init__(self, transaction_id: str):
        super().__init__(f"Transaction not found: {transaction_id}")
        self.transaction_id = transaction_id


class LinkConflict(ReconciliationError):
    """Relinking an order that already points at a transaction."""

    def __init__(self, order_id: str, transaction_id: str | None):
        super().__init__(f"Order {order_id} is already linked to transaction {transaction_id}")
        self.order_id = order_id
        self.transaction_id = transaction_id


class InvalidTransition(ReconciliationError):
    def __init__(self, order_id: str, current: str, action: str):
        super().__init__(f"Cannot {action} order {order_id} while it is {current}")
        self.order_id = order_id
        self.current = current
        self.action = action


class NothingToUndo(ReconciliationError):
    pass


class WorkflowError(ReconciliationError):
    """A persistence failure aborted a workflow transition; nothing was changed."""
