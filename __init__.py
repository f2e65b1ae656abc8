"""Personal Finance Tracker: Amazon order reconciliation.

Imports Amazon order-history exports, matches each order to the bank
transaction that paid for it and categorizes the transaction from the
order's items.  See ``amazon_sync.py`` and ``server.py`` for entry points.
"""
