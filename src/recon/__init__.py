"""
Order Reconciliation core
Keyset pagination over the master reconciliation collection, search mode
switching, and bulk spreadsheet ingestion.

The modules here take their store as a constructor argument; only
order_store talks to Firebase directly.
"""

__version__ = "0.1.0"
