"""chart-reconcile: multi-source clinical record reconciliation."""

__version__ = "0.1.0"
