"""Infrastructure layer for chart-reconcile.

Configuration, settings, logging, reporting and export.
"""
