"""Adapters layer for chart-reconcile.

Adapters implement the SourcePort defined in the domain layer and turn
external snapshot documents into validated SourceSnapshot objects.
"""

from chart_reconcile.adapters.json_source import JSONSourceAdapter
from chart_reconcile.domain.ports import SourcePort, UnsupportedSourceError

ADAPTER_TYPES = (JSONSourceAdapter,)


def get_adapter(source: str) -> SourcePort:
    """Return a fresh adapter able to load ``source``.

    Raises:
        UnsupportedSourceError: If no adapter handles the source
    """
    for adapter_type in ADAPTER_TYPES:
        adapter = adapter_type()
        if adapter.can_load(source):
            return adapter
    raise UnsupportedSourceError(f"No adapter can load source: {source}", source=source)


__all__ = ['JSONSourceAdapter', 'get_adapter']
