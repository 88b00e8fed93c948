"""Import/export adapters."""

from .csv_exchange import CSVExchange, ImportSummary

__all__ = [
    "CSVExchange",
    "ImportSummary",
]
