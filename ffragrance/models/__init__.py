"""Data models for inventory and formulas."""

from .inventory import (
    Category,
    Chemical,
    PyramidNote,
    PYRAMID_NOTE_ORDER,
    Tag,
    Unit,
)
from .formula import (
    CategoryShare,
    DiluentType,
    DilutedComponent,
    Formula,
    FormulaLine,
    UNCATEGORIZED_NAME,
)

__all__ = [
    "Category",
    "Chemical",
    "PyramidNote",
    "PYRAMID_NOTE_ORDER",
    "Tag",
    "Unit",
    "CategoryShare",
    "DiluentType",
    "DilutedComponent",
    "Formula",
    "FormulaLine",
    "UNCATEGORIZED_NAME",
]
