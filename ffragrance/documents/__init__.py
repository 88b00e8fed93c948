"""Document rendering."""

from .formula_sheet import FormulaSheetRenderer

__all__ = [
    "FormulaSheetRenderer",
]
