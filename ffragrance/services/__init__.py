"""Business logic services for inventory and formulation."""

from .composition_engine import CompositionEngine
from .inventory_service import InventoryService
from .formula_library import FormulaLibrary, FormulaSummary

__all__ = [
    "CompositionEngine",
    "InventoryService",
    "FormulaLibrary",
    "FormulaSummary",
]
