"""Formula library service for storing and editing formulas."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..data.repository import EntityKind, Repository
from ..errors import EntityNotFound
from ..models.formula import (
    CategoryShare,
    DiluentType,
    DilutedComponent,
    Formula,
    FormulaLine,
)
from ..models.inventory import new_id
from .composition_engine import CompositionEngine

logger = logging.getLogger(__name__)

_EDITABLE_FORMULA_FIELDS = {"name", "smell_description", "diluent_type", "diluent_weight"}


@dataclass
class FormulaSummary:
    """Totals and per-line metrics of a formula."""
    formula: Formula
    components: list[DilutedComponent] = field(default_factory=list)

    @property
    def over_limit(self) -> list[DilutedComponent]:
        return [c for c in self.components if c.is_over_limit]

    @property
    def near_limit(self) -> list[DilutedComponent]:
        return [c for c in self.components if c.is_near_limit]

    @property
    def is_within_limits(self) -> bool:
        return not self.over_limit

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.formula.id,
            "name": self.formula.name,
            "smell_description": self.formula.smell_description,
            "diluent_type": self.formula.diluent_type.value if self.formula.diluent_type else None,
            "diluent_weight": self.formula.diluent_weight,
            "total_line_weight": self.formula.total_line_weight,
            "total_formula_weight": self.formula.total_formula_weight,
            "line_count": len(self.formula.lines),
            "over_limit_count": len(self.over_limit),
            "is_within_limits": self.is_within_limits,
            "components": [c.to_dict() for c in self.components],
        }


class FormulaLibrary:
    """Service for storing and managing formulas."""

    def __init__(self, repository: Repository, engine: Optional[CompositionEngine] = None):
        """Initialize the library.

        Args:
            repository: Backing store.
            engine: Composition engine. Creates one if not provided.
        """
        self.repository = repository
        self.engine = engine or CompositionEngine()

    def create(
        self,
        name: str,
        smell_description: Optional[str] = None,
        diluent_type: Optional[DiluentType] = None,
        diluent_weight: float = 0.0,
    ) -> Formula:
        """Create an empty formula."""
        formula = Formula(
            name=name,
            smell_description=smell_description,
            diluent_type=diluent_type,
            diluent_weight=diluent_weight,
        )
        self.repository.put(formula)
        return formula

    def get(self, formula_id: str) -> Formula:
        """Get a formula by ID.

        Raises:
            EntityNotFound: If no formula has this id.
        """
        formula = self.repository.get(EntityKind.FORMULA, formula_id)
        if formula is None:
            raise EntityNotFound("formula", formula_id)
        return formula

    def get_by_name(self, name: str) -> Optional[Formula]:
        """Get a formula by case-insensitive name."""
        name_lower = name.lower()
        for formula in self.repository.query(EntityKind.FORMULA):
            if formula.name.lower() == name_lower:
                return formula
        return None

    def list_all(self) -> list[Formula]:
        """List all formulas sorted by name."""
        return sorted(self.repository.query(EntityKind.FORMULA), key=lambda f: f.name.lower())

    def search(self, query: str) -> list[Formula]:
        """Search formulas by name or smell description."""
        query_lower = query.lower()
        results = []

        for formula in self.list_all():
            if query_lower in formula.name.lower():
                results.append(formula)
            elif formula.smell_description and query_lower in formula.smell_description.lower():
                results.append(formula)

        return results

    def update(self, formula_id: str, **changes) -> Formula:
        """Update formula details (name, description, diluent)."""
        formula = self.get(formula_id)
        unknown = set(changes) - _EDITABLE_FORMULA_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        for name, value in changes.items():
            setattr(formula, name, value)
        self.repository.put(formula)
        return formula

    def delete(self, formula_id: str) -> bool:
        """Delete a formula together with its lines.

        Returns:
            True if deleted, False if not found.
        """
        deleted = self.repository.delete(EntityKind.FORMULA, formula_id)
        if deleted:
            logger.info("Deleted formula %s", formula_id)
        return deleted

    def duplicate(self, formula_id: str, new_name: Optional[str] = None) -> Formula:
        """Duplicate an existing formula under fresh ids.

        Args:
            formula_id: ID of formula to duplicate.
            new_name: Name for the new formula (defaults to "Copy of <original>").

        Returns:
            The new formula.
        """
        original = self.get(formula_id)
        copy = Formula(
            name=new_name or f"Copy of {original.name}",
            smell_description=original.smell_description,
            diluent_type=original.diluent_type,
            diluent_weight=original.diluent_weight,
        )
        copy.lines = [
            FormulaLine(
                id=new_id(),
                formula_id=copy.id,
                chemical_id=line.chemical_id,
                amount_grams=line.amount_grams,
                dilution_percentage=line.dilution_percentage,
            )
            for line in original.lines
        ]
        self.repository.put(copy)
        return copy

    # Line editing
    def add_line(
        self,
        formula_id: str,
        chemical_id: str,
        amount_grams: float,
        dilution_percentage: Optional[float] = None,
    ) -> FormulaLine:
        """Add an ingredient line and save the formula."""
        formula = self.get(formula_id)
        chemical = self.repository.get(EntityKind.CHEMICAL, chemical_id)
        if chemical is None:
            raise EntityNotFound("chemical", chemical_id)

        line = self.engine.add_line(formula, chemical, amount_grams, dilution_percentage)
        self.repository.put(formula)
        return line

    def update_line(
        self,
        formula_id: str,
        line_id: str,
        amount_grams: Optional[float] = None,
        dilution_percentage: Optional[float] = None,
    ) -> FormulaLine:
        """Edit a line's amount or dilution and save the formula."""
        formula = self.get(formula_id)
        line = self.engine.update_line(formula, line_id, amount_grams, dilution_percentage)
        if line is None:
            raise EntityNotFound("formula line", line_id)
        self.repository.put(formula)
        return line

    def remove_line(self, formula_id: str, line_id: str) -> bool:
        """Remove a line; False if the formula has no such line."""
        formula = self.get(formula_id)
        removed = self.engine.remove_line(formula, line_id)
        if removed:
            self.repository.put(formula)
        return removed

    def scale(self, formula_id: str, target_total_weight: float) -> Formula:
        """Scale a formula to a new total weight and save it."""
        formula = self.get(formula_id)
        self.engine.scale(formula, target_total_weight)
        self.repository.put(formula)
        return formula

    def preview_line(
        self,
        formula_id: str,
        chemical_id: str,
        amount_grams: float,
        dilution_percentage: Optional[float] = None,
    ) -> dict:
        """Concentration and IFRA status a line would have once added.

        Nothing is saved. Dilution defaults the same way add_line does.

        Returns:
            Dict with the prospective dilution, final concentration and
            the limit flags.
        """
        formula = self.get(formula_id)
        chemical = self.repository.get(EntityKind.CHEMICAL, chemical_id)
        if chemical is None:
            raise EntityNotFound("chemical", chemical_id)
        if dilution_percentage is None:
            dilution_percentage = (
                chemical.dilution_percentage
                if chemical.dilution_percentage is not None
                else 100.0
            )

        concentration = self.engine.preview_concentration(formula, amount_grams, dilution_percentage)
        limit = chemical.ifra_safe_limit
        return {
            "chemical_id": chemical.id,
            "amount_grams": amount_grams,
            "dilution_percentage": dilution_percentage,
            "final_concentration": concentration,
            "ifra_safe_limit": limit,
            "is_over_limit": limit is not None and concentration > limit,
        }

    # Derived views
    def metrics(self, formula_id: str) -> list[DilutedComponent]:
        formula = self.get(formula_id)
        return self.engine.compute_line_metrics(formula, self.repository.chemical_map())

    def breakdown(self, formula_id: str) -> list[CategoryShare]:
        """Composition of a formula by category."""
        components = self.metrics(formula_id)
        return self.engine.aggregate_by_category(components, self.repository.category_map())

    def summary(self, formula_id: str) -> FormulaSummary:
        formula = self.get(formula_id)
        return FormulaSummary(formula=formula, components=self.metrics(formula_id))

    def get_count(self) -> int:
        return self.repository.count(EntityKind.FORMULA)
