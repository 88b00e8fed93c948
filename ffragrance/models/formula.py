"""Formula data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .colors import DEFAULT_COLOR_HEX
from .inventory import Chemical, new_id


class DiluentType(Enum):
    """Carrier used to bring a formula to its working concentration."""
    PERFUMERS_ALCOHOL = "Perfumer's Alcohol"
    DPG = "DPG"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["DiluentType"]:
        """Parse a stored label; blank or unknown labels mean no diluent."""
        if not value:
            return None
        for diluent in cls:
            if diluent.value.lower() == value.strip().lower() or diluent.name.lower() == value.strip().lower():
                return diluent
        return None


@dataclass
class FormulaLine:
    """One weighed ingredient of a formula."""
    chemical_id: Optional[str] = None
    amount_grams: float = 0.0
    dilution_percentage: float = 100.0  # % of the weighed amount that is pure chemical
    formula_id: Optional[str] = None
    id: str = field(default_factory=new_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "formula_id": self.formula_id,
            "chemical_id": self.chemical_id,
            "amount_grams": self.amount_grams,
            "dilution_percentage": self.dilution_percentage,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FormulaLine":
        return cls(
            id=data.get("id") or new_id(),
            formula_id=data.get("formula_id"),
            chemical_id=data.get("chemical_id"),
            amount_grams=data.get("amount_grams", 0.0),
            dilution_percentage=data.get("dilution_percentage", 100.0),
        )


@dataclass
class Formula:
    """A weighted mixture of chemicals topped up with a diluent."""
    name: str
    smell_description: Optional[str] = None
    diluent_type: Optional[DiluentType] = None
    diluent_weight: float = 0.0
    lines: list[FormulaLine] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    @property
    def total_line_weight(self) -> float:
        """Sum of the weighed line amounts, not corrected for dilution."""
        return sum(line.amount_grams for line in self.lines)

    @property
    def total_formula_weight(self) -> float:
        """Line weight plus diluent; the denominator of every concentration."""
        return self.total_line_weight + self.diluent_weight

    def get_line(self, line_id: str) -> Optional[FormulaLine]:
        for line in self.lines:
            if line.id == line_id:
                return line
        return None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "smell_description": self.smell_description,
            "diluent_type": self.diluent_type.value if self.diluent_type else None,
            "diluent_weight": self.diluent_weight,
            "lines": [line.to_dict() for line in self.lines],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Formula":
        """Create from dictionary."""
        formula = cls(
            id=data.get("id") or new_id(),
            name=data.get("name", ""),
            smell_description=data.get("smell_description"),
            diluent_type=DiluentType.parse(data.get("diluent_type")),
            diluent_weight=data.get("diluent_weight", 0.0),
            lines=[FormulaLine.from_dict(item) for item in data.get("lines", [])],
        )
        for line in formula.lines:
            line.formula_id = formula.id
        return formula


@dataclass
class DilutedComponent:
    """Derived metrics for one formula line."""
    line_id: str
    formula_id: Optional[str]
    chemical: Chemical
    original_amount: float
    dilution_percentage: float
    actual_mass: float  # Pure chemical after sub-dilution
    final_concentration: float  # % of total formula weight
    is_over_limit: bool
    is_near_limit: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "line_id": self.line_id,
            "formula_id": self.formula_id,
            "chemical_id": self.chemical.id,
            "chemical_name": self.chemical.name,
            "pyramid_note": self.chemical.pyramid_note.value,
            "ifra_safe_limit": self.chemical.ifra_safe_limit,
            "original_amount": self.original_amount,
            "dilution_percentage": self.dilution_percentage,
            "actual_mass": self.actual_mass,
            "final_concentration": self.final_concentration,
            "is_over_limit": self.is_over_limit,
            "is_near_limit": self.is_near_limit,
        }


UNCATEGORIZED_NAME = "Uncategorized"


@dataclass
class CategoryShare:
    """Summed concentration of one category's lines; category_id None is Uncategorized."""
    category_id: Optional[str]
    name: str
    total_concentration: float = 0.0
    color_hex: str = DEFAULT_COLOR_HEX

    def to_dict(self) -> dict:
        return {
            "category_id": self.category_id,
            "name": self.name,
            "color_hex": self.color_hex,
            "total_concentration": self.total_concentration,
        }
