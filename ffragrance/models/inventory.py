"""Inventory data models: chemicals, categories and tags."""

import base64
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .colors import DEFAULT_COLOR_HEX, to_hex


def new_id() -> str:
    return str(uuid.uuid4())


class PyramidNote(Enum):
    """Evaporation tier of an ingredient, from most to least volatile."""
    TOP = "top"
    TOPMID = "topmid"
    MID = "mid"
    MIDBASE = "midbase"
    BASE = "base"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PyramidNote":
        """Parse a stored value, falling back to TOP for unknown input."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.TOP


# Fixed display order of the pyramid tiers
PYRAMID_NOTE_ORDER = list(PyramidNote)


class Unit(Enum):
    """Unit an ingredient's stock is measured in."""
    GRAMS = "grams"
    ML = "ml"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Unit":
        """Parse a stored value, falling back to GRAMS."""
        normalized = (value or "").strip().lower()
        if normalized in ("ml", "milliliters", "millilitres"):
            return cls.ML
        return cls.GRAMS


@dataclass
class Category:
    """A named, colored grouping of chemicals."""
    name: str
    color_hex: str = DEFAULT_COLOR_HEX
    id: str = field(default_factory=new_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "color_hex": self.color_hex,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Category":
        return cls(
            id=data.get("id") or new_id(),
            name=data.get("name", ""),
            color_hex=data.get("color_hex") or DEFAULT_COLOR_HEX,
        )


@dataclass
class Tag:
    """A free-form label with an RGBA color (channels in [0, 1])."""
    name: str
    red: float = 0.0
    green: float = 0.0
    blue: float = 1.0
    alpha: float = 1.0
    id: str = field(default_factory=new_id)

    def to_hex(self) -> str:
        return to_hex(self.red, self.green, self.blue, self.alpha)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "red": self.red,
            "green": self.green,
            "blue": self.blue,
            "alpha": self.alpha,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Tag":
        return cls(
            id=data.get("id") or new_id(),
            name=data.get("name", ""),
            red=data.get("red", 0.0),
            green=data.get("green", 0.0),
            blue=data.get("blue", 1.0),
            alpha=data.get("alpha", 1.0),
        )


@dataclass
class Chemical:
    """An aroma chemical held in inventory."""
    name: str
    cas_number: str = ""
    ifra_safe_limit: Optional[float] = None  # Max % in the finished formula
    notes: str = ""
    pyramid_note: PyramidNote = PyramidNote.TOP
    unit: Unit = Unit.GRAMS
    quantity_grams: Optional[float] = None
    quantity_ml: Optional[float] = None
    dilution_percentage: Optional[float] = None  # Default dilution when added to a formula
    structure_image: Optional[bytes] = None
    category_id: Optional[str] = None
    tag_ids: list[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    def add_tag(self, tag_id: str) -> None:
        if tag_id not in self.tag_ids:
            self.tag_ids.append(tag_id)

    def remove_tag(self, tag_id: str) -> None:
        self.tag_ids = [t for t in self.tag_ids if t != tag_id]

    @property
    def on_hand(self) -> Optional[float]:
        """Stock quantity in the chemical's preferred unit."""
        if self.unit == Unit.ML:
            return self.quantity_ml
        return self.quantity_grams

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "cas_number": self.cas_number,
            "ifra_safe_limit": self.ifra_safe_limit,
            "notes": self.notes,
            "pyramid_note": self.pyramid_note.value,
            "unit": self.unit.value,
            "quantity_grams": self.quantity_grams,
            "quantity_ml": self.quantity_ml,
            "dilution_percentage": self.dilution_percentage,
            "structure_image": (
                base64.b64encode(self.structure_image).decode("ascii")
                if self.structure_image else None
            ),
            "category_id": self.category_id,
            "tag_ids": list(self.tag_ids),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Chemical":
        """Create from dictionary."""
        image = data.get("structure_image")
        return cls(
            id=data.get("id") or new_id(),
            name=data.get("name", ""),
            cas_number=data.get("cas_number", ""),
            ifra_safe_limit=data.get("ifra_safe_limit"),
            notes=data.get("notes", ""),
            pyramid_note=PyramidNote.parse(data.get("pyramid_note")),
            unit=Unit.parse(data.get("unit")),
            quantity_grams=data.get("quantity_grams"),
            quantity_ml=data.get("quantity_ml"),
            dilution_percentage=data.get("dilution_percentage"),
            structure_image=base64.b64decode(image) if image else None,
            category_id=data.get("category_id"),
            tag_ids=list(data.get("tag_ids", [])),
        )
