"""Repository for inventory and formula storage."""

import json
import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

from ..config import get_settings
from ..models.formula import Formula, FormulaLine
from ..models.inventory import Category, Chemical, Tag

logger = logging.getLogger(__name__)


class EntityKind(Enum):
    """Kinds of stored entities."""
    CATEGORY = "category"
    TAG = "tag"
    CHEMICAL = "chemical"
    FORMULA = "formula"


Entity = Union[Category, Tag, Chemical, Formula]

_KIND_OF_TYPE = {
    Category: EntityKind.CATEGORY,
    Tag: EntityKind.TAG,
    Chemical: EntityKind.CHEMICAL,
    Formula: EntityKind.FORMULA,
}

_TYPE_OF_KIND = {kind: cls for cls, kind in _KIND_OF_TYPE.items()}

# Top-level keys of the library file
_SECTION_OF_KIND = {
    EntityKind.CATEGORY: "categories",
    EntityKind.TAG: "tags",
    EntityKind.CHEMICAL: "chemicals",
    EntityKind.FORMULA: "formulas",
}


class Repository:
    """Keyed store of categories, tags, chemicals and formulas.

    Formula lines live inside their formula record, so deleting a formula
    deletes its lines with it. Reverse relations (a category's chemicals, a
    chemical's formula lines) are answered by lookups over the owning side
    and never stored separately.
    """

    def __init__(self, data_path: Optional[Path] = None, autosave: bool = True):
        """Initialize the repository.

        Args:
            data_path: JSON library file. None keeps everything in memory.
            autosave: Write the library file after every put/delete.
        """
        self.data_path = data_path
        self.autosave = autosave and data_path is not None
        self._entities: dict[EntityKind, dict[str, Entity]] = {kind: {} for kind in EntityKind}
        self._loaded = False

    def load(self) -> None:
        """Load all entities from the library file."""
        for store in self._entities.values():
            store.clear()

        if self.data_path is not None and self.data_path.exists():
            with open(self.data_path, "r", encoding="utf-8") as f:
                data = json.load(f)

            for kind, section in _SECTION_OF_KIND.items():
                cls = _TYPE_OF_KIND[kind]
                for item in data.get(section, []):
                    entity = cls.from_dict(item)
                    self._entities[kind][entity.id] = entity

            logger.info(
                "Loaded library from %s (%d chemicals, %d formulas)",
                self.data_path,
                len(self._entities[EntityKind.CHEMICAL]),
                len(self._entities[EntityKind.FORMULA]),
            )

        self._loaded = True

    def save(self) -> None:
        """Write all entities to the library file."""
        if self.data_path is None:
            return
        self._ensure_loaded()
        self.data_path.parent.mkdir(parents=True, exist_ok=True)

        data: dict = {
            "metadata": {
                "description": "Ffragrance library",
                "last_updated": datetime.now().isoformat(),
            },
        }
        for kind, section in _SECTION_OF_KIND.items():
            data[section] = [e.to_dict() for e in self._entities[kind].values()]

        with open(self.data_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def _ensure_loaded(self) -> None:
        """Ensure data is loaded."""
        if not self._loaded:
            self.load()

    def _persist(self) -> None:
        if self.autosave:
            self.save()

    # Generic access
    def get(self, kind: EntityKind, entity_id: str) -> Optional[Entity]:
        """Get an entity by kind and id."""
        self._ensure_loaded()
        return self._entities[kind].get(entity_id)

    def put(self, entity: Entity) -> Entity:
        """Insert or replace an entity."""
        self._ensure_loaded()
        kind = _KIND_OF_TYPE[type(entity)]
        if isinstance(entity, Formula):
            for line in entity.lines:
                line.formula_id = entity.id
        self._entities[kind][entity.id] = entity
        self._persist()
        return entity

    def delete(self, kind: EntityKind, entity_id: str) -> bool:
        """Delete an entity.

        Returns:
            True if deleted, False if not found.
        """
        self._ensure_loaded()
        if entity_id not in self._entities[kind]:
            return False
        del self._entities[kind][entity_id]
        self._persist()
        return True

    def query(
        self,
        kind: EntityKind,
        predicate: Optional[Callable[[Entity], bool]] = None,
    ) -> list:
        """List entities of a kind, optionally filtered."""
        self._ensure_loaded()
        entities = list(self._entities[kind].values())
        if predicate is None:
            return entities
        return [e for e in entities if predicate(e)]

    def count(self, kind: EntityKind) -> int:
        self._ensure_loaded()
        return len(self._entities[kind])

    def clear(self) -> None:
        """Remove everything."""
        self._ensure_loaded()
        for store in self._entities.values():
            store.clear()
        self._persist()

    # Lookups used by the engine
    def chemical_map(self) -> dict[str, Chemical]:
        self._ensure_loaded()
        return dict(self._entities[EntityKind.CHEMICAL])

    def category_map(self) -> dict[str, Category]:
        self._ensure_loaded()
        return dict(self._entities[EntityKind.CATEGORY])

    def tag_map(self) -> dict[str, Tag]:
        self._ensure_loaded()
        return dict(self._entities[EntityKind.TAG])

    # Reverse relations
    def chemicals_in_category(self, category_id: str) -> list[Chemical]:
        return self.query(EntityKind.CHEMICAL, lambda c: c.category_id == category_id)

    def chemicals_with_tag(self, tag_id: str) -> list[Chemical]:
        return self.query(EntityKind.CHEMICAL, lambda c: tag_id in c.tag_ids)

    def lines_using_chemical(self, chemical_id: str) -> list[tuple[Formula, FormulaLine]]:
        """All (formula, line) pairs whose line refers to the chemical."""
        return [
            (formula, line)
            for formula in self.query(EntityKind.FORMULA)
            for line in formula.lines
            if line.chemical_id == chemical_id
        ]


# Singleton repository instance
_repository: Optional[Repository] = None


def get_repository() -> Repository:
    """Get or create the default repository.

    Returns:
        The singleton repository instance.
    """
    global _repository
    if _repository is None:
        settings = get_settings()
        _repository = Repository(settings.library_path, autosave=settings.autosave)
    return _repository


def reset_repository() -> None:
    """Drop the singleton so the next call rebuilds it from settings."""
    global _repository
    _repository = None
