"""Inventory service for chemicals, categories and tags."""

import logging
from typing import Optional

from ..data.repository import EntityKind, Repository
from ..errors import DeleteBlockedByReference, EntityNotFound
from ..models.colors import DEFAULT_COLOR_HEX, is_valid_hex
from ..models.inventory import (
    Category,
    Chemical,
    PyramidNote,
    PYRAMID_NOTE_ORDER,
    Tag,
    Unit,
)

logger = logging.getLogger(__name__)

# Chemical attributes that update_chemical may change
_EDITABLE_CHEMICAL_FIELDS = {
    "name",
    "cas_number",
    "ifra_safe_limit",
    "notes",
    "pyramid_note",
    "unit",
    "quantity_grams",
    "quantity_ml",
    "dilution_percentage",
    "structure_image",
    "category_id",
}


class InventoryService:
    """Service for managing the chemical inventory."""

    def __init__(self, repository: Repository):
        """Initialize the service.

        Args:
            repository: Backing store.
        """
        self.repository = repository

    # Categories
    def create_category(self, name: str, color_hex: Optional[str] = None) -> Category:
        """Create a category. Malformed colors fall back to grey."""
        if not color_hex or not is_valid_hex(color_hex):
            color_hex = DEFAULT_COLOR_HEX
        category = Category(name=name, color_hex=color_hex)
        self.repository.put(category)
        return category

    def get_category(self, category_id: str) -> Category:
        category = self.repository.get(EntityKind.CATEGORY, category_id)
        if category is None:
            raise EntityNotFound("category", category_id)
        return category

    def list_categories(self) -> list[Category]:
        return sorted(self.repository.query(EntityKind.CATEGORY), key=lambda c: c.name.lower())

    def delete_category(self, category_id: str) -> None:
        """Delete a category that no chemical belongs to.

        Raises:
            EntityNotFound: If the category does not exist.
            DeleteBlockedByReference: If chemicals still belong to it.
        """
        category = self.get_category(category_id)
        members = self.repository.chemicals_in_category(category_id)
        if members:
            logger.warning("Refusing to delete category %s: %d chemicals", category.name, len(members))
            raise DeleteBlockedByReference("category", category.name, [c.name for c in members])
        self.repository.delete(EntityKind.CATEGORY, category_id)

    # Tags
    def create_tag(
        self,
        name: str,
        red: float = 0.0,
        green: float = 0.0,
        blue: float = 1.0,
        alpha: float = 1.0,
    ) -> Tag:
        tag = Tag(name=name, red=red, green=green, blue=blue, alpha=alpha)
        self.repository.put(tag)
        return tag

    def get_tag(self, tag_id: str) -> Tag:
        tag = self.repository.get(EntityKind.TAG, tag_id)
        if tag is None:
            raise EntityNotFound("tag", tag_id)
        return tag

    def list_tags(self) -> list[Tag]:
        return sorted(self.repository.query(EntityKind.TAG), key=lambda t: t.name.lower())

    def delete_tag(self, tag_id: str) -> None:
        """Delete a tag, detaching it from every chemical first."""
        self.get_tag(tag_id)
        for chemical in self.repository.chemicals_with_tag(tag_id):
            chemical.remove_tag(tag_id)
            self.repository.put(chemical)
        self.repository.delete(EntityKind.TAG, tag_id)

    # Chemicals
    def create_chemical(
        self,
        name: str,
        cas_number: str = "",
        ifra_safe_limit: Optional[float] = None,
        notes: str = "",
        pyramid_note: PyramidNote = PyramidNote.TOP,
        unit: Unit = Unit.GRAMS,
        quantity_grams: Optional[float] = None,
        quantity_ml: Optional[float] = None,
        dilution_percentage: Optional[float] = None,
        structure_image: Optional[bytes] = None,
        category_id: Optional[str] = None,
        tag_ids: Optional[list[str]] = None,
    ) -> Chemical:
        """Create a chemical.

        Raises:
            EntityNotFound: If category_id or a tag id does not exist.
        """
        if category_id is not None:
            self.get_category(category_id)
        for tag_id in tag_ids or []:
            self.get_tag(tag_id)

        chemical = Chemical(
            name=name,
            cas_number=cas_number,
            ifra_safe_limit=ifra_safe_limit,
            notes=notes,
            pyramid_note=pyramid_note,
            unit=unit,
            quantity_grams=quantity_grams,
            quantity_ml=quantity_ml,
            dilution_percentage=dilution_percentage,
            structure_image=structure_image,
            category_id=category_id,
        )
        for tag_id in tag_ids or []:
            chemical.add_tag(tag_id)
        self.repository.put(chemical)
        return chemical

    def get_chemical(self, chemical_id: str) -> Chemical:
        chemical = self.repository.get(EntityKind.CHEMICAL, chemical_id)
        if chemical is None:
            raise EntityNotFound("chemical", chemical_id)
        return chemical

    def update_chemical(self, chemical_id: str, **changes) -> Chemical:
        """Update chemical attributes.

        Args:
            chemical_id: Chemical to update.
            **changes: Attribute values keyed by field name.

        Returns:
            The updated chemical.
        """
        chemical = self.get_chemical(chemical_id)
        unknown = set(changes) - _EDITABLE_CHEMICAL_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if changes.get("category_id") is not None:
            self.get_category(changes["category_id"])

        for name, value in changes.items():
            setattr(chemical, name, value)
        self.repository.put(chemical)
        return chemical

    def list_chemicals(self) -> list[Chemical]:
        return sorted(self.repository.query(EntityKind.CHEMICAL), key=lambda c: c.name.lower())

    def delete_chemical(self, chemical_id: str) -> None:
        """Delete a chemical that no formula uses.

        Raises:
            EntityNotFound: If the chemical does not exist.
            DeleteBlockedByReference: If a formula line refers to it.
        """
        chemical = self.get_chemical(chemical_id)
        usages = self.repository.lines_using_chemical(chemical_id)
        if usages:
            formula_names = sorted({formula.name for formula, _ in usages})
            logger.warning("Refusing to delete chemical %s: used in %s", chemical.name, formula_names)
            raise DeleteBlockedByReference("chemical", chemical.name, formula_names)
        self.repository.delete(EntityKind.CHEMICAL, chemical_id)

    def assign_tag(self, chemical_id: str, tag_id: str) -> Chemical:
        chemical = self.get_chemical(chemical_id)
        self.get_tag(tag_id)
        chemical.add_tag(tag_id)
        self.repository.put(chemical)
        return chemical

    def unassign_tag(self, chemical_id: str, tag_id: str) -> Chemical:
        chemical = self.get_chemical(chemical_id)
        chemical.remove_tag(tag_id)
        self.repository.put(chemical)
        return chemical

    # Queries
    def search(self, query: str) -> list[Chemical]:
        """Search chemicals by name, CAS number, category name or tag name.

        Args:
            query: Case-insensitive substring. Blank returns everything.

        Returns:
            Matching chemicals sorted by name.
        """
        chemicals = self.list_chemicals()
        query_lower = query.strip().lower()
        if not query_lower:
            return chemicals

        categories = self.repository.category_map()
        tags = self.repository.tag_map()
        results = []

        for chemical in chemicals:
            category = categories.get(chemical.category_id) if chemical.category_id else None
            tag_names = [tags[t].name for t in chemical.tag_ids if t in tags]

            searchable = [chemical.name, chemical.cas_number]
            if category:
                searchable.append(category.name)
            searchable.extend(tag_names)

            if any(query_lower in value.lower() for value in searchable):
                results.append(chemical)

        return results

    def group_by_pyramid_note(
        self,
        chemicals: Optional[list[Chemical]] = None,
    ) -> dict[PyramidNote, list[Chemical]]:
        """Group chemicals by pyramid note, top to base, skipping empty tiers."""
        if chemicals is None:
            chemicals = self.list_chemicals()
        grouped: dict[PyramidNote, list[Chemical]] = {}
        for note in PYRAMID_NOTE_ORDER:
            members = [c for c in chemicals if c.pyramid_note == note]
            if members:
                grouped[note] = members
        return grouped
