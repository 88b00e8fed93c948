"""Tests for the inventory service."""

import pytest
from ffragrance.data.repository import EntityKind, Repository
from ffragrance.errors import DeleteBlockedByReference, EntityNotFound
from ffragrance.models.colors import DEFAULT_COLOR_HEX
from ffragrance.models.inventory import PyramidNote
from ffragrance.services.formula_library import FormulaLibrary
from ffragrance.services.inventory_service import InventoryService


@pytest.fixture
def repository():
    return Repository()


@pytest.fixture
def inventory(repository):
    """Create inventory service over an in-memory repository."""
    return InventoryService(repository)


@pytest.fixture
def library(repository):
    return FormulaLibrary(repository)


class TestCategories:
    """Test category management."""

    def test_create_category(self, inventory):
        """Test creating a category with a color."""
        category = inventory.create_category("Florals", "#FF66CC")
        assert inventory.get_category(category.id).color_hex == "#FF66CC"

    def test_invalid_color_falls_back(self, inventory):
        """Test a malformed hex color becomes the default grey."""
        category = inventory.create_category("Greens", "not-a-color")
        assert category.color_hex == DEFAULT_COLOR_HEX

    def test_list_sorted_by_name(self, inventory):
        """Test categories are listed alphabetically."""
        for name in ("Woods", "amber", "Citrus"):
            inventory.create_category(name)
        assert [c.name for c in inventory.list_categories()] == ["amber", "Citrus", "Woods"]

    def test_get_missing_category(self, inventory):
        """Test an unknown category id raises."""
        with pytest.raises(EntityNotFound):
            inventory.get_category("missing")

    def test_delete_empty_category(self, inventory):
        """Test an unused category can be deleted."""
        category = inventory.create_category("Spices")
        inventory.delete_category(category.id)
        assert inventory.list_categories() == []

    def test_delete_category_with_chemicals_blocked(self, inventory):
        """Test a category holding chemicals cannot be deleted."""
        category = inventory.create_category("Citrus")
        inventory.create_chemical("Bergamot", category_id=category.id)

        with pytest.raises(DeleteBlockedByReference) as exc_info:
            inventory.delete_category(category.id)

        assert exc_info.value.referenced_by == ["Bergamot"]
        assert "still has ingredients" in str(exc_info.value)
        assert inventory.get_category(category.id) is category


class TestTags:
    """Test tag management."""

    def test_create_tag_color(self, inventory):
        """Test tags carry an RGBA color."""
        tag = inventory.create_tag("Fresh", red=1.0, green=0.0, blue=0.0)
        assert tag.to_hex() == "#FF0000"

    def test_delete_tag_detaches_chemicals(self, inventory):
        """Test deleting a tag removes it from every chemical."""
        tag = inventory.create_tag("Sweet")
        chemical = inventory.create_chemical("Vanillin", tag_ids=[tag.id])

        inventory.delete_tag(tag.id)

        assert chemical.tag_ids == []
        assert inventory.list_tags() == []

    def test_assign_and_unassign(self, inventory):
        """Test tags are assigned once and can be removed."""
        tag = inventory.create_tag("Woody")
        chemical = inventory.create_chemical("Iso E Super")

        inventory.assign_tag(chemical.id, tag.id)
        inventory.assign_tag(chemical.id, tag.id)
        assert chemical.tag_ids == [tag.id]

        inventory.unassign_tag(chemical.id, tag.id)
        assert chemical.tag_ids == []

    def test_assign_unknown_tag(self, inventory):
        """Test assigning a missing tag raises."""
        chemical = inventory.create_chemical("Hedione")
        with pytest.raises(EntityNotFound):
            inventory.assign_tag(chemical.id, "missing")


class TestChemicals:
    """Test chemical management."""

    def test_create_with_unknown_category(self, inventory, repository):
        """Test a dangling category id is rejected before storing."""
        with pytest.raises(EntityNotFound):
            inventory.create_chemical("Linalool", category_id="missing")
        assert repository.count(EntityKind.CHEMICAL) == 0

    def test_update_chemical(self, inventory):
        """Test editing chemical attributes."""
        chemical = inventory.create_chemical("Coumarin")
        inventory.update_chemical(chemical.id, ifra_safe_limit=1.6, pyramid_note=PyramidNote.BASE)
        assert chemical.ifra_safe_limit == 1.6
        assert chemical.pyramid_note == PyramidNote.BASE

    def test_update_unknown_field(self, inventory):
        """Test unknown attributes are refused."""
        chemical = inventory.create_chemical("Coumarin")
        with pytest.raises(ValueError):
            inventory.update_chemical(chemical.id, colour="blue")

    def test_delete_unused_chemical(self, inventory):
        """Test a chemical outside any formula can be deleted."""
        chemical = inventory.create_chemical("Galaxolide")
        inventory.delete_chemical(chemical.id)
        with pytest.raises(EntityNotFound):
            inventory.get_chemical(chemical.id)

    def test_delete_chemical_in_formula_blocked(self, inventory, library):
        """Test a chemical used by a formula line cannot be deleted."""
        chemical = inventory.create_chemical("Ambroxan")
        for name in ("Zeta", "Alpha"):
            formula = library.create(name)
            library.add_line(formula.id, chemical.id, 1.0)

        with pytest.raises(DeleteBlockedByReference) as exc_info:
            inventory.delete_chemical(chemical.id)

        assert exc_info.value.referenced_by == ["Alpha", "Zeta"]
        assert "used in one or more formulas" in str(exc_info.value)
        assert inventory.get_chemical(chemical.id) is chemical

    def test_delete_after_line_removed(self, inventory, library):
        """Test the block lifts once the referencing line is removed."""
        chemical = inventory.create_chemical("Ambroxan")
        formula = library.create("Amber")
        line = library.add_line(formula.id, chemical.id, 1.0)

        library.remove_line(formula.id, line.id)
        inventory.delete_chemical(chemical.id)

        assert inventory.list_chemicals() == []

    def test_delete_after_formula_removed(self, inventory, library):
        """Test the block lifts once the formula is gone."""
        chemical = inventory.create_chemical("Ambroxan")
        formula = library.create("Amber")
        library.add_line(formula.id, chemical.id, 1.0)

        library.delete(formula.id)
        inventory.delete_chemical(chemical.id)

        assert inventory.list_chemicals() == []


class TestSearch:
    """Test inventory search and grouping."""

    @pytest.fixture
    def stocked(self, inventory):
        citrus = inventory.create_category("Citrus")
        fresh = inventory.create_tag("Fresh")
        inventory.create_chemical("Linalool", cas_number="78-70-6", pyramid_note=PyramidNote.TOPMID)
        inventory.create_chemical("Bergamot Oil", category_id=citrus.id)
        inventory.create_chemical("Hedione", pyramid_note=PyramidNote.MID, tag_ids=[fresh.id])
        inventory.create_chemical("Vanillin", pyramid_note=PyramidNote.BASE)
        return inventory

    def test_search_by_name(self, stocked):
        """Test case-insensitive name search."""
        assert [c.name for c in stocked.search("vanil")] == ["Vanillin"]

    def test_search_by_cas(self, stocked):
        """Test searching by CAS number."""
        assert [c.name for c in stocked.search("78-70")] == ["Linalool"]

    def test_search_by_category_and_tag(self, stocked):
        """Test category and tag names are searchable."""
        assert [c.name for c in stocked.search("citrus")] == ["Bergamot Oil"]
        assert [c.name for c in stocked.search("FRESH")] == ["Hedione"]

    def test_blank_search_returns_all(self, stocked):
        """Test an empty query lists every chemical."""
        assert len(stocked.search("  ")) == 4

    def test_group_by_pyramid_note(self, stocked):
        """Test tiers are ordered top to base and empty tiers are omitted."""
        grouped = stocked.group_by_pyramid_note()
        assert list(grouped) == [PyramidNote.TOP, PyramidNote.TOPMID, PyramidNote.MID, PyramidNote.BASE]
        assert [c.name for c in grouped[PyramidNote.TOP]] == ["Bergamot Oil"]
