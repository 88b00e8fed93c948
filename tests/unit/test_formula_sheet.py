"""Tests for formula sheet rendering."""

import pytest
from ffragrance.data.repository import Repository
from ffragrance.documents.formula_sheet import FormulaSheetRenderer
from ffragrance.services.formula_library import FormulaLibrary
from ffragrance.services.inventory_service import InventoryService


@pytest.fixture
def library():
    repository = Repository()
    inventory = InventoryService(repository)
    library = FormulaLibrary(repository)

    citrus = inventory.create_category("Citrus", "#FFCC00")
    limonene = inventory.create_chemical("d-Limonene", ifra_safe_limit=1.0, category_id=citrus.id)
    formula = library.create("Lemon <Zest>", diluent_weight=95.0)
    library.add_line(formula.id, limonene.id, 5.0)
    return library


@pytest.fixture
def renderer():
    """Create renderer with a footer author."""
    return FormulaSheetRenderer(author="A. Perfumer")


class TestFormulaSheetRenderer:
    """Test cases for HTML formula sheets."""

    def test_render_html(self, renderer, library):
        """Test the sheet lists components and the category breakdown."""
        formula = library.get_by_name("Lemon <Zest>")
        html = renderer.render_html(library.summary(formula.id), library.breakdown(formula.id))

        assert "Components" in html
        assert "d-Limonene" in html
        assert "5.00%" in html
        assert "Composition by Category" in html
        assert "Citrus" in html
        assert "exceed their IFRA limit" in html
        assert "Prepared by A. Perfumer" in html

    def test_names_are_escaped(self, renderer, library):
        """Test user text is HTML-escaped."""
        formula = library.get_by_name("Lemon <Zest>")
        html = renderer.render_html(library.summary(formula.id), [])
        assert "Lemon &lt;Zest&gt;" in html
        assert "<Zest>" not in html

    def test_empty_formula(self, renderer, library):
        """Test a formula without lines renders a placeholder."""
        formula = library.create("Blank")
        html = renderer.render_html(library.summary(formula.id), library.breakdown(formula.id))
        assert "No ingredients added" in html
        assert "Composition by Category" not in html
