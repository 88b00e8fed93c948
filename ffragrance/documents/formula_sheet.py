"""Formula sheet rendering with Jinja2 (HTML) and WeasyPrint (PDF)."""

from datetime import datetime
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader

from ..models.formula import CategoryShare
from ..services.formula_library import FormulaSummary


# Template directory
TEMPLATE_DIR = Path(__file__).parent / "templates"


class FormulaSheetRenderer:
    """Render a formula with its components and category breakdown."""

    def __init__(
        self,
        template_dir: Optional[Path] = None,
        author: Optional[str] = None,
    ):
        """Initialize the renderer.

        Args:
            template_dir: Directory containing Jinja2 templates.
            author: Name printed in the sheet footer.
        """
        self.template_dir = template_dir or TEMPLATE_DIR
        self.author = author

        # Set up Jinja2 environment
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=True,
        )

        # Add custom filters
        self.env.filters["format_percent"] = lambda x: f"{x:.2f}%" if x is not None else "N/A"
        self.env.filters["format_grams"] = lambda x: f"{x:.3f} g" if x is not None else "N/A"
        self.env.filters["format_date"] = lambda x: x.strftime("%B %d, %Y") if x else ""

    def render_html(
        self,
        summary: FormulaSummary,
        breakdown: list[CategoryShare],
    ) -> str:
        """Render the formula sheet to HTML.

        Args:
            summary: Formula with its computed components.
            breakdown: Category shares for the composition table.

        Returns:
            Rendered HTML string.
        """
        template = self.env.get_template("formula_sheet.html")
        return template.render(
            formula=summary.formula,
            summary=summary,
            breakdown=breakdown,
            author=self.author,
            generated_date=datetime.now(),
        )

    def generate_pdf(
        self,
        summary: FormulaSummary,
        breakdown: list[CategoryShare],
        output_path: Path,
    ) -> Path:
        """Render the formula sheet to a PDF file.

        Requires the ``pdf`` extra (WeasyPrint and its system libraries).

        Returns:
            Path to generated PDF.
        """
        from weasyprint import CSS, HTML

        stylesheets = []
        css_path = self.template_dir / "styles.css"
        if css_path.exists():
            stylesheets.append(CSS(filename=str(css_path)))

        html = HTML(string=self.render_html(summary, breakdown))
        html.write_pdf(output_path, stylesheets=stylesheets)
        return output_path
