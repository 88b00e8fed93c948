"""Sectioned CSV export and import of the whole library.

The file is a sequence of blocks, each introduced by a marker row such as
``--- CHEMICALS ---`` followed by a header row and data rows. Blocks are
separated by a blank line.
"""

import csv
import io
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Optional

from ..data.repository import EntityKind, Repository
from ..models.colors import is_valid_hex, random_hex
from ..models.formula import DiluentType, Formula, FormulaLine
from ..models.inventory import Category, Chemical, PyramidNote, Tag, Unit
from ..services.composition_engine import CompositionEngine

logger = logging.getLogger(__name__)


CATEGORIES = "CATEGORIES"
TAGS = "TAGS"
CHEMICALS = "CHEMICALS"
CHEMICAL_TAGS = "CHEMICAL_TAGS"
FORMULAS = "FORMULAS"
FORMULA_LINES = "FORMULA_LINES"

SECTION_HEADERS = {
    CATEGORIES: ["id", "name", "color_hex"],
    TAGS: ["id", "name", "red", "green", "blue", "alpha"],
    CHEMICALS: [
        "id", "name", "cas_number", "ifra_limit", "notes", "pyramid_note", "unit",
        "quantity_grams", "quantity_ml", "dilution_percentage", "category_id",
    ],
    CHEMICAL_TAGS: ["chemical_id", "tag_id"],
    FORMULAS: ["id", "name", "smell_description", "diluent_type", "diluent_weight", "total_weight"],
    FORMULA_LINES: [
        "id", "formula_id", "chemical_id", "amount_grams", "dilution_percentage",
        "final_concentration",
    ],
}

# Sections in the order they are written and must be applied
SECTION_ORDER = [CATEGORIES, TAGS, CHEMICALS, CHEMICAL_TAGS, FORMULAS, FORMULA_LINES]

_MARKER = re.compile(r"^---\s*([A-Z_]+)\s*---$")


def _format_number(value: Optional[float]) -> str:
    return "" if value is None else str(value)


def _by_name(entity) -> str:
    return entity.name.lower()


def _parse_number(value: str) -> Optional[float]:
    """Parse a float; blank, malformed and non-finite values give None."""
    value = value.strip()
    if not value:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


@dataclass
class ImportSummary:
    """Counts of imported rows per section."""
    imported: dict[str, int] = field(default_factory=lambda: {s: 0 for s in SECTION_ORDER})
    skipped: dict[str, int] = field(default_factory=lambda: {s: 0 for s in SECTION_ORDER})

    @property
    def total_imported(self) -> int:
        return sum(self.imported.values())

    @property
    def total_skipped(self) -> int:
        return sum(self.skipped.values())

    def to_dict(self) -> dict:
        return {
            "imported": {k.lower(): v for k, v in self.imported.items()},
            "skipped": {k.lower(): v for k, v in self.skipped.items()},
            "total_imported": self.total_imported,
            "total_skipped": self.total_skipped,
        }


class CSVExchange:
    """Export a repository to sectioned CSV text and import it back."""

    def __init__(self, repository: Repository, engine: Optional[CompositionEngine] = None):
        """Initialize the adapter.

        Args:
            repository: Store to read from and write into.
            engine: Used to derive final concentrations for the lines block.
        """
        self.repository = repository
        self.engine = engine or CompositionEngine()

    # Export
    def export_csv(self) -> str:
        """Serialize every entity to sectioned CSV text."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")

        categories = sorted(self.repository.query(EntityKind.CATEGORY), key=_by_name)
        tags = sorted(self.repository.query(EntityKind.TAG), key=_by_name)
        chemicals = sorted(self.repository.query(EntityKind.CHEMICAL), key=_by_name)
        formulas = sorted(self.repository.query(EntityKind.FORMULA), key=_by_name)
        chemical_map = self.repository.chemical_map()

        rows: dict[str, list[list[str]]] = {
            CATEGORIES: [[c.id, c.name, c.color_hex] for c in categories],
            TAGS: [
                [t.id, t.name, str(t.red), str(t.green), str(t.blue), str(t.alpha)]
                for t in tags
            ],
            CHEMICALS: [
                [
                    c.id,
                    c.name,
                    c.cas_number,
                    _format_number(c.ifra_safe_limit),
                    c.notes,
                    c.pyramid_note.value,
                    c.unit.value,
                    _format_number(c.quantity_grams),
                    _format_number(c.quantity_ml),
                    _format_number(c.dilution_percentage),
                    c.category_id or "",
                ]
                for c in chemicals
            ],
            CHEMICAL_TAGS: [[c.id, tag_id] for c in chemicals for tag_id in c.tag_ids],
            FORMULAS: [
                [
                    f.id,
                    f.name,
                    f.smell_description or "",
                    f.diluent_type.value if f.diluent_type else "",
                    str(f.diluent_weight),
                    str(f.total_formula_weight),
                ]
                for f in formulas
            ],
            FORMULA_LINES: [
                [
                    component.line_id,
                    formula.id,
                    component.chemical.id,
                    str(component.original_amount),
                    str(component.dilution_percentage),
                    str(component.final_concentration),
                ]
                for formula in formulas
                for component in self.engine.compute_line_metrics(formula, chemical_map)
            ],
        }

        for index, section in enumerate(SECTION_ORDER):
            if index:
                writer.writerow([])
            writer.writerow([f"--- {section} ---"])
            writer.writerow(SECTION_HEADERS[section])
            writer.writerows(rows[section])

        logger.info(
            "Exported %d chemicals and %d formulas", len(chemicals), len(formulas)
        )
        return buffer.getvalue()

    # Import
    def parse_sections(self, text: str) -> dict[str, list[list[str]]]:
        """Split sectioned CSV text into data rows per section.

        Header rows are dropped; unknown sections are ignored.
        """
        sections: dict[str, list[list[str]]] = {s: [] for s in SECTION_ORDER}
        current: Optional[str] = None
        expect_header = False

        for row in csv.reader(io.StringIO(text)):
            if not row or all(not cell.strip() for cell in row):
                continue
            if len(row) == 1:
                marker = _MARKER.match(row[0].strip())
                if marker:
                    current = marker.group(1) if marker.group(1) in sections else None
                    if current is None:
                        logger.warning("Ignoring unknown section %s", marker.group(1))
                    expect_header = True
                    continue
            if current is None:
                continue
            if expect_header:
                expect_header = False
                continue
            sections[current].append(row)

        return sections

    def import_csv(self, text: str) -> ImportSummary:
        """Import sectioned CSV text into the repository.

        Ids from the file are kept, so importing the same export twice
        overwrites rather than duplicates. References to entities that are
        neither in the file nor already stored are dropped.

        Args:
            text: Output of export_csv (or a compatible file).

        Returns:
            Counts of imported and skipped rows per section.
        """
        sections = self.parse_sections(text)
        summary = ImportSummary()

        autosave = self.repository.autosave
        self.repository.autosave = False
        try:
            self._import_categories(sections[CATEGORIES], summary)
            self._import_tags(sections[TAGS], summary)
            self._import_chemicals(sections[CHEMICALS], summary)
            self._import_chemical_tags(sections[CHEMICAL_TAGS], summary)
            self._import_formulas(sections[FORMULAS], summary)
            self._import_formula_lines(sections[FORMULA_LINES], summary)
        finally:
            self.repository.autosave = autosave

        if autosave:
            self.repository.save()

        logger.info(
            "Imported %d rows (%d skipped)", summary.total_imported, summary.total_skipped
        )
        return summary

    def _skip(self, section: str, row: list[str], summary: ImportSummary) -> None:
        logger.warning("Skipping %s row with %d fields", section.lower(), len(row))
        summary.skipped[section] += 1

    def _has_columns(self, section: str, row: list[str], summary: ImportSummary) -> bool:
        # Trailing computed columns (total_weight, final_concentration) may be absent
        required = len(SECTION_HEADERS[section])
        if section in (FORMULAS, FORMULA_LINES):
            required -= 1
        if len(row) < required or not row[0].strip():
            self._skip(section, row, summary)
            return False
        return True

    def _import_categories(self, rows: list[list[str]], summary: ImportSummary) -> None:
        for row in rows:
            if not self._has_columns(CATEGORIES, row, summary):
                continue
            color_hex = row[2].strip()
            self.repository.put(
                Category(
                    id=row[0].strip(),
                    name=row[1],
                    color_hex=color_hex if is_valid_hex(color_hex) else random_hex(),
                )
            )
            summary.imported[CATEGORIES] += 1

    def _import_tags(self, rows: list[list[str]], summary: ImportSummary) -> None:
        for row in rows:
            if not self._has_columns(TAGS, row, summary):
                continue
            red, green, blue, alpha = (_parse_number(v) for v in row[2:6])
            self.repository.put(
                Tag(
                    id=row[0].strip(),
                    name=row[1],
                    red=red if red is not None else 0.0,
                    green=green if green is not None else 0.0,
                    blue=blue if blue is not None else 1.0,
                    alpha=alpha if alpha is not None else 1.0,
                )
            )
            summary.imported[TAGS] += 1

    def _import_chemicals(self, rows: list[list[str]], summary: ImportSummary) -> None:
        categories = self.repository.category_map()
        for row in rows:
            if not self._has_columns(CHEMICALS, row, summary):
                continue
            existing = self.repository.get(EntityKind.CHEMICAL, row[0].strip())
            category_id = row[10].strip() or None
            if category_id and category_id not in categories:
                logger.warning("Chemical %s refers to unknown category %s", row[1], category_id)
                category_id = None

            self.repository.put(
                Chemical(
                    id=row[0].strip(),
                    name=row[1] or "Unknown",
                    cas_number=row[2],
                    ifra_safe_limit=_parse_number(row[3]),
                    notes=row[4],
                    pyramid_note=PyramidNote.parse(row[5]),
                    unit=Unit.parse(row[6]),
                    quantity_grams=_parse_number(row[7]),
                    quantity_ml=_parse_number(row[8]),
                    dilution_percentage=_parse_number(row[9]),
                    category_id=category_id,
                    # Tags and the image are not part of this row
                    tag_ids=list(existing.tag_ids) if existing else [],
                    structure_image=existing.structure_image if existing else None,
                )
            )
            summary.imported[CHEMICALS] += 1

    def _import_chemical_tags(self, rows: list[list[str]], summary: ImportSummary) -> None:
        for row in rows:
            if not self._has_columns(CHEMICAL_TAGS, row, summary):
                continue
            chemical = self.repository.get(EntityKind.CHEMICAL, row[0].strip())
            tag = self.repository.get(EntityKind.TAG, row[1].strip())
            if chemical is None or tag is None:
                self._skip(CHEMICAL_TAGS, row, summary)
                continue
            chemical.add_tag(tag.id)
            self.repository.put(chemical)
            summary.imported[CHEMICAL_TAGS] += 1

    def _import_formulas(self, rows: list[list[str]], summary: ImportSummary) -> None:
        for row in rows:
            if not self._has_columns(FORMULAS, row, summary):
                continue
            diluent_weight = _parse_number(row[4])
            existing = self.repository.get(EntityKind.FORMULA, row[0].strip())
            self.repository.put(
                Formula(
                    id=row[0].strip(),
                    name=row[1],
                    smell_description=row[2] or None,
                    diluent_type=DiluentType.parse(row[3]),
                    diluent_weight=diluent_weight if diluent_weight is not None else 0.0,
                    lines=existing.lines if existing else [],
                )
            )
            summary.imported[FORMULAS] += 1

    def _import_formula_lines(self, rows: list[list[str]], summary: ImportSummary) -> None:
        for row in rows:
            if not self._has_columns(FORMULA_LINES, row, summary):
                continue
            formula = self.repository.get(EntityKind.FORMULA, row[1].strip())
            chemical = self.repository.get(EntityKind.CHEMICAL, row[2].strip())
            if formula is None or chemical is None:
                self._skip(FORMULA_LINES, row, summary)
                continue

            amount = _parse_number(row[3])
            dilution = _parse_number(row[4])
            line = FormulaLine(
                id=row[0].strip(),
                formula_id=formula.id,
                chemical_id=chemical.id,
                amount_grams=amount if amount is not None else 0.0,
                dilution_percentage=dilution if dilution is not None else 100.0,
            )
            formula.lines = [l for l in formula.lines if l.id != line.id]
            formula.lines.append(line)
            self.repository.put(formula)
            summary.imported[FORMULA_LINES] += 1
