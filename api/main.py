"""FastAPI application for the ffragrance inventory and formula API."""

import base64
import binascii
import logging
import time
from datetime import datetime
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from ffragrance import __version__
from ffragrance.config import get_settings
from ffragrance.data.repository import Repository, get_repository
from ffragrance.documents.formula_sheet import FormulaSheetRenderer
from ffragrance.errors import (
    DeleteBlockedByReference,
    EntityNotFound,
    FfragranceError,
)
from ffragrance.integrations.csv_exchange import CSVExchange
from ffragrance.models.formula import DiluentType
from ffragrance.models.inventory import Chemical, PyramidNote, Unit
from ffragrance.services.composition_engine import CompositionEngine
from ffragrance.services.formula_library import FormulaLibrary
from ffragrance.services.inventory_service import InventoryService


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Ffragrance API",
    description="Aroma chemical inventory and formula composition API",
    version=__version__,
)

sheet_renderer = FormulaSheetRenderer()


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    logger.info(
        f"{request.method} {request.url.path} - Status: {response.status_code} - {process_time:.3f}s"
    )
    return response


@app.exception_handler(FfragranceError)
async def handle_domain_error(request: Request, exc: FfragranceError):
    """Map rejected operations to HTTP errors with a user-facing reason."""
    if isinstance(exc, EntityNotFound):
        status_code = 404
    elif isinstance(exc, DeleteBlockedByReference):
        status_code = 409
    else:
        status_code = 400
    logger.info(f"Rejected {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


# Dependencies
def get_engine() -> CompositionEngine:
    return CompositionEngine(warning_ratio=settings.ifra_warning_ratio)


def get_inventory(repository: Repository = Depends(get_repository)) -> InventoryService:
    return InventoryService(repository)


def get_library(
    repository: Repository = Depends(get_repository),
    engine: CompositionEngine = Depends(get_engine),
) -> FormulaLibrary:
    return FormulaLibrary(repository, engine)


def get_exchange(
    repository: Repository = Depends(get_repository),
    engine: CompositionEngine = Depends(get_engine),
) -> CSVExchange:
    return CSVExchange(repository, engine)


# Request/Response Models
class CategoryInput(BaseModel):
    """Input model for a category."""
    name: str = Field(min_length=1)
    color_hex: Optional[str] = None


class TagInput(BaseModel):
    """Input model for a tag."""
    name: str = Field(min_length=1)
    red: float = Field(default=0.0, ge=0, le=1)
    green: float = Field(default=0.0, ge=0, le=1)
    blue: float = Field(default=1.0, ge=0, le=1)
    alpha: float = Field(default=1.0, ge=0, le=1)


class ChemicalInput(BaseModel):
    """Input model for a chemical."""
    name: str = Field(min_length=1)
    cas_number: str = ""
    ifra_safe_limit: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    notes: str = ""
    pyramid_note: str = "top"
    unit: str = "grams"
    quantity_grams: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    quantity_ml: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    dilution_percentage: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    structure_image: Optional[str] = None  # base64
    category_id: Optional[str] = None
    tag_ids: list[str] = []


class ChemicalUpdate(BaseModel):
    """Partial update of a chemical."""
    name: Optional[str] = Field(default=None, min_length=1)
    cas_number: Optional[str] = None
    ifra_safe_limit: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    notes: Optional[str] = None
    pyramid_note: Optional[str] = None
    unit: Optional[str] = None
    quantity_grams: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    quantity_ml: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    dilution_percentage: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    structure_image: Optional[str] = None
    category_id: Optional[str] = None


class FormulaInput(BaseModel):
    """Input model for a formula."""
    name: str = Field(min_length=1)
    smell_description: Optional[str] = None
    diluent_type: Optional[str] = None
    diluent_weight: float = Field(default=0.0, ge=0, allow_inf_nan=False)


class FormulaUpdate(BaseModel):
    """Partial update of a formula."""
    name: Optional[str] = Field(default=None, min_length=1)
    smell_description: Optional[str] = None
    diluent_type: Optional[str] = None
    diluent_weight: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)


class LineInput(BaseModel):
    """Input model for a formula line."""
    chemical_id: str
    amount_grams: float = Field(ge=0, allow_inf_nan=False)
    dilution_percentage: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)


class LineUpdate(BaseModel):
    """Partial update of a formula line."""
    amount_grams: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    dilution_percentage: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)


class ScaleRequest(BaseModel):
    """Request model for scaling a formula."""
    target_total_weight: float = Field(gt=0, allow_inf_nan=False)


class DuplicateRequest(BaseModel):
    name: Optional[str] = None


class ImportRequest(BaseModel):
    """Sectioned CSV text as produced by the export endpoint."""
    content: str


# Fields a partial update may omit but not clear
_REQUIRED_CHEMICAL_FIELDS = {"name", "cas_number", "notes", "pyramid_note", "unit"}
_REQUIRED_FORMULA_FIELDS = {"name", "diluent_weight"}


# Helper functions
def _drop_nulls(changes: dict, required: set[str]) -> dict:
    return {k: v for k, v in changes.items() if v is not None or k not in required}


def _parse_pyramid_note(value: str) -> PyramidNote:
    """Parse pyramid note string to PyramidNote enum."""
    try:
        return PyramidNote(value.lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid pyramid note: {value}")


def _parse_unit(value: str) -> Unit:
    """Parse unit string to Unit enum."""
    try:
        return Unit(value.lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid unit: {value}")


def _parse_diluent_type(value: Optional[str]) -> Optional[DiluentType]:
    """Parse diluent label; blank means no diluent."""
    if not value:
        return None
    diluent = DiluentType.parse(value)
    if diluent is None:
        raise HTTPException(status_code=400, detail=f"Invalid diluent type: {value}")
    return diluent


def _decode_image(value: Optional[str]) -> Optional[bytes]:
    if not value:
        return None
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="structure_image must be base64")


def _chemical_changes(update: ChemicalUpdate) -> dict:
    """Convert a partial chemical update to typed attribute changes."""
    changes = _drop_nulls(update.model_dump(exclude_unset=True), _REQUIRED_CHEMICAL_FIELDS)
    if "pyramid_note" in changes:
        changes["pyramid_note"] = _parse_pyramid_note(changes["pyramid_note"] or "")
    if "unit" in changes:
        changes["unit"] = _parse_unit(changes["unit"] or "")
    if "structure_image" in changes:
        changes["structure_image"] = _decode_image(changes["structure_image"])
    return changes


def _chemical_out(chemical: Chemical, in_use: bool = False) -> dict:
    data = chemical.to_dict()
    data["on_hand"] = chemical.on_hand
    data["in_use"] = in_use
    return data


# Endpoints
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Ffragrance API",
        "version": __version__,
        "description": "Aroma chemical inventory and formula composition API",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


# Categories
@app.get("/api/categories")
def list_categories(
    inventory: InventoryService = Depends(get_inventory),
    repository: Repository = Depends(get_repository),
):
    """List categories with their chemical counts."""
    return [
        {**c.to_dict(), "chemical_count": len(repository.chemicals_in_category(c.id))}
        for c in inventory.list_categories()
    ]


@app.post("/api/categories", status_code=201)
def create_category(data: CategoryInput, inventory: InventoryService = Depends(get_inventory)):
    return inventory.create_category(data.name, data.color_hex).to_dict()


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(category_id: str, inventory: InventoryService = Depends(get_inventory)):
    """Delete a category; refused with 409 while chemicals belong to it."""
    inventory.delete_category(category_id)


# Tags
@app.get("/api/tags")
def list_tags(inventory: InventoryService = Depends(get_inventory)):
    return [{**t.to_dict(), "color_hex": t.to_hex()} for t in inventory.list_tags()]


@app.post("/api/tags", status_code=201)
def create_tag(data: TagInput, inventory: InventoryService = Depends(get_inventory)):
    tag = inventory.create_tag(data.name, data.red, data.green, data.blue, data.alpha)
    return {**tag.to_dict(), "color_hex": tag.to_hex()}


@app.delete("/api/tags/{tag_id}", status_code=204)
def delete_tag(tag_id: str, inventory: InventoryService = Depends(get_inventory)):
    inventory.delete_tag(tag_id)


# Chemicals
@app.get("/api/chemicals")
def list_chemicals(q: str = "", inventory: InventoryService = Depends(get_inventory)):
    """List chemicals, optionally filtered by name, CAS, category or tag."""
    return [_chemical_out(c) for c in inventory.search(q)]


@app.get("/api/chemicals/by-pyramid")
def chemicals_by_pyramid(q: str = "", inventory: InventoryService = Depends(get_inventory)):
    """Chemicals grouped by pyramid note, top to base."""
    grouped = inventory.group_by_pyramid_note(inventory.search(q))
    return [
        {"pyramid_note": note.value, "chemicals": [_chemical_out(c) for c in chemicals]}
        for note, chemicals in grouped.items()
    ]


@app.post("/api/chemicals", status_code=201)
def create_chemical(data: ChemicalInput, inventory: InventoryService = Depends(get_inventory)):
    chemical = inventory.create_chemical(
        name=data.name,
        cas_number=data.cas_number,
        ifra_safe_limit=data.ifra_safe_limit,
        notes=data.notes,
        pyramid_note=_parse_pyramid_note(data.pyramid_note),
        unit=_parse_unit(data.unit),
        quantity_grams=data.quantity_grams,
        quantity_ml=data.quantity_ml,
        dilution_percentage=data.dilution_percentage,
        structure_image=_decode_image(data.structure_image),
        category_id=data.category_id,
        tag_ids=data.tag_ids,
    )
    return _chemical_out(chemical)


@app.get("/api/chemicals/{chemical_id}")
def get_chemical(
    chemical_id: str,
    inventory: InventoryService = Depends(get_inventory),
    repository: Repository = Depends(get_repository),
):
    chemical = inventory.get_chemical(chemical_id)
    return _chemical_out(chemical, in_use=bool(repository.lines_using_chemical(chemical_id)))


@app.patch("/api/chemicals/{chemical_id}")
def update_chemical(
    chemical_id: str,
    data: ChemicalUpdate,
    inventory: InventoryService = Depends(get_inventory),
):
    return _chemical_out(inventory.update_chemical(chemical_id, **_chemical_changes(data)))


@app.delete("/api/chemicals/{chemical_id}", status_code=204)
def delete_chemical(chemical_id: str, inventory: InventoryService = Depends(get_inventory)):
    """Delete a chemical; refused with 409 while a formula uses it."""
    inventory.delete_chemical(chemical_id)


@app.put("/api/chemicals/{chemical_id}/tags/{tag_id}")
def assign_tag(chemical_id: str, tag_id: str, inventory: InventoryService = Depends(get_inventory)):
    return _chemical_out(inventory.assign_tag(chemical_id, tag_id))


@app.delete("/api/chemicals/{chemical_id}/tags/{tag_id}")
def unassign_tag(chemical_id: str, tag_id: str, inventory: InventoryService = Depends(get_inventory)):
    return _chemical_out(inventory.unassign_tag(chemical_id, tag_id))


# Formulas
@app.get("/api/formulas")
def list_formulas(q: str = "", library: FormulaLibrary = Depends(get_library)):
    formulas = library.search(q) if q else library.list_all()
    return [
        {
            "id": f.id,
            "name": f.name,
            "smell_description": f.smell_description,
            "line_count": len(f.lines),
            "total_formula_weight": f.total_formula_weight,
        }
        for f in formulas
    ]


@app.post("/api/formulas", status_code=201)
def create_formula(data: FormulaInput, library: FormulaLibrary = Depends(get_library)):
    formula = library.create(
        name=data.name,
        smell_description=data.smell_description,
        diluent_type=_parse_diluent_type(data.diluent_type),
        diluent_weight=data.diluent_weight,
    )
    return library.summary(formula.id).to_dict()


@app.get("/api/formulas/{formula_id}")
def get_formula(formula_id: str, library: FormulaLibrary = Depends(get_library)):
    return library.summary(formula_id).to_dict()


@app.patch("/api/formulas/{formula_id}")
def update_formula(
    formula_id: str,
    data: FormulaUpdate,
    library: FormulaLibrary = Depends(get_library),
):
    changes = _drop_nulls(data.model_dump(exclude_unset=True), _REQUIRED_FORMULA_FIELDS)
    if "diluent_type" in changes:
        changes["diluent_type"] = _parse_diluent_type(changes["diluent_type"])
    library.update(formula_id, **changes)
    return library.summary(formula_id).to_dict()


@app.delete("/api/formulas/{formula_id}", status_code=204)
def delete_formula(formula_id: str, library: FormulaLibrary = Depends(get_library)):
    """Delete a formula and all of its lines."""
    library.get(formula_id)
    library.delete(formula_id)


@app.post("/api/formulas/{formula_id}/duplicate", status_code=201)
def duplicate_formula(
    formula_id: str,
    data: DuplicateRequest,
    library: FormulaLibrary = Depends(get_library),
):
    copy = library.duplicate(formula_id, data.name)
    return library.summary(copy.id).to_dict()


@app.post("/api/formulas/{formula_id}/lines", status_code=201)
def add_line(formula_id: str, data: LineInput, library: FormulaLibrary = Depends(get_library)):
    line = library.add_line(formula_id, data.chemical_id, data.amount_grams, data.dilution_percentage)
    return line.to_dict()


@app.get("/api/formulas/{formula_id}/lines/preview")
def preview_line(
    formula_id: str,
    chemical_id: str,
    amount_grams: float = Query(ge=0, allow_inf_nan=False),
    dilution_percentage: Optional[float] = Query(default=None, ge=0, allow_inf_nan=False),
    library: FormulaLibrary = Depends(get_library),
):
    """Final concentration a line would have once added; nothing is saved."""
    return library.preview_line(formula_id, chemical_id, amount_grams, dilution_percentage)


@app.patch("/api/formulas/{formula_id}/lines/{line_id}")
def update_line(
    formula_id: str,
    line_id: str,
    data: LineUpdate,
    library: FormulaLibrary = Depends(get_library),
):
    line = library.update_line(formula_id, line_id, data.amount_grams, data.dilution_percentage)
    return line.to_dict()


@app.delete("/api/formulas/{formula_id}/lines/{line_id}", status_code=204)
def remove_line(formula_id: str, line_id: str, library: FormulaLibrary = Depends(get_library)):
    """Remove a line; removing an absent line is a no-op."""
    library.remove_line(formula_id, line_id)


@app.get("/api/formulas/{formula_id}/metrics")
def formula_metrics(formula_id: str, library: FormulaLibrary = Depends(get_library)):
    """Per-line final concentrations and IFRA flags."""
    return [c.to_dict() for c in library.metrics(formula_id)]


@app.get("/api/formulas/{formula_id}/breakdown")
def formula_breakdown(formula_id: str, library: FormulaLibrary = Depends(get_library)):
    """Summed final concentration per category."""
    return [s.to_dict() for s in library.breakdown(formula_id)]


@app.post("/api/formulas/{formula_id}/scale")
def scale_formula(
    formula_id: str,
    data: ScaleRequest,
    library: FormulaLibrary = Depends(get_library),
):
    """Scale a formula to a new total weight."""
    library.scale(formula_id, data.target_total_weight)
    return library.summary(formula_id).to_dict()


@app.get("/api/formulas/{formula_id}/sheet", response_class=HTMLResponse)
def formula_sheet(formula_id: str, library: FormulaLibrary = Depends(get_library)):
    """Printable HTML formula sheet."""
    return sheet_renderer.render_html(library.summary(formula_id), library.breakdown(formula_id))


@app.get("/api/formulas/{formula_id}/sheet.pdf")
def formula_sheet_pdf(formula_id: str, library: FormulaLibrary = Depends(get_library)):
    """Formula sheet as a PDF download."""
    summary = library.summary(formula_id)
    breakdown = library.breakdown(formula_id)

    with NamedTemporaryFile(delete=False, suffix=".pdf") as tmp:
        output_path = Path(tmp.name)

    sheet_renderer.generate_pdf(summary, breakdown, output_path)

    return FileResponse(
        output_path,
        media_type="application/pdf",
        filename=f"Formula_Sheet_{summary.formula.name}_{datetime.now().strftime('%Y%m%d')}.pdf",
    )


# Import / export
@app.get("/api/export/csv")
def export_csv(exchange: CSVExchange = Depends(get_exchange)):
    """Export the whole library as sectioned CSV."""
    filename = f"Ffragrance_Export_{datetime.now().strftime('%Y%m%d')}.csv"
    return PlainTextResponse(
        exchange.export_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/import/csv")
def import_csv(data: ImportRequest, exchange: CSVExchange = Depends(get_exchange)):
    """Import sectioned CSV produced by the export endpoint."""
    return exchange.import_csv(data.content).to_dict()


# Reference data endpoints
@app.get("/api/reference/pyramid-notes")
async def get_pyramid_notes():
    """Get pyramid notes in display order."""
    return [{"value": n.value, "name": n.name} for n in PyramidNote]


@app.get("/api/reference/diluent-types")
async def get_diluent_types():
    """Get supported diluent types."""
    return [{"value": d.value, "name": d.name} for d in DiluentType]


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
