"""Formula composition engine.

Derives per-line concentrations and IFRA flags from a formula, groups them
by category for breakdown charts, and performs the few controlled
mutations on a formula (adding, editing, removing lines and scaling).
Nothing here persists; callers save the formula afterwards.
"""

import logging
import math
from typing import Mapping, Optional

from ..errors import InvalidScaleTarget, NonFiniteInput
from ..models.colors import DEFAULT_COLOR_HEX
from ..models.formula import (
    CategoryShare,
    DilutedComponent,
    Formula,
    FormulaLine,
    UNCATEGORIZED_NAME,
)
from ..models.inventory import Category, Chemical

logger = logging.getLogger(__name__)


def _require_finite(field: str, value: float) -> None:
    if not math.isfinite(value):
        raise NonFiniteInput(field, value)


def final_concentration(actual_mass: float, total_weight: float) -> float:
    """Percentage of actual_mass in total_weight; 0 for a non-positive total."""
    if total_weight <= 0:
        return 0.0
    return actual_mass / total_weight * 100


class CompositionEngine:
    """Stateless calculations over a formula and its lines."""

    def __init__(self, warning_ratio: float = 0.9):
        """Initialize the engine.

        Args:
            warning_ratio: Fraction of an IFRA limit above which a line is
                reported as approaching the limit.
        """
        self.warning_ratio = warning_ratio

    def compute_line_metrics(
        self,
        formula: Formula,
        chemicals: Mapping[str, Chemical],
    ) -> list[DilutedComponent]:
        """Compute actual mass, final concentration and IFRA flags per line.

        Lines without a resolvable chemical are incomplete and are left out
        of the result.

        Args:
            formula: Formula to evaluate. Not modified.
            chemicals: Lookup of chemicals by id.

        Returns:
            One DilutedComponent per complete line, in line order.
        """
        total_weight = formula.total_formula_weight
        components: list[DilutedComponent] = []

        for line in formula.lines:
            chemical = chemicals.get(line.chemical_id) if line.chemical_id else None
            if chemical is None:
                logger.debug("Skipping line %s of formula %s: no chemical", line.id, formula.id)
                continue

            actual_mass = line.amount_grams * (line.dilution_percentage / 100.0)
            concentration = final_concentration(actual_mass, total_weight)

            limit = chemical.ifra_safe_limit
            is_over_limit = limit is not None and concentration > limit
            is_near_limit = (
                limit is not None
                and not is_over_limit
                and concentration > limit * self.warning_ratio
            )

            components.append(
                DilutedComponent(
                    line_id=line.id,
                    formula_id=formula.id,
                    chemical=chemical,
                    original_amount=line.amount_grams,
                    dilution_percentage=line.dilution_percentage,
                    actual_mass=actual_mass,
                    final_concentration=concentration,
                    is_over_limit=is_over_limit,
                    is_near_limit=is_near_limit,
                )
            )

        return components

    def aggregate_by_category(
        self,
        components: list[DilutedComponent],
        categories: Mapping[str, Category],
    ) -> list[CategoryShare]:
        """Sum final concentrations per category.

        Grouping is by category id, so two categories sharing a name stay
        separate. Chemicals without a (resolvable) category fall into the
        Uncategorized bucket.

        Args:
            components: Output of compute_line_metrics.
            categories: Lookup of categories by id.

        Returns:
            Shares in order of first appearance.
        """
        shares: dict[Optional[str], CategoryShare] = {}

        for component in components:
            category_id = component.chemical.category_id
            category = categories.get(category_id) if category_id else None
            key = category.id if category else None

            share = shares.get(key)
            if share is None:
                if category:
                    share = CategoryShare(
                        category_id=category.id,
                        name=category.name,
                        color_hex=category.color_hex,
                    )
                else:
                    share = CategoryShare(
                        category_id=None,
                        name=UNCATEGORIZED_NAME,
                        color_hex=DEFAULT_COLOR_HEX,
                    )
                shares[key] = share

            share.total_concentration += component.final_concentration

        return list(shares.values())

    def scale(self, formula: Formula, target_total_weight: float) -> float:
        """Scale every line amount and the diluent to a new total weight.

        Dilution percentages are left alone. The formula is only modified
        once every check has passed.

        Args:
            formula: Formula to scale in place.
            target_total_weight: Desired total formula weight in grams.

        Returns:
            The factor applied.

        Raises:
            NonFiniteInput: If the target, the factor or a scaled amount is
                NaN or infinite.
            InvalidScaleTarget: If the current weight or the target is not positive.
        """
        _require_finite("target_total_weight", target_total_weight)
        current_weight = formula.total_formula_weight
        if current_weight <= 0 or target_total_weight <= 0:
            raise InvalidScaleTarget(current_weight, target_total_weight)

        factor = target_total_weight / current_weight
        _require_finite("scale factor", factor)
        amounts = [line.amount_grams * factor for line in formula.lines]
        diluent_weight = formula.diluent_weight * factor
        for amount in amounts + [diluent_weight]:
            _require_finite("scaled amount", amount)

        for line, amount in zip(formula.lines, amounts):
            line.amount_grams = amount
        formula.diluent_weight = diluent_weight

        logger.info(
            "Scaled formula %s from %.3f g to %.3f g (factor %.6f)",
            formula.id, current_weight, target_total_weight, factor,
        )
        return factor

    def add_line(
        self,
        formula: Formula,
        chemical: Chemical,
        amount_grams: float,
        dilution_percentage: Optional[float] = None,
    ) -> FormulaLine:
        """Append a new line for a chemical.

        Zero amounts are allowed as placeholders and dilutions above 100%
        are kept as given.

        Args:
            formula: Formula to append to.
            chemical: Chemical the line refers to.
            amount_grams: Weighed amount of the line's material.
            dilution_percentage: % of the amount that is pure chemical.
                Defaults to the chemical's own dilution, else 100.

        Returns:
            The new line.

        Raises:
            NonFiniteInput: If amount or dilution is NaN or infinite.
        """
        if dilution_percentage is None:
            dilution_percentage = (
                chemical.dilution_percentage
                if chemical.dilution_percentage is not None
                else 100.0
            )
        _require_finite("amount_grams", amount_grams)
        _require_finite("dilution_percentage", dilution_percentage)

        line = FormulaLine(
            chemical_id=chemical.id,
            amount_grams=amount_grams,
            dilution_percentage=dilution_percentage,
            formula_id=formula.id,
        )
        formula.lines.append(line)
        return line

    def update_line(
        self,
        formula: Formula,
        line_id: str,
        amount_grams: Optional[float] = None,
        dilution_percentage: Optional[float] = None,
    ) -> Optional[FormulaLine]:
        """Change a line's amount and/or dilution.

        Returns:
            The updated line, or None if the formula has no such line.

        Raises:
            NonFiniteInput: If a given value is NaN or infinite.
        """
        if amount_grams is not None:
            _require_finite("amount_grams", amount_grams)
        if dilution_percentage is not None:
            _require_finite("dilution_percentage", dilution_percentage)

        line = formula.get_line(line_id)
        if line is None:
            return None
        if amount_grams is not None:
            line.amount_grams = amount_grams
        if dilution_percentage is not None:
            line.dilution_percentage = dilution_percentage
        return line

    def remove_line(self, formula: Formula, line_id: str) -> bool:
        """Remove a line by id.

        Returns:
            True if removed, False if not found.
        """
        for index, line in enumerate(formula.lines):
            if line.id == line_id:
                del formula.lines[index]
                return True
        return False

    def preview_concentration(
        self,
        formula: Formula,
        amount_grams: float,
        dilution_percentage: float = 100.0,
    ) -> float:
        """Final concentration a prospective line would have once added."""
        _require_finite("amount_grams", amount_grams)
        _require_finite("dilution_percentage", dilution_percentage)
        prospective_total = formula.total_formula_weight + amount_grams
        return final_concentration(amount_grams * (dilution_percentage / 100.0), prospective_total)
