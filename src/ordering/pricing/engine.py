"""Pricing engine for customizable furniture.

Pure computation: a quote depends only on the cost model and the buyer's
inputs. The same function prices the storefront calculator and re-checks
client-submitted prices before an order line is persisted.

Plank model (both plank types are stocked in 10 ft lengths):

    frame/legs, 3x3x10 planks:   linear ft = 4 * height + 2 * (length + width)
    tabletop,  2x12x10 planks:   boards across = ceil(width / 1 ft)
                                 linear ft = boards across * length
    planks = ceil(linear ft / 10)

    material cost = frame planks * plank_3x3x10_cost
                  + tabletop planks * plank_2x12x10_cost
    labor cost    = labor_cost_per_day * labor_days
    base cost     = material cost + labor cost + overhead_cost
    final price   = base cost * (1 + profit_margin)
"""

import math
from dataclasses import asdict, dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from protean.exceptions import ValidationError

from ordering.errors import InvalidDimensions, UnknownMaterial

PLANK_LENGTH_FT = 10.0
TABLETOP_BOARD_WIDTH_FT = 1.0
PRICE_TOLERANCE = 0.01

LENGTH_RANGE = (2.0, 10.0)
WIDTH_RANGE = (2.0, 6.0)
HEIGHT_RANGE = (2.5, 5.0)


@dataclass(frozen=True)
class MaterialCost:
    name: str
    plank_3x3x10_cost: float
    plank_2x12x10_cost: float


@dataclass(frozen=True)
class CostModel:
    """Per-item pricing inputs, copied from the item's customization options."""

    labor_cost_per_day: float
    profit_margin: float
    overhead_cost: float
    estimated_days: int
    materials: tuple[MaterialCost, ...] = field(default_factory=tuple)

    def material(self, name: str, field_name: str) -> MaterialCost:
        for material in self.materials:
            if material.name == name:
                return material
        raise UnknownMaterial(field_name, name)


@dataclass(frozen=True)
class PriceQuote:
    length: float
    width: float
    height: float
    labor_days: int
    frame_material: str
    tabletop_material: str
    frame_planks: int
    tabletop_planks: int
    frame_material_cost: float
    tabletop_material_cost: float
    material_cost: float
    labor_cost: float
    overhead_cost: float
    base_cost: float
    profit: float
    final_selling_price: float

    def to_dict(self) -> dict:
        return asdict(self)


def money(value: float) -> float:
    """Round half-up to two decimals."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def prices_match(submitted: float, expected: float, tolerance: float = PRICE_TOLERANCE) -> bool:
    # Compare on rounded cents so float noise never decides a rejection
    return abs(money(submitted) - money(expected)) <= tolerance + 1e-9


def _planks_for(linear_feet: float) -> int:
    return math.ceil(round(linear_feet / PLANK_LENGTH_FT, 6))


def frame_planks(length: float, width: float, height: float) -> int:
    return _planks_for(4 * height + 2 * (length + width))


def tabletop_planks(length: float, width: float) -> int:
    boards_across = math.ceil(round(width / TABLETOP_BOARD_WIDTH_FT, 6))
    return _planks_for(boards_across * length)


def validate_dimensions(length: float, width: float, height: float) -> None:
    for name, value, (minimum, maximum) in (
        ("length", length, LENGTH_RANGE),
        ("width", width, WIDTH_RANGE),
        ("height", height, HEIGHT_RANGE),
    ):
        if value is None:
            raise ValidationError({name: [f"{name.capitalize()} is required"]})
        if not minimum <= value <= maximum:
            raise InvalidDimensions(name, float(value), minimum, maximum)


def _resolve_labor_days(labor_days, model: CostModel) -> int:
    days = model.estimated_days if labor_days is None else labor_days
    if isinstance(days, float) and days.is_integer():
        days = int(days)
    if isinstance(days, bool) or not isinstance(days, int) or days < 1:
        raise ValidationError({"labor_days": ["Labor days must be a positive whole number"]})
    return days


def calculate_price(
    model: CostModel,
    length: float,
    width: float,
    height: float,
    frame_material: str,
    tabletop_material: str,
    labor_days: int | None = None,
) -> PriceQuote:
    """Quote a custom build. Raises on invalid input, never touches state."""
    validate_dimensions(length, width, height)
    days = _resolve_labor_days(labor_days, model)
    frame = model.material(frame_material, "frame_material")
    tabletop = model.material(tabletop_material, "tabletop_material")

    n_frame = frame_planks(length, width, height)
    n_tabletop = tabletop_planks(length, width)

    frame_cost = money(n_frame * frame.plank_3x3x10_cost)
    tabletop_cost = money(n_tabletop * tabletop.plank_2x12x10_cost)
    material_cost = money(frame_cost + tabletop_cost)
    labor_cost = money(model.labor_cost_per_day * days)
    overhead = money(model.overhead_cost)
    base_cost = money(material_cost + labor_cost + overhead)
    final_price = money(base_cost * (1 + model.profit_margin))

    return PriceQuote(
        length=float(length),
        width=float(width),
        height=float(height),
        labor_days=days,
        frame_material=frame_material,
        tabletop_material=tabletop_material,
        frame_planks=n_frame,
        tabletop_planks=n_tabletop,
        frame_material_cost=frame_cost,
        tabletop_material_cost=tabletop_cost,
        material_cost=material_cost,
        labor_cost=labor_cost,
        overhead_cost=overhead,
        base_cost=base_cost,
        profit=money(final_price - base_cost),
        final_selling_price=final_price,
    )
