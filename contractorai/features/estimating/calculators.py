"""
Material calculators for the estimating assistant.

Each calculator returns the line items to append plus a plain-text
breakdown the model can read back to the user.
"""

import math
from typing import List, Tuple

from contractorai.models.estimate import EstimateLineItem, LineItemType


# Square feet covered by one 20ft deck board
DECK_SQFT_PER_BOARD = 25
DECK_BOARD_PRICES = {
    "trex-transcend": 136.0,
    "trex-select": 90.0,
    "5/4-deck": 28.0,
    "2x6-pt": 23.0,
}
DEFAULT_DECK_BOARD_PRICE = 28.0

DEFAULT_CONCRETE_PRICE_PER_YARD = 185.0
MESH_SQFT_PER_SHEET = 100
MESH_SHEET_PRICE = 12.98

# Bag size (lb) -> (yield in cubic feet, price per bag)
CONCRETE_BAGS = {
    60: (0.45, 6.98),
    80: (0.60, 5.89),
}

ROOFING_PRICES_PER_SQUARE = {
    "asphalt": 350.0,
    "architectural": 475.0,
    "metal": 850.0,
    "tile": 625.0,
}
ROOFING_WASTE_FACTOR = 1.1
UNDERLAYMENT_PRICE_PER_SQUARE = 26.0

CalculatorResult = Tuple[List[EstimateLineItem], str]


def _money(value: float) -> str:
    return f"${value:,.2f}"


def deck_materials(length: float, width: float, decking_type: str) -> CalculatorResult:
    area = length * width
    boards = math.ceil(area / DECK_SQFT_PER_BOARD)
    price = DECK_BOARD_PRICES.get(decking_type, DEFAULT_DECK_BOARD_PRICE)
    total = round(boards * price, 2)
    item = EstimateLineItem(
        name=f"{decking_type} Decking (20ft)",
        quantity=boards,
        unit="boards",
        unit_price=price,
        total_price=total,
        type=LineItemType.MATERIAL,
    )
    summary = (
        f"Deck materials calculated for {length:g}ft x {width:g}ft ({area:g} sq ft):\n"
        f"- {boards} boards of {decking_type} @ {_money(price)}/board = {_money(total)}"
    )
    return [item], summary


def concrete(
    length: float,
    width: float,
    depth_inches: float,
    price_per_yard: float = DEFAULT_CONCRETE_PRICE_PER_YARD,
    include_mesh: bool = False,
) -> CalculatorResult:
    cubic_yards = (length * width * (depth_inches / 12)) / 27
    # Round up to the next hundredth of a yard
    yards = math.ceil(round(cubic_yards * 100, 6)) / 100
    cost = round(yards * price_per_yard, 2)
    items = [
        EstimateLineItem(
            name="Concrete",
            quantity=yards,
            unit="cubic yards",
            unit_price=price_per_yard,
            total_price=cost,
        )
    ]
    lines = [
        f"Concrete calculated for {length:g}ft x {width:g}ft x {depth_inches:g}in:",
        f"- {yards:g} cubic yards @ {_money(price_per_yard)}/yard = {_money(cost)}",
    ]

    if include_mesh:
        sheets = math.ceil((length * width) / MESH_SQFT_PER_SHEET)
        mesh_cost = round(sheets * MESH_SHEET_PRICE, 2)
        items.append(
            EstimateLineItem(
                name="6x6 Wire Mesh",
                quantity=sheets,
                unit="sheets",
                unit_price=MESH_SHEET_PRICE,
                total_price=mesh_cost,
            )
        )
        lines.append(f"- {sheets} sheets of wire mesh @ {_money(MESH_SHEET_PRICE)}/sheet = {_money(mesh_cost)}")

    return items, "\n".join(lines)


def sonotubes(
    number_of_tubes: int,
    diameter_inches: float,
    depth_inches: float,
    bag_size: int = 80,
) -> CalculatorResult:
    radius_feet = (diameter_inches / 2) / 12
    depth_feet = depth_inches / 12
    volume_per_tube = math.pi * radius_feet ** 2 * depth_feet
    total_cubic_feet = volume_per_tube * number_of_tubes
    bag_yield, bag_price = CONCRETE_BAGS.get(bag_size, CONCRETE_BAGS[80])
    bags = math.ceil(total_cubic_feet / bag_yield)
    cost = round(bags * bag_price, 2)
    item = EstimateLineItem(
        name=f"{bag_size}lb Concrete Bags (Sonotubes)",
        quantity=bags,
        unit="bags",
        unit_price=bag_price,
        total_price=cost,
    )
    summary = "\n".join([
        f'Sonotube concrete calculated for {number_of_tubes} tubes @ {diameter_inches:g}" diameter x {depth_inches:g}" deep:',
        f"- Volume per tube: {volume_per_tube:.2f} cu ft",
        f"- Total volume: {total_cubic_feet:.2f} cu ft ({total_cubic_feet / 27:.2f} cu yd)",
        f"- {bag_size}lb bags needed: {bags} bags (yields {bag_yield} cu ft each)",
        f"- Cost: {bags} bags @ {_money(bag_price)} = {_money(cost)}",
    ])
    return [item], summary


def roofing_materials(roof_area_sqft: float, material_type: str = "asphalt") -> CalculatorResult:
    squares = round((roof_area_sqft / 100) * ROOFING_WASTE_FACTOR, 2)
    price = ROOFING_PRICES_PER_SQUARE.get(material_type, ROOFING_PRICES_PER_SQUARE["asphalt"])
    material_name = material_type.capitalize()
    shingle_cost = round(squares * price, 2)
    underlayment_cost = round(squares * UNDERLAYMENT_PRICE_PER_SQUARE, 2)
    items = [
        EstimateLineItem(
            name=f"{material_name} Shingles",
            quantity=squares,
            unit="squares",
            unit_price=price,
            total_price=shingle_cost,
        ),
        EstimateLineItem(
            name="Underlayment",
            quantity=squares,
            unit="squares",
            unit_price=UNDERLAYMENT_PRICE_PER_SQUARE,
            total_price=underlayment_cost,
        ),
    ]
    summary = "\n".join([
        f"Roofing materials calculated for {roof_area_sqft:g} sq ft roof ({squares:g} squares with 10% waste factor):",
        f"- {material_name} Shingles: {squares:g} squares @ {_money(price)}/square = {_money(shingle_cost)}",
        f"- Underlayment: {squares:g} squares @ {_money(UNDERLAYMENT_PRICE_PER_SQUARE)}/square = {_money(underlayment_cost)}",
        f"Total: {_money(shingle_cost + underlayment_cost)}",
    ])
    return items, summary


def custom_line_item(name: str, quantity: float, unit: str, unit_price: float, item_type: str) -> CalculatorResult:
    total = round(quantity * unit_price, 2)
    item = EstimateLineItem(
        name=name,
        quantity=quantity,
        unit=unit,
        unit_price=unit_price,
        total_price=total,
        type=LineItemType(item_type),
        is_custom=True,
    )
    return [item], f"Added line item: {name} - {quantity:g} {unit} @ {_money(unit_price)} = {_money(total)}"
