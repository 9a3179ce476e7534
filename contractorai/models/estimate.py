"""
contractorai/models/estimate.py
Estimate working set: the line items an estimating conversation builds up.
"""

from enum import Enum
from typing import List
import uuid

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class LineItemType(str, Enum):
    MATERIAL = "material"
    LABOR = "labor"
    PERMIT = "permit"
    FEE = "fee"
    OTHER = "other"


class EstimateLineItem(BaseModel):
    """One priced line; serialized camelCase for the client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    quantity: float
    unit: str
    unit_price: float
    total_price: float
    type: LineItemType = LineItemType.MATERIAL
    is_custom: bool = False


class Estimate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    items: List[EstimateLineItem] = Field(default_factory=list)

    @property
    def total(self) -> float:
        return round(sum(item.total_price for item in self.items), 2)

    def add(self, *items: EstimateLineItem) -> None:
        self.items.extend(items)

    def clear(self) -> None:
        self.items = []
