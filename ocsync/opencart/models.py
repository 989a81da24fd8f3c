# ocsync/opencart/models.py
# Read-only shapes of the OpenCart rows the sync consumes.
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class SourceProduct(BaseModel):
    product_id: int
    model: str = ""
    price: Decimal = Decimal("0")
    image: Optional[str] = None
    manufacturer_id: int = 0


class ProductDescription(BaseModel):
    description: str = ""
    meta_description: str = ""


class SourceOptionValue(BaseModel):
    name: str
    price: Decimal = Decimal("0")
    price_prefix: str = Field("+", description="'+' or '-' as stored in OpenCart")

    @property
    def delta(self) -> Decimal:
        """Signed price adjustment applied when this value is selected."""
        sign = Decimal("-1") if (self.price_prefix or "").strip() == "-" else Decimal("1")
        return sign * (self.price or Decimal("0"))


class SourceOption(BaseModel):
    product_option_id: int
    name: str
    values: List[SourceOptionValue] = Field(default_factory=list)
