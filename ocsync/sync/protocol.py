# ocsync/sync/protocol.py
# ---------------------------------------------------------
# Wire shapes of the step call and the client-held cursor.
# The server keeps no progress between steps: the cursor
# travels in every request and comes back in every response.
# ---------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


@dataclass(frozen=True)
class SyncCursor:
    offset: int = 0            # rank of the product among products with options
    variation_offset: int = 0  # first combination index of the next chunk

    def next_chunk(self, variation_offset: int) -> "SyncCursor":
        return SyncCursor(self.offset, variation_offset)

    def next_product(self) -> "SyncCursor":
        return SyncCursor(self.offset + 1, 0)


class StepState(str, Enum):
    NO_MORE_PRODUCTS = "no_more_products"
    PRODUCT_HAS_NO_OPTIONS = "product_has_no_options"
    PRODUCT_NOT_FOUND = "product_not_found"
    VARIATIONS_IN_PROGRESS = "variations_in_progress"
    PRODUCT_COMPLETE = "product_complete"
    ERROR = "error"


@dataclass(frozen=True)
class StepResult:
    state: StepState
    message: str
    cursor: SyncCursor                 # where the next step starts
    has_more_variations: bool = False
    has_more_products: bool = False
    product_id: Optional[int] = None   # OpenCart id handled by this step
    total_combinations: int = 0

    @property
    def ok(self) -> bool:
        return self.state is not StepState.ERROR


def _clamp_int(v: Any) -> int:
    """max(0, int(v)) with garbage treated as 0."""
    try:
        return max(0, int(v))
    except (TypeError, ValueError):
        try:
            return max(0, int(float(v)))
        except (TypeError, ValueError):
            return 0


class StepRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    offset: int = 0
    variation_offset: int = Field(
        0, validation_alias=AliasChoices("variation_offset", "variationOffset")
    )

    @field_validator("offset", "variation_offset", mode="before")
    @classmethod
    def _non_negative(cls, v):
        return _clamp_int(v)

    @property
    def cursor(self) -> SyncCursor:
        return SyncCursor(self.offset, self.variation_offset)


class StepResponseData(BaseModel):
    message: str
    has_more_variations: bool
    variation_offset: int
    offset: int
    has_more_products: bool
    state: StepState


def success_response(result: StepResult) -> Dict[str, Any]:
    data = StepResponseData(
        message=result.message,
        has_more_variations=result.has_more_variations,
        variation_offset=result.cursor.variation_offset,
        offset=result.cursor.offset,
        has_more_products=result.has_more_products,
        state=result.state,
    )
    return {"success": True, "data": data.model_dump(mode="json")}


def failure_response(message: str, error: str) -> Dict[str, Any]:
    return {"success": False, "data": {"message": message, "error": error}}
