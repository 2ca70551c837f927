from __future__ import annotations

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, model_validator
from pydantic.alias_generators import to_camel

LOCATION_MAX = 200
PRODUCT_NAME_MAX = 500
SPECIFICATIONS_MAX = 2000
QUOTATION_TEXT_MAX = 50000
QUOTED_PRICE_MAX = 999_999_999


class CamelModel(BaseModel):
    """Base model serializing to the camelCase wire format used by the UI."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Dump with camelCase keys and without unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AnalyzeQuotationPayload(CamelModel):
    """Raw request body for /analyze-quotation, before the mode variant is chosen."""
    mode: Optional[Literal["manual", "quotation"]] = None
    location: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=LOCATION_MAX)]
    product_name: Optional[
        Annotated[str, StringConstraints(strip_whitespace=True, max_length=PRODUCT_NAME_MAX)]
    ] = None
    specifications: Optional[
        Annotated[str, StringConstraints(strip_whitespace=True, max_length=SPECIFICATIONS_MAX)]
    ] = None
    quoted_price: Optional[float] = Field(default=None, ge=0, le=QUOTED_PRICE_MAX)
    quotation_text: Optional[
        Annotated[str, StringConstraints(strip_whitespace=True, max_length=QUOTATION_TEXT_MAX)]
    ] = None


class ManualAnalysisRequest(CamelModel):
    """Structured product search for one product at one location."""
    mode: Literal["manual"] = "manual"
    location: str
    product_name: str
    specifications: str = ""
    quoted_price: Optional[float] = None


class QuotationAnalysisRequest(CamelModel):
    """Free-text quotation to be itemized and compared."""
    mode: Literal["quotation"] = "quotation"
    location: str
    quotation_text: str
    quoted_price: Optional[float] = None


AnalysisRequest = Annotated[
    Union[ManualAnalysisRequest, QuotationAnalysisRequest],
    Field(discriminator="mode"),
]


class PriceRange(CamelModel):
    min: float = Field(allow_inf_nan=False)
    max: float = Field(allow_inf_nan=False)

    @model_validator(mode="after")
    def _check_order(self) -> "PriceRange":
        if not self.min <= self.max:
            raise ValueError("min must not exceed max")
        return self


class QuotedItem(CamelModel):
    name: str
    specifications: str = ""
    quoted_price: float
    hsn_sac: Optional[str] = None


class MarketComparison(CamelModel):
    product_name: str
    location: str
    vendor_name: str
    price_range: PriceRange
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None


class AnalysisSummary(CamelModel):
    total_quoted_amount: float
    estimated_market_range: PriceRange
    recommendation: str


class QuotationAnalysis(CamelModel):
    """Decoded model reply: quoted items, vendor comparisons, and a summary."""
    quoted_items: List[QuotedItem]
    market_comparisons: List[MarketComparison]
    summary: AnalysisSummary


class UnparsedAnalysis(CamelModel):
    """Fallback carried when the model reply could not be decoded."""
    raw_content: str
    parse_error: Literal[True] = True


AnalysisResult = Union[QuotationAnalysis, UnparsedAnalysis]


class AnalyzeResponse(CamelModel):
    success: bool = True
    data: AnalysisResult


class PriceEntryCreate(CamelModel):
    """Manual price entry as submitted by the client."""
    location: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=LOCATION_MAX)]
    product_name: Annotated[
        str, StringConstraints(strip_whitespace=True, min_length=1, max_length=PRODUCT_NAME_MAX)
    ]
    specifications: Annotated[str, StringConstraints(strip_whitespace=True, max_length=SPECIFICATIONS_MAX)] = ""
    price: float = Field(ge=0, le=QUOTED_PRICE_MAX)
    is_quoted: Optional[bool] = None
    vendor_name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None


class PriceEntry(PriceEntryCreate):
    """Stored price entry with identity and creation time."""
    id: str
    created_at: datetime


class FavoritesStats(CamelModel):
    count: int
    lowest_price: float
    highest_price: float
    average_price: float


class SessionSnapshot(CamelModel):
    """Immutable copy of one research session's state."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    session_id: str
    entries: List[PriceEntry] = Field(default_factory=list)
    analysis: Optional[AnalysisResult] = None
    analysis_location: Optional[str] = None
    favorites: List[MarketComparison] = Field(default_factory=list)
    updated_at: float
