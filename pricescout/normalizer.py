"""Request validation and prompt shaping for price analysis.

Role:
    Turns a decoded JSON body into a tagged AnalysisRequest (manual search or
    quotation) and renders the system/user prompt pair sent to the AI gateway.
    Validation collects every violated constraint before anything leaves the
    process; prompt building clips every field to its maximum length again so
    directly constructed requests stay bounded too.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .models import (
    LOCATION_MAX,
    PRODUCT_NAME_MAX,
    QUOTATION_TEXT_MAX,
    SPECIFICATIONS_MAX,
    AnalysisRequest,
    AnalyzeQuotationPayload,
    ManualAnalysisRequest,
    QuotationAnalysisRequest,
)
from .prompt_loader import render_prompt
from .utils import format_amount

logger = logging.getLogger("pricescout.normalizer")

DEFAULT_MODE = "quotation"
PROMPT_FILES = {
    "manual": "manual_system.txt",
    "quotation": "quotation_system.txt",
}
REQUIRED_BY_MODE = {
    "manual": ("productName", "product_name", "Product name is required for manual search"),
    "quotation": ("quotationText", "quotation_text", "Quotation text is required for quotation analysis"),
}


@dataclass(frozen=True)
class PromptPair:
    """System instructions plus the single user message for one gateway call."""
    system: str
    user: str

    def as_messages(self) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


def validate_request(payload: object) -> AnalysisRequest:
    """Purpose: Validate a raw JSON body and build the mode-specific request.
    Inputs/Outputs: Input is the decoded JSON value; output is a ManualAnalysisRequest
        or QuotationAnalysisRequest.
    Side Effects / State: Logs rejected field names at info level.
    Dependencies: Uses AnalyzeQuotationPayload for field bounds and REQUIRED_BY_MODE
        for the mode-dependent required field.
    Failure Modes: Raises ValidationError listing every violation (bounds, types,
        unknown mode, missing mode field) in one go.
    If Removed: Invalid input reaches the gateway and burns AI credits.
    Testing Notes: Send several bad fields at once and check all appear in details.
    """
    if not isinstance(payload, dict):
        raise ValidationError([{"field": "body", "message": "Request body must be a JSON object"}])

    details: List[Dict[str, str]] = []
    parsed: Optional[AnalyzeQuotationPayload] = None
    try:
        parsed = AnalyzeQuotationPayload.model_validate(payload)
    except PydanticValidationError as exc:
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"]) or "body"
            details.append({"field": field, "message": error["msg"]})

    # The mode-required check runs on the raw body so it is reported alongside bound errors.
    mode = payload.get("mode") or DEFAULT_MODE
    if isinstance(mode, str) and mode in REQUIRED_BY_MODE:
        alias, name, message = REQUIRED_BY_MODE[mode]
        value = payload.get(alias, payload.get(name))
        already_reported = any(item["field"] == alias for item in details)
        if not already_reported and not (isinstance(value, str) and value.strip()):
            details.append({"field": alias, "message": message})

    if details or parsed is None:
        logger.info("validation rejected fields=%s", ",".join(item["field"] for item in details))
        raise ValidationError(details)

    if mode == "manual":
        return ManualAnalysisRequest(
            location=parsed.location,
            product_name=parsed.product_name or "",
            specifications=parsed.specifications or "",
            quoted_price=parsed.quoted_price,
        )
    return QuotationAnalysisRequest(
        location=parsed.location,
        quotation_text=parsed.quotation_text or "",
        quoted_price=parsed.quoted_price,
    )


def build_prompts(request: AnalysisRequest, prompts_dir: Path) -> PromptPair:
    """Purpose: Render the system prompt and user message for a validated request.
    Inputs/Outputs: Inputs are the request variant and the prompt template directory;
        output is a PromptPair.
    Side Effects / State: Reads prompt templates (cached by prompt_loader).
    Dependencies: Uses render_prompt and the *_MAX bounds from models.
    Failure Modes: Missing template files raise FileNotFoundError.
    If Removed: The gateway call has no instructions or user content.
    Testing Notes: A 500-char location must appear clipped to 200 chars in the user message.
    """
    # Clip every caller field before it is embedded.
    location = _clip(request.location, LOCATION_MAX)
    system = render_prompt(
        prompts_dir / PROMPT_FILES[request.mode],
        quoted_price_instruction=_quoted_price_instruction(request),
    )

    if isinstance(request, ManualAnalysisRequest):
        product_name = _clip(request.product_name, PRODUCT_NAME_MAX)
        specifications = _clip(request.specifications, SPECIFICATIONS_MAX) or "Not specified"
        user = (
            f"Find current market prices for this product in location: {location}\n\n"
            f"Product: {product_name}\n"
            f"Specifications: {specifications}"
        )
    else:
        quotation_text = _clip(request.quotation_text, QUOTATION_TEXT_MAX)
        user = f"Analyze this quotation for location: {location}\n\nQuotation Content:\n{quotation_text}"
    return PromptPair(system=system, user=user)


def _quoted_price_instruction(request: AnalysisRequest) -> str:
    price = request.quoted_price
    if isinstance(request, ManualAnalysisRequest):
        if price is None or price <= 0:
            return "The user has no quoted price. Set quotedPrice and totalQuotedAmount to 0."
        amount = format_amount(price)
        return (
            f"The user was quoted ₹{amount} for this product. Use {amount} as the item's quotedPrice "
            f"and as totalQuotedAmount in the summary, and say in the recommendation whether ₹{amount} "
            "is below, at, or above the market rate."
        )
    if price is None or price <= 0:
        return "Set totalQuotedAmount to the sum of the quoted item prices."
    amount = format_amount(price)
    return (
        f"The user states the quotation total is ₹{amount}. Use {amount} as totalQuotedAmount "
        "in the summary and compare it against the estimated market range."
    )


def _clip(value: Optional[str], limit: int) -> str:
    return (value or "").strip()[:limit]
