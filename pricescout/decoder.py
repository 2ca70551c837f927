from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from .models import AnalysisResult, QuotationAnalysis, UnparsedAnalysis
from .utils import safe_json_loads

logger = logging.getLogger("pricescout.decoder")


def decode_analysis(content: Optional[str]) -> AnalysisResult:
    """Purpose: Turn the model's reply text into a typed analysis or a raw fallback.
    Inputs/Outputs: Input is the completion text; output is a QuotationAnalysis when a
        JSON object (```json fenced or bare braces) matches the expected shape, else
        UnparsedAnalysis carrying the original text.
    Side Effects / State: None apart from a warning log line on fallback.
    Dependencies: Uses safe_json_loads and the pydantic QuotationAnalysis model for the
        structural check (required fields, numeric types, min <= max).
    Failure Modes: Never raises; every failure becomes UnparsedAnalysis.
    If Removed: Replies cannot be rendered as comparison cards.
    Testing Notes: Feed empty text, prose, malformed JSON, and fenced JSON.
    """
    text = content if isinstance(content, str) else ("" if content is None else str(content))
    parsed = safe_json_loads(text)
    if parsed is None:
        logger.warning("reply has no decodable JSON object length=%d", len(text))
        return UnparsedAnalysis(raw_content=text)
    try:
        return QuotationAnalysis.model_validate(parsed)
    except PydanticValidationError as exc:
        logger.warning("reply JSON does not match analysis shape errors=%d", exc.error_count())
        return UnparsedAnalysis(raw_content=text)
