from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterator, Optional

import httpx
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from .analyzer import QuotationAnalyzer
from .auth import AuthVerifier
from .comparison import (
    analysis_to_csv,
    entries_to_csv,
    export_filename,
    favorites_stats,
    filter_comparisons,
    filter_entries,
    price_position,
)
from .config import Settings, load_settings
from .errors import DuplicateFavorite, InvalidJson, NotFound, PriceScoutError, ValidationError
from .models import AnalyzeResponse, MarketComparison, PriceEntryCreate, QuotationAnalysis
from .session_store import ResearchSessionStore

BASE_DIR = Path(__file__).resolve().parent

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("pricescout").setLevel(log_level)
logger = logging.getLogger("pricescout.api")

ENV_PATH = BASE_DIR.parent / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, x-session-id",
    "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
}

app = FastAPI(title="PriceScout Analysis API")
session_store = ResearchSessionStore(max_sessions=load_settings().max_sessions)


def get_settings() -> Settings:
    """Re-read configuration on every request so key rotation needs no restart."""
    return load_settings()


def get_http_client(settings: Settings = Depends(get_settings)) -> Iterator[httpx.Client]:
    """Yield one outbound HTTP client per request and close it afterwards."""
    with httpx.Client(timeout=settings.http_timeout) as client:
        yield client


@app.middleware("http")
async def cors_middleware(request: Request, call_next):
    """Purpose: Answer preflight requests and stamp CORS headers on every response.
    Inputs/Outputs: Input is the incoming request; output is the response.
    Side Effects / State: None.
    Dependencies: CORS_HEADERS.
    Failure Modes: None; OPTIONS never reaches a route.
    If Removed: Browsers block calls from the web UI.
    Testing Notes: OPTIONS /analyze-quotation returns 204 with Allow-Origin "*".
    """
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(PriceScoutError)
async def handle_price_scout_error(request: Request, exc: PriceScoutError) -> JSONResponse:
    """Map taxonomy errors to their fixed public body; internal detail stays in the log."""
    if exc.status_code >= 500:
        logger.error("path=%s code=%s detail=%s", request.url.path, exc.code, exc)
    else:
        logger.info("path=%s code=%s detail=%s", request.url.path, exc.code, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report FastAPI body and query validation failures as VALIDATION_ERROR details."""
    # Drop the body/query/path prefix so field names match the wire aliases.
    details = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part not in ("body", "query", "path")) or "body",
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return await handle_price_scout_error(request, ValidationError(details))


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """Log anything outside the error taxonomy and answer with the generic 500 body."""
    logger.exception("path=%s unexpected error", request.url.path)
    content = PriceScoutError().to_payload()
    return JSONResponse(status_code=500, content=content, headers=CORS_HEADERS)


def _parse_json_body(raw: bytes) -> object:
    """Decode the raw request body, raising InvalidJson for empty or malformed input."""
    if not raw.strip():
        raise InvalidJson("empty request body")
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise InvalidJson(f"malformed JSON: {exc}") from exc


@app.post("/analyze-quotation")
async def analyze_quotation(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    session_id: Optional[str] = Header(default=None, alias="X-Session-Id"),
    settings: Settings = Depends(get_settings),
    http_client: httpx.Client = Depends(get_http_client),
) -> JSONResponse:
    """Purpose: Run one price analysis for an authenticated caller.
    Inputs/Outputs: Input is the JSON body plus Authorization and optional X-Session-Id
        headers; output is {success: true, data: QuotationAnalysis | UnparsedAnalysis}.
    Side Effects / State: One auth-service GET, at most one gateway POST, and the
        analysis is stored in the research session when X-Session-Id is given.
    Dependencies: AuthVerifier, QuotationAnalyzer, ResearchSessionStore.
    Failure Modes: 401 UNAUTHORIZED/INVALID_TOKEN, 400 INVALID_JSON/VALIDATION_ERROR,
        402/429 from the gateway, 500 UPSTREAM_ERROR/SERVICE_UNAVAILABLE.
    If Removed: The UI cannot request price research.
    Testing Notes: Override get_http_client with a MockTransport that answers both
        the auth service and the gateway.
    """
    await run_in_threadpool(AuthVerifier(settings, http_client).verify, authorization)
    payload = _parse_json_body(await request.body())

    analyzer = QuotationAnalyzer(settings, http_client)
    context = await run_in_threadpool(analyzer.run, payload)

    if session_id:
        session_store.set_analysis(session_id, context.result, context.request.location)
    return JSONResponse(content=AnalyzeResponse(data=context.result).to_wire())


@app.get("/api/sessions/{session_id}")
def get_session(session_id: str) -> dict:
    """Return a snapshot of the session's entries, analysis, and favorites."""
    return session_store.snapshot(session_id).to_wire()


@app.get("/api/sessions/{session_id}/entries")
def list_entries(
    session_id: str,
    q: str = "",
    min_price: Optional[float] = Query(default=None, alias="minPrice"),
    max_price: Optional[float] = Query(default=None, alias="maxPrice"),
) -> dict:
    """Purpose: List the session's saved price entries, filtered.
    Inputs/Outputs: Inputs are session_id, a search query, and price bounds; output
        has the matching entries plus the unfiltered total.
    Side Effects / State: None; an unknown session lists nothing.
    Dependencies: filter_entries, ResearchSessionStore.snapshot.
    Failure Modes: None.
    If Removed: The entries table cannot be searched server-side.
    Testing Notes: Filter with maxPrice below one entry's price and expect it excluded.
    """
    snapshot = session_store.snapshot(session_id)
    entries = filter_entries(snapshot.entries, q, min_price, max_price)
    return {
        "entries": [entry.to_wire() for entry in entries],
        "total": len(snapshot.entries),
    }


@app.post("/api/sessions/{session_id}/entries", status_code=201)
def add_entry(session_id: str, entry: PriceEntryCreate) -> dict:
    """Purpose: Save a manual price entry at the front of the session's list.
    Inputs/Outputs: Inputs are session_id and a validated PriceEntryCreate body;
        output is the stored entry with id and createdAt.
    Side Effects / State: Creates the session if needed.
    Dependencies: ResearchSessionStore.add_entry.
    Failure Modes: 400 VALIDATION_ERROR on bad fields via the RequestValidationError handler.
    If Removed: Users cannot record prices they collected themselves.
    Testing Notes: An empty location and a negative price are both reported.
    """
    return session_store.add_entry(session_id, entry).to_wire()


@app.delete("/api/sessions/{session_id}/entries/{entry_id}")
def delete_entry(session_id: str, entry_id: str) -> dict:
    """Purpose: Delete one entry by id.
    Inputs/Outputs: Inputs are session_id and entry_id; output is {success: true}.
    Side Effects / State: Removes the entry from the store.
    Dependencies: ResearchSessionStore.delete_entry.
    Failure Modes: 404 NOT_FOUND when the id or session is unknown.
    If Removed: Mistyped entries stay forever.
    Testing Notes: Deleting the same id twice returns 404 the second time.
    """
    if not session_store.delete_entry(session_id, entry_id):
        raise NotFound(f"entry {entry_id} not in session")
    return {"success": True}


@app.delete("/api/sessions/{session_id}/entries")
def clear_entries(session_id: str) -> dict:
    """Drop every entry in the session and report how many were removed."""
    return {"removed": session_store.clear_entries(session_id)}


def _require_analysis(session_id: str) -> QuotationAnalysis:
    """Return the session's decoded analysis or raise NotFound."""
    # Unparsed fallbacks have no comparisons to filter or export.
    snapshot = session_store.snapshot(session_id)
    if not isinstance(snapshot.analysis, QuotationAnalysis):
        raise NotFound("session has no decoded analysis")
    return snapshot.analysis


@app.get("/api/sessions/{session_id}/comparisons")
def list_comparisons(
    session_id: str,
    q: str = "",
    min_price: Optional[float] = Query(default=None, alias="minPrice"),
    max_price: Optional[float] = Query(default=None, alias="maxPrice"),
) -> dict:
    """Purpose: Return the current analysis' vendor comparisons, filtered.
    Inputs/Outputs: Inputs are session_id, a search query, and price bounds; output
        has the matching items plus the quotation's position against the market range.
    Side Effects / State: None.
    Dependencies: filter_comparisons, price_position.
    Failure Modes: 404 NOT_FOUND when the session has no decoded analysis.
    If Removed: The UI has to filter the full result client-side.
    Testing Notes: Store an analysis via /analyze-quotation with X-Session-Id first.
    """
    analysis = _require_analysis(session_id)
    items = filter_comparisons(analysis.market_comparisons, q, min_price, max_price)
    summary = analysis.summary
    position = None
    if summary.total_quoted_amount > 0:
        position = price_position(
            summary.total_quoted_amount,
            summary.estimated_market_range.min,
            summary.estimated_market_range.max,
        )
    return {
        "items": [item.to_wire() for item in items],
        "total": len(analysis.market_comparisons),
        "pricePosition": position,
    }


@app.post("/api/sessions/{session_id}/favorites", status_code=201)
def add_favorite(session_id: str, item: MarketComparison) -> dict:
    """Purpose: Shortlist a vendor comparison in the session.
    Inputs/Outputs: Inputs are session_id and a MarketComparison body; output is the
        full favorites list after the insert.
    Side Effects / State: Appends to the session's favorites.
    Dependencies: ResearchSessionStore.add_favorite.
    Failure Modes: 409 DUPLICATE_FAVORITE when vendor, product, and location are already saved.
    If Removed: The favorites panel has nothing to compare.
    Testing Notes: Post the same comparison twice and expect 201 then 409.
    """
    if not session_store.add_favorite(session_id, item):
        raise DuplicateFavorite(f"{item.vendor_name} already saved")
    snapshot = session_store.snapshot(session_id)
    return {"favorites": [favorite.to_wire() for favorite in snapshot.favorites]}


@app.delete("/api/sessions/{session_id}/favorites/{index}")
def remove_favorite(session_id: str, index: int) -> dict:
    """Remove the favorite at a list position; 404 when the index is out of range."""
    removed = session_store.remove_favorite(session_id, index)
    if removed is None:
        raise NotFound(f"favorite index {index} out of range")
    return {"removed": removed.to_wire()}


@app.delete("/api/sessions/{session_id}/favorites")
def clear_favorites(session_id: str) -> dict:
    """Empty the shortlist and report how many favorites were dropped."""
    return {"removed": session_store.clear_favorites(session_id)}


@app.get("/api/sessions/{session_id}/favorites/stats")
def get_favorites_stats(session_id: str) -> dict:
    """Summarize saved vendors; an empty shortlist reports only a zero count."""
    stats = favorites_stats(session_store.snapshot(session_id).favorites)
    if stats is None:
        return {"count": 0}
    return stats.to_wire()


def _csv_response(content: str, filename: str) -> Response:
    # Served as an attachment download.
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/sessions/{session_id}/export/analysis.csv")
def export_analysis(session_id: str) -> Response:
    """Purpose: Download the current analysis as CSV.
    Inputs/Outputs: Input is session_id; output is a text/csv attachment named
        price-analysis-YYYY-MM-DD.csv.
    Side Effects / State: None.
    Dependencies: analysis_to_csv, export_filename.
    Failure Modes: 404 NOT_FOUND when the session has no decoded analysis.
    If Removed: Results cannot leave the app.
    Testing Notes: A vendor note containing a comma must arrive quoted.
    """
    analysis = _require_analysis(session_id)
    location = session_store.snapshot(session_id).analysis_location or ""
    return _csv_response(analysis_to_csv(analysis, location), export_filename("price-analysis"))


@app.get("/api/sessions/{session_id}/export/entries.csv")
def export_entries(session_id: str) -> Response:
    """Purpose: Download the session's saved entries as CSV.
    Inputs/Outputs: Input is session_id; output is a text/csv attachment named
        price-comparison-YYYY-MM-DD.csv.
    Side Effects / State: None.
    Dependencies: entries_to_csv, export_filename.
    Failure Modes: 404 NOT_FOUND when the session has no entries.
    If Removed: Collected prices cannot be exported.
    Testing Notes: Delete the only entry and expect the export to 404.
    """
    entries = session_store.snapshot(session_id).entries
    if not entries:
        raise NotFound("session has no entries")
    return _csv_response(entries_to_csv(entries), export_filename("price-comparison"))
