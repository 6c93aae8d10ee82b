"""
FastAPI application serving the Company Ramp and Earnings Brief forms.
"""

from dataclasses import asdict
from typing import Dict, List, Optional
from pathlib import Path
from urllib.parse import quote
import logging
import os

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, field_validator
import uvicorn

from briefdesk import __version__
from briefdesk.entities import load_earnings_config, load_ramp_config
from briefdesk.report import UNSAFE_FILENAME_CHARS, DirectorySink, normalize_kind
from briefdesk.session import BriefSession, EarningsSession, RampSession
from briefdesk.store import FileKeyValueStore, KeyValueStore, earnings_repository, ramp_repository

# =============================================================================
# Configuration
# =============================================================================

# Setup logging
logging.basicConfig(
    level=os.environ.get("BRIEFDESK_LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("briefdesk.api")

# Directories
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"
STATE_DIR = Path(os.environ.get("BRIEFDESK_STATE_DIR", DATA_DIR / "state"))
EXPORT_DIR = Path(os.environ.get("BRIEFDESK_EXPORT_DIR", DATA_DIR / "exports"))

# Static tables, loaded once
RAMP = load_ramp_config()
EARNINGS = load_earnings_config()

MEDIA_TYPES = {
    "md": "text/markdown; charset=utf-8",
    "txt": "text/plain; charset=utf-8",
}

# =============================================================================
# App Initialization
# =============================================================================

app = FastAPI(
    title="Analyst Brief Desk API",
    version=__version__,
    description="Sector checklists, keyword signals and exportable analyst briefs",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["*"],
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Cache-Control"] = "no-store, max-age=0"

    return response


# =============================================================================
# Sessions
# =============================================================================

def build_sessions(store: KeyValueStore) -> Dict[str, BriefSession]:
    """One session per variant, both persisted in the same store."""
    return {
        "ramp": RampSession(RAMP, ramp_repository(store, RAMP.templates)),
        "earnings": EarningsSession(EARNINGS, earnings_repository(store, EARNINGS.templates)),
    }


_sessions: Optional[Dict[str, BriefSession]] = None


async def get_sessions() -> Dict[str, BriefSession]:
    """
    Lazily open the on-disk sessions on first request.

    Must stay a coroutine: it runs on the event loop, so only one set of
    sessions is ever built over the state directory.
    """
    global _sessions
    if _sessions is None:
        logger.info(f"Using state directory {STATE_DIR}")
        _sessions = build_sessions(FileKeyValueStore(STATE_DIR))
    return _sessions


def _session(variant: str, sessions: Dict[str, BriefSession]) -> BriefSession:
    session = sessions.get(variant)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown brief variant '{variant}'")
    return session


class ResponseSink:
    """DocumentSink that turns a brief into a file download response."""

    def emit(self, filename: str, content: str) -> Response:
        ext = Path(filename).suffix.lstrip(".")
        # Header values must be latin-1; the RFC 5987 form carries the real name
        fallback = UNSAFE_FILENAME_CHARS.sub("_", filename.encode("ascii", "replace").decode("ascii"))
        disposition = f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"
        return Response(
            content=content.encode("utf-8"),
            media_type=MEDIA_TYPES.get(ext, MEDIA_TYPES["txt"]),
            headers={"Content-Disposition": disposition},
        )


# =============================================================================
# Models
# =============================================================================

def _check_choice(value: Optional[str], allowed, what: str) -> Optional[str]:
    if value is not None and value not in allowed:
        raise ValueError(f"{what} must be one of: {', '.join(allowed)}")
    return value


class SignalsRequest(BaseModel):
    text: Optional[str] = None


class SignalsResponse(BaseModel):
    signals: List[str]
    labels: List[str]
    implications: List[str]


class KeyNumbersUpdate(BaseModel):
    revenue: Optional[str] = None
    growth: Optional[str] = None
    gross_margin: Optional[str] = None
    ebitda: Optional[str] = None
    cfo: Optional[str] = None
    net_debt: Optional[str] = None


class RampStateUpdate(BaseModel):
    """Partial update of the Company Ramp form; omitted fields are left alone."""
    tab: Optional[str] = None
    company: Optional[str] = None
    ticker: Optional[str] = None
    sector: Optional[str] = None
    doc_type: Optional[str] = None
    excerpt: Optional[str] = None
    business_model: Optional[str] = None
    what_changed: Optional[str] = None
    key_numbers: Optional[KeyNumbersUpdate] = None
    bull: Optional[str] = None
    bear: Optional[str] = None
    risks: Optional[str] = None
    what_to_track: Optional[str] = None

    @field_validator('sector')
    @classmethod
    def validate_sector(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, RAMP.templates.labels(), "Sector")

    @field_validator('doc_type')
    @classmethod
    def validate_doc_type(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, RAMP.doc_types, "Doc type")

    @field_validator('tab')
    @classmethod
    def validate_tab(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, RAMP.tabs, "Tab")


class EarningsStateUpdate(BaseModel):
    """Partial update of the Earnings Brief form."""
    tab: Optional[str] = None
    company: Optional[str] = None
    ticker: Optional[str] = None
    company_type: Optional[str] = None
    doc_type: Optional[str] = None
    excerpt: Optional[str] = None
    notes: Optional[str] = None

    @field_validator('company_type')
    @classmethod
    def validate_company_type(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, EARNINGS.templates.labels(), "Company type")

    @field_validator('doc_type')
    @classmethod
    def validate_doc_type(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, EARNINGS.doc_types, "Doc type")

    @field_validator('tab')
    @classmethod
    def validate_tab(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, EARNINGS.tabs, "Tab")


class OptionsResponse(BaseModel):
    categories: List[str]
    default_category: str
    doc_types: List[str]
    tabs: List[str]


class SuggestionsResponse(BaseModel):
    category: str
    signals: List[str]
    suggestions: List[str]


class SavedExportResponse(BaseModel):
    filename: str
    path: str


# =============================================================================
# Endpoints
# =============================================================================


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Analyst Brief Desk API", "version": __version__}


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/api/{variant}/options", response_model=OptionsResponse)
async def get_options(variant: str, sessions: Dict[str, BriefSession] = Depends(get_sessions)):
    """Selector values for the form."""
    config = _session(variant, sessions).config
    return OptionsResponse(
        categories=config.templates.labels(),
        default_category=config.templates.default,
        doc_types=list(config.doc_types),
        tabs=list(config.tabs),
    )


@app.get("/api/{variant}/templates/{name:path}")
async def get_template(variant: str, name: str, sessions: Dict[str, BriefSession] = Depends(get_sessions)):
    """Template for a sector / company type; unknown names get the default."""
    config = _session(variant, sessions).config
    return config.templates.lookup(name).to_dict()


@app.post("/api/{variant}/signals", response_model=SignalsResponse)
async def detect(variant: str, request: SignalsRequest, sessions: Dict[str, BriefSession] = Depends(get_sessions)):
    """Run signal detection on arbitrary text without touching the form."""
    session = _session(variant, sessions)
    detector = session.detector
    signals = detector.detect(request.text)
    return SignalsResponse(
        signals=[key for key in session.config.rulebook.keys() if key in signals],
        labels=detector.labels(signals),
        implications=detector.implications(signals),
    )


@app.get("/api/{variant}/state")
async def get_state(variant: str, sessions: Dict[str, BriefSession] = Depends(get_sessions)):
    """Current form state."""
    return asdict(_session(variant, sessions).state)


@app.patch("/api/{variant}/state")
async def update_state(variant: str, request: Request, sessions: Dict[str, BriefSession] = Depends(get_sessions)):
    """Apply a partial update; every change is persisted immediately."""
    session = _session(variant, sessions)

    try:
        payload = await request.json()
        if isinstance(session, RampSession):
            update = RampStateUpdate.model_validate(payload)
        else:
            update = EarningsStateUpdate.model_validate(payload)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    changes = update.model_dump(exclude_unset=True, exclude_none=True)
    numbers = changes.pop('key_numbers', None)

    try:
        if changes:
            session.update(**changes)
        if numbers and isinstance(session, RampSession):
            session.update_key_numbers(**numbers)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return asdict(session.state)


@app.delete("/api/{variant}/state")
async def clear_state(variant: str, sessions: Dict[str, BriefSession] = Depends(get_sessions)):
    """Reset the form to defaults."""
    session = _session(variant, sessions)
    session.clear()
    return asdict(session.state)


@app.get("/api/{variant}/suggestions", response_model=SuggestionsResponse)
async def get_suggestions(variant: str, sessions: Dict[str, BriefSession] = Depends(get_sessions)):
    """KPIs to track (ramp) or questions to ask (earnings) for the current form."""
    session = _session(variant, sessions)
    return SuggestionsResponse(
        category=session.category,
        signals=[key for key in session.config.rulebook.keys() if key in session.signals],
        suggestions=session.suggestions,
    )


@app.get("/api/{variant}/export")
async def download_brief(
    variant: str,
    kind: str = Query("md", description="'md' or 'txt'"),
    sessions: Dict[str, BriefSession] = Depends(get_sessions)
):
    """Download the brief as a Markdown or plain-text file."""
    session = _session(variant, sessions)
    try:
        normalize_kind(kind)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        return session.export(kind, ResponseSink())
    except Exception as e:
        logger.error(f"Export failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/{variant}/export", response_model=SavedExportResponse)
async def save_brief(
    variant: str,
    kind: str = Query("md", description="'md' or 'txt'"),
    sessions: Dict[str, BriefSession] = Depends(get_sessions)
):
    """Write the brief into the export directory on the server."""
    session = _session(variant, sessions)
    try:
        normalize_kind(kind)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    path = session.export(kind, DirectorySink(EXPORT_DIR))
    return SavedExportResponse(filename=path.name, path=str(path))


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
