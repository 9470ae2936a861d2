from __future__ import annotations

import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from loguru import logger
from pydantic import BaseModel, Field

from config import Configuration
from errors import ConfigurationError, EmptyCandidateSet, NetworkError, UpstreamError
from models import Animating, Candidate, Coordinate, Outcome, QueryFilters, SelectionState, Settled
from services.candidate_search import fetch_candidates_async
from services.cuisines import cuisine_catalog
from services.filters import apply_filters
from services.location import describe_location
from services.session import Session, SessionRegistry


# backend/.env holds GOOGLE_PLACES_API_KEY during local development
load_dotenv(Path(__file__).resolve().parent.parent / ".env")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # cancel any spin still scheduled when the server stops
    registry.close_all()


app = FastAPI(title="Shuffood", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

registry = SessionRegistry(Configuration.from_env())


class FiltersPayload(BaseModel):
    radius_miles: float = Field(10.0, description="Maximum distance from the origin in miles")
    min_rating: float = Field(0.0, description="Minimum rating, 0 for no floor")
    excluded_categories: List[str] = Field(default_factory=list, description="Cuisine keys to hide")

    def to_filters(self) -> QueryFilters:
        return QueryFilters(
            radius_miles=self.radius_miles,
            min_rating=self.min_rating,
            excluded_categories=frozenset(self.excluded_categories),
        )


class SearchRequest(FiltersPayload):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class OriginRequest(BaseModel):
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)


class FilterUpdate(BaseModel):
    radius_miles: Optional[float] = None
    min_rating: Optional[float] = None
    excluded_categories: Optional[List[str]] = None


class CandidatePayload(BaseModel):
    id: str
    name: str
    address: str = ""
    rating: float = 0.0
    lat: float
    lng: float
    distance_miles: float
    category_tags: List[str] = []

    @classmethod
    def from_candidate(cls, c: Candidate) -> "CandidatePayload":
        return cls(
            id=c.id,
            name=c.name,
            address=c.address,
            rating=c.rating,
            lat=c.location.latitude,
            lng=c.location.longitude,
            distance_miles=round(c.distance_miles, 3),
            category_tags=sorted(c.category_tags),
        )

    def to_candidate(self) -> Candidate:
        return Candidate(
            id=self.id,
            name=self.name,
            address=self.address,
            rating=self.rating,
            location=Coordinate(latitude=self.lat, longitude=self.lng),
            distance_miles=self.distance_miles,
            category_tags=frozenset(self.category_tags),
        )


class FilterRequest(BaseModel):
    candidates: List[CandidatePayload]
    filters: FiltersPayload = Field(default_factory=FiltersPayload)


class SearchResponse(BaseModel):
    candidates: List[CandidatePayload]
    filtered: List[CandidatePayload]
    total_count: int
    filtered_count: int


class SessionResponse(BaseModel):
    origin: Optional[Dict[str, float]]
    filters: Dict[str, Any]
    filtered: List[CandidatePayload]
    total_count: int
    filtered_count: int
    selection: str
    current_pick: Optional[CandidatePayload] = None
    is_shuffling: bool
    error: Optional[str] = None


def _payloads(candidates: List[Candidate]) -> List[CandidatePayload]:
    return [CandidatePayload.from_candidate(c) for c in candidates]


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, UpstreamError):
        return HTTPException(status_code=502, detail=exc.message)
    if isinstance(exc, NetworkError):
        return HTTPException(status_code=504, detail=str(exc))
    if isinstance(exc, EmptyCandidateSet):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, LookupError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=400, detail=str(exc))
    logger.exception("request failed: {}", exc)
    return HTTPException(status_code=500, detail="internal error")


def _unwrap(outcome: Outcome) -> Any:
    if outcome.error is not None:
        raise _http_error(outcome.error)
    if outcome.superseded:
        raise HTTPException(status_code=409, detail="superseded by a newer search")
    return outcome.value


def _session_or_404(session_id: str) -> Session:
    session = registry.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"unknown session {session_id}")
    return session


def _state_name(state: SelectionState) -> str:
    return type(state).__name__.lower()


def _session_view(session: Session) -> SessionResponse:
    pick = session.current_pick
    origin = session.origin
    filters = session.filters
    return SessionResponse(
        origin={"lat": origin.latitude, "lng": origin.longitude} if origin else None,
        filters={
            "radius_miles": filters.radius_miles,
            "min_rating": filters.min_rating,
            "excluded_categories": sorted(filters.excluded_categories),
        },
        filtered=_payloads(session.filtered),
        total_count=session.total_count,
        filtered_count=session.filtered_count,
        selection=_state_name(session.selection),
        current_pick=CandidatePayload.from_candidate(pick) if pick else None,
        is_shuffling=session.is_shuffling,
        error=str(session.error) if session.error else None,
    )


def _sse(data: Dict[str, Any]) -> str:
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


def _state_event(state: SelectionState) -> Dict[str, Any]:
    if isinstance(state, Animating):
        return {
            "type": "tick",
            "tick": state.tick_count,
            "candidate": CandidatePayload.from_candidate(state.current_pick).dict(),
        }
    if isinstance(state, Settled):
        return {"type": "settled", "candidate": CandidatePayload.from_candidate(state.final_pick).dict()}
    return {"type": "idle"}


@app.get("/healthz")
def healthz() -> dict:
    cfg = Configuration.from_env()
    logger.info("cfg: {}", cfg.log_summary())
    return {"status": "ok"}


@app.get("/cuisines")
def cuisines() -> List[Dict[str, str]]:
    return cuisine_catalog()


@app.get("/reverse-geocode")
def reverse_geocode(lat: float, lng: float) -> dict:
    cfg = Configuration.from_env()
    return {"label": describe_location(cfg, Coordinate(latitude=lat, longitude=lng))}


@app.post("/search", response_model=SearchResponse)
async def search(req: SearchRequest) -> SearchResponse:
    cfg = Configuration.from_env()
    try:
        filters = req.to_filters()
        origin = Coordinate(latitude=req.lat, longitude=req.lng)
        results = await fetch_candidates_async(
            cfg,
            origin,
            filters.radius_miles,
            filters.excluded_categories,
            filters.min_rating,
        )
    except Exception as exc:
        raise _http_error(exc)
    filtered = apply_filters(results, filters)
    return SearchResponse(
        candidates=_payloads(results),
        filtered=_payloads(filtered),
        total_count=len(results),
        filtered_count=len(filtered),
    )


@app.post("/filter", response_model=List[CandidatePayload])
def filter_candidates(req: FilterRequest) -> List[CandidatePayload]:
    try:
        filters = req.filters.to_filters()
    except ValueError as exc:
        raise _http_error(exc)
    return _payloads(apply_filters([c.to_candidate() for c in req.candidates], filters))


@app.post("/sessions/{session_id}/origin", response_model=SessionResponse)
async def set_origin(session_id: str, req: OriginRequest) -> SessionResponse:
    session = registry.get_or_create(session_id)
    fallback = session.cfg.default_origin
    if req.lat is not None and req.lng is not None:
        session.set_origin(Coordinate(latitude=req.lat, longitude=req.lng))
    else:
        # browser could not locate the user
        logger.warning("session {} has no location, using fallback {}", session_id, fallback.label())
        session.set_origin(fallback)
    return _session_view(session)


@app.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str) -> SessionResponse:
    return _session_view(_session_or_404(session_id))


@app.patch("/sessions/{session_id}/filters", response_model=SessionResponse)
async def update_filters(session_id: str, req: FilterUpdate) -> SessionResponse:
    session = _session_or_404(session_id)
    try:
        session.update_filters(
            radius_miles=req.radius_miles,
            min_rating=req.min_rating,
            excluded_categories=req.excluded_categories,
        )
    except ValueError as exc:
        raise _http_error(exc)
    return _session_view(session)


@app.post("/sessions/{session_id}/search", response_model=SessionResponse)
async def session_search(session_id: str) -> SessionResponse:
    session = _session_or_404(session_id)
    _unwrap(await session.search())
    return _session_view(session)


@app.post("/sessions/{session_id}/pick/{candidate_id}", response_model=SessionResponse)
async def pick(session_id: str, candidate_id: str) -> SessionResponse:
    session = _session_or_404(session_id)
    _unwrap(session.pick(candidate_id))
    return _session_view(session)


@app.post("/sessions/{session_id}/shuffle")
async def shuffle(session_id: str):
    """SSE stream of spin ticks followed by the final pick."""
    session = _session_or_404(session_id)
    handle = _unwrap(session.shuffle())

    async def event_generator():
        settled = False
        try:
            async for state in handle.states():
                settled = isinstance(state, Settled)
                yield _sse(_state_event(state))
            if not settled:
                yield _sse({"type": "cancelled"})
        finally:
            # client went away or stream ended: no ticks may outlive the response
            handle.cancel()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@app.delete("/sessions/{session_id}")
async def close_session(session_id: str) -> dict:
    if not registry.reset(session_id):
        raise HTTPException(status_code=404, detail=f"unknown session {session_id}")
    return {"status": "closed"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8010, reload=True)
