from __future__ import annotations

import asyncio
import time
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional

from loguru import logger

from config import Configuration
from errors import EmptyCandidateSet, ShuffoodError
from models import Candidate, Coordinate, Idle, Outcome, QueryFilters, SelectionState, Settled
from services.candidate_search import fetch_candidates_async
from services.cuisines import CategoryMatcher
from services.filters import apply_filters
from services.location import LocationProvider, resolve_origin
from services.places import PlacesClient
from services.selector import Selector


StateCallback = Callable[[SelectionState], None]

_DONE = object()


class ShuffleHandle:
    """Cancellation handle for one running shuffle.

    Published states can be consumed with :meth:`states`; once cancelled,
    nothing more is published and :meth:`result` resolves to ``None``.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False
        self._finished = False
        self._final: Optional[Candidate] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._finished

    def cancel(self) -> None:
        if self._finished:
            return
        self._cancelled = True
        if self._task is not None:
            self._task.cancel()
        self._finish()

    async def states(self) -> AsyncIterator[SelectionState]:
        while True:
            item = await self._queue.get()
            if item is _DONE:
                return
            yield item

    async def result(self) -> Optional[Candidate]:
        if self._task is not None:
            await asyncio.wait({self._task})
            if not self._cancelled and not self._task.cancelled():
                # re-raises a failure from the spin itself
                self._task.result()
        return None if self._cancelled else self._final

    def _publish(self, state: SelectionState) -> None:
        if self._cancelled:
            return
        if isinstance(state, Settled):
            self._final = state.final_pick
        self._queue.put_nowait(state)

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._queue.put_nowait(_DONE)


class Session:
    """Mediator holding origin, filters, the fetched list and the current pick.

    All mutation goes through these methods on the event loop thread.
    """

    def __init__(
        self,
        cfg: Configuration,
        *,
        origin: Optional[Coordinate] = None,
        filters: Optional[QueryFilters] = None,
        selector: Optional[Selector] = None,
        client: Optional[PlacesClient] = None,
        matcher: Optional[CategoryMatcher] = None,
    ) -> None:
        self.cfg = cfg
        self.client = client
        self.matcher = matcher
        self.selector = selector or Selector(ticks=cfg.shuffle_ticks, interval=cfg.shuffle_interval)
        self._origin = origin
        self._filters = filters or QueryFilters(radius_miles=cfg.default_radius_miles)
        self._candidates: List[Candidate] = []
        self._filtered: List[Candidate] = []
        self._selection: SelectionState = Idle()
        self._error: Optional[Exception] = None
        self._search_gen = 0
        self._shuffle: Optional[ShuffleHandle] = None
        self._closed = False

    # -- read-only views -------------------------------------------------

    @property
    def origin(self) -> Optional[Coordinate]:
        return self._origin

    @property
    def filters(self) -> QueryFilters:
        return self._filters

    @property
    def candidates(self) -> List[Candidate]:
        return list(self._candidates)

    @property
    def filtered(self) -> List[Candidate]:
        return list(self._filtered)

    @property
    def total_count(self) -> int:
        return len(self._candidates)

    @property
    def filtered_count(self) -> int:
        return len(self._filtered)

    @property
    def selection(self) -> SelectionState:
        return self._selection

    @property
    def current_pick(self) -> Optional[Candidate]:
        state = self._selection
        if isinstance(state, Settled):
            return state.final_pick
        return getattr(state, "current_pick", None)

    @property
    def is_shuffling(self) -> bool:
        return self._shuffle is not None and not self._shuffle.done

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    @property
    def closed(self) -> bool:
        return self._closed

    # -- origin ------------------------------------------------------------

    def set_origin(self, origin: Coordinate) -> None:
        if origin == self._origin:
            return
        self._origin = origin
        # distances were computed from the old origin; the list must be fetched again
        self._search_gen += 1
        self._candidates = []
        self._filtered = []
        self._reset_selection()

    def locate(self, provider: Optional[LocationProvider], fallback: Coordinate) -> Coordinate:
        origin = resolve_origin(provider, fallback)
        self.set_origin(origin)
        return origin

    # -- filters -----------------------------------------------------------

    def update_filters(
        self,
        *,
        radius_miles: Optional[float] = None,
        min_rating: Optional[float] = None,
        excluded_categories: Optional[Iterable[str]] = None,
    ) -> List[Candidate]:
        filters = self._filters
        if radius_miles is not None:
            filters = filters.with_radius(radius_miles)
        if min_rating is not None:
            filters = filters.with_min_rating(min_rating)
        if excluded_categories is not None:
            filters = filters.with_excluded(excluded_categories)
        self._filters = filters
        self._refilter()
        return self.filtered

    def toggle_category(self, category: str) -> List[Candidate]:
        self._filters = self._filters.toggle_category(category)
        self._refilter()
        return self.filtered

    def _refilter(self) -> None:
        self._filtered = apply_filters(self._candidates, self._filters, self.matcher)
        self._reset_selection()

    # -- search ------------------------------------------------------------

    async def search(self) -> Outcome:
        """Fetch a fresh list for the current origin and filters.

        A newer call supersedes an older one: the older result is discarded
        and returned with ``superseded=True``.
        """
        if self._closed:
            return Outcome(error=RuntimeError("session is closed"))
        self._search_gen += 1
        gen = self._search_gen
        origin = self._origin
        if origin is None:
            exc = ValueError("Location not available")
            self._error = exc
            return Outcome(error=exc)

        filters = self._filters
        self._error = None
        try:
            results = await fetch_candidates_async(
                self.cfg,
                origin,
                filters.radius_miles,
                filters.excluded_categories,
                filters.min_rating,
                client=self.client,
            )
        except ShuffoodError as exc:
            if gen != self._search_gen:
                return Outcome(superseded=True)
            logger.warning("search failed: {}", exc)
            self._error = exc
            return Outcome(error=exc)

        if gen != self._search_gen:
            logger.debug("discarding stale search generation {} (current {})", gen, self._search_gen)
            return Outcome(superseded=True)

        self._candidates = results
        self._refilter()
        logger.info("search done: {} of {} restaurants after filters", self.filtered_count, self.total_count)
        return Outcome(value=self.filtered)

    # -- selection ---------------------------------------------------------

    def shuffle(self, on_state: Optional[StateCallback] = None) -> Outcome:
        """Start a spin over the filtered list; must be called from a running event loop."""
        if self._closed:
            return Outcome(error=RuntimeError("session is closed"))
        self._reset_selection()
        candidates = list(self._filtered)
        if not candidates:
            exc = EmptyCandidateSet()
            self._error = exc
            return Outcome(error=exc)

        self._error = None
        handle = ShuffleHandle()
        loop = asyncio.get_running_loop()
        handle._task = loop.create_task(self._drive(handle, candidates, on_state))
        self._shuffle = handle
        logger.debug("shuffle started over {} candidates", len(candidates))
        return Outcome(value=handle)

    async def _drive(
        self,
        handle: ShuffleHandle,
        candidates: List[Candidate],
        on_state: Optional[StateCallback],
    ) -> None:
        try:
            async for state in self.selector.animate(candidates):
                if handle.cancelled:
                    return
                self._selection = state
                handle._publish(state)
                if on_state is not None:
                    on_state(state)
        except Exception:
            logger.exception("shuffle failed")
            self._selection = Idle()
            raise
        finally:
            handle._finish()
            if self._shuffle is handle:
                self._shuffle = None

    def pick(self, candidate_id: str) -> Outcome:
        """Settle on a specific candidate from the filtered list."""
        for candidate in self._filtered:
            if candidate.id == candidate_id:
                self._cancel_shuffle()
                self._selection = Settled(final_pick=candidate)
                return Outcome(value=candidate)
        return Outcome(error=LookupError(f"restaurant {candidate_id!r} is not in the current list"))

    def _cancel_shuffle(self) -> None:
        handle, self._shuffle = self._shuffle, None
        if handle is not None and not handle.done:
            logger.debug("cancelling running shuffle")
            handle.cancel()

    def _reset_selection(self) -> None:
        self._cancel_shuffle()
        self._selection = Idle()

    def close(self) -> None:
        """Teardown: cancel any scheduled ticks."""
        if self._closed:
            return
        self._closed = True
        self._search_gen += 1
        self._cancel_shuffle()


class SessionRegistry:
    """Simple in-memory session registry with idle expiry."""

    def __init__(self, cfg: Configuration, ttl_sec: Optional[int] = None) -> None:
        self.cfg = cfg
        self.ttl_sec = ttl_sec if ttl_sec is not None else cfg.session_ttl_sec
        self._sessions: Dict[str, Session] = {}
        self._last_access: Dict[str, float] = {}

    def get(self, session_id: str) -> Optional[Session]:
        self._cleanup()
        if not session_id or session_id not in self._sessions:
            return None
        self._last_access[session_id] = time.time()
        return self._sessions[session_id]

    def get_or_create(self, session_id: str, **kwargs) -> Session:
        session = self.get(session_id)
        if session is None:
            session = Session(self.cfg, **kwargs)
            self._sessions[session_id] = session
            self._last_access[session_id] = time.time()
        return session

    def reset(self, session_id: str) -> bool:
        """Close and forget a session."""
        session = self._sessions.pop(session_id, None)
        self._last_access.pop(session_id, None)
        if session is None:
            return False
        session.close()
        return True

    def close_all(self) -> None:
        for sid in list(self._sessions):
            self.reset(sid)

    def __len__(self) -> int:
        return len(self._sessions)

    def _cleanup(self) -> None:
        """Close and remove expired sessions."""
        now = time.time()
        expired = [
            sid for sid, last in self._last_access.items()
            if now - last > self.ttl_sec
        ]
        for sid in expired:
            logger.debug("session {} expired", sid)
            self.reset(sid)
