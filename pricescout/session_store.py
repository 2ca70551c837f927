from __future__ import annotations

import itertools
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .models import (
    AnalysisResult,
    MarketComparison,
    PriceEntry,
    PriceEntryCreate,
    SessionSnapshot,
)


@dataclass
class ResearchSession:
    """Mutable per-session state owned by ResearchSessionStore."""
    entries: List[PriceEntry] = field(default_factory=list)
    analysis: Optional[AnalysisResult] = None
    analysis_location: Optional[str] = None
    favorites: List[MarketComparison] = field(default_factory=list)
    updated_at: float = field(default_factory=time.time)
    sequence: int = 0


def favorite_key(item: MarketComparison) -> tuple:
    return (item.vendor_name, item.product_name, item.location)


class ResearchSessionStore:
    """In-memory store for price entries, the current analysis, and favorites per session."""

    def __init__(self, max_sessions: Optional[int] = None) -> None:
        """Purpose: Initialize an empty store with an optional session cap.
        Inputs/Outputs: Input is max_sessions; no return value.
        Side Effects / State: Creates the in-memory session map.
        Dependencies: ResearchSession.
        Failure Modes: None.
        If Removed: Session endpoints have nowhere to keep state.
        Testing Notes: Set max_sessions=2, touch three sessions, expect the oldest gone.
        """
        self._max_sessions = max_sessions
        self._sessions: Dict[str, ResearchSession] = {}
        self._sequence = itertools.count(1)

    def ensure_session(self, session_id: str) -> ResearchSession:
        """Return the session, creating an empty one and pruning old ones when missing."""
        session = self._sessions.get(session_id)
        if session is None:
            session = ResearchSession(sequence=next(self._sequence))
            self._sessions[session_id] = session
            self._prune_sessions()
        return session

    def find_session(self, session_id: str) -> Optional[ResearchSession]:
        """Return the session if it exists; never creates one."""
        return self._sessions.get(session_id)

    def snapshot(self, session_id: str) -> SessionSnapshot:
        """Purpose: Return an independent copy of a session's state.
        Inputs/Outputs: Input is session_id; output is a frozen SessionSnapshot.
        Side Effects / State: None; an unknown id yields an empty snapshot without
            registering a session.
        Dependencies: SessionSnapshot (frozen pydantic model).
        Failure Modes: None.
        If Removed: Callers would hold references into live store state.
        Testing Notes: Mutate a snapshot's lists and verify the store is unchanged.
        """
        # Deep copy so list mutations on the snapshot never reach the store.
        session = self.find_session(session_id) or ResearchSession()
        return SessionSnapshot(
            session_id=session_id,
            entries=session.entries,
            analysis=session.analysis,
            analysis_location=session.analysis_location,
            favorites=session.favorites,
            updated_at=session.updated_at,
        ).model_copy(deep=True)

    def add_entry(self, session_id: str, entry: PriceEntryCreate) -> PriceEntry:
        """Store a new entry at the front of the session's list."""
        stored = PriceEntry(
            **entry.model_dump(),
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
        )
        session = self.ensure_session(session_id)
        session.entries.insert(0, stored)
        self._touch(session)
        return stored

    def delete_entry(self, session_id: str, entry_id: str) -> bool:
        session = self.find_session(session_id)
        if session is None:
            return False
        remaining = [entry for entry in session.entries if entry.id != entry_id]
        if len(remaining) == len(session.entries):
            return False
        session.entries = remaining
        self._touch(session)
        return True

    def clear_entries(self, session_id: str) -> int:
        session = self.find_session(session_id)
        if session is None:
            return 0
        removed = len(session.entries)
        session.entries = []
        if removed:
            self._touch(session)
        return removed

    def set_analysis(self, session_id: str, analysis: AnalysisResult, location: str) -> None:
        """Replace the session's current analysis and the location it was run for."""
        session = self.ensure_session(session_id)
        session.analysis = analysis
        session.analysis_location = location
        self._touch(session)

    def add_favorite(self, session_id: str, item: MarketComparison) -> bool:
        """Purpose: Save a vendor comparison to the session's favorites.
        Inputs/Outputs: Inputs are session_id and a MarketComparison; returns True if added.
        Side Effects / State: Appends to favorites and bumps updated_at.
        Dependencies: favorite_key for duplicate detection.
        Failure Modes: Returns False when vendor, product, and location already match.
        If Removed: Vendors cannot be shortlisted for comparison.
        Testing Notes: Add the same vendor twice and expect False the second time.
        """
        session = self.ensure_session(session_id)
        key = favorite_key(item)
        if any(favorite_key(existing) == key for existing in session.favorites):
            return False
        session.favorites.append(item.model_copy(deep=True))
        self._touch(session)
        return True

    def remove_favorite(self, session_id: str, index: int) -> Optional[MarketComparison]:
        """Remove the favorite at ``index``; returns None when the index is out of range."""
        session = self.find_session(session_id)
        if session is None or index < 0 or index >= len(session.favorites):
            return None
        removed = session.favorites.pop(index)
        self._touch(session)
        return removed

    def clear_favorites(self, session_id: str) -> int:
        session = self.find_session(session_id)
        if session is None:
            return 0
        removed = len(session.favorites)
        session.favorites = []
        if removed:
            self._touch(session)
        return removed

    def _touch(self, session: ResearchSession) -> None:
        session.updated_at = time.time()
        session.sequence = next(self._sequence)

    def _prune_sessions(self) -> bool:
        """Purpose: Enforce max_sessions by dropping the least recently updated sessions.
        Inputs/Outputs: No inputs; returns True if any sessions were removed.
        Side Effects / State: Mutates the session map.
        Dependencies: Uses _max_sessions and the per-session touch sequence.
        Failure Modes: None; no-op when max_sessions is unset or not exceeded.
        If Removed: Memory grows with every new client id.
        Testing Notes: Set a low max_sessions and verify pruning order.
        """
        if not self._max_sessions or self._max_sessions <= 0:
            return False
        if len(self._sessions) <= self._max_sessions:
            return False

        ordered = sorted(self._sessions.items(), key=lambda item: item[1].sequence, reverse=True)
        keep_ids = {session_id for session_id, _ in ordered[: self._max_sessions]}
        removed = [session_id for session_id in list(self._sessions) if session_id not in keep_ids]
        for session_id in removed:
            self._sessions.pop(session_id, None)
        return bool(removed)
