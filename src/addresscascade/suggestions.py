"""
Debounced, per-field hierarchy search.

Each keystroke in a strict field issues a new session token for that field
and restarts its debounce timer. Only the query present when the timer fires
is sent, and a result is applied only if its token is still the latest one
issued for the field: last-issued wins, regardless of network arrival order.

Sessions are held per coordinator instance (no module-level timers), so
several registration sessions can run side by side.
"""

import asyncio
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from addresscascade.config import DEFAULT_DEBOUNCE_SECONDS, DEFAULT_SEARCH_LIMIT
from addresscascade.levels import HierarchyLevel, LevelChain
from addresscascade.snapshot_model import HierarchyEntry

logger = logging.getLogger(__name__)

# search_entries(level_key, query, limit, parent_stable_id) -> entries (or server dicts)
SearchEntries = Callable[
    [str, str, int, Optional[str]],
    Awaitable[Sequence[Union[HierarchyEntry, Mapping[str, Any]]]],
]


def is_blank_query(query: Optional[str]) -> bool:
    """Empty or whitespace-only text; treated as a cleared field everywhere."""
    return not query or not query.strip()


@dataclass
class SuggestionSession:
    """One debounced search for one field.

    The task is the cancellation handle. Before dispatch, cancel() stops the
    lookup from ever being sent; after dispatch the lookup owns its own
    timeout and a superseded result is simply discarded on arrival.
    """
    field_key: str
    token: int
    query: str
    task: Optional['asyncio.Task'] = None
    dispatched: bool = False
    committed: bool = False

    @property
    def done(self) -> bool:
        return self.task is None or self.task.done()

    def cancel(self) -> bool:
        """Cancel the pending debounce. Returns True if a lookup was prevented."""
        if self.task is None or self.dispatched or self.task.done():
            return False
        self.task.cancel()
        return True


class SuggestionCoordinator:
    """
    Owner of per-field search sessions and suggestion lists.

    Only strict fields search. A search for one field never affects another
    field's session; clear_descendant_suggestions is the one cross-field
    effect, and it is invoked explicitly.
    """

    def __init__(
        self,
        levels: Iterable[HierarchyLevel],
        strictness: Mapping[str, bool],
        search_entries: SearchEntries,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        limit: int = DEFAULT_SEARCH_LIMIT,
        parent_id_provider: Optional[Callable[[str], Optional[str]]] = None,
        on_query_cleared: Optional[Callable[[str], None]] = None,
    ):
        """
        Args:
            levels: Ordered levels, root first
            strictness: Strictness map; non-strict fields never search
            search_entries: Async hierarchy lookup
            debounce_seconds: Quiet period before a query is sent
            limit: Maximum results requested per lookup
            parent_id_provider: Returns the parent's stable id to narrow a search
            on_query_cleared: Called synchronously when a field's query becomes empty
        """
        self._chain = levels if isinstance(levels, LevelChain) else LevelChain(levels)
        self._strictness = dict(strictness)
        self._search_entries = search_entries
        self._debounce_seconds = debounce_seconds
        self._limit = limit
        self._parent_id_provider = parent_id_provider
        self._on_query_cleared = on_query_cleared

        self._tokens: Dict[str, int] = {}  # Per-field session counters, never decrease
        self._sessions: Dict[str, SuggestionSession] = {}
        self._tasks: Set['asyncio.Task'] = set()  # Includes superseded, still in-flight lookups
        self._suggestions: Mapping[str, Tuple[HierarchyEntry, ...]] = MappingProxyType({})
        self._cleared: Set[str] = set()
        self._on_change_callbacks: List[Callable[[Mapping[str, Tuple[HierarchyEntry, ...]]], None]] = []

    # === Change Subscription ===

    def on_change(self, callback: Callable[[Mapping[str, Tuple[HierarchyEntry, ...]]], None]) -> None:
        """Subscribe to suggestion list changes. Callback receives the new mapping."""
        if callback not in self._on_change_callbacks:
            self._on_change_callbacks.append(callback)

    def off_change(self, callback: Callable[[Mapping[str, Tuple[HierarchyEntry, ...]]], None]) -> None:
        """Unsubscribe from suggestion list changes."""
        if callback in self._on_change_callbacks:
            self._on_change_callbacks.remove(callback)

    def _notify_change(self) -> None:
        for callback in list(self._on_change_callbacks):
            try:
                callback(self._suggestions)
            except Exception as e:
                logger.warning(f"Error in suggestions change callback: {e}")

    # ==================== READS ====================

    @property
    def suggestions(self) -> Mapping[str, Tuple[HierarchyEntry, ...]]:
        return self._suggestions

    def get_suggestions(self, field_key: str) -> Tuple[HierarchyEntry, ...]:
        return self._suggestions.get(field_key, ())

    def get_token(self, field_key: str) -> int:
        """Latest session token issued for a field (0 if none)."""
        return self._tokens.get(field_key, 0)

    def get_session(self, field_key: str) -> Optional[SuggestionSession]:
        return self._sessions.get(field_key)

    def is_searchable(self, field_key: str) -> bool:
        return self._strictness.get(field_key, False)

    def is_cleared(self, field_key: str) -> bool:
        return field_key in self._cleared

    # ==================== SESSIONS ====================

    def _issue_token(self, field_key: str) -> int:
        token = self._tokens.get(field_key, 0) + 1
        self._tokens[field_key] = token
        return token

    def _is_current(self, session: SuggestionSession) -> bool:
        return (
            self._tokens.get(session.field_key) == session.token
            and session.field_key not in self._cleared
        )

    def _set_suggestions(self, updates: Mapping[str, Tuple[HierarchyEntry, ...]]) -> None:
        merged = dict(self._suggestions)
        for key, entries in updates.items():
            if entries:
                merged[key] = entries
            else:
                merged.pop(key, None)
        if merged == dict(self._suggestions):
            return
        self._suggestions = MappingProxyType(merged)
        self._notify_change()

    def search(self, field_key: str, query: str) -> None:
        """
        Schedule a debounced lookup for a field (fire-and-forget).

        Must be called from within a running event loop. Supersedes any
        earlier session for the same field. An empty query clears the field
        (suggestions and, through on_query_cleared, its value) immediately
        and never reaches the lookup; this holds for free-text fields too,
        which otherwise never search.

        Raises:
            UnknownFieldError: If field_key is not a configured level
        """
        self._chain.index_of(field_key)
        if is_blank_query(query):
            self.invalidate(field_key)
            self._set_suggestions({field_key: ()})
            if self._on_query_cleared is not None:
                self._on_query_cleared(field_key)
            return

        if not self.is_searchable(field_key):
            logger.debug(f"Ignoring search for free-text field {field_key!r}")
            return

        token = self._issue_token(field_key)
        previous = self._sessions.pop(field_key, None)
        if previous is not None and previous.cancel():
            logger.debug(f"Superseded pending search for {field_key!r} (query={previous.query!r})")

        session = SuggestionSession(field_key=field_key, token=token, query=query)
        session.task = asyncio.get_running_loop().create_task(self._run_session(session))
        self._tasks.add(session.task)
        session.task.add_done_callback(self._tasks.discard)
        self._sessions[field_key] = session

    async def _run_session(self, session: SuggestionSession) -> None:
        await asyncio.sleep(self._debounce_seconds)
        if not self._is_current(session):
            return

        parent_id = self._parent_id_provider(session.field_key) if self._parent_id_provider else None
        session.dispatched = True
        logger.debug(
            f"Searching {session.field_key!r} for {session.query!r} "
            f"(token={session.token}, parent={parent_id!r})"
        )

        try:
            results = await self._search_entries(session.field_key, session.query, self._limit, parent_id)
        except Exception as e:
            if not self._is_current(session):
                return
            logger.warning(f"Hierarchy search failed for {session.field_key!r}: {e}")
            results = []

        if not self._is_current(session):
            logger.debug(
                f"Discarding stale result for {session.field_key!r} "
                f"(token={session.token}, latest={self._tokens.get(session.field_key)})"
            )
            return

        entries = tuple(
            entry if isinstance(entry, HierarchyEntry) else HierarchyEntry.from_dict(entry)
            for entry in results
        )
        session.committed = True
        self._set_suggestions({session.field_key: entries})

    def invalidate(self, field_key: str) -> None:
        """Invalidate any pending or in-flight search for a field."""
        self._issue_token(field_key)
        session = self._sessions.pop(field_key, None)
        if session is not None:
            session.cancel()

    def clear_descendant_suggestions(self, field_key: str) -> None:
        """
        Empty the suggestion lists of every level below field_key.

        Their sessions are invalidated and the fields are marked cleared so a
        late result cannot bring back options from the old ancestor context.
        Field values are not touched.
        """
        descendants = self._chain.descendants_of(field_key)
        for key in descendants:
            self.invalidate(key)
            self._cleared.add(key)
        self._set_suggestions({key: () for key in descendants})

    def unmark_cleared(self, field_key: str) -> None:
        """Allow results for a field to be applied again."""
        self._cleared.discard(field_key)

    def reset(self) -> None:
        """Invalidate every session and drop all suggestions (new patient)."""
        for key in list(self._tokens):
            self.invalidate(key)
        self._cleared.clear()
        self._set_suggestions({key: () for key in self._suggestions})

    async def wait_idle(self) -> None:
        """Wait until every outstanding session has finished or been cancelled."""
        pending = [t for t in self._tasks if not t.done()]
        while pending:
            await asyncio.gather(*pending, return_exceptions=True)
            pending = [t for t in self._tasks if not t.done()]

    async def aclose(self) -> None:
        """Cancel all sessions, dispatched ones included (unmount)."""
        tasks = [t for t in self._tasks if not t.done()]
        self.reset()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
