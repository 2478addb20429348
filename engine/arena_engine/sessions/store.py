"""
Session and snapshot persistence.

Sessions are stored whole as JSON under session:{id}. Appends for one session
are serialized through a per-session asyncio.Lock; appends to different
sessions run concurrently.

Key layout (all under settings.cache_prefix):
    session:{id}                 Session JSON
    sessions:list                set of session IDs
    actor:{id}                   ActorProfile for the leaderboard
    actors:list                  set of actor IDs with a profile
    player_performance:{id}      list of PerformanceRecord, newest first
"""

import asyncio
from collections.abc import Callable, Iterable
from uuid import uuid4

from arena_engine.config import Settings
from arena_engine.domain import (
    ActorConfig,
    ActorProfile,
    ActorState,
    LeaderboardEntry,
    PerformanceRecord,
    Session,
    SessionRef,
    SessionStats,
    SessionStatus,
    Snapshot,
    StrategyType,
    now_millis,
)
from arena_engine.errors import (
    ConfigurationError,
    InvalidSessionStateError,
    OutOfOrderTickError,
    PersistenceError,
    SessionClosedError,
    SessionNotFoundError,
)
from arena_engine.interfaces.kv_store import KeyValueStore
from arena_engine.logging import get_logger
from arena_engine.runtime.event_bus import Event, EventBus, EventType

logger = get_logger(__name__)

DAY_MS = 24 * 60 * 60 * 1000

_STATUS_EVENTS = {
    SessionStatus.RUNNING: EventType.SESSION_STARTED,
    SessionStatus.COMPLETED: EventType.SESSION_COMPLETED,
}


def new_session_id(now: int) -> str:
    return f"session_{now}_{uuid4().hex[:8]}"


def _check_actor_configs(actor_configs: list[ActorConfig]) -> None:
    if not actor_configs:
        raise ConfigurationError("A session needs at least one actor")
    ids = [c.id for c in actor_configs]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate actor IDs: {', '.join(duplicates)}")


def _seed_snapshot(actor_configs: list[ActorConfig], timestamp: int) -> Snapshot:
    """Snapshot holding every actor's starting state."""
    return Snapshot(
        timestamp=timestamp,
        actor_states=[ActorState.initial(c, timestamp) for c in actor_configs],
    )


class SessionStore:
    """
    Session lifecycle and snapshot log backed by a KeyValueStore.

    Status moves pending -> running -> completed and never back. A completed
    session accepts no further snapshots.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        settings: Settings,
        event_bus: EventBus | None = None,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        self._kv = kv
        self._settings = settings
        self._event_bus = event_bus
        self._clock = clock
        self._prefix = settings.cache_prefix
        self._locks: dict[str, asyncio.Lock] = {}

    # =========================================================================
    # Keys
    # =========================================================================

    def key(self, kind: str, ident: str | None = None) -> str:
        if ident is None:
            return f"{self._prefix}{kind}"
        return f"{self._prefix}{kind}:{ident}"

    def lock_for(self, session_id: str) -> asyncio.Lock:
        """The single-writer lock for one session."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create_session(
        self,
        name: str,
        start_time: int,
        end_time: int,
        actor_configs: list[ActorConfig],
        description: str | None = None,
        tags: Iterable[str] = (),
        session_id: str | None = None,
    ) -> Session:
        """
        Create and persist a pending session.

        The session starts with a seed snapshot at start_time holding every
        actor's initial state; ticks must come strictly after it.

        Raises:
            ConfigurationError: Empty range, no actors or duplicate actor IDs
        """
        if end_time <= start_time:
            raise ConfigurationError(
                f"Session end {end_time} must be after its start {start_time}"
            )
        _check_actor_configs(actor_configs)

        now = self._clock()
        session = Session(
            session_id=session_id or new_session_id(now),
            name=name,
            description=description,
            status=SessionStatus.PENDING,
            start_time=start_time,
            end_time=end_time,
            created_at=now,
            updated_at=now,
            tags=list(tags),
            actor_configs=actor_configs,
            snapshots=[_seed_snapshot(actor_configs, start_time)],
        )
        await self.save_session(session)
        logger.info(
            "Created session %s (%s) with %d actors",
            session.session_id,
            name,
            len(actor_configs),
        )
        await self._publish(EventType.SESSION_CREATED, session.session_id, {"name": name})
        return session

    async def save_session(self, session: Session) -> None:
        """
        Persist a session, index it and record per-actor performance.

        The session JSON is written first, in one SET.
        """
        ttl = self._settings.session_ttl_s
        await self._kv.set(
            self.key("session", session.session_id),
            session.model_dump_json(by_alias=True),
            ttl_seconds=ttl,
        )
        await self._kv.set_add(self.key("sessions:list"), session.session_id)
        await self._save_profiles(session)
        await self._record_performance(session)

    async def get_session(self, session_id: str) -> Session | None:
        raw = await self._kv.get(self.key("session", session_id))
        return Session.model_validate_json(raw) if raw else None

    async def require_session(self, session_id: str) -> Session:
        """Get a session or raise SessionNotFoundError."""
        session = await self.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def list_sessions(self, tags: Iterable[str] | None = None) -> list[Session]:
        """
        All stored sessions, newest first.

        With tags, keeps sessions carrying at least one of them. IDs whose
        session has expired are dropped from the index.
        """
        ids = sorted(await self._kv.set_members(self.key("sessions:list")))
        loaded = await asyncio.gather(*(self.get_session(i) for i in ids))

        stale = [i for i, s in zip(ids, loaded, strict=True) if s is None]
        if stale:
            await self._kv.set_remove(self.key("sessions:list"), *stale)
            logger.debug("Dropped %d expired session IDs from index", len(stale))

        sessions = [s for s in loaded if s is not None]
        if tags:
            wanted = set(tags)
            sessions = [s for s in sessions if wanted.intersection(s.tags)]
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return sessions

    async def update_session(
        self,
        session_id: str,
        name: str | None = None,
        description: str | None = None,
        tags: list[str] | None = None,
    ) -> Session:
        """Edit descriptive fields. Status and snapshots are not editable here."""
        async with self.lock_for(session_id):
            session = await self.require_session(session_id)
            update: dict = {"updated_at": self._clock()}
            if name is not None:
                update["name"] = name
            if description is not None:
                update["description"] = description
            if tags is not None:
                update["tags"] = tags
            session = session.model_copy(update=update)
            await self.save_session(session)
            return session

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session. Returns False if it did not exist."""
        async with self.lock_for(session_id):
            deleted = await self._kv.delete(self.key("session", session_id))
            await self._kv.set_remove(self.key("sessions:list"), session_id)
        self._locks.pop(session_id, None)
        if deleted:
            logger.info("Deleted session %s", session_id)
            await self._publish(EventType.SESSION_DELETED, session_id, {})
        return deleted > 0

    async def prune_sessions(self, max_age_days: float = 0) -> int:
        """
        Delete sessions created more than max_age_days ago.

        max_age_days=0 deletes every session.
        """
        cutoff = self._clock() - int(max_age_days * DAY_MS)
        sessions = await self.list_sessions()
        count = 0
        for session in sessions:
            if max_age_days <= 0 or session.created_at < cutoff:
                if await self.delete_session(session.session_id):
                    count += 1
        logger.info("Pruned %d of %d sessions", count, len(sessions))
        return count

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def append_snapshot(
        self,
        session_id: str,
        snapshot: Snapshot,
        final: bool = False,
        expected_last: int | None = None,
    ) -> Session:
        """
        Append one tick's snapshot.

        Runs under the session's lock: reload, validate, append, transition,
        save. If the write fails the stored session is left as it was.

        expected_last is the last snapshot timestamp the caller computed the
        snapshot from; when given, the append is rejected if another snapshot
        has landed since.

        Raises:
            SessionNotFoundError: Unknown session
            SessionClosedError: Session already completed
            OutOfOrderTickError: Timestamp not after the last snapshot, or the
                session moved past expected_last
            PersistenceError: Store failure
        """
        async with self.lock_for(session_id):
            raw = await self._kv.get(self.key("session", session_id))
            if raw is None:
                raise SessionNotFoundError(session_id)
            session = Session.model_validate_json(raw)

            if session.is_completed:
                raise SessionClosedError(
                    f"Session {session_id} is completed",
                    session_id=session_id,
                    status=session.status.value,
                )
            last = session.last_timestamp
            if expected_last is not None and last != expected_last:
                raise OutOfOrderTickError(
                    f"Session advanced to {last} while tick {snapshot.timestamp} "
                    f"was computed from {expected_last}",
                    timestamp=snapshot.timestamp,
                    last_timestamp=last,
                )
            if last is not None and snapshot.timestamp <= last:
                raise OutOfOrderTickError(
                    f"Tick {snapshot.timestamp} is not after last snapshot {last}",
                    timestamp=snapshot.timestamp,
                    last_timestamp=last,
                )

            previous = session.status
            status = SessionStatus.COMPLETED if final else SessionStatus.RUNNING
            metadata = session.metadata.model_copy(
                update={
                    "total_ticks": session.metadata.total_ticks + 1,
                    "total_trades": session.metadata.total_trades + len(snapshot.trades),
                    **_best_and_worst(snapshot.actor_states),
                }
            )
            updated = session.model_copy(
                update={
                    "snapshots": [*session.snapshots, snapshot],
                    "status": status,
                    "metadata": metadata,
                    "updated_at": self._clock(),
                }
            )

            try:
                await self.save_session(updated)
            except PersistenceError:
                await self._restore(session_id, raw)
                raise

        if status != previous:
            await self._publish(_STATUS_EVENTS[status], session_id, {"from": previous.value})
        return updated

    async def configure_actors(
        self,
        session_id: str,
        actor_configs: list[ActorConfig],
    ) -> Session:
        """
        Replace a pending session's actors and re-seed its initial snapshot.

        Raises:
            InvalidSessionStateError: Session has already started
        """
        _check_actor_configs(actor_configs)
        async with self.lock_for(session_id):
            session = await self.require_session(session_id)
            if session.status != SessionStatus.PENDING:
                raise InvalidSessionStateError(
                    f"Actors can only be configured while pending (session is {session.status.value})",
                    session_id=session_id,
                    status=session.status.value,
                )
            session = session.model_copy(
                update={
                    "actor_configs": actor_configs,
                    "snapshots": [_seed_snapshot(actor_configs, session.start_time)],
                    "updated_at": self._clock(),
                }
            )
            await self.save_session(session)
        logger.info("Configured %d actors for session %s", len(actor_configs), session_id)
        return session

    async def start_session(self, session_id: str) -> Session:
        return await self._transition(session_id, SessionStatus.RUNNING)

    async def complete_session(self, session_id: str) -> Session:
        return await self._transition(session_id, SessionStatus.COMPLETED)

    async def _transition(self, session_id: str, target: SessionStatus) -> Session:
        async with self.lock_for(session_id):
            session = await self.require_session(session_id)
            current = session.status
            if current == target:
                return session
            if not current.can_transition_to(target):
                raise InvalidSessionStateError(
                    f"Cannot move session {session_id} from {current.value} to {target.value}",
                    session_id=session_id,
                    status=current.value,
                )
            session = session.model_copy(update={"status": target, "updated_at": self._clock()})
            await self.save_session(session)

        logger.info("Session %s: %s -> %s", session_id, current.value, target.value)
        await self._publish(_STATUS_EVENTS[target], session_id, {"from": current.value})
        return session

    async def get_session_stats(self, session_id: str) -> SessionStats | None:
        session = await self.get_session(session_id)
        if session is None:
            return None
        return SessionStats(
            total_snapshots=len(session.snapshots),
            total_trades=sum(len(s.trades) for s in session.snapshots),
            total_judgments=sum(len(s.decisions) for s in session.snapshots),
            duration=session.duration,
        )

    # =========================================================================
    # Leaderboard
    # =========================================================================

    async def _save_profiles(self, session: Session) -> None:
        ttl = self._settings.session_ttl_s
        for config in session.actor_configs:
            profile = ActorProfile(
                actor_id=config.id,
                name=config.name,
                strategy_type=config.strategy_type,
            )
            await self._kv.set(
                self.key("actor", config.id),
                profile.model_dump_json(by_alias=True),
                ttl_seconds=ttl,
            )
        if session.actor_configs:
            await self._kv.set_add(self.key("actors:list"), *(c.id for c in session.actor_configs))

    async def _record_performance(self, session: Session) -> None:
        """Push one record per actor in the latest snapshot, once the session has ticked."""
        latest = session.last_snapshot
        if latest is None or session.metadata.total_ticks == 0:
            return
        now = self._clock()
        for state in latest.actor_states:
            record = PerformanceRecord(
                session_id=session.session_id,
                total_return=state.total_return,
                total_return_percent=state.total_return_percent,
                total_assets=state.total_assets,
                total_trades=sum(1 for t in latest.trades if t.actor_id == state.actor_id),
                session_duration=session.duration,
                timestamp=latest.timestamp,
                recorded_at=now,
            )
            await self._kv.list_push(
                self.key("player_performance", state.actor_id),
                record.model_dump_json(by_alias=True),
                max_len=self._settings.performance_history_limit,
                ttl_seconds=self._settings.session_ttl_s,
            )

    async def get_performance_history(self, actor_id: str) -> list[PerformanceRecord]:
        """Recorded results for an actor, newest first."""
        raw = await self._kv.list_range(self.key("player_performance", actor_id))
        return [PerformanceRecord.model_validate_json(r) for r in raw]

    async def get_actor_best_performance(self, actor_id: str) -> PerformanceRecord | None:
        """Record with the highest return percent; the newest wins ties."""
        best: PerformanceRecord | None = None
        for record in await self.get_performance_history(actor_id):
            if best is None or record.total_return_percent > best.total_return_percent:
                best = record
        return best

    async def get_actor_profile(self, actor_id: str) -> ActorProfile | None:
        raw = await self._kv.get(self.key("actor", actor_id))
        return ActorProfile.model_validate_json(raw) if raw else None

    async def get_top_actors(self, limit: int = 10) -> list[LeaderboardEntry]:
        """
        Actors ranked by best return percent, descending.

        Actors whose best return is exactly zero are left out.
        """
        actor_ids = sorted(await self._kv.set_members(self.key("actors:list")))

        async def entry(actor_id: str) -> LeaderboardEntry:
            history, profile = await asyncio.gather(
                self.get_performance_history(actor_id),
                self.get_actor_profile(actor_id),
            )
            best = max(history, key=lambda r: r.total_return_percent, default=None)
            return LeaderboardEntry(
                actor_id=actor_id,
                actor_name=profile.name if profile else "Unknown",
                strategy_type=profile.strategy_type if profile else StrategyType.BALANCED,
                total_sessions=len(history),
                total_return=best.total_return if best else 0.0,
                total_return_percent=best.total_return_percent if best else 0.0,
                best_session=(
                    SessionRef(session_id=best.session_id, return_percent=best.total_return_percent)
                    if best
                    else None
                ),
            )

        entries = await asyncio.gather(*(entry(a) for a in actor_ids))
        ranked = sorted(
            (e for e in entries if e.total_return_percent != 0),
            key=lambda e: e.total_return_percent,
            reverse=True,
        )
        return [e.model_copy(update={"rank": i}) for i, e in enumerate(ranked[:limit], start=1)]

    # =========================================================================
    # Internals
    # =========================================================================

    async def _restore(self, session_id: str, raw: str) -> None:
        try:
            await self._kv.set(
                self.key("session", session_id),
                raw,
                ttl_seconds=self._settings.session_ttl_s,
            )
        except PersistenceError as e:
            logger.error("Failed to restore session %s after a failed append: %s", session_id, e)

    async def _publish(self, event_type: EventType, session_id: str, data: dict) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(
                Event(type=event_type, data=data, session_id=session_id)
            )


def _best_and_worst(states: list[ActorState]) -> dict[str, str | None]:
    if not states:
        return {"best_actor_id": None, "worst_actor_id": None}
    ordered = sorted(states, key=lambda s: s.total_return_percent)
    return {"best_actor_id": ordered[-1].actor_id, "worst_actor_id": ordered[0].actor_id}
