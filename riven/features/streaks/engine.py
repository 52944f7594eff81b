from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import tzinfo
from typing import Callable, List, Optional, Set, Union
from zoneinfo import ZoneInfo

from riven.core.auth import AuthGateway, SessionAuth
from riven.core.clock import Clock, system_clock
from riven.core.config import settings
from riven.core.logging import log_event
from riven.features.streaks.gateway import PersistenceGateway
from riven.features.streaks.scheduler import BreakCheckTimer
from riven.features.streaks.status import calculate_status, hours_remaining, studied_today
from riven.models.streak import StreakMemorial, StreakSnapshot, StreakState, StreakStatus

logger = logging.getLogger("riven")

Subscriber = Callable[[StreakSnapshot], None]


class StreakEngine:
    """
    Owns one user's streak state: derives status from the last study instant,
    applies study/break/reset transitions, and pushes every new state to the
    persistence gateway without waiting on it.

    Transitions run synchronously on the caller's thread, so a read right
    after a mutation always sees the new state. Saves are queued as tasks and
    written in the order the transitions happened; a failed save is logged
    and forgotten, and the next successful save carries the latest state.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        auth: Optional[AuthGateway] = None,
        clock: Optional[Clock] = None,
        *,
        user_id: Optional[str] = None,
        grace_hours: Optional[float] = None,
        at_risk_hours: Optional[float] = None,
        history_limit: Optional[int] = None,
        timezone: Union[str, tzinfo, None] = None,
    ):
        self.user_id = user_id
        self._gateway = gateway
        # No auth gateway means an anonymous session.
        self._auth = auth if auth is not None else SessionAuth()
        self._clock = clock or system_clock
        self.grace_hours = grace_hours if grace_hours is not None else settings.STREAK_GRACE_HOURS
        self.at_risk_hours = at_risk_hours if at_risk_hours is not None else settings.STREAK_AT_RISK_HOURS
        self.history_limit = history_limit if history_limit is not None else settings.STREAK_HISTORY_LIMIT
        tz = timezone if timezone is not None else settings.STREAK_TIMEZONE
        self.tz: tzinfo = ZoneInfo(tz) if isinstance(tz, str) else tz

        self._state = StreakState.empty()
        self._loaded = False
        self._subscribers: List[Subscriber] = []
        self._pending: Set[asyncio.Task] = set()
        self._save_lock: Optional[asyncio.Lock] = None
        self._timer: Optional[BreakCheckTimer] = None
        self.save_failures = 0

        add_listener = getattr(self._auth, "add_listener", None)
        self._remove_auth_listener = add_listener(self._on_auth_change) if add_listener else None

    # Reads ------------------------------------------------------------
    @property
    def gateway(self) -> PersistenceGateway:
        return self._gateway

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def state(self) -> StreakState:
        return replace(self._state, past_streaks=list(self._state.past_streaks))

    def status(self) -> StreakStatus:
        return calculate_status(
            self._state.last_study_date, self._clock.now(), self.grace_hours, self.at_risk_hours
        )

    def get_snapshot(self) -> StreakSnapshot:
        now = self._clock.now()
        state = self._state
        return StreakSnapshot(
            current_streak=state.current_streak,
            longest_streak=state.longest_streak,
            last_study_date=state.last_study_date,
            streak_start_date=state.streak_start_date,
            past_streaks=tuple(state.past_streaks),
            status=calculate_status(state.last_study_date, now, self.grace_hours, self.at_risk_hours),
            hours_remaining=hours_remaining(state.last_study_date, now, self.grace_hours),
            studied_today=studied_today(state.last_study_date, now, self.tz),
            loaded=self._loaded,
        )

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register for snapshots after every change. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # Lifecycle --------------------------------------------------------
    async def load(self) -> StreakSnapshot:
        """Fetch remote state. Falls back to empty on any failure; always ends loaded."""
        if not self._auth.is_authenticated():
            self._state = StreakState.empty()
            self._loaded = True
            self._notify()
            return self.get_snapshot()

        data = None
        try:
            data = await self._gateway.load()
        except Exception as e:
            log_event(
                "warning",
                "streak.load_failed",
                user_id=self.user_id,
                event_type="streak.load_failed",
                error_code=getattr(e, "code", "persistence_unavailable"),
                extra={"error": e},
            )

        self._state = StreakState.from_dto(data, self.history_limit) if data else StreakState.empty()
        self._loaded = True
        self._notify()
        self.check_and_break_if_lapsed()
        return self.get_snapshot()

    def start_break_checks(self, interval: Optional[float] = None) -> BreakCheckTimer:
        """Run check_and_break_if_lapsed periodically until stopped or closed."""
        if self._timer is None:
            self._timer = BreakCheckTimer(
                self.check_and_break_if_lapsed,
                interval or settings.STREAK_CHECK_INTERVAL_SECONDS,
                name=f"streak-break-check:{self.user_id or 'local'}",
            )
        self._timer.start()
        return self._timer

    async def stop_break_checks(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            await timer.stop()

    async def flush(self) -> None:
        """Wait for every queued save to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def close(self) -> None:
        await self.stop_break_checks()
        if self._remove_auth_listener is not None:
            self._remove_auth_listener()
            self._remove_auth_listener = None
        await self.flush()
        self._subscribers.clear()

    # Transitions ------------------------------------------------------
    def record_study_event(self) -> StreakSnapshot:
        """Count a finished study or test session toward the streak."""
        if not self._loaded or not self._auth.is_authenticated():
            return self.get_snapshot()

        now = self._clock.now()
        prev = self._state

        if prev.current_streak > 0 and studied_today(prev.last_study_date, now, self.tz):
            # Same calendar day: the streak already counts today.
            self._commit(replace(prev, last_study_date=now), "streak.refreshed")
            return self.get_snapshot()

        status = calculate_status(prev.last_study_date, now, self.grace_hours, self.at_risk_hours)
        if status == "broken" or prev.current_streak == 0:
            base = self._memorialize(prev) if prev.current_streak > 0 else prev
            updated = replace(
                base,
                current_streak=1,
                last_study_date=now,
                streak_start_date=now,
                longest_streak=max(base.longest_streak, 1),
            )
            event = "streak.started"
        else:
            streak = prev.current_streak + 1
            updated = replace(
                prev,
                current_streak=streak,
                last_study_date=now,
                longest_streak=max(prev.longest_streak, streak),
            )
            event = "streak.extended"

        self._commit(updated, event)
        return self.get_snapshot()

    def check_and_break_if_lapsed(self) -> bool:
        """Memorialize and zero a streak whose grace window has run out."""
        if not self._loaded or not self._auth.is_authenticated():
            return False
        if self._state.current_streak <= 0 or self.status() != "broken":
            return False
        self._commit(self._memorialize(self._state), "streak.broken")
        return True

    def reset(self) -> StreakSnapshot:
        """Wipe the streak and its memorials. Not recoverable."""
        if not self._loaded or not self._auth.is_authenticated():
            return self.get_snapshot()
        self._commit(StreakState.empty(), "streak.reset")
        return self.get_snapshot()

    # Internal helpers -------------------------------------------------
    def _memorialize(self, state: StreakState) -> StreakState:
        memorial = StreakMemorial(
            streak=state.current_streak,
            start_date=state.streak_start_date,
            end_date=state.last_study_date,
        )
        return replace(
            state,
            current_streak=0,
            streak_start_date=None,
            past_streaks=([memorial] + list(state.past_streaks))[: self.history_limit],
        )

    def _commit(self, new_state: StreakState, event: str) -> None:
        previous = self._state.current_streak
        self._state = new_state
        log_event(
            "info",
            event,
            user_id=self.user_id,
            event_type=event,
            extra={"previous": previous, "current": new_state.current_streak},
        )
        self._notify()
        self._dispatch_save(new_state.to_dto())

    def _notify(self) -> None:
        if not self._subscribers:
            return
        snapshot = self.get_snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("streak.subscriber_failed", extra={"user_id": self.user_id})

    def _dispatch_save(self, dto: dict) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop (sync caller): save inline
            asyncio.run(self._save(dto))
            return
        task = loop.create_task(self._save(dto))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _save(self, dto: dict) -> None:
        if self._save_lock is None:
            self._save_lock = asyncio.Lock()
        async with self._save_lock:
            try:
                await self._gateway.save(dto)
            except Exception as e:
                self.save_failures += 1
                log_event(
                    "warning",
                    "streak.save_failed",
                    user_id=self.user_id,
                    event_type="streak.save_failed",
                    error_code=getattr(e, "code", "persistence_unavailable"),
                    extra={"error": e},
                )

    def _on_auth_change(self, authenticated: bool) -> None:
        if authenticated:
            # Fresh login: mutations stay off until load() fetches the stored state.
            self._loaded = False
            return
        self._state = StreakState.empty()
        self._loaded = True
        if self._timer is not None:
            timer, self._timer = self._timer, None
            try:
                asyncio.get_running_loop().create_task(timer.stop())
            except RuntimeError:
                # No running loop means the timer task cannot be alive.
                pass
        self._notify()
