from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from riven.core.auth import SessionAuth
from riven.core.clock import Clock, system_clock
from riven.core.config import Settings, settings
from riven.features.streaks.engine import StreakEngine
from riven.features.streaks.gateway import PersistenceGateway, build_gateway

logger = logging.getLogger("riven")

# (user_id, bearer token or None) -> gateway
GatewayFactory = Callable[[str, Optional[str]], PersistenceGateway]


class StreakRegistry:
    """
    One loaded StreakEngine per signed-in user, created on first use.

    Engines unused for STREAK_SESSION_IDLE_SECONDS are ended by sweep(), the
    same way an explicit logout ends them. Their stored data is kept.
    """

    def __init__(
        self,
        gateway_factory: Optional[GatewayFactory] = None,
        clock: Optional[Clock] = None,
        settings_obj: Optional[Settings] = None,
    ):
        self._settings = settings_obj or settings
        self._gateway_factory = gateway_factory or (
            lambda user_id, token: build_gateway(user_id, settings_obj=self._settings, token=token)
        )
        self._clock = clock or system_clock
        self._engines: Dict[str, StreakEngine] = {}
        self._sessions: Dict[str, SessionAuth] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._last_used: Dict[str, datetime] = {}

    def active_users(self) -> List[str]:
        return sorted(self._engines)

    async def engine_for(self, user_id: str, token: Optional[str] = None) -> StreakEngine:
        """Return the caller's engine; `token` is forwarded to gateways that talk to a remote store."""
        self._last_used[user_id] = self._clock.now()
        engine = self._engines.get(user_id)
        if engine is not None and engine.loaded:
            self._refresh_token(engine, token)
            return engine

        lock = self._locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            engine = self._engines.get(user_id)
            if engine is None:
                session = SessionAuth(authenticated=True)
                engine = StreakEngine(
                    self._gateway_factory(user_id, token),
                    session,
                    self._clock,
                    user_id=user_id,
                    grace_hours=self._settings.STREAK_GRACE_HOURS,
                    at_risk_hours=self._settings.STREAK_AT_RISK_HOURS,
                    history_limit=self._settings.STREAK_HISTORY_LIMIT,
                    timezone=self._settings.STREAK_TIMEZONE,
                )
                self._sessions[user_id] = session
                self._engines[user_id] = engine
            else:
                self._refresh_token(engine, token)
            if not engine.loaded:
                await engine.load()
        return engine

    @staticmethod
    def _refresh_token(engine: StreakEngine, token: Optional[str]) -> None:
        # Tokens expire; the latest one presented wins.
        if token and hasattr(engine.gateway, "token"):
            engine.gateway.token = token

    async def end_session(self, user_id: str) -> bool:
        """Log the user out: in-memory state is dropped, remote data is kept."""
        engine = self._engines.pop(user_id, None)
        session = self._sessions.pop(user_id, None)
        self._locks.pop(user_id, None)
        self._last_used.pop(user_id, None)
        if engine is None:
            return False
        if session is not None:
            session.log_out()
        await engine.close()
        close_gateway = getattr(engine.gateway, "aclose", None)
        if close_gateway is not None:
            await close_gateway()
        logger.info("streak.session_ended", extra={"user_id": user_id})
        return True

    def check_all(self) -> int:
        """Run the lapse check for every live session; returns how many broke."""
        broken = 0
        for user_id, engine in list(self._engines.items()):
            try:
                if engine.check_and_break_if_lapsed():
                    broken += 1
            except Exception:
                logger.exception("streak.check_failed", extra={"user_id": user_id})
        return broken

    async def evict_idle(self) -> int:
        """End sessions unused for longer than STREAK_SESSION_IDLE_SECONDS."""
        cutoff = self._clock.now() - timedelta(seconds=self._settings.STREAK_SESSION_IDLE_SECONDS)
        evicted = 0
        for user_id, last_used in list(self._last_used.items()):
            if last_used >= cutoff:
                continue
            lock = self._locks.get(user_id)
            if lock is not None and lock.locked():
                continue
            if await self.end_session(user_id):
                evicted += 1
        if evicted:
            logger.info("streak.sessions_evicted", extra={"evicted": evicted})
        return evicted

    async def sweep(self) -> int:
        """Periodic job: break lapsed streaks, then drop idle sessions. Returns breaks."""
        broken = self.check_all()
        await self.evict_idle()
        return broken

    async def close(self) -> None:
        for user_id in list(self._engines):
            await self.end_session(user_id)


# Singleton registry used by routes
streak_registry = StreakRegistry()


def get_streak_registry() -> StreakRegistry:
    return streak_registry
