"""
Persistence gateways for streak state.

The engine only knows the async contract below; the payload is the camelCase
DTO from StreakState.to_dto(). Three implementations:

- InMemoryStreakGateway: process-local dict, used by default and in tests.
- SqlStreakGateway: the `users.streak_data` TEXT column via SQLAlchemy.
- HttpStreakGateway: a remote Riven server's /api/auth/streak endpoints.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol

import httpx
from sqlalchemy import insert, select, update
from sqlalchemy.orm import Session

from riven.core.config import Settings, settings
from riven.core.database import get_db_session, users
from riven.core.errors import PersistenceError

logger = logging.getLogger("riven")

STREAK_PATH = "/api/auth/streak"


class PersistenceGateway(Protocol):
    async def load(self) -> Optional[dict]:
        ...

    async def save(self, state: dict) -> None:
        ...


class InMemoryStreakGateway:
    """Dict-backed gateway. Several gateways may share one `store`."""

    def __init__(self, user_id: str, store: Optional[Dict[str, dict]] = None):
        self.user_id = user_id
        self.store: Dict[str, dict] = store if store is not None else {}
        self.fail_loads = False
        self.fail_saves = False
        self.loads = 0
        self.saves: List[dict] = []

    async def load(self) -> Optional[dict]:
        self.loads += 1
        if self.fail_loads:
            raise PersistenceError("streak store unavailable")
        data = self.store.get(self.user_id)
        return copy.deepcopy(data) if data is not None else None

    async def save(self, state: dict) -> None:
        if self.fail_saves:
            raise PersistenceError("streak store unavailable")
        snapshot = copy.deepcopy(state)
        self.store[self.user_id] = snapshot
        self.saves.append(snapshot)


# SQL ------------------------------------------------------------------

def read_streak_blob(session: Session, user_id: str) -> Optional[dict]:
    """Return the stored blob, None when the user has no row."""
    row = session.execute(
        select(users.c.streak_data).where(users.c.user_id == user_id)
    ).first()
    if row is None:
        return None
    try:
        data = json.loads(row.streak_data or "{}")
    except (TypeError, ValueError) as e:
        logger.warning(f"Error parsing streak_data for {user_id}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def write_streak_blob(session: Session, user_id: str, data: dict) -> None:
    """Upsert the blob for a user. Caller owns the transaction."""
    payload = json.dumps(data or {})
    now = datetime.now(timezone.utc)
    exists = session.execute(
        select(users.c.user_id).where(users.c.user_id == user_id)
    ).first()
    if exists:
        session.execute(
            update(users)
            .where(users.c.user_id == user_id)
            .values(streak_data=payload, updated_at=now)
        )
    else:
        session.execute(
            insert(users).values(
                user_id=user_id,
                streak_data=payload,
                created_at=now,
                updated_at=now,
            )
        )


class SqlStreakGateway:
    """Reads/writes users.streak_data; blocking work runs in a worker thread."""

    def __init__(self, user_id: str, session_scope: Callable = get_db_session):
        self.user_id = user_id
        self._session_scope = session_scope

    def _load_sync(self) -> Optional[dict]:
        with self._session_scope() as session:
            return read_streak_blob(session, self.user_id)

    def _save_sync(self, state: dict) -> None:
        with self._session_scope() as session:
            write_streak_blob(session, self.user_id, state)

    async def load(self) -> Optional[dict]:
        try:
            return await asyncio.to_thread(self._load_sync)
        except Exception as e:
            raise PersistenceError(f"failed to load streak for {self.user_id}: {e}") from e

    async def save(self, state: dict) -> None:
        try:
            await asyncio.to_thread(self._save_sync, state)
        except Exception as e:
            raise PersistenceError(f"failed to save streak for {self.user_id}: {e}") from e


# HTTP -----------------------------------------------------------------

class HttpStreakGateway:
    """
    Client for a remote server's GET/PUT /api/auth/streak.

    The remote identifies the user from the bearer token; `user_id` is also
    sent as X-User-Id for servers that trust the header. `token` may be
    replaced between calls when the caller presents a fresh one.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        user_id: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.user_id = user_id
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if self.user_id:
            headers["X-User-Id"] = self.user_id
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def load(self) -> Optional[dict]:
        url = f"{self.base_url}{STREAK_PATH}"
        try:
            response = await self._get_client().get(url, headers=self._headers())
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PersistenceError(f"GET {STREAK_PATH} failed: {e}") from e
        return data if isinstance(data, dict) else None

    async def save(self, state: dict) -> None:
        url = f"{self.base_url}{STREAK_PATH}"
        try:
            response = await self._get_client().put(
                url, json={"streakData": state}, headers=self._headers()
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise PersistenceError(f"PUT {STREAK_PATH} failed: {e}") from e

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


_memory_store: Dict[str, dict] = {}


def build_gateway(
    user_id: str,
    *,
    settings_obj: Optional[Settings] = None,
    token: Optional[str] = None,
):
    """Pick a gateway implementation from STREAK_BACKEND."""
    cfg = settings_obj or settings
    backend = (cfg.STREAK_BACKEND or "memory").lower()
    if backend == "memory":
        return InMemoryStreakGateway(user_id, _memory_store)
    if backend == "sql":
        return SqlStreakGateway(user_id)
    if backend == "http":
        if not cfg.STREAK_REMOTE_URL:
            raise ValueError("STREAK_REMOTE_URL is required for the http streak backend")
        return HttpStreakGateway(
            cfg.STREAK_REMOTE_URL,
            token,
            user_id=user_id,
            timeout=cfg.STREAK_REMOTE_TIMEOUT_SECONDS,
        )
    raise ValueError(f"Unknown STREAK_BACKEND: {cfg.STREAK_BACKEND!r}")
