"""
Ledger persistence collaborators.

All of them are best-effort: failures are logged and swallowed, load returns
None and save returns False. Nothing here is retried.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
import redis

from .schema import SessionLedger, parse_ledger

logger = logging.getLogger(__name__)

DEFAULT_PLAYER_ID = "default-user"
DEFAULT_STATE_DIR = "./kai_state"
REDIS_CONNECT_TIMEOUT = 2.0
REDIS_SOCKET_TIMEOUT = 2.0

_UNSAFE_ID = re.compile(r"[^A-Za-z0-9_-]")


def safe_player_id(player_id: str) -> str:
    """Player id reduced to characters that are safe in a file name."""
    return _UNSAFE_ID.sub("_", player_id) or "_"


class LedgerStore(ABC):
    """Abstract base class for ledger stores."""

    @abstractmethod
    async def load(self, player_id: str) -> Optional[SessionLedger]:
        """Load and upgrade the player's ledger, None when absent or unreadable."""

    @abstractmethod
    async def save(self, ledger: SessionLedger) -> bool:
        """Persist the ledger. Returns False on failure."""

    async def close(self) -> None:
        return None


class FileLedgerStore(LedgerStore):
    """One JSON file per player under state_dir. File IO runs in a worker thread."""

    def __init__(self, state_dir: str = DEFAULT_STATE_DIR):
        self.state_dir = state_dir

    def _path(self, player_id: str) -> str:
        return os.path.join(self.state_dir, f"ledger_{safe_player_id(player_id)}.json")

    def _read(self, p: str) -> Any:
        with open(p, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, p: str, text: str) -> None:
        os.makedirs(self.state_dir, exist_ok=True)
        with open(p, "w", encoding="utf-8") as f:
            f.write(text)

    async def load(self, player_id: str) -> Optional[SessionLedger]:
        p = self._path(player_id)
        if not os.path.exists(p):
            return None
        try:
            raw = await asyncio.to_thread(self._read, p)
        except (OSError, ValueError) as e:
            logger.warning("could not read ledger %s: %s", p, e)
            return None
        return parse_ledger(raw)

    async def save(self, ledger: SessionLedger) -> bool:
        try:
            await asyncio.to_thread(self._write, self._path(ledger.player_id), ledger.model_dump_json())
            return True
        except OSError as e:
            logger.warning("could not write ledger for %s: %s", ledger.player_id, e)
            return False

    def list_players(self) -> List[str]:
        if not os.path.isdir(self.state_dir):
            return []
        out: List[str] = []
        for name in sorted(os.listdir(self.state_dir)):
            if name.startswith("ledger_") and name.endswith(".json"):
                out.append(name[len("ledger_"):-len(".json")])
        return out


class RedisLedgerStore(LedgerStore):
    """
    Keys:
      kai:ledger:<player> -> JSON string
      kai:players (set)   -> player ids

    The client is synchronous; every call runs in a worker thread.
    """

    def __init__(self, url: str, client: Optional[Any] = None):
        self.url = url
        self._redis = client if client is not None else redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=REDIS_CONNECT_TIMEOUT,
            socket_timeout=REDIS_SOCKET_TIMEOUT,
        )

    def _k_ledger(self, player_id: str) -> str:
        return f"kai:ledger:{player_id}"

    def _k_players(self) -> str:
        return "kai:players"

    def _write(self, player_id: str, text: str) -> None:
        self._redis.set(self._k_ledger(player_id), text)
        self._redis.sadd(self._k_players(), player_id)

    async def load(self, player_id: str) -> Optional[SessionLedger]:
        try:
            s = await asyncio.to_thread(self._redis.get, self._k_ledger(player_id))
        except redis.RedisError as e:
            logger.warning("redis load failed for %s: %s", player_id, e)
            return None
        if s is None:
            return None
        try:
            raw = json.loads(s)
        except ValueError as e:
            logger.warning("redis ledger for %s is not JSON: %s", player_id, e)
            return None
        return parse_ledger(raw)

    async def save(self, ledger: SessionLedger) -> bool:
        try:
            await asyncio.to_thread(self._write, ledger.player_id, ledger.model_dump_json())
            return True
        except redis.RedisError as e:
            logger.warning("redis save failed for %s: %s", ledger.player_id, e)
            return False

    async def close(self) -> None:
        try:
            await asyncio.to_thread(self._redis.close)
        except redis.RedisError:
            pass


class HttpLedgerStore(LedgerStore):
    """
    Remote memory service:
      GET  {base}/memory?userId=<player>  -> ledger JSON (404 when unknown)
      POST {base}/memory {"userId", "data"}
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def load(self, player_id: str) -> Optional[SessionLedger]:
        try:
            async with self._client() as client:
                response = await client.get("/memory", params={"userId": player_id})
            if response.status_code == 404:
                return None
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("remote ledger load failed for %s: %s", player_id, e)
            return None
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            body = body["data"]
        if not isinstance(body, dict):
            return None
        return parse_ledger(body)

    async def save(self, ledger: SessionLedger) -> bool:
        payload: Dict[str, Any] = {"userId": ledger.player_id, "data": ledger.model_dump(mode="json")}
        try:
            async with self._client() as client:
                response = await client.post("/memory", json=payload)
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warning("remote ledger save failed for %s: %s", ledger.player_id, e)
            return False


def get_player_id() -> str:
    return os.getenv("KAI_PLAYER_ID", DEFAULT_PLAYER_ID)


def get_ledger_store() -> LedgerStore:
    """Pick a store from the environment: remote service, then Redis, then files."""
    url = os.getenv("KAI_LEDGER_URL")
    if url:
        return HttpLedgerStore(url)
    redis_url = os.getenv("REDIS_URL")
    if redis_url:
        try:
            return RedisLedgerStore(redis_url)
        except (redis.RedisError, ValueError) as e:
            logger.warning("redis unavailable, using file storage: %s", e)
    return FileLedgerStore(os.getenv("KAI_STATE_DIR", DEFAULT_STATE_DIR))
