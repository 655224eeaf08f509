"""Registry of independently running bot sessions (e.g. one per chat)."""

from __future__ import annotations

import re
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from swap_bot.config import Settings
from swap_bot.controller import TradingLoopController
from swap_bot.factory import build_controller
from swap_bot.utils.logging import get_logger

ControllerFactory = Callable[[Settings], TradingLoopController]

_SESSION_ID = re.compile(r"[A-Za-z0-9_-]+")


@dataclass(slots=True)
class _Session:
    controller: TradingLoopController
    thread: threading.Thread | None = None


class BotRegistry:
    """Owns named controllers and their loop threads.

    Sessions share no mutable state. Each session journals under its own
    subdirectory of `journal_dir`, which also keeps paper wallets apart. Sessions
    trading from the same live wallet must partition funds themselves.
    """

    def __init__(self, factory: ControllerFactory = build_controller) -> None:
        self._factory = factory
        self._sessions: dict[str, _Session] = {}
        self._lock = threading.Lock()
        self._logger = get_logger("swap_bot.session")

    def create(self, session_id: str, settings: Settings) -> TradingLoopController:
        if not _SESSION_ID.fullmatch(session_id):
            raise ValueError(f"invalid_session_id: {session_id!r}")
        settings = settings.model_copy(update={"journal_dir": settings.journal_dir / session_id})
        with self._lock:
            if session_id in self._sessions:
                raise ValueError(f"session_exists: {session_id}")
            controller = self._factory(settings)
            self._sessions[session_id] = _Session(controller=controller)
        self._logger.info(
            "session_created",
            session_id=session_id,
            pair_id=settings.pair_id,
            journal_dir=str(settings.journal_dir),
        )
        return controller

    def get(self, session_id: str) -> TradingLoopController | None:
        with self._lock:
            session = self._sessions.get(session_id)
        return session.controller if session else None

    def session_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._sessions)

    def start(self, session_id: str, *, max_iterations: int | None = None) -> threading.Thread:
        """Run the session's loop on a daemon thread."""
        session = self._require(session_id)
        if session.thread is not None and session.thread.is_alive():
            raise RuntimeError(f"session_running: {session_id}")

        def _run() -> None:
            try:
                session.controller.run_forever(max_iterations=max_iterations)
            except Exception as exc:  # noqa: BLE001 - keep the registry usable after a crash.
                self._logger.exception("session_crashed", session_id=session_id, error=str(exc))

        thread = threading.Thread(target=_run, name=f"bot-{session_id}", daemon=True)
        session.thread = thread
        thread.start()
        self._logger.info("session_started", session_id=session_id)
        return thread

    def stop(self, session_id: str, timeout: float | None = None) -> bool:
        """Request a cooperative stop and wait. Returns True once the thread has exited."""
        session = self._require(session_id)
        thread = session.thread
        if thread is None or not thread.is_alive():
            return True
        session.controller.stop()
        thread.join(timeout)
        stopped = not thread.is_alive()
        self._logger.info("session_stopped", session_id=session_id, joined=stopped)
        return stopped

    def status(self, session_id: str) -> dict[str, Any]:
        session = self._require(session_id)
        snapshot = session.controller.status()
        snapshot["session_id"] = session_id
        snapshot["thread_alive"] = bool(session.thread and session.thread.is_alive())
        return snapshot

    def remove(self, session_id: str, timeout: float | None = None) -> None:
        session = self._require(session_id)
        self.stop(session_id, timeout)
        with self._lock:
            self._sessions.pop(session_id, None)
        self._logger.info("session_removed", session_id=session_id)

    def _require(self, session_id: str) -> _Session:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(session_id)
        return session
