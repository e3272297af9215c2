import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Set

from .utils import json_log


RENAME_PROMPT = "Do you want to rename the PDF file? (yes/no)"
NEW_NAME_PROMPT = "Please enter the new name for the PDF file (without extension):"
TIMEOUT_MESSAGE = "You did not respond in time. The renaming process has been aborted."
DEFAULT_OUTPUT_NAME = "images"

PipelineRunner = Callable[[str, str, Any], Awaitable[Any]]


class Phase(str, Enum):
    # "awaiting url" is the absence of a session
    AWAITING_RENAME_CHOICE = "awaiting_rename_choice"
    AWAITING_NEW_NAME = "awaiting_new_name"


@dataclass
class ConversationSession:
    user_id: str
    pending_url: str
    reply: Any
    phase: Phase = Phase.AWAITING_RENAME_CHOICE
    output_name: Optional[str] = None
    pending_timeout: Optional[Any] = None
    # bumped on every cancel/arm; a timer only acts if its token is still current
    timer_token: int = 0


class AsyncioScheduler:
    """
    Thin wrapper over loop.call_later. Returned handles expose cancel().
    """

    def call_later(self, delay: float, callback: Callable[[], None]):
        return asyncio.get_running_loop().call_later(delay, callback)


class SessionStore:
    """
    At most one session per user id. Each user also gets a lock so that messages from
    the same user are handled one at a time; different users never share a lock.
    A lock only lives while its user has a session or a message in flight.
    """

    def __init__(self):
        self.sessions: Dict[str, ConversationSession] = {}
        self.locks: Dict[str, asyncio.Lock] = {}
        # handlers holding or waiting on each user's lock
        self.holders: Dict[str, int] = {}

    @asynccontextmanager
    async def serialized(self, user_id: str) -> AsyncIterator[None]:
        lock = self.locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self.locks[user_id] = lock
        self.holders[user_id] = self.holders.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self.holders[user_id] -= 1
            if not self.holders[user_id]:
                del self.holders[user_id]
            self.release_idle_lock(user_id)

    def release_idle_lock(self, user_id: str) -> bool:
        if user_id in self.sessions or user_id in self.holders:
            return False
        return self.locks.pop(user_id, None) is not None

    def get_session(self, user_id: str) -> Optional[ConversationSession]:
        return self.sessions.get(user_id)

    def create_session(self, user_id: str, url: str, reply: Any) -> ConversationSession:
        if user_id in self.sessions:
            raise RuntimeError(f"session already exists for {user_id}")
        sess = ConversationSession(user_id=user_id, pending_url=url, reply=reply)
        self.sessions[user_id] = sess
        return sess

    def delete_session(self, user_id: str, session: Optional[ConversationSession] = None) -> bool:
        current = self.sessions.get(user_id)
        if current is None or (session is not None and current is not session):
            return False
        del self.sessions[user_id]
        return True

    def __len__(self) -> int:
        return len(self.sessions)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self.sessions


class ConversationStateMachine:
    def __init__(
        self,
        store: SessionStore,
        pipeline: PipelineRunner,
        scheduler: Optional[Any] = None,
        timeout_seconds: float = 60.0,
    ):
        self.store = store
        self.pipeline = pipeline
        self.scheduler = scheduler or AsyncioScheduler()
        self.timeout_seconds = timeout_seconds
        self._background: Set[asyncio.Task] = set()

    async def handle_text(self, user_id: str, text: str, reply: Any):
        async with self.store.serialized(user_id):
            session = self.store.get_session(user_id)
            if session is None:
                session = self.store.create_session(user_id, text, reply)
                self._arm_timer(session)
                json_log("session_started", user_id=user_id, url=text[:500])
                await self._say(reply, RENAME_PROMPT)
                return

            # cancel and transition happen with no await in between, so a timer
            # callback can never observe a half-done transition
            self._cancel_timer(session)
            session.reply = reply

            if session.phase is Phase.AWAITING_RENAME_CHOICE:
                if text.lower() == "yes":
                    session.phase = Phase.AWAITING_NEW_NAME
                    self._arm_timer(session)
                    json_log("session_rename_requested", user_id=user_id)
                    await self._say(reply, NEW_NAME_PROMPT)
                    return
                session.output_name = DEFAULT_OUTPUT_NAME
            else:
                session.output_name = text

            await self._run_pipeline(session)

    async def _run_pipeline(self, session: ConversationSession):
        json_log("pipeline_invoked", user_id=session.user_id, url=session.pending_url[:500], output_name=session.output_name)
        try:
            await self.pipeline(session.pending_url, session.output_name, session.reply)
        except Exception as e:
            json_log("pipeline_unhandled_error", level=logging.ERROR, user_id=session.user_id, error=str(e))
        finally:
            self.store.delete_session(session.user_id, session)
            json_log("session_closed", user_id=session.user_id)

    def _arm_timer(self, session: ConversationSession):
        self._cancel_timer(session)
        token = session.timer_token
        session.pending_timeout = self.scheduler.call_later(
            self.timeout_seconds, partial(self._on_timeout, session.user_id, session, token)
        )

    def _cancel_timer(self, session: ConversationSession):
        if session.pending_timeout is not None:
            session.pending_timeout.cancel()
            session.pending_timeout = None
        session.timer_token += 1

    def _on_timeout(self, user_id: str, session: ConversationSession, token: int):
        if self.store.get_session(user_id) is not session or session.timer_token != token:
            json_log("session_timeout_stale", user_id=user_id)
            return
        session.pending_timeout = None
        session.timer_token += 1
        self.store.delete_session(user_id, session)
        self.store.release_idle_lock(user_id)
        json_log("session_timed_out", user_id=user_id, phase=session.phase.value)
        task = asyncio.ensure_future(self._say(session.reply, TIMEOUT_MESSAGE))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self):
        """Wait for pending timeout notices (used at shutdown and in tests)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    @staticmethod
    async def _say(reply: Any, text: str):
        try:
            await reply.reply_text(text)
        except Exception as e:
            json_log("reply_failed", level=logging.ERROR, error=str(e))
