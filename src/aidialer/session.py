import asyncio
import contextlib
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)

ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class Turn:
    role: str
    content: str
    timestamp: float = 0.0

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"unknown turn role: {self.role!r}")

    def as_message(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class ConversationSession:
    """Per-call transcript.

    The system turn is fixed at creation and always first.  After that the
    transcript only grows: turns are frozen and there is no removal API.
    """

    call_sid: str
    phone_number: str = ""
    created_at: float = 0.0
    last_activity: float = 0.0

    _turns: list = field(default_factory=list, init=False, repr=False)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False, compare=False)

    @classmethod
    def start(cls, call_sid: str, system_prompt: str, phone_number: str = "") -> "ConversationSession":
        now = time.time()
        session = cls(call_sid=call_sid, phone_number=phone_number, created_at=now, last_activity=now)
        session._turns.append(Turn("system", system_prompt, now))
        return session

    @property
    def transcript(self) -> tuple:
        return tuple(self._turns)

    def messages(self) -> list[dict]:
        """Transcript in chat-completions message shape."""
        return [t.as_message() for t in self._turns]

    def add_user_turn(self, text: str) -> Turn:
        return self._append("user", text)

    def add_assistant_turn(self, text: str) -> Turn:
        return self._append("assistant", text)

    def _append(self, role: str, text: str) -> Turn:
        now = time.time()
        turn = Turn(role, text, now)
        self._turns.append(turn)
        self.last_activity = now
        return turn

    def touch(self) -> None:
        self.last_activity = time.time()

    def is_idle(self, ttl_seconds: float, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now - self.last_activity >= ttl_seconds


class SessionStore:
    """Registry of live conversations keyed by CallSid.

    Creation-if-absent runs under a store-wide lock so two first turns for the
    same call can't both seed a system turn.  ``acquire()`` additionally holds
    the session's own lock for the duration of a turn, which serializes turns
    per call while leaving other calls free to interleave.

    Sessions leave the store through ``end()`` (explicit end-of-call signal)
    or through the idle sweep run by ``start_cleanup_task()``.
    """

    def __init__(self, system_prompt: str, ttl_seconds: float = 3600.0):
        self.system_prompt = system_prompt
        self.ttl_seconds = ttl_seconds
        self._sessions: dict[str, ConversationSession] = {}
        self._lock = asyncio.Lock()
        self._cleanup_task: asyncio.Task | None = None

    async def get_or_create(self, call_sid: str, phone_number: str = "") -> ConversationSession:
        async with self._lock:
            session = self._sessions.get(call_sid)
            if session is None:
                session = ConversationSession.start(call_sid, self.system_prompt, phone_number)
                self._sessions[call_sid] = session
                logger.info("New conversation session for %s", call_sid)
            elif phone_number and not session.phone_number:
                session.phone_number = phone_number
            return session

    @asynccontextmanager
    async def acquire(self, call_sid: str, phone_number: str = "") -> AsyncIterator[ConversationSession]:
        """Resolve-or-create the session and hold it exclusively."""
        session = await self.get_or_create(call_sid, phone_number)
        async with session.lock:
            session.touch()
            yield session

    async def get(self, call_sid: str) -> ConversationSession | None:
        async with self._lock:
            return self._sessions.get(call_sid)

    async def end(self, call_sid: str) -> ConversationSession | None:
        """Evict a session once any in-flight turn has finished.

        Returns the session (for post-call logging) or None if unknown.
        """
        async with self._lock:
            session = self._sessions.get(call_sid)
        if session is None:
            return None
        async with session.lock:
            async with self._lock:
                if self._sessions.get(call_sid) is not session:
                    return None
                del self._sessions[call_sid]
        return session

    async def count(self) -> int:
        async with self._lock:
            return len(self._sessions)

    async def evict_idle(self, now: Optional[float] = None) -> int:
        """Drop sessions idle for longer than the TTL. Returns how many were removed."""
        async with self._lock:
            expired = [
                sid for sid, s in self._sessions.items()
                if not s.lock.locked() and s.is_idle(self.ttl_seconds, now)
            ]
            for sid in expired:
                del self._sessions[sid]
        if expired:
            logger.info("Evicted %d idle session(s)", len(expired))
        return len(expired)

    async def start_cleanup_task(self, interval_seconds: float = 60.0) -> None:
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._periodic_cleanup(interval_seconds))

    async def stop_cleanup_task(self) -> None:
        if self._cleanup_task:
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None

    async def _periodic_cleanup(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            await self.evict_idle()
