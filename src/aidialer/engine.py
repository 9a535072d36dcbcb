import logging
import time
from dataclasses import dataclass

from aidialer.inference import InferenceClient
from aidialer.logging_context import set_call_id
from aidialer.prompts import FALLBACK_UTTERANCE
from aidialer.session import SessionStore
from aidialer.transcript import chunk_transcript_dump, to_timestamped_dump

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnResult:
    utterance: str
    keep_listening: bool = True


class ConversationEngine:
    """Drives one conversational turn per telephony webhook.

    On each turn:
    1. Resolve or create the call's session (seeded with the system prompt)
    2. Append the caller's speech, if any, as a user turn
    3. Ask the model for the next line given the whole transcript
    4. Append a non-empty reply as an assistant turn and speak it;
       otherwise speak the fallback apology and leave the transcript alone

    The caller always gets something to hear and the call is never ended
    from here; hangups are owned by Twilio.
    """

    def __init__(self, sessions: SessionStore, inference: InferenceClient):
        self.sessions = sessions
        self.inference = inference

    async def handle_turn(self, call_id: str, spoken_text: str | None = None, phone_number: str = "") -> TurnResult:
        if not call_id:
            raise ValueError("call_id is required")
        set_call_id(call_id)

        async with self.sessions.acquire(call_id, phone_number) as session:
            speech = (spoken_text or "").strip()
            if speech:
                session.add_user_turn(speech)
                logger.info("Caller: %s", speech)

            try:
                reply = await self.inference.complete(session.messages())
            except Exception as e:
                logger.error("Inference error: %s", e)
                reply = ""

            if not reply:
                return TurnResult(FALLBACK_UTTERANCE)

            session.add_assistant_turn(reply)
            logger.info("Agent: %s", reply)
            return TurnResult(reply)

    async def end_call(self, call_id: str, status: str = "completed") -> bool:
        """Explicit end-of-call signal: evict the session and log its transcript.

        Returns False when the call had no live session.
        """
        set_call_id(call_id)
        session = await self.sessions.end(call_id)
        if session is None:
            logger.debug("end_call for unknown session %s (%s)", call_id, status)
            return False

        dump = to_timestamped_dump(
            session.transcript,
            start_time=session.created_at,
            call_sid=call_id,
            phone=session.phone_number,
            final_status=status,
        )
        dump["duration_s"] = round(time.time() - session.created_at, 1)
        for line in chunk_transcript_dump(dump):
            logger.info(line)
        logger.info("Session closed for %s: status=%s, turns=%d", call_id, status, len(session.transcript))
        return True
