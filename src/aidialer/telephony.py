"""Twilio side of the dialer: placing outbound calls and answering turns with TwiML."""

import httpx
import logging
from dataclasses import dataclass

from twilio.twiml.voice_response import Gather, VoiceResponse

from aidialer.prompts import VOICE

logger = logging.getLogger(__name__)

# Statuses Twilio reports once a call is over; anything else is still in flight.
TERMINAL_CALL_STATUSES = frozenset({"completed", "busy", "failed", "no-answer", "canceled"})


@dataclass
class CallResult:
    """Outcome of one call-placement request."""

    success: bool
    call_sid: str | None = None
    error_code: int | str | None = None
    error_message: str | None = None


class CallPlacementClient:
    """Creates outbound calls through Twilio's REST Calls resource.

    Failures never raise: they come back as ``CallResult(success=False)``
    with Twilio's error code and message so one bad number can't sink a
    dispatch pass.
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        status_callback_url: str = "",
        api_base: str = "https://api.twilio.com",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.account_sid = account_sid
        self.from_number = from_number
        self.status_callback_url = status_callback_url
        if client is not None:
            self._client = client
        else:
            self._client = httpx.AsyncClient(
                base_url=api_base.rstrip("/"),
                auth=httpx.BasicAuth(account_sid, auth_token),
                timeout=timeout,
            )

    async def close(self):
        await self._client.aclose()

    async def place_call(self, to: str, callback_url: str) -> CallResult:
        data = {"To": to, "From": self.from_number, "Url": callback_url}
        if self.status_callback_url:
            data["StatusCallback"] = self.status_callback_url
            data["StatusCallbackEvent"] = "completed"
        try:
            resp = await self._client.post(
                f"/2010-04-01/Accounts/{self.account_sid}/Calls.json",
                data=data,
            )
        except httpx.HTTPError as e:
            return CallResult(success=False, error_message=f"transport error: {e}")

        if resp.is_success:
            return CallResult(success=True, call_sid=_json_field(resp, "sid"))

        return CallResult(
            success=False,
            error_code=_json_field(resp, "code") or resp.status_code,
            error_message=_json_field(resp, "message") or resp.text[:500],
        )


def _json_field(resp: httpx.Response, key: str):
    try:
        body = resp.json()
    except ValueError:
        return None
    return body.get(key) if isinstance(body, dict) else None


def build_gather_twiml(utterance: str, action: str = "/webhook") -> str:
    """TwiML that speaks ``utterance`` and posts the caller's next speech to ``action``."""
    response = VoiceResponse()
    gather = Gather(input="speech", action=action, method="POST")
    gather.say(utterance, voice=VOICE)
    response.append(gather)
    return str(response)
