import httpx
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

STATUS_NOT_CONTACTED = "Not contacted yet"


class LeadStoreError(Exception):
    """The lead row could not be written."""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_call_time(raw) -> datetime:
    if raw is None or raw == "":
        return _utc_now()
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return datetime.fromtimestamp(raw / 1000, tz=timezone.utc)
    else:
        value = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _as_list(raw, name: str, wrap_scalar: bool = False) -> list:
    if raw is None or raw == "":
        return []
    if isinstance(raw, (list, tuple)):
        return list(raw)
    if wrap_scalar and isinstance(raw, str):
        return [raw]
    raise ValueError(f"{name} must be a list, got {type(raw).__name__}")


@dataclass
class LoggedLead:
    phone: str = ""
    address: str = ""
    call_time: datetime = field(default_factory=_utc_now)
    tags: list = field(default_factory=list)
    status: str = ""
    summary: str = ""
    messages: list = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: dict | None) -> "LoggedLead":
        """Build a lead from a loose JSON payload, filling in defaults for missing fields.

        ``callTime``/``call_time`` may be an ISO-8601 string or a number of
        epoch milliseconds.  A lone string in ``tags`` becomes a one-item list;
        ``messages`` must be a list.  Anything else raises ``ValueError``.
        """
        data = data or {}
        return cls(
            phone=str(data.get("phone") or ""),
            address=str(data.get("address") or ""),
            call_time=_parse_call_time(data.get("callTime", data.get("call_time"))),
            tags=_as_list(data.get("tags"), "tags", wrap_scalar=True),
            status=str(data.get("status") or ""),
            summary=str(data.get("summary") or ""),
            messages=_as_list(data.get("messages"), "messages"),
        )

    def to_row(self) -> dict:
        return {
            "phone": self.phone,
            "address": self.address,
            "call_time": self.call_time.astimezone(timezone.utc).isoformat(),
            "tags": self.tags,
            "status": self.status,
            "summary": self.summary,
            "messages": self.messages,
        }


class LeadStoreClient:
    """Inserts lead rows through Supabase's REST interface."""

    def __init__(
        self,
        supabase_url: str,
        api_key: str,
        table: str = "leads",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.table = table
        if client is not None:
            self._client = client
        else:
            self._client = httpx.AsyncClient(
                base_url=f"{supabase_url.rstrip('/')}/rest/v1",
                headers={
                    "apikey": api_key,
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                    "Prefer": "return=minimal",
                },
                timeout=timeout,
            )

    async def close(self):
        await self._client.aclose()

    async def log_lead(self, lead: LoggedLead) -> None:
        try:
            resp = await self._client.post(f"/{self.table}", json=lead.to_row())
        except httpx.HTTPError as e:
            logger.error("Supabase insert error: %s", e)
            raise LeadStoreError(str(e)) from e

        if not resp.is_success:
            logger.error("Supabase insert error: HTTP %d %s", resp.status_code, resp.text[:500])
            raise LeadStoreError(f"insert into {self.table} returned HTTP {resp.status_code}")
