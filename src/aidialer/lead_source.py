import httpx
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

INCLUDE_RELATIONS = "owner,phones,contacts"


class LeadSourceError(Exception):
    """Listing leads failed (network, auth or an unreadable response)."""


@dataclass(frozen=True)
class PhoneCandidate:
    number: str
    do_not_call: bool = False


@dataclass
class LeadRecord:
    """Read-only view of one property returned by DealMachine."""

    address: str = ""
    owner_phones: list[PhoneCandidate] = field(default_factory=list)
    contact_phones: list[str] = field(default_factory=list)
    tags: list = field(default_factory=list)
    lead_id: str = ""

    @classmethod
    def from_api(cls, item: dict) -> "LeadRecord":
        attrs = item.get("attributes") or {}
        owner = attrs.get("owner") or {}

        owner_phones = []
        for p in owner.get("phones") or []:
            if isinstance(p, dict):
                owner_phones.append(
                    PhoneCandidate(number=str(p.get("number") or ""), do_not_call=bool(p.get("do_not_call")))
                )

        contact_phones = []
        for c in attrs.get("contacts") or []:
            phone = c.get("phone") if isinstance(c, dict) else None
            contact_phones.append(str(phone) if phone else "")

        return cls(
            address=attrs.get("address") or "",
            owner_phones=owner_phones,
            contact_phones=contact_phones,
            tags=list(attrs.get("tags") or []),
            lead_id=str(item.get("id", "")),
        )


class LeadSourceClient:
    """Paginated client for DealMachine's property listing."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.dealmachine.com/public/v1",
        timeout: float = 20.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        if client is not None:
            self._client = client
        else:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Accept": "application/json",
                },
                timeout=timeout,
            )

    async def close(self):
        await self._client.aclose()

    async def fetch_page(self, page: int, page_size: int, tag: str) -> list[LeadRecord]:
        """Return one page of leads; an empty list means the listing is exhausted."""
        params = {
            "filter[tags]": tag,
            "include": INCLUDE_RELATIONS,
            "page[number]": page,
            "page[size]": page_size,
        }
        try:
            resp = await self._client.get("/properties/", params=params)
        except httpx.HTTPError as e:
            raise LeadSourceError(f"lead source request failed: {e}") from e

        logger.info("DealMachine GET %s -> HTTP %d", resp.request.url.path, resp.status_code)
        if not resp.is_success:
            raise LeadSourceError(f"lead source returned HTTP {resp.status_code}: {resp.text[:800]}")

        try:
            body = resp.json()
        except ValueError as e:
            raise LeadSourceError(f"lead source returned unreadable JSON: {e}") from e

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            return []
        return [LeadRecord.from_api(item) for item in data if isinstance(item, dict)]
