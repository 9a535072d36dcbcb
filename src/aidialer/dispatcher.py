import logging
from dataclasses import dataclass

from aidialer.lead_source import LeadRecord, LeadSourceClient, PhoneCandidate
from aidialer.lead_store import STATUS_NOT_CONTACTED, LeadStoreClient, LoggedLead
from aidialer.telephony import CallPlacementClient

logger = logging.getLogger(__name__)

DEFAULT_CALL_LIMIT = 3


def parse_call_limit(raw, default: int = DEFAULT_CALL_LIMIT) -> int:
    """Budget for one pass: ``raw`` as a positive int, else ``default``."""
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def candidate_phones(lead: LeadRecord) -> list[PhoneCandidate]:
    """Owner phones first; otherwise the first contact's phone; otherwise nothing."""
    if lead.owner_phones:
        return list(lead.owner_phones)
    if lead.contact_phones and lead.contact_phones[0]:
        return [PhoneCandidate(number=lead.contact_phones[0], do_not_call=False)]
    return []


def is_dialable(phone: PhoneCandidate, country_prefix: str = "+1") -> bool:
    if phone.do_not_call:
        return False
    return bool(phone.number) and phone.number.startswith(country_prefix)


@dataclass
class DispatchSummary:
    """What one dispatch pass did.

    ``processed`` counts candidates that were logged and dialed (whether or
    not Twilio accepted the call); it is the number checked against the budget.
    """

    processed: int = 0
    queued: int = 0
    failed_calls: int = 0
    failed_logs: int = 0
    skipped: int = 0
    pages: int = 0


class LeadSyncDispatcher:
    """Pulls follow-up leads page by page and dials them within a call budget.

    Every dialed phone is logged to the lead store first, so a record exists
    even if the call never goes out.  Store and call failures are isolated to
    their candidate; a lead-source failure aborts the pass.
    """

    def __init__(
        self,
        source: LeadSourceClient,
        store: LeadStoreClient,
        calls: CallPlacementClient,
        callback_url: str,
        page_size: int = 100,
        tag: str = "Follow Up Needed",
        country_prefix: str = "+1",
    ):
        self.source = source
        self.store = store
        self.calls = calls
        self.callback_url = callback_url
        self.page_size = page_size
        self.tag = tag
        self.country_prefix = country_prefix

    async def sync(self, max_calls: int | None = DEFAULT_CALL_LIMIT) -> DispatchSummary:
        """Run one pass.  A missing or non-positive budget falls back to the default."""
        max_calls = parse_call_limit(max_calls)

        summary = DispatchSummary()
        page = 1
        while summary.processed < max_calls:
            leads = await self.source.fetch_page(page, self.page_size, self.tag)
            if not leads:
                break
            summary.pages += 1
            logger.info("Page %d -> %d leads", page, len(leads))

            for lead in leads:
                await self._process_lead(lead, summary, max_calls)
                if summary.processed >= max_calls:
                    break
            page += 1

        logger.info(
            "Dispatch pass done: processed=%d queued=%d failed_calls=%d failed_logs=%d skipped=%d pages=%d",
            summary.processed, summary.queued, summary.failed_calls,
            summary.failed_logs, summary.skipped, summary.pages,
        )
        return summary

    async def _process_lead(self, lead: LeadRecord, summary: DispatchSummary, max_calls: int) -> None:
        for phone in candidate_phones(lead):
            if not is_dialable(phone, self.country_prefix):
                summary.skipped += 1
                continue

            await self._log(lead, phone, summary)
            await self._dial(phone, summary)

            summary.processed += 1
            if summary.processed >= max_calls:
                return

    async def _log(self, lead: LeadRecord, phone: PhoneCandidate, summary: DispatchSummary) -> None:
        record = LoggedLead(
            phone=phone.number,
            address=lead.address or "Unknown",
            tags=list(lead.tags),
            status=STATUS_NOT_CONTACTED,
            summary="",
            messages=[],
        )
        try:
            await self.store.log_lead(record)
        except Exception as e:
            summary.failed_logs += 1
            logger.error("Failed to log lead %s: %s", phone.number, e)

    async def _dial(self, phone: PhoneCandidate, summary: DispatchSummary) -> None:
        try:
            result = await self.calls.place_call(phone.number, self.callback_url)
        except Exception as e:
            summary.failed_calls += 1
            logger.error("Call placement error for %s: %s", phone.number, e)
            return

        if result.success:
            summary.queued += 1
            logger.info("Queued: %s (%s)", phone.number, result.call_sid)
        else:
            summary.failed_calls += 1
            logger.error("Twilio error for %s: %s %s", phone.number, result.error_code, result.error_message)
