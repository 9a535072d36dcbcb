import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from aidialer.config import Settings, validate_config
from aidialer.dispatcher import LeadSyncDispatcher, parse_call_limit
from aidialer.engine import ConversationEngine
from aidialer.inference import InferenceClient
from aidialer.lead_source import LeadSourceClient, LeadSourceError
from aidialer.lead_store import LeadStoreClient, LoggedLead
from aidialer.logging_context import configure_logging
from aidialer.prompts import SYSTEM_PROMPT
from aidialer.session import SessionStore
from aidialer.telephony import TERMINAL_CALL_STATUSES, CallPlacementClient, build_gather_twiml

load_dotenv()

logger = logging.getLogger(__name__)

SESSION_SWEEP_INTERVAL_S = 60.0


@dataclass
class Services:
    """Everything the routes need, built once per process."""

    engine: ConversationEngine
    dispatcher: LeadSyncDispatcher
    lead_store: LeadStoreClient
    sessions: SessionStore
    default_call_limit: int = 3

    async def aclose(self) -> None:
        for client in (
            self.engine.inference,
            self.dispatcher.source,
            self.dispatcher.calls,
            self.lead_store,
        ):
            await client.close()


def build_services(settings: Settings) -> Services:
    sessions = SessionStore(SYSTEM_PROMPT, ttl_seconds=settings.session_ttl_seconds)
    inference = InferenceClient(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        base_url=settings.openai_base_url,
    )
    lead_store = LeadStoreClient(
        supabase_url=settings.supabase_url,
        api_key=settings.supabase_key,
        table=settings.supabase_table,
    )
    calls = CallPlacementClient(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_phone_number,
        status_callback_url=settings.status_callback_url,
        api_base=settings.twilio_api_base,
    )
    source = LeadSourceClient(
        api_key=settings.dealmachine_api_key,
        base_url=settings.dealmachine_base_url,
    )
    dispatcher = LeadSyncDispatcher(
        source=source,
        store=lead_store,
        calls=calls,
        callback_url=settings.webhook_url,
        page_size=settings.page_size,
        tag=settings.follow_up_tag,
        country_prefix=settings.country_prefix,
    )
    return Services(
        engine=ConversationEngine(sessions, inference),
        dispatcher=dispatcher,
        lead_store=lead_store,
        sessions=sessions,
        default_call_limit=settings.default_call_limit,
    )


def create_app(services: Services | None = None) -> FastAPI:
    """Build the app.  Without ``services`` they are built from the environment at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        if owned:
            validate_config()
            settings = Settings.from_env()
            configure_logging(settings.log_level)
            app.state.services = build_services(settings)
        svc: Services = app.state.services
        await svc.sessions.start_cleanup_task(SESSION_SWEEP_INTERVAL_S)
        yield
        await svc.sessions.stop_cleanup_task()
        if owned:
            await svc.aclose()

    app = FastAPI(title="AI Dialer", lifespan=lifespan)
    if services is not None:
        app.state.services = services

    @app.get("/")
    async def index():
        return PlainTextResponse("AI Dialer is running")

    @app.get("/health")
    async def health():
        return PlainTextResponse("ok")

    @app.post("/webhook")
    async def webhook(request: Request):
        """One conversational turn: speak the reply and gather the caller's next utterance."""
        form = await request.form()
        call_sid = form.get("CallSid", "")
        if not call_sid:
            return PlainTextResponse("Missing CallSid", status_code=400)

        svc: Services = request.app.state.services
        result = await svc.engine.handle_turn(
            call_sid,
            form.get("SpeechResult"),
            phone_number=form.get("To", ""),
        )
        return Response(content=build_gather_twiml(result.utterance, action="/webhook"), media_type="text/xml")

    @app.post("/call-status")
    async def call_status(request: Request):
        """Twilio status callback; a terminal status ends the conversation session."""
        form = await request.form()
        call_sid = form.get("CallSid", "")
        status = form.get("CallStatus", "")
        if call_sid and status in TERMINAL_CALL_STATUSES:
            await request.app.state.services.engine.end_call(call_sid, status)
        return PlainTextResponse("ok")

    @app.get("/dealsync")
    async def dealsync(request: Request, limit: str | None = None):
        svc: Services = request.app.state.services
        max_calls = parse_call_limit(limit, svc.default_call_limit)
        try:
            summary = await svc.dispatcher.sync(max_calls)
        except LeadSourceError as e:
            logger.error("dealsync error: %s", e)
            return PlainTextResponse(f"Failed to sync leads: {e}", status_code=500)
        return PlainTextResponse(f"Called {summary.processed} leads")

    @app.post("/log-lead")
    async def log_lead(request: Request):
        svc: Services = request.app.state.services
        try:
            payload = await request.json()
            if not isinstance(payload, dict):
                raise ValueError("lead payload must be a JSON object")
            await svc.lead_store.log_lead(LoggedLead.from_payload(payload))
        except Exception as e:
            logger.error("log-lead failed: %s", e)
            return PlainTextResponse("Failed to log lead", status_code=500)
        return PlainTextResponse("Lead logged")

    return app


app = create_app()


def main():
    uvicorn.run("aidialer.bot:app", host="0.0.0.0", port=Settings.from_env().port)


if __name__ == "__main__":
    main()
