import xml.etree.ElementTree as ET
from urllib.parse import parse_qs

import httpx
import pytest
import respx

from aidialer.prompts import VOICE
from aidialer.telephony import CallPlacementClient, build_gather_twiml

API_BASE = "https://api.twilio.example.com"
CALLS = f"{API_BASE}/2010-04-01/Accounts/AC123/Calls.json"


@pytest.fixture
def client():
    return CallPlacementClient(
        account_sid="AC123",
        auth_token="secret",
        from_number="+15005550006",
        status_callback_url="https://dialer.example.com/call-status",
        api_base=API_BASE,
    )


class TestPlaceCall:
    @respx.mock
    @pytest.mark.asyncio
    async def test_success(self, client):
        route = respx.post(CALLS).mock(return_value=httpx.Response(201, json={"sid": "CA999", "status": "queued"}))

        result = await client.place_call("+12222222222", "https://dialer.example.com/webhook")

        assert result.success is True
        assert result.call_sid == "CA999"
        req = route.calls[0].request
        assert req.headers["authorization"].startswith("Basic ")
        form = parse_qs(req.content.decode())
        assert form["To"] == ["+12222222222"]
        assert form["From"] == ["+15005550006"]
        assert form["Url"] == ["https://dialer.example.com/webhook"]
        assert form["StatusCallback"] == ["https://dialer.example.com/call-status"]

    @respx.mock
    @pytest.mark.asyncio
    async def test_no_status_callback_when_unset(self):
        route = respx.post(CALLS).mock(return_value=httpx.Response(201, json={"sid": "CA1"}))
        client = CallPlacementClient(account_sid="AC123", auth_token="secret", from_number="+15005550006", api_base=API_BASE)

        await client.place_call("+12222222222", "https://dialer.example.com/webhook")

        assert "StatusCallback" not in parse_qs(route.calls[0].request.content.decode())

    @respx.mock
    @pytest.mark.asyncio
    async def test_provider_error(self, client):
        respx.post(CALLS).mock(return_value=httpx.Response(
            400, json={"code": 21211, "message": "The 'To' number +1222 is not a valid phone number.", "status": 400}
        ))

        result = await client.place_call("+1222", "https://dialer.example.com/webhook")

        assert result.success is False
        assert result.error_code == 21211
        assert "not a valid phone number" in result.error_message

    @respx.mock
    @pytest.mark.asyncio
    async def test_non_json_error_uses_status_code(self, client):
        respx.post(CALLS).mock(return_value=httpx.Response(503, text="Service Unavailable"))

        result = await client.place_call("+12222222222", "https://dialer.example.com/webhook")

        assert result.success is False
        assert result.error_code == 503
        assert result.error_message == "Service Unavailable"

    @respx.mock
    @pytest.mark.asyncio
    async def test_transport_error(self, client):
        respx.post(CALLS).mock(side_effect=httpx.ConnectError("connection reset"))

        result = await client.place_call("+12222222222", "https://dialer.example.com/webhook")

        assert result.success is False
        assert "connection reset" in result.error_message


class TestGatherTwiml:
    def test_speaks_and_gathers_speech(self):
        root = ET.fromstring(build_gather_twiml("Are you open to a cash offer?"))
        assert root.tag == "Response"
        gather = root.find("Gather")
        assert gather.attrib == {"input": "speech", "action": "/webhook", "method": "POST"}
        say = gather.find("Say")
        assert say.text == "Are you open to a cash offer?"
        assert say.attrib["voice"] == VOICE

    def test_escapes_markup_in_utterance(self):
        xml = build_gather_twiml("Prices < $300k & fast closing")
        assert "&lt;" in xml and "&amp;" in xml
        assert ET.fromstring(xml).find("Gather/Say").text == "Prices < $300k & fast closing"

    def test_custom_action(self):
        root = ET.fromstring(build_gather_twiml("Hi", action="/twilio/turn"))
        assert root.find("Gather").attrib["action"] == "/twilio/turn"
