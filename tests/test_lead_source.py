import httpx
import pytest
import respx

from aidialer.lead_source import LeadRecord, LeadSourceClient, LeadSourceError, PhoneCandidate

BASE_URL = "https://api.dealmachine.example.com/public/v1"
PROPERTIES = f"{BASE_URL}/properties/"


@pytest.fixture
def client():
    return LeadSourceClient(api_key="dm-key", base_url=BASE_URL)


def property_item(**attributes):
    return {"id": 101, "type": "property", "attributes": attributes}


class TestLeadRecordFromApi:
    def test_owner_phones(self):
        record = LeadRecord.from_api(property_item(
            address="12 Oak Street",
            tags=["Follow Up Needed"],
            owner={"phones": [
                {"number": "+19995551111", "do_not_call": True},
                {"number": "+12222222222", "do_not_call": False},
            ]},
        ))
        assert record.address == "12 Oak Street"
        assert record.tags == ["Follow Up Needed"]
        assert record.lead_id == "101"
        assert record.owner_phones == [
            PhoneCandidate("+19995551111", True),
            PhoneCandidate("+12222222222", False),
        ]

    def test_contacts(self):
        record = LeadRecord.from_api(property_item(contacts=[{"phone": "+13333333333"}, {"name": "no phone"}]))
        assert record.owner_phones == []
        assert record.contact_phones == ["+13333333333", ""]

    def test_missing_attributes(self):
        record = LeadRecord.from_api({"id": 7})
        assert record.address == ""
        assert record.owner_phones == []
        assert record.contact_phones == []
        assert record.tags == []

    def test_null_owner(self):
        record = LeadRecord.from_api(property_item(owner=None, address=None))
        assert record.owner_phones == []
        assert record.address == ""


class TestFetchPage:
    @respx.mock
    @pytest.mark.asyncio
    async def test_sends_filter_and_pagination_params(self, client):
        route = respx.get(PROPERTIES).mock(return_value=httpx.Response(200, json={"data": []}))

        await client.fetch_page(2, 100, "Follow Up Needed")

        req = route.calls[0].request
        assert req.headers["authorization"] == "Bearer dm-key"
        assert req.url.params["filter[tags]"] == "Follow Up Needed"
        assert req.url.params["include"] == "owner,phones,contacts"
        assert req.url.params["page[number]"] == "2"
        assert req.url.params["page[size]"] == "100"

    @respx.mock
    @pytest.mark.asyncio
    async def test_parses_leads(self, client):
        respx.get(PROPERTIES).mock(return_value=httpx.Response(200, json={"data": [
            property_item(address="1 Elm", owner={"phones": [{"number": "+12222222222"}]}),
            property_item(address="2 Elm", contacts=[{"phone": "+13333333333"}]),
        ]}))

        leads = await client.fetch_page(1, 100, "Follow Up Needed")

        assert [l.address for l in leads] == ["1 Elm", "2 Elm"]
        assert leads[0].owner_phones[0].number == "+12222222222"
        assert leads[0].owner_phones[0].do_not_call is False

    @respx.mock
    @pytest.mark.asyncio
    async def test_non_list_data_is_an_empty_page(self, client):
        respx.get(PROPERTIES).mock(return_value=httpx.Response(200, json={"data": None}))
        assert await client.fetch_page(1, 100, "Follow Up Needed") == []

    @respx.mock
    @pytest.mark.asyncio
    async def test_auth_failure_raises_with_body(self, client):
        respx.get(PROPERTIES).mock(return_value=httpx.Response(401, json={"error": "invalid api key"}))
        with pytest.raises(LeadSourceError, match="invalid api key"):
            await client.fetch_page(1, 100, "Follow Up Needed")

    @respx.mock
    @pytest.mark.asyncio
    async def test_transport_failure_raises(self, client):
        respx.get(PROPERTIES).mock(side_effect=httpx.ReadTimeout("timed out"))
        with pytest.raises(LeadSourceError):
            await client.fetch_page(1, 100, "Follow Up Needed")

    @respx.mock
    @pytest.mark.asyncio
    async def test_unreadable_body_raises(self, client):
        respx.get(PROPERTIES).mock(return_value=httpx.Response(200, text="not json"))
        with pytest.raises(LeadSourceError):
            await client.fetch_page(1, 100, "Follow Up Needed")
