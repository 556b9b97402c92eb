import httpx
import pytest

from app.core.exceptions import UpstreamRequestError
from app.ingestion.client import MidgardClient
from app.schemas.series import DEPTH, Interval, SWAP

from payloads import BASE_TIME, hours_after, ts


def make_client(handler):
    transport = httpx.MockTransport(handler)
    return MidgardClient(
        base_url="https://midgard.test/v2/",
        depth_pool="ETH.ETH",
        http_client=httpx.AsyncClient(transport=transport),
    )


@pytest.mark.asyncio
async def test_absent_parameters_are_omitted():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, text='{"intervals": [], "meta": {}}')

    client = make_client(handler)
    body, status = await client.fetch_page(SWAP, Interval.HOUR, from_time=BASE_TIME, count=400)
    await client.aclose()

    assert status == 200
    assert body == '{"intervals": [], "meta": {}}'
    request = seen[0]
    assert request.url.path == "/v2/history/swaps"
    assert dict(request.url.params) == {"interval": "hour", "count": "400", "from": str(ts(BASE_TIME))}


@pytest.mark.asyncio
async def test_window_request_for_depth():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, text="slow down, too many requests")

    client = make_client(handler)
    end = hours_after(BASE_TIME, 1)
    body, status = await client.fetch_page(DEPTH, Interval.HOUR, from_time=BASE_TIME, to_time=end, count=None)
    await client.aclose()

    # Interpreting the body is not the client's job
    assert status == 200
    assert "slow down" in body
    assert seen[0].url.path == "/v2/history/depths/ETH.ETH"
    assert dict(seen[0].url.params) == {"interval": "hour", "from": str(ts(BASE_TIME)), "to": str(ts(end))}


@pytest.mark.asyncio
async def test_network_failure_is_wrapped():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    with pytest.raises(UpstreamRequestError):
        await client.fetch_page(SWAP)
    await client.aclose()


def test_count_is_bounded():
    with pytest.raises(ValueError):
        MidgardClient.build_params(count=401)
    assert MidgardClient.build_params() == {}
    assert MidgardClient.build_params(interval="day") == {"interval": "day"}
