import httpx
import pytest

from estate_scraper.connectors.session import create_session
from estate_scraper.connectors.transports import HttpxTransport, PlaywrightTransport, build_transports
from estate_scraper.core.errors import TransportError
from estate_scraper.tests.fakes import make_settings

URL = "https://www.zoopla.co.uk/for-sale/property/london/"


def test_cookies_flow_between_session_and_requests():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="<html>ok</html>", headers={"set-cookie": "sid=abc; Path=/"})

    transport = HttpxTransport(httpx.Client(transport=httpx.MockTransport(handler)))
    session = create_session()

    first = transport.send(URL, session, {"User-Agent": session.user_agent}, None, 5)
    transport.send(URL, session, {"User-Agent": session.user_agent}, None, 5)

    assert first.status_code == 200
    assert first.body == "<html>ok</html>"
    assert session.cookies == {"sid": "abc"}
    assert "cookie" not in seen[0].headers
    assert "sid=abc" in seen[1].headers["cookie"]
    assert seen[0].headers["user-agent"] == session.user_agent


def test_error_statuses_are_returned_not_raised():
    transport = HttpxTransport(httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(429))))

    response = transport.send(URL, create_session(), {}, None, 5)

    assert response.status_code == 429


def test_network_failures_become_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = HttpxTransport(httpx.Client(transport=httpx.MockTransport(handler)))

    with pytest.raises(TransportError):
        transport.send(URL, create_session(), {}, None, 5)


def test_reset_clears_cookies_of_injected_client():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    client.cookies.set("sid", "abc")
    transport = HttpxTransport(client)

    transport.reset()

    assert len(client.cookies) == 0
    assert not client.is_closed


def test_build_transports_per_mode():
    document, data = build_transports(make_settings(transport_mode="http"))
    assert isinstance(document, HttpxTransport)
    assert data is document

    document, data = build_transports(make_settings(transport_mode="browser"))
    assert isinstance(document, PlaywrightTransport)
    assert data is document

    document, data = build_transports(make_settings(transport_mode="hybrid", browser_headless=False))
    assert isinstance(document, PlaywrightTransport)
    assert document.headless is False
    assert isinstance(data, HttpxTransport)
