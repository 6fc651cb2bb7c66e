"""Tests for the product REST API backing store."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from tenacity import wait_none

from productcache.clients.http_store import HttpBackingStore, parse_product
from productcache.clients.resilience import (
    AuthError,
    CircuitBreaker,
    CircuitOpenError,
    SchemaChangeError,
    TransientBackingStoreError,
)
from tests.factories import make_new_product, make_product

BASE_URL = "http://store.test/api"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _mock_httpx_client(*, response: MagicMock | None = None, side_effect=None) -> AsyncMock:
    """Build a mock httpx.AsyncClient context manager wired to *response*."""
    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.request.side_effect = side_effect
    else:
        mock_client.request.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


def _make_response(*, status_code: int = 200, json_data: object = None) -> MagicMock:
    """Build a mock httpx.Response."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = json_data if json_data is not None else {}
    return resp


def _envelope(data: object, code: int = 200) -> dict:
    return {"code": code, "message": "ok", "data": data}


def _store(**kwargs: object) -> HttpBackingStore:
    return HttpBackingStore(BASE_URL, breaker=CircuitBreaker("test", fail_max=5), **kwargs)


# ===================================================================
# parse_product
# ===================================================================


class TestParseProduct:
    def test_integer_id_and_string_price(self):
        product = parse_product({"id": 7, "name": "Lamp", "price": "19.99"})
        assert product.id == "7"
        assert product.price == 19.99
        assert product.category == "General"

    def test_missing_keys_raise_schema_change(self):
        with pytest.raises(SchemaChangeError, match="name"):
            parse_product({"id": 7, "price": "1"})

    def test_bad_price_raises_schema_change(self):
        with pytest.raises(SchemaChangeError, match="Unparseable"):
            parse_product({"id": 7, "name": "Lamp", "price": "cheap"})


# ===================================================================
# Requests
# ===================================================================


class TestListAll:
    async def test_returns_summaries(self):
        response = _make_response(
            json_data=_envelope([{"id": 1, "name": "Lamp"}, {"id": 2, "name": "Desk"}])
        )
        mock_client = _mock_httpx_client(response=response)

        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            listing = await _store().list_all()

        assert [(s.id, s.name) for s in listing] == [("1", "Lamp"), ("2", "Desk")]
        method, url = mock_client.request.call_args.args
        assert method == "GET"
        assert url == f"{BASE_URL}/products/all"

    async def test_empty_data_returns_empty_list(self):
        mock_client = _mock_httpx_client(response=_make_response(json_data=_envelope(None)))
        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            assert await _store().list_all() == []

    async def test_non_list_data_raises(self):
        mock_client = _mock_httpx_client(response=_make_response(json_data=_envelope({"id": 1})))
        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(SchemaChangeError, match="list"):
                await _store().list_all()


class TestGetById:
    async def test_found(self):
        response = _make_response(
            json_data=_envelope({"id": 3, "name": "Headphones", "price": "399"})
        )
        mock_client = _mock_httpx_client(response=response)
        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            product = await _store().get_by_id("3")

        assert product.id == "3"
        assert product.name == "Headphones"
        assert mock_client.request.call_args.args[1] == f"{BASE_URL}/products/getbyid/3"

    async def test_404_returns_none(self):
        mock_client = _mock_httpx_client(response=_make_response(status_code=404))
        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            assert await _store().get_by_id("999") is None

    async def test_empty_data_returns_none(self):
        mock_client = _mock_httpx_client(response=_make_response(json_data=_envelope(None)))
        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            assert await _store().get_by_id("999") is None

    async def test_401_raises_auth_error(self):
        mock_client = _mock_httpx_client(response=_make_response(status_code=401))
        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(AuthError):
                await _store().get_by_id("1")
        assert mock_client.request.call_count == 1

    async def test_invalid_json_raises_schema_change(self):
        response = _make_response()
        response.json.side_effect = ValueError("no json")
        mock_client = _mock_httpx_client(response=response)
        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(SchemaChangeError, match="Invalid response format"):
                await _store().get_by_id("1")

    async def test_missing_envelope_code_raises(self):
        mock_client = _mock_httpx_client(response=_make_response(json_data={"data": {}}))
        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(SchemaChangeError, match="code"):
                await _store().get_by_id("1")


class TestCreate:
    async def test_posts_name_and_price(self):
        response = _make_response(json_data=_envelope({"id": 11, "name": "Kindle", "price": "99"}))
        mock_client = _mock_httpx_client(response=response)
        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            created = await _store().create(
                make_new_product(name="Kindle", price=99.0, category="Books", size_bytes=600)
            )

        assert created.id == "11"
        assert created.category == "Books"
        assert created.size_bytes == 600
        kwargs = mock_client.request.call_args.kwargs
        assert kwargs["json"] == {"name": "Kindle", "price": "99.0"}
        assert mock_client.request.call_args.args[0] == "POST"

    async def test_missing_data_raises(self):
        mock_client = _mock_httpx_client(response=_make_response(json_data=_envelope(None)))
        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(SchemaChangeError, match="new product"):
                await _store().create(make_new_product())


class TestUpdate:
    async def test_puts_numeric_id(self):
        item = make_product(id="5", name="AirPods", price=199.0, category="Audio")
        response = _make_response(json_data=_envelope({"id": 5, "name": "AirPods", "price": "199"}))
        mock_client = _mock_httpx_client(response=response)
        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            updated = await _store().update(item)

        assert updated.price == 199.0
        assert updated.category == "Audio"
        assert mock_client.request.call_args.kwargs["json"] == {
            "id": 5,
            "name": "AirPods",
            "price": "199.0",
        }

    async def test_empty_data_echoes_item(self):
        item = make_product(id="p5")
        mock_client = _mock_httpx_client(response=_make_response(json_data=_envelope(None)))
        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            assert await _store().update(item) == item

    async def test_404_returns_none(self):
        mock_client = _mock_httpx_client(response=_make_response(status_code=404))
        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            assert await _store().update(make_product(id="9")) is None


class TestHeaders:
    def test_no_token(self):
        assert "Authorization" not in _store()._headers()

    def test_bearer_token(self):
        headers = _store(token="secret")._headers()
        assert headers["Authorization"] == "Bearer secret"

    def test_trailing_slash_stripped(self):
        assert HttpBackingStore("http://x/api/").base_url == "http://x/api"


class TestResilience:
    async def test_transport_error_retried_then_succeeds(self, monkeypatch):
        monkeypatch.setattr(HttpBackingStore._send.retry, "wait", wait_none())
        response = _make_response(json_data=_envelope([]))
        mock_client = _mock_httpx_client(
            side_effect=[httpx.ConnectError("refused"), response]
        )
        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            assert await _store().list_all() == []
        assert mock_client.request.call_count == 2

    async def test_persistent_5xx_gives_up_after_three_attempts(self, monkeypatch):
        monkeypatch.setattr(HttpBackingStore._send.retry, "wait", wait_none())
        mock_client = _mock_httpx_client(response=_make_response(status_code=503))
        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(TransientBackingStoreError, match="503"):
                await _store().get_by_id("1")
        assert mock_client.request.call_count == 3

    async def test_open_breaker_sheds_calls(self):
        breaker = CircuitBreaker("test", fail_max=1, reset_timeout=60.0)
        store = HttpBackingStore(BASE_URL, breaker=breaker)
        mock_client = _mock_httpx_client(response=_make_response(status_code=401))
        with patch("productcache.clients.http_store.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(AuthError):
                await store.get_by_id("1")
            with pytest.raises(CircuitOpenError):
                await store.get_by_id("1")
        assert mock_client.request.call_count == 1
