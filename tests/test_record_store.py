"""
Fault-injection tests for the record store client.

Verifies:
- Request shape (URL, auth headers, Prefer, PostgREST params)
- Retry with backoff on 429, 5xx and network errors
- Immediate failure on other 4xx
- Credential checks at construction
"""

import pytest
from unittest.mock import Mock, patch
from requests.exceptions import ConnectionError, HTTPError, Timeout, TooManyRedirects

from core.exceptions import StoreConfigurationError, StoreError
from infra.record_store import RecordStoreClient


@pytest.fixture
def client():
    return RecordStoreClient("https://proj.supabase.co/", "secret-key", timeout=5.0, max_retries=3)


@pytest.fixture(autouse=True)
def no_sleep():
    with patch('infra.record_store.time.sleep') as mock_sleep:
        yield mock_sleep


def _ok(payload=None, content=b"[]"):
    response = Mock()
    response.status_code = 200
    response.content = content
    response.json.return_value = payload if payload is not None else []
    return response


def _error(status):
    response = Mock()
    response.status_code = status
    response.text = "error body"
    return HTTPError(response=response)


class TestConstruction:
    def test_requires_url_and_key(self):
        with pytest.raises(StoreConfigurationError):
            RecordStoreClient("", "key")
        with pytest.raises(StoreConfigurationError):
            RecordStoreClient("https://x", "")

    def test_from_config_reads_env(self, monkeypatch):
        monkeypatch.setenv("MY_URL", "https://db.example")
        monkeypatch.setenv("MY_KEY", "k")
        client = RecordStoreClient.from_config({"url_env": "MY_URL", "key_env": "MY_KEY"})
        assert client.base_url == "https://db.example/rest/v1"

    def test_from_config_missing_env_is_fatal(self):
        with pytest.raises(StoreConfigurationError, match="SUPABASE_URL"):
            RecordStoreClient.from_config({})


class TestRequestShape:
    def test_select(self, client):
        with patch('infra.record_store.requests.request', return_value=_ok([{"id": 1}])) as mock_request:
            rows = client.select("trades", {"data->>status": "eq.OPEN"})

        assert rows == [{"id": 1}]
        args, kwargs = mock_request.call_args
        assert args == ("GET", "https://proj.supabase.co/rest/v1/trades")
        assert kwargs["params"] == {"select": "*", "order": "created_at.desc", "data->>status": "eq.OPEN"}
        assert kwargs["headers"]["apikey"] == "secret-key"
        assert kwargs["headers"]["Authorization"] == "Bearer secret-key"
        assert kwargs["timeout"] == 5.0
        assert "Prefer" not in kwargs["headers"]

    def test_select_without_order(self, client):
        with patch('infra.record_store.requests.request', return_value=_ok()) as mock_request:
            client.select("settings", {"key": "eq.RSI_PERIOD"}, order=None)
        assert "order" not in mock_request.call_args.kwargs["params"]

    def test_insert_returns_representation(self, client):
        row = {"data": {"symbol": "BTC"}}
        with patch('infra.record_store.requests.request', return_value=_ok([{"id": 9, **row}])) as mock_request:
            result = client.insert("trades", row)

        assert result[0]["id"] == 9
        kwargs = mock_request.call_args.kwargs
        assert kwargs["json"] == row
        assert kwargs["headers"]["Prefer"] == "return=representation"

    def test_patch_by_id(self, client):
        with patch('infra.record_store.requests.request', return_value=_ok([{"id": 3}])) as mock_request:
            client.patch("trades", {"id": "eq.3"}, {"data": {"status": "CLOSED"}})

        args, kwargs = mock_request.call_args
        assert args[0] == "PATCH"
        assert kwargs["params"] == {"id": "eq.3"}

    def test_patch_requires_filter(self, client):
        with pytest.raises(ValueError):
            client.patch("trades", {}, {"data": {}})

    @pytest.mark.parametrize("ignore,resolution", [(True, "ignore-duplicates"), (False, "merge-duplicates")])
    def test_upsert_prefer(self, client, ignore, resolution):
        with patch('infra.record_store.requests.request', return_value=_ok(content=b"")) as mock_request:
            client.upsert("watchlist", {"type": "stock", "symbol": "AMD"},
                          on_conflict="type,symbol", ignore_duplicates=ignore)

        kwargs = mock_request.call_args.kwargs
        assert kwargs["headers"]["Prefer"] == f"resolution={resolution},return=minimal"
        assert kwargs["params"] == {"on_conflict": "type,symbol"}

    def test_delete_counts_rows(self, client):
        with patch('infra.record_store.requests.request', return_value=_ok([{"id": 1}, {"id": 2}])):
            assert client.delete("watchlist", {"symbol": "eq.AMD"}) == 2
        with patch('infra.record_store.requests.request', return_value=_ok([])):
            assert client.delete("watchlist", {"symbol": "eq.AMD"}) == 0

    def test_delete_requires_filter(self, client):
        with pytest.raises(ValueError):
            client.delete("watchlist", {})

    def test_empty_body_is_none(self, client):
        with patch('infra.record_store.requests.request', return_value=_ok(content=b"")):
            assert client._req("GET", "trades") is None


class TestRetries:
    def test_retries_429_then_succeeds(self, client, no_sleep):
        with patch('infra.record_store.requests.request') as mock_request:
            mock_request.side_effect = [_error(429), _error(503), _ok([{"id": 1}])]
            assert client.select("trades") == [{"id": 1}]
            assert mock_request.call_count == 3
        assert no_sleep.call_count == 2

    def test_exhausts_retries_on_5xx(self, client):
        with patch('infra.record_store.requests.request', side_effect=_error(500)) as mock_request:
            with pytest.raises(StoreError) as exc_info:
                client.select("trades")
        assert mock_request.call_count == 3
        assert exc_info.value.operation == "GET trades"

    @pytest.mark.parametrize("exc", [Timeout("slow"), ConnectionError("refused")])
    def test_retries_network_errors(self, client, exc):
        with patch('infra.record_store.requests.request', side_effect=[exc, _ok([])]) as mock_request:
            assert client.select("trades") == []
        assert mock_request.call_count == 2

    @pytest.mark.parametrize("status", [400, 401, 404, 409])
    def test_client_errors_fail_fast(self, client, status):
        with patch('infra.record_store.requests.request', side_effect=_error(status)) as mock_request:
            with pytest.raises(StoreError):
                client.insert("trades", {"data": {}})
        assert mock_request.call_count == 1

    def test_invalid_json(self, client):
        response = _ok(content=b"<html>")
        response.json.side_effect = ValueError("no json")
        with patch('infra.record_store.requests.request', return_value=response):
            with pytest.raises(StoreError, match="invalid JSON"):
                client.select("trades")

    def test_other_request_errors_fail_fast(self, client):
        with patch('infra.record_store.requests.request', side_effect=TooManyRedirects("loop")) as mock_request:
            with pytest.raises(StoreError):
                client.select("trades")
        assert mock_request.call_count == 1
