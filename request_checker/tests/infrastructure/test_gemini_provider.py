from unittest.mock import Mock

import pytest
import requests

from request_checker.domain.entities import Availability
from request_checker.domain.errors import PermanentFailure, RateLimited, TemporaryFailure
from request_checker.infrastructure.providers.gemini import (
    GEMINI_API_BASE, PrintGakufuChecker, parse_availability_response
)


def _response(status_code=200, payload=None, headers=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.text = text
    response.json.return_value = payload or {}
    return response


def _gemini_payload(text, chunks=None):
    return {
        "candidates": [{
            "content": {"parts": [{"text": text}]},
            "groundingMetadata": {"groundingChunks": chunks or []},
        }]
    }


class TestParseAvailabilityResponse:
    """Tests for reading the model's verdict."""

    def test_available(self):
        result = parse_availability_response("【対象】\n見放題プランの対象です。\n♫ Lemon")
        assert result.result == Availability.AVAILABLE
        assert result.details == "見放題プランの対象です。\n♫ Lemon"

    def test_not_available_is_not_confused_with_available(self):
        result = parse_availability_response("判定結果: 【対象外】\n見つかりませんでした")
        assert result.result == Availability.NOT_AVAILABLE

    def test_unknown_marker(self):
        assert parse_availability_response("【不明】\n情報なし").result == Availability.UNKNOWN

    def test_missing_marker_keeps_text(self):
        result = parse_availability_response("よくわかりません")
        assert result.result == Availability.UNKNOWN
        assert result.details == "よくわかりません"

    def test_empty_text(self):
        result = parse_availability_response("")
        assert result.result == Availability.UNKNOWN
        assert result.details == ""


class TestPrintGakufuChecker:
    """Tests for the Gemini-backed availability checker."""

    def setup_method(self):
        self.http = Mock()
        self.checker = PrintGakufuChecker("test-api-key", model="gemini-test", session=self.http)

    def test_requires_api_key(self):
        with pytest.raises(PermanentFailure):
            PrintGakufuChecker("")

    def test_endpoint(self):
        assert self.checker.endpoint == f"{GEMINI_API_BASE}/gemini-test:generateContent"

    def test_check_success(self):
        chunks = [{"web": {"uri": "https://www.print-gakufu.com/score/detail/1/", "title": "Lemon"}}]
        self.http.post.return_value = _response(payload=_gemini_payload("【対象】\n対象です", chunks))

        result = self.checker.check("  Lemon 米津玄師 ")

        assert result.result == Availability.AVAILABLE
        assert result.sources == chunks
        args, kwargs = self.http.post.call_args
        assert args[0] == self.checker.endpoint
        assert kwargs["params"] == {"key": "test-api-key"}
        assert "Lemon 米津玄師" in kwargs["json"]["contents"][0]["parts"][0]["text"]
        assert kwargs["json"]["tools"] == [{"googleSearch": {}}]

    def test_check_without_candidates(self):
        self.http.post.return_value = _response(payload={})
        assert self.checker.check("Lemon").result == Availability.UNKNOWN

    def test_empty_query(self):
        with pytest.raises(ValueError):
            self.checker.check("   ")
        self.http.post.assert_not_called()

    def test_rate_limited(self):
        self.http.post.return_value = _response(status_code=429, headers={"Retry-After": "7"})
        with pytest.raises(RateLimited) as exc_info:
            self.checker.check("Lemon")
        assert exc_info.value.retry_after_ms == 7000

    def test_server_error_is_temporary(self):
        self.http.post.return_value = _response(status_code=503, text="unavailable")
        with pytest.raises(TemporaryFailure):
            self.checker.check("Lemon")

    def test_client_error_is_permanent(self):
        self.http.post.return_value = _response(status_code=400, text="bad request")
        with pytest.raises(PermanentFailure):
            self.checker.check("Lemon")

    def test_network_error_is_temporary(self):
        self.http.post.side_effect = requests.ConnectionError("boom")
        with pytest.raises(TemporaryFailure):
            self.checker.check("Lemon")

    def test_invalid_json_is_permanent(self):
        response = _response()
        response.json.side_effect = ValueError("no json")
        self.http.post.return_value = response
        with pytest.raises(PermanentFailure):
            self.checker.check("Lemon")
