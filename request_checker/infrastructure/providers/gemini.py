import logging
from typing import Any, Dict, List, Optional

import requests

from request_checker.domain.entities import Availability, AvailabilityCheck
from request_checker.domain.errors import PermanentFailure, RateLimited, TemporaryFailure
from request_checker.domain.ports import AvailabilityChecker

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"

PROMPT_TEMPLATE = (
    "ヤマハの「プリント楽譜」ウェブサイト (www.print-gakufu.com) の情報を検索し、"
    "検索クエリ「{query}」に関連する楽曲が**アプリ見放題プラン**の対象か調べてください。"
    "回答は以下の形式で厳密に従ってください。"
    "1. **判定結果:** 最初の行に、判定結果を「【対象】」「【対象外】」「【不明】」のいずれかで必ず記述してください。"
    "2. **サマリー:** 次の行に、判定結果の簡単な理由を記述してください。"
    "3. **関連楽曲リスト:** アーティストの対象曲を、見つかったものだけでいいので、"
    "曲名の前に必ず「♫」をつけて箇条書きでリストアップしてください。"
)

# 【対象外】 does not contain 【対象】, so plain substring checks cannot collide
_VERDICT_MARKERS = (
    ("【対象】", Availability.AVAILABLE),
    ("【対象外】", Availability.NOT_AVAILABLE),
    ("【不明】", Availability.UNKNOWN),
)


def parse_availability_response(raw_text: str,
                                sources: Optional[List[Dict[str, Any]]] = None) -> AvailabilityCheck:
    """Turn the model's free-text answer into a verdict.

    The first line carries the verdict marker; the remaining lines become the
    details. Without a recognised marker the whole text is kept and the verdict
    is unknown.
    """
    text = (raw_text or "").strip()
    lines = text.split("\n") if text else []

    if lines:
        first_line = lines[0]
        for marker, verdict in _VERDICT_MARKERS:
            if marker in first_line:
                return AvailabilityCheck(
                    result=verdict,
                    details="\n".join(lines[1:]).strip(),
                    sources=list(sources or []),
                )

    return AvailabilityCheck(result=Availability.UNKNOWN, details=text, sources=list(sources or []))


class PrintGakufuChecker(AvailabilityChecker):
    """Asks Gemini, grounded with Google Search, whether a song is in the print-gakufu subscription."""

    def __init__(self,
                 api_key: str,
                 model: str = "gemini-2.5-flash",
                 timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        """Initialize the checker.

        Args:
            api_key: Gemini API key
            model: Gemini model name
            timeout: Request timeout in seconds
            session: Optional requests session, mainly for tests
        """
        if not api_key:
            raise PermanentFailure("Gemini API key is not configured")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{GEMINI_API_BASE}/{self.model}:generateContent"

    def build_payload(self, query: str) -> Dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": PROMPT_TEMPLATE.format(query=query)}]}],
            "tools": [{"googleSearch": {}}],
        }

    def check(self, query: str) -> AvailabilityCheck:
        """Run the availability check for a query.

        Raises:
            ValueError: If the query is empty
            RateLimited: If the API answered 429
            TemporaryFailure: On network errors and 5xx answers
            PermanentFailure: On other error answers or an unreadable body
        """
        query = (query or "").strip()
        if not query:
            raise ValueError("Query is required")

        try:
            response = self.session.post(
                self.endpoint,
                params={"key": self.api_key},
                json=self.build_payload(query),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TemporaryFailure(f"Gemini request failed: {e}")

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "1")
            try:
                retry_after_ms = int(float(retry_after) * 1000)
            except ValueError:
                retry_after_ms = 1000
            raise RateLimited(retry_after_ms=retry_after_ms, message="Gemini API rate limit reached")

        if response.status_code >= 500:
            logger.error(f"Gemini API error: {response.status_code} - {response.text[:200]}")
            raise TemporaryFailure(f"Gemini API error: {response.status_code}")

        if response.status_code != 200:
            logger.error(f"Gemini API rejected request: {response.status_code} - {response.text[:200]}")
            raise PermanentFailure(f"Gemini API error: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise PermanentFailure(f"Gemini API returned invalid JSON: {e}")

        candidate = (data.get("candidates") or [{}])[0]
        parts = (candidate.get("content") or {}).get("parts") or [{}]
        text = parts[0].get("text") or ""
        sources = (candidate.get("groundingMetadata") or {}).get("groundingChunks") or []

        result = parse_availability_response(text, sources)
        logger.info(f"Availability check for '{query}': {result.result.value}")
        return result
