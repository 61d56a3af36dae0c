"""
Feed download and normalisation.

中文:
    EPG 数据下载、解压与格式统一。
"""

from __future__ import annotations

import gzip
import logging
import random
import re
import time
from pathlib import Path
from typing import Optional, Union

import requests

from . import __version__

log = logging.getLogger(__name__)

HTTP_RETRY_ATTEMPTS = 3
HTTP_TIMEOUT = 30
HTTP_BACKOFF_BASE = 1.5
GZIP_MAGIC = b"\x1f\x8b"
USER_AGENT = f"epgsplit/{__version__}"

_LANG_ATTR = re.compile(r'lang="[^"]*"', re.IGNORECASE)
_TIME_OFFSET = re.compile(r'(start|stop)="([^"]*?)\s*[+-]\d{4}"')


class FetchError(Exception):
    """Raised when the feed cannot be retrieved. / 无法获取 EPG 数据时抛出。"""


def fetch_feed(
    url: str,
    *,
    timeout: float = HTTP_TIMEOUT,
    attempts: int = HTTP_RETRY_ATTEMPTS,
) -> str:
    """
    Download ``url`` and return the decoded (and, if needed, gunzipped) feed text.

    中文:
        下载 EPG 数据并返回解压后的文本。
    """

    log.info("downloading feed %s", url)
    response = _http_get_with_retry(url, timeout=timeout, attempts=attempts)
    try:
        if response.status_code >= 400:
            raise FetchError(f"http fetch failed for {url}: {response.status_code}")
        payload = response.content
    finally:
        response.close()
    log.info("downloaded %.2f MB", len(payload) / 1024 / 1024)
    return decode_payload(payload, hint=url)


def read_feed(path: Union[str, Path]) -> str:
    path = Path(path)
    if not path.exists():
        raise FetchError(f"feed file {path} not found")
    log.info("reading feed %s", path)
    return decode_payload(path.read_bytes(), hint=path.name)


def decode_payload(payload: bytes, hint: str = "") -> str:
    # requests may already have removed a Content-Encoding gzip layer.
    if payload[:2] == GZIP_MAGIC:
        try:
            payload = gzip.decompress(payload)
        except (OSError, EOFError) as exc:
            raise FetchError(f"failed to decompress {hint or 'payload'}: {exc}") from exc
    return payload.decode("utf-8", errors="replace")


def normalise_feed(text: str, *, lang: Optional[str] = "zh", tz_offset: Optional[str] = "+0800") -> str:
    """
    Rewrite every ``lang`` attribute and every start/stop offset to a single value.

    The wall-clock part of the timestamp is kept as-is; only the offset label
    is replaced.
    """

    if lang:
        text = _LANG_ATTR.sub(f'lang="{lang}"', text)
    if tz_offset:
        text = _TIME_OFFSET.sub(lambda match: f'{match.group(1)}="{match.group(2)} {tz_offset}"', text)
    return text


def _http_get_with_retry(url: str, *, timeout: float, attempts: int) -> requests.Response:
    session = _get_http_session()
    last_exc: Optional[Exception] = None
    attempts = max(1, attempts)
    for attempt in range(attempts):
        try:
            response = session.get(url, timeout=timeout)
        except requests.RequestException as exc:
            last_exc = exc
            log.warning("download attempt %d/%d failed: %s", attempt + 1, attempts, exc)
            if attempt < attempts - 1:
                _sleep_with_jitter(attempt)
            continue
        if response.status_code == 429 or 500 <= response.status_code < 600:
            if attempt == attempts - 1:
                return response
            log.warning("download attempt %d/%d returned %d", attempt + 1, attempts, response.status_code)
            response.close()
            _sleep_with_jitter(attempt)
            continue
        return response
    if last_exc:
        raise FetchError(f"http fetch failed for {url}: {last_exc}") from last_exc
    raise FetchError(f"http fetch failed for {url}: exceeded retries")


def _get_http_session() -> requests.Session:
    global _HTTP_SESSION
    if _HTTP_SESSION is None:
        session = requests.Session()
        session.headers.update(
            {
                "User-Agent": USER_AGENT,
                "Accept": "application/gzip, application/xml, text/xml, */*",
            }
        )
        _HTTP_SESSION = session
    return _HTTP_SESSION


_HTTP_SESSION: Optional[requests.Session] = None


def _sleep_with_jitter(attempt: int) -> None:
    base = HTTP_BACKOFF_BASE ** attempt
    time.sleep(random.uniform(0.5, 1.5) * base)
