"""
Retry/backoff and rate-limit-aware HTTP GET helper for the REST persistence reader.
Results are plain dicts: {'response', 'status', 'timestamp'} plus 'timed_out' when every
attempt ended in a request timeout.
"""

import os
import time
import random
import email.utils
from datetime import datetime, timezone
from typing import Optional, Dict, Any
import requests

# retry/backoff defaults from environment
DEFAULT_MAX_RETRIES = int(os.getenv("COPANY_MAX_RETRIES", "3"))
DEFAULT_BACKOFF_BASE = float(os.getenv("COPANY_BACKOFF_BASE", "0.5"))
_env_jitter = os.getenv("COPANY_BACKOFF_JITTER")
DEFAULT_BACKOFF_JITTER = float(_env_jitter) if _env_jitter is not None and _env_jitter != "" else None
DEFAULT_MAX_BACKOFF = float(os.getenv("COPANY_MAX_BACKOFF", "120.0"))
DEFAULT_REQUEST_TIMEOUT = float(os.getenv("COPANY_REQUEST_TIMEOUT", "10.0"))

# runtime overrides (set once from the CLI)
_runtime: Dict[str, Optional[float]] = {
    'max_retries': None,
    'backoff_base': None,
    'backoff_jitter': None,
    'max_backoff': None,
    'request_timeout': None,
}


def configure_retry(
    max_retries: Optional[int] = None,
    backoff_base: Optional[float] = None,
    backoff_jitter: Optional[float] = None,
    max_backoff: Optional[float] = None,
    request_timeout: Optional[float] = None,
):
    """Configure retry/backoff defaults at runtime (e.g. from CLI). None leaves a value unchanged."""
    if max_retries is not None:
        _runtime['max_retries'] = int(max_retries)
    if backoff_base is not None:
        _runtime['backoff_base'] = float(backoff_base)
    if backoff_jitter is not None:
        _runtime['backoff_jitter'] = float(backoff_jitter)
    if max_backoff is not None:
        _runtime['max_backoff'] = float(max_backoff)
    if request_timeout is not None:
        _runtime['request_timeout'] = float(request_timeout)


def _first(*values):
    return next((v for v in values if v is not None), None)


def _parse_retry_after(raw_ra: Optional[str]) -> Optional[float]:
    if not raw_ra:
        return None
    try:
        return float(raw_ra)
    except ValueError:
        pass
    try:
        dt = email.utils.parsedate_to_datetime(raw_ra)
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return max(0.0, (dt - datetime.now(timezone.utc)).total_seconds())


def _header_number(headers, key: str, cast):
    val = headers.get(key)
    if val is None:
        return None
    try:
        return cast(val)
    except (TypeError, ValueError):
        return None


def _should_retry(status: int, retry_after: Optional[float], remaining: Optional[int]) -> bool:
    if status in (429, 502, 503, 504):
        return True
    if retry_after is not None:
        return True
    return remaining is not None and remaining <= 0


def _wait_seconds(retry_after: Optional[float], reset_at: Optional[float], backoff: float, jitter: float) -> float:
    if retry_after is not None:
        wait = retry_after
    elif reset_at:
        wait = max(0.0, reset_at - time.time())
    else:
        wait = backoff
    return min(wait + random.uniform(0, jitter), 300.0)


def _body(resp):
    try:
        return resp.json()
    except ValueError:
        return getattr(resp, 'text', None)


def _attempt_once(url: str, headers: Dict[str, str], params: Dict[str, Any], timeout: float):
    """Perform one GET. Returns (outcome, data) with outcome in success/retry/timeout/error/fail."""
    try:
        resp = requests.get(url, headers=headers or {}, params=params or {}, timeout=timeout)
    except requests.Timeout as ex:
        return 'timeout', {'exception': str(ex)}
    except requests.RequestException as ex:
        return 'error', {'exception': str(ex)}

    status = getattr(resp, 'status_code', 0)
    if status == 200:
        return 'success', {'body': _body(resp), 'status': status}

    headers_in = getattr(resp, 'headers', {}) or {}
    retry_after = _parse_retry_after(headers_in.get('Retry-After'))
    remaining = _header_number(headers_in, 'X-RateLimit-Remaining', int)
    reset_at = _header_number(headers_in, 'X-RateLimit-Reset', float)
    if _should_retry(status, retry_after, remaining):
        return 'retry', {'status': status, 'retry_after': retry_after, 'reset_at': reset_at, 'text': getattr(resp, 'text', None)}
    return 'fail', {'body': _body(resp), 'status': status}


def perform_request_with_retries(
    url: str,
    headers: Dict[str, str],
    params: Dict[str, Any],
    cache=None,
    cache_key: str = '',
    min_wait: float = 0.0,
    max_retries: Optional[int] = None,
    backoff_base: Optional[float] = None,
    backoff_jitter: Optional[float] = None,
    max_backoff: Optional[float] = None,
    request_timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """GET with exponential backoff. Successful bodies are stored in `cache` under `cache_key`."""
    base = float(_first(backoff_base, min_wait or None, _runtime['backoff_base'], DEFAULT_BACKOFF_BASE))
    jitter = float(_first(backoff_jitter, _runtime['backoff_jitter'], DEFAULT_BACKOFF_JITTER, base))
    cap = float(_first(max_backoff, _runtime['max_backoff'], DEFAULT_MAX_BACKOFF))
    timeout = float(_first(request_timeout, _runtime['request_timeout'], DEFAULT_REQUEST_TIMEOUT))
    attempts = int(_first(max_retries, _runtime['max_retries'], DEFAULT_MAX_RETRIES))

    backoff = base
    timeouts = 0
    last: Dict[str, Any] = {'response': None, 'status': 0, 'timestamp': time.time()}
    for attempt in range(max(1, attempts)):
        outcome, data = _attempt_once(url, headers, params, timeout)

        if outcome == 'success':
            if cache is not None and cache_key:
                cache.set(cache_key, data['body'], data['status'])
            return {'response': data['body'], 'status': data['status'], 'timestamp': time.time()}
        if outcome == 'fail':
            return {'response': data['body'], 'status': data['status'], 'timestamp': time.time()}

        if outcome == 'retry':
            wait = _wait_seconds(data['retry_after'], data['reset_at'], backoff, jitter)
            last = {'response': data['text'], 'status': data['status'], 'timestamp': time.time()}
        else:
            timeouts += 1 if outcome == 'timeout' else 0
            wait = min(backoff + random.uniform(0, jitter), cap)
            last = {'response': data['exception'], 'status': 0, 'timestamp': time.time()}
        backoff = min(backoff * 2, cap)
        if attempt + 1 < attempts:
            time.sleep(wait)

    if timeouts and timeouts == max(1, attempts):
        last['timed_out'] = True
    return last


__all__ = ["configure_retry", "perform_request_with_retries"]
