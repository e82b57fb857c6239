"""Shared HTTP helpers used by the repository fetcher.

Encapsulates request/timeout error handling and JSON decoding so callers get
one typed exception per failure mode instead of raw ``requests`` errors.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

import requests

from mqpkg.common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from mqpkg.constants import Constants
from mqpkg.errors import HTTPStatusError, InvalidRepositoryData, TransportError

logger = logging.getLogger(__name__)


def build_session() -> requests.Session:
    """Create a session advertising gzip support."""
    session = requests.Session()
    session.headers.update({"Accept": "application/json", "Accept-Encoding": "gzip"})
    return session


def safe_get(
    url: str,
    *,
    context: str,
    session: Optional[requests.Session] = None,
    **kwargs: Any,
) -> requests.Response:
    """Perform a GET request, retrying transport failures.

    Raises:
        TransportError: every attempt failed with a connection error or timeout.
    """
    getter = session.get if session is not None else requests.get
    safe_target = safe_url(url)
    last_exception: Optional[BaseException] = None

    for attempt in range(Constants.HTTP_RETRY_MAX):
        with Timer() as t:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP request",
                    extra=extra_context(
                        event="http_request",
                        component="http_client",
                        action="GET",
                        target=safe_target,
                        context=context,
                        attempt=attempt + 1,
                    ),
                )
            try:
                res = getter(url, timeout=Constants.REQUEST_TIMEOUT, **kwargs)
            except requests.Timeout as exc:
                last_exception = exc
                logger.warning(
                    "%s request timed out after %s seconds (attempt %d)",
                    context,
                    Constants.REQUEST_TIMEOUT,
                    attempt + 1,
                )
                continue
            except requests.RequestException as exc:  # includes ConnectionError
                last_exception = exc
                logger.warning("%s connection error: %s (attempt %d)", context, exc, attempt + 1)
                continue

            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP response",
                    extra=extra_context(
                        event="http_response",
                        component="http_client",
                        action="GET",
                        outcome="success",
                        status_code=res.status_code,
                        duration_ms=t.duration_ms(),
                        target=safe_target,
                        context=context,
                    ),
                )
            return res

    raise TransportError(
        f"{context} request failed after {Constants.HTTP_RETRY_MAX} attempts: {last_exception}",
        url=url,
    ) from last_exception


def get_json(
    url: str,
    *,
    context: str,
    session: Optional[requests.Session] = None,
    **kwargs: Any,
) -> Any:
    """GET ``url`` and decode the JSON body.

    Args:
        url: Target URL
        context: Human-readable source tag for logs (e.g. the repository name)
        session: Optional session to reuse connections
        **kwargs: Additional requests.get parameters

    Returns:
        The decoded JSON document.

    Raises:
        TransportError: network failure.
        HTTPStatusError: response status is not 2xx.
        InvalidRepositoryData: the body is not valid JSON.
    """
    res = safe_get(url, context=context, session=session, **kwargs)
    if not 200 <= res.status_code < 300:
        logger.error("%s returned HTTP %s for %s", context, res.status_code, safe_url(url))
        raise HTTPStatusError(url, res.status_code)

    try:
        return json.loads(res.text)
    except ValueError as exc:
        if is_debug_enabled(logger):
            logger.debug(
                "JSON decode error",
                extra=extra_context(
                    event="parse",
                    component="http_client",
                    action="get_json",
                    outcome="json_decode_error",
                    status_code=res.status_code,
                    target=safe_url(url),
                ),
            )
        raise InvalidRepositoryData(f"{context} returned malformed JSON: {exc}", url=url) from exc
