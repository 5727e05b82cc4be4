"""
Outbound HTTP helpers built on httpx.

fetch_text() performs one bounded GET against a downstream service and turns
transport failures and error statuses into the shared error taxonomy.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from common.errors import Timeout, UpstreamError, error_for_status

logger = logging.getLogger(__name__)


def resource_url(base_url: str, resource: str, order_id: str) -> str:
    """
    Build {base_url}/{resource}/{order_id} with the id as one encoded segment.

    >>> resource_url("http://order", "order", "a/b?c")
    'http://order/order/a%2Fb%3Fc'
    """
    return f"{base_url}/{resource}/{quote(order_id, safe='')}"


def _detail_of(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return resp.text


async def fetch_text(client: httpx.AsyncClient, url: str, timeout: float) -> str:
    """
    GET url and return the body text.

    Raises Timeout when the call exceeds its deadline, UpstreamError when the
    service cannot be reached, and the category matching any non-2xx status.
    """
    try:
        resp = await client.get(url, timeout=timeout)
    except httpx.TimeoutException as e:
        logger.warning("GET %s timed out: %s", url, e)
        raise Timeout(f"Request to {url} timed out") from e
    except httpx.RequestError as e:
        logger.warning("GET %s failed: %s", url, e)
        raise UpstreamError(f"Request to {url} failed: {type(e).__name__}") from e

    if resp.is_success:
        return resp.text
    raise error_for_status(resp.status_code, _detail_of(resp))


async def post_json(client: httpx.AsyncClient, url: str, payload: dict, timeout: float) -> str:
    """POST a JSON body and return the response text, with fetch_text's error mapping."""
    try:
        resp = await client.post(url, json=payload, timeout=timeout)
    except httpx.TimeoutException as e:
        raise Timeout(f"Request to {url} timed out") from e
    except httpx.RequestError as e:
        raise UpstreamError(f"Request to {url} failed: {type(e).__name__}") from e

    if resp.is_success:
        return resp.text
    raise error_for_status(resp.status_code, _detail_of(resp))
