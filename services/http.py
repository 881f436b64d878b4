"""HTTP helpers shared by the provider clients."""
from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

import httpx

from core.errors import ConfigurationError, DecodingError, TransportError

log = logging.getLogger("http")


def require_key(api_key: Optional[str]) -> str:
    key = (api_key or "").strip()
    if not key:
        raise ConfigurationError("API key not found.")
    return key


def endpoint(base_url: Optional[str], path: str) -> str:
    """Join ``base_url`` and ``path`` or raise when the base is unusable."""
    base = (base_url or "").strip()
    if not base:
        raise ConfigurationError("Endpoint URL is not configured.")
    if "://" not in base:
        base = f"https://{base}"
    try:
        url = httpx.URL(base.rstrip("/") + "/" + path.lstrip("/"))
    except httpx.InvalidURL as exc:
        raise ConfigurationError(f"Invalid endpoint URL: {base}", cause=exc) from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigurationError(f"Invalid endpoint URL: {base}")
    return str(url)


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    headers: Mapping[str, str],
    json_body: Any = None,
    params: Any = None,
    files: Any = None,
    data: Any = None,
) -> httpx.Response:
    try:
        r = await client.request(method, url, headers=headers, json=json_body, params=params, files=files, data=data)
    except httpx.HTTPError as e:
        raise TransportError(f"{method} {url} failed: {e}", cause=e) from e
    if r.status_code != 200:
        log.debug("HTTP %s from %s: %s", r.status_code, url, r.text[:300])
        raise TransportError(f"Invalid response from server ({r.status_code}).", status_code=r.status_code)
    return r


def decode_json(r: httpx.Response) -> dict[str, Any]:
    try:
        data = r.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodingError("Response body is not valid JSON.", cause=e) from e
    if not isinstance(data, dict):
        raise DecodingError("Response body is not a JSON object.")
    return data


async def request_json(client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
    return decode_json(await send(client, method, url, **kwargs))
