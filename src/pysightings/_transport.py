"""HTTP transport shared by the network adapters."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pysightings._constants import USER_AGENT
from pysightings._redact import redact_params, redact_url
from pysightings.exceptions import SightingsTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the source adapters.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any:
        ...


class HttpTransport:
    """GET-and-decode-JSON over a shared ``aiohttp.ClientSession``."""

    def __init__(self, http_session: aiohttp.ClientSession) -> None:
        self._http = http_session

    async def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any:
        """Fetch *url* and return the decoded JSON body.

        Raises :class:`SightingsTransportError` for network failures,
        non-200 statuses and bodies that are not JSON.
        """
        headers = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        query = {key: str(value) for key, value in (params or {}).items()}

        _logger.debug("GET %s %s", redact_url(url), redact_params(query))

        try:
            async with self._http.get(url, params=query, headers=headers) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise SightingsTransportError(
                        f"HTTP {resp.status} from {redact_url(url)}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=url,
                    )
        except SightingsTransportError:
            raise
        except aiohttp.ClientError as exc:
            raise SightingsTransportError(
                f"Request to {redact_url(url)} failed: {exc}",
                endpoint=url,
            ) from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise SightingsTransportError(
                f"Invalid JSON from {redact_url(url)}: {text[:200]}",
                endpoint=url,
            ) from exc
