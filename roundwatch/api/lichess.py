# ==============================================================================
# lichess.py  –  Broadcast metadata from the Lichess API
#
#   • fetch_broadcasts()             GET /api/broadcast            (NDJSON)
#   • fetch_broadcast_rounds(id)     GET /api/broadcast/{id}       (JSON)
# ==============================================================================

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import requests
from requests.exceptions import HTTPError, RequestException

from roundwatch.exceptions import TransportError
from roundwatch.models import BroadcastRound
from roundwatch.utils.config_utils import auth_headers, get_api_timeout, get_base_url
from roundwatch.utils.logging_utils import setup_logger

LOGGER = setup_logger("lichess_api", level=logging.INFO)

HTTP = requests.Session()


# ==============================================================================
# Helpers
# ==============================================================================


def _get(path: str, token: Optional[str], base_url: Optional[str], **kwargs: Any):
    """GET `path` and raise TransportError on connection problems or non-2xx."""
    url = f"{base_url or get_base_url()}{path}"
    try:
        resp = HTTP.get(
            url, headers=auth_headers(token), timeout=get_api_timeout(), **kwargs
        )
        resp.raise_for_status()
        return resp
    except HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else None
        LOGGER.warning("HTTP %s for '%s'", status, url)
        raise TransportError(f"{url} returned {status}", status_code=status) from exc
    except RequestException as exc:
        LOGGER.warning("Error fetching '%s': %s", url, exc)
        raise TransportError(f"Could not reach {url}: {exc}") from exc


def _round_from_json(data: Dict[str, Any]) -> BroadcastRound:
    return BroadcastRound(
        id=str(data["id"]),
        name=data.get("name", ""),
        slug=data.get("slug"),
        url=data.get("url"),
        starts_at=data.get("startsAt"),
        finished=bool(data.get("finished", False)),
    )


# ==============================================================================
# Public API
# ==============================================================================


def fetch_broadcasts(
    token: Optional[str] = None, base_url: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Official broadcasts, one JSON object per NDJSON line."""
    resp = _get("/api/broadcast", token, base_url, stream=True)

    broadcasts: List[Dict[str, Any]] = []
    for line in resp.iter_lines():
        if not line:
            continue
        try:
            broadcasts.append(json.loads(line))
        except json.JSONDecodeError:
            LOGGER.debug("Skipping undecodable broadcast line %r", line[:80])

    LOGGER.info("Fetched %d broadcast(s)", len(broadcasts))
    return broadcasts


def fetch_broadcast_rounds(
    broadcast_id: str, token: Optional[str] = None, base_url: Optional[str] = None
) -> List[BroadcastRound]:
    """Rounds of one broadcast tournament, in API order."""
    resp = _get(f"/api/broadcast/{broadcast_id}", token, base_url)
    rounds = [
        _round_from_json(item)
        for item in (resp.json().get("rounds") or [])
        if item.get("id")
    ]
    LOGGER.info("Broadcast '%s' has %d round(s)", broadcast_id, len(rounds))
    return rounds
