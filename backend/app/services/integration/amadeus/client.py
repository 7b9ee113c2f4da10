"""
Amadeus API Client
SkyFare - Upstream GDS Integration

Handles OAuth2 authentication and the raw GET/POST calls used by the
search and pricing services. Reference-data lookups go through
ReferenceDataClient instead, which never raises.
"""

import httpx
from typing import Dict, Any, Optional
from datetime import datetime, timedelta
import logging

from app.core import config
from app.core.metrics import track_external_api
from app.services.integration.common.errors import AmadeusAPIError, AmadeusAuthError

# Logging
logger = logging.getLogger("SkyFare-Amadeus")

# Token cache
_token_cache = {
    "access_token": None,
    "expires_at": None
}


def clear_token_cache() -> None:
    _token_cache["access_token"] = None
    _token_cache["expires_at"] = None


async def get_access_token() -> str:
    """
    Get OAuth2 access token from Amadeus.
    Caches token until expiry. Raises AmadeusAuthError on any failure.
    """
    if _token_cache["access_token"] and _token_cache["expires_at"]:
        if datetime.now() < _token_cache["expires_at"]:
            return _token_cache["access_token"]

    if not config.AMADEUS_API_KEY or not config.AMADEUS_API_SECRET:
        raise AmadeusAuthError("AMADEUS_API_KEY and AMADEUS_API_SECRET must be set in .env")

    try:
        async with httpx.AsyncClient(timeout=config.AMADEUS_HTTP_TIMEOUT) as client:
            response = await client.post(
                f"{config.AMADEUS_BASE_URL}/v1/security/oauth2/token",
                data={
                    "grant_type": "client_credentials",
                    "client_id": config.AMADEUS_API_KEY,
                    "client_secret": config.AMADEUS_API_SECRET
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"}
            )
    except httpx.HTTPError as e:
        logger.error(f"Token request failed: {e}")
        raise AmadeusAuthError(f"Token generation failed: {e}") from e

    if response.status_code != 200:
        logger.error(f"Token request failed: {response.status_code} - {response.text}")
        raise AmadeusAuthError(f"Failed to get Amadeus token: {response.status_code}")

    data = response.json()
    _token_cache["access_token"] = data["access_token"]
    # Token expires in 'expires_in' seconds, subtract 60 for safety margin
    expires_in = data.get("expires_in", 1799) - 60
    _token_cache["expires_at"] = datetime.now() + timedelta(seconds=expires_in)

    logger.info("✅ Amadeus token refreshed")
    return _token_cache["access_token"]


def _raise_for_upstream(method: str, endpoint: str, response: httpx.Response) -> None:
    logger.error(f"Amadeus {method} {endpoint} failed: {response.status_code}")
    errors = []
    try:
        body = response.json()
        if isinstance(body, dict):
            errors = body.get("errors") or []
    except ValueError:
        pass

    if errors and isinstance(errors[0], dict):
        message = errors[0].get("detail") or errors[0].get("title") or str(errors[0])
    else:
        message = f"{response.status_code} - {response.text[:200]}"

    raise AmadeusAPIError(response.status_code, f"Amadeus API Error: {message}", errors)


async def amadeus_get(
    endpoint: str,
    params: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Make GET request to Amadeus API.
    ALWAYS returns raw JSON response as dict.
    """
    token = await get_access_token()

    with track_external_api("amadeus") as call:
        async with httpx.AsyncClient(timeout=config.AMADEUS_HTTP_TIMEOUT) as client:
            response = await client.get(
                f"{config.AMADEUS_BASE_URL}{endpoint}",
                params=params or {},
                headers={"Authorization": f"Bearer {token}"}
            )

            if response.status_code == 401:
                # Token expired → retry once
                clear_token_cache()
                token = await get_access_token()

                response = await client.get(
                    f"{config.AMADEUS_BASE_URL}{endpoint}",
                    params=params or {},
                    headers={"Authorization": f"Bearer {token}"}
                )
        call["status"] = str(response.status_code)

    if response.status_code != 200:
        _raise_for_upstream("GET", endpoint, response)

    data = response.json()

    if not isinstance(data, dict):
        raise AmadeusAPIError(
            response.status_code,
            f"Amadeus API contract violation: expected dict, got {type(data)}"
        )

    return data


async def amadeus_post(endpoint: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Make POST request to Amadeus API.

    Args:
        endpoint: API endpoint
        body: Request body (JSON)

    Returns:
        Full JSON response (root object, not only 'data')
    """
    token = await get_access_token()

    with track_external_api("amadeus") as call:
        async with httpx.AsyncClient(timeout=config.AMADEUS_HTTP_TIMEOUT) as client:
            response = await client.post(
                f"{config.AMADEUS_BASE_URL}{endpoint}",
                json=body or {},
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json"
                }
            )
        call["status"] = str(response.status_code)

    if response.status_code in [200, 201]:
        return response.json()

    _raise_for_upstream("POST", endpoint, response)
