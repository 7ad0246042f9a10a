"""Nominatim forward and reverse geocoding proxy."""
from typing import Any, Dict

import requests
from flask import current_app


class GeocodingError(Exception):
    """Raised when Nominatim is unreachable or answers with a non-200 status."""


def _nominatim_get(path: str, params: Dict[str, Any]) -> Any:
    base_url = current_app.config["NOMINATIM_BASE_URL"].rstrip("/")
    url = f"{base_url}/{path}"
    headers = {
        "User-Agent": current_app.config["GEOCODING_USER_AGENT"],
        "Accept": "application/json",
    }
    query = {"format": "json", **params}
    try:
        response = requests.get(url, params=query, headers=headers, timeout=current_app.config["GEOCODING_TIMEOUT"])
    except requests.RequestException as exc:
        raise GeocodingError(f"Nominatim request failed: {exc}") from exc

    if response.status_code != 200:
        raise GeocodingError(f"Nominatim returned {response.status_code}")
    try:
        return response.json()
    except ValueError as exc:
        raise GeocodingError("Nominatim response not JSON-decodable") from exc


def search_places(query: str) -> Any:
    return _nominatim_get("search", {"q": query})


def reverse_geocode(lat: str, lon: str) -> Any:
    return _nominatim_get("reverse", {"lat": lat, "lon": lon})
