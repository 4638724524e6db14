"""
Address geocoding for contractor and job locations.

ZIP codes in the primary Oklahoma service area resolve from a local table;
anything else goes to the Google Geocoding API when GOOGLE_MAPS_API_KEY is
configured.
"""
import logging
from typing import Optional, Dict, Any

import httpx
from django.conf import settings

from .constants import GEOCODE_URL, GEOCODE_TIMEOUT_SECONDS

logger = logging.getLogger("ops")

ZIP_CODE_COORDS = {
    # Oklahoma City Metro
    "73012": (35.6528, -97.4781),  # Edmond
    "73013": (35.6186, -97.4361),  # Edmond
    "73034": (35.6689, -97.4089),  # Edmond
    "73003": (35.6606, -97.4847),  # Edmond
    "73099": (35.5261, -97.9631),  # Yukon
    "73036": (35.4918, -97.9181),  # El Reno
    "73102": (35.4676, -97.5164),  # OKC Downtown
    "73103": (35.4901, -97.5253),
    "73104": (35.4867, -97.5028),
    "73105": (35.5147, -97.5036),
    "73106": (35.4833, -97.5456),
    "73107": (35.4833, -97.5736),
    "73108": (35.4500, -97.5650),
    "73109": (35.4328, -97.5364),
    "73110": (35.4600, -97.4200),  # Midwest City
    "73112": (35.5250, -97.5550),
    "73114": (35.5550, -97.5050),
    "73116": (35.5450, -97.5450),  # Nichols Hills
    "73118": (35.5150, -97.5250),
    "73120": (35.5750, -97.5650),
    "73122": (35.5250, -97.6050),  # Warr Acres
    "73130": (35.4550, -97.3650),  # Midwest City
    "73134": (35.6050, -97.5650),
    "73139": (35.3550, -97.5150),
    "73160": (35.3350, -97.4850),  # Moore
    "73165": (35.3250, -97.4050),  # Moore
    "73170": (35.3450, -97.5850),
    # Norman
    "73019": (35.2226, -97.4395),
    "73026": (35.2450, -97.3850),
    "73069": (35.2450, -97.4450),
    "73071": (35.2050, -97.4850),
    "73072": (35.2050, -97.4050),
    # Stillwater
    "74074": (36.1156, -97.0584),
    "74075": (36.1350, -97.0850),
    # Tulsa Metro
    "74103": (36.1550, -95.9850),  # Tulsa Downtown
    "74104": (36.1450, -95.9550),
    "74105": (36.1150, -95.9650),
    "74112": (36.1450, -95.9050),
    "74114": (36.1250, -95.9250),
    "74119": (36.1350, -95.9950),
    "74120": (36.1550, -95.9650),
    "74133": (36.0350, -95.8850),
    "74136": (36.0550, -95.9250),
    "74137": (36.0150, -95.9250),
    # Broken Arrow
    "74011": (36.0526, -95.7908),
    "74012": (36.0650, -95.7550),
    "74014": (36.0350, -95.7150),
}


def get_zip_code_coordinates(zip_code: str) -> Optional[Dict[str, float]]:
    coords = ZIP_CODE_COORDS.get((zip_code or "").strip()[:5])
    if coords is None:
        return None
    return {"lat": coords[0], "lng": coords[1]}


def format_address(address: Dict[str, Any]) -> str:
    parts = [address.get("street"), address.get("city"), address.get("state"), address.get("zip")]
    return ", ".join(str(part) for part in parts if part)


async def geocode_address(address: Dict[str, Any]) -> Optional[Dict[str, float]]:
    """
    Resolve {lat, lng} for an address dict (street/city/state/zip).

    Returns None when neither the ZIP table nor the Google API can place it.
    """
    cached = get_zip_code_coordinates(address.get("zip", ""))
    if cached:
        logger.info(f"[GEOCODE] Found zip {address.get('zip')} in local table")
        return cached

    api_key = settings.GOOGLE_MAPS_API_KEY
    query = format_address(address)
    if not api_key:
        logger.warning(f"[GEOCODE] '{query}' not in zip table and GOOGLE_MAPS_API_KEY not configured")
        return None
    if not query:
        return None

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                GEOCODE_URL,
                params={"address": query, "key": api_key},
                timeout=GEOCODE_TIMEOUT_SECONDS,
            )
            data = response.json()
    except httpx.TimeoutException:
        logger.error(f"[GEOCODE] Timeout geocoding '{query}'")
        return None
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"[GEOCODE] Error geocoding '{query}': {e}")
        return None

    if data.get("status") == "OK" and data.get("results"):
        location = data["results"][0]["geometry"]["location"]
        logger.info(f"[GEOCODE] '{query}' -> {location['lat']}, {location['lng']}")
        return {"lat": location["lat"], "lng": location["lng"]}

    logger.warning(f"[GEOCODE] Geocoding failed for '{query}': {data.get('status')}")
    return None


async def ensure_coordinates(address: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Return the address with lat/lng filled in when they were missing."""
    if not address:
        return address
    if address.get("lat") and address.get("lng"):
        return address
    coords = await geocode_address(address)
    if coords is None:
        return address
    return {**address, **coords}
