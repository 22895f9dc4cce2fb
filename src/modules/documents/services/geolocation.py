import ipaddress
import logging
from typing import Any, Dict, Optional

import httpx

from config import settings

logger = logging.getLogger(__name__)


def _is_public(ip: str) -> bool:
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return not (address.is_private or address.is_loopback or address.is_link_local
                or address.is_reserved or address.is_multicast or address.is_unspecified)


def _normalize(ip: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    # ipapi.co marca los fallos con "error"; ipwho.is con "success": false
    if data.get("error") or data.get("success") is False:
        return None
    location = {
        "ip": data.get("ip") or ip,
        "city": data.get("city"),
        "region": data.get("region"),
        "country": data.get("country_name") or data.get("country"),
        "latitude": data.get("latitude"),
        "longitude": data.get("longitude"),
    }
    if not any(location[k] for k in ("city", "region", "country")):
        return None
    return location


class GeolocationService:
    """Consulta best-effort de ubicación aproximada por IP (endpoint primario y de respaldo)."""

    def __init__(self, primary_url: str, fallback_url: str, timeout: float = 3.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.urls = [primary_url, fallback_url]
        self.timeout = timeout
        self.transport = transport

    def lookup(self, ip: Optional[str]) -> Optional[Dict[str, Any]]:
        if not ip or not _is_public(ip):
            return None

        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            for url in self.urls:
                try:
                    response = client.get(url.format(ip=ip))
                    response.raise_for_status()
                    location = _normalize(ip, response.json())
                except (httpx.HTTPError, ValueError) as exc:
                    logger.warning("Geolocation lookup via %s failed: %s", url, exc)
                    continue
                if location:
                    return location
        return None


def get_geolocation_service() -> GeolocationService:
    return GeolocationService(settings.GEO_PRIMARY_URL, settings.GEO_FALLBACK_URL, settings.GEO_TIMEOUT_SECONDS)
