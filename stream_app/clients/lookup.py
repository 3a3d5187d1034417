"""Client for the recording lookup service that maps references to playlist URLs."""
import logging
from typing import Any, List

import httpx

from utils.config import LookupSettings
from utils.exceptions import ConfigurationError, ResolutionError

logger = logging.getLogger(__name__)


class RecordingLookupClient:
    """Queries the lookup endpoint for the manifest URLs of one recording reference."""

    def __init__(self, settings: LookupSettings):
        self._settings = settings

    async def manifest_urls(self, client: httpx.AsyncClient, reference: str) -> List[str]:
        if not self._settings.url:
            raise ConfigurationError("LOOKUP_URL is not configured")

        logger.info(f"Fetching manifest URLs for reference {reference}")
        try:
            response = await client.get(
                self._settings.url,
                params={self._settings.param: reference},
                follow_redirects=True,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise ResolutionError(
                f"Lookup service returned HTTP {exc.response.status_code} for reference {reference}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ResolutionError(f"Lookup service unreachable: {exc}") from exc
        except ValueError as exc:
            raise ResolutionError("Lookup service returned invalid JSON") from exc

        urls = _extract_urls(payload)
        logger.info(f"Found {len(urls)} manifest URLs for reference {reference}")
        if not urls:
            raise ResolutionError(f"No manifest URLs found for reference {reference}")
        return urls


def _extract_urls(payload: Any) -> List[str]:
    """Accept either ``{"data": {"rows": [[url, ...], ...]}}`` or a plain list of URLs."""
    if isinstance(payload, list):
        rows = payload
    elif isinstance(payload, dict):
        data = payload.get('data') or {}
        rows = data.get('rows') if isinstance(data, dict) else None
        if rows is None:
            rows = []
    else:
        raise ResolutionError("Unexpected lookup response shape")

    if not isinstance(rows, list):
        raise ResolutionError("Unexpected lookup response shape")

    urls = []
    for row in rows:
        value = row[0] if isinstance(row, (list, tuple)) and row else row
        if isinstance(value, str) and value.strip():
            urls.append(value.strip())
    return urls
