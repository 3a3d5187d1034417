"""Playlist fetching and parsing."""
import logging
from typing import List, Optional
from urllib.parse import urljoin

import httpx

from models.manifest import Manifest, Segment, SegmentReference, VariantReference
from utils.exceptions import EmptyManifestError, ResolutionError

logger = logging.getLogger(__name__)

MAX_VARIANT_DEPTH = 3


def parse_manifest(text: str, url: str) -> Manifest:
    """Parse playlist text into a Manifest.

    Every ``#EXT-X-STREAM-INF`` tag makes the next URI line a variant
    reference, every ``#EXTINF`` tag makes it a segment reference. Bare URI
    lines with no preceding tag are treated as segments so plain segment
    lists work too. URIs are kept as written; resolution happens later
    against ``url``.

    Args:
        text: Playlist document body
        url: URL the document was retrieved from

    Returns:
        Manifest with entries in document order
    """
    manifest = Manifest(url=url)
    pending_variant: Optional[dict] = None
    pending_duration: Optional[float] = None

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        if line.startswith('#'):
            if line.startswith('#EXT-X-STREAM-INF:'):
                pending_variant = _parse_attributes(line.split(':', 1)[1])
            elif line.startswith('#EXTINF:'):
                value = line.split(':', 1)[1].split(',', 1)[0].strip()
                try:
                    pending_duration = float(value)
                except ValueError:
                    pending_duration = None
            elif line.startswith('#EXT-X-ENDLIST'):
                break
            continue

        if pending_variant is not None:
            bandwidth = pending_variant.get('BANDWIDTH')
            manifest.entries.append(VariantReference(
                uri=line,
                bandwidth=int(bandwidth) if bandwidth and bandwidth.isdigit() else None,
                resolution=pending_variant.get('RESOLUTION'),
            ))
            pending_variant = None
        else:
            manifest.entries.append(SegmentReference(uri=line, duration=pending_duration))
        pending_duration = None

    return manifest


def _parse_attributes(attribute_list: str) -> dict:
    """Split an attribute list, honouring quoted values that contain commas."""
    attributes = {}
    key, value, in_quotes, reading_key = '', '', False, True
    for char in attribute_list + ',':
        if reading_key:
            if char == '=':
                reading_key = False
            elif char != ',':
                key += char
            continue
        if char == '"':
            in_quotes = not in_quotes
        elif char == ',' and not in_quotes:
            attributes[key.strip()] = value.strip().strip('"')
            key, value, reading_key = '', '', True
        else:
            value += char
    return attributes


class ManifestResolver:
    """Fetches playlists and flattens master playlists into media playlists."""

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def fetch(self, url: str) -> Manifest:
        """Fetch and parse one playlist.

        Raises:
            ResolutionError: transport failure, HTTP error status, or a
                document with no entries
        """
        logger.debug(f"Fetching manifest: {url}")
        try:
            response = await self._client.get(url, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ResolutionError(
                f"Manifest request failed with HTTP {exc.response.status_code}: {url}"
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ResolutionError(f"Could not fetch manifest {url}: {exc}") from exc

        # Relative URIs resolve against where the document actually came from
        manifest = parse_manifest(response.text, str(response.url))
        if not manifest.entries:
            raise EmptyManifestError(f"Manifest has no entries: {url}")
        return manifest

    async def resolve(self, url: str, depth: int = 0) -> List[Manifest]:
        """Resolve a playlist URL into one or more media playlists.

        A master playlist pulls every listed variant, not a single
        rendition; each variant comes back as its own Manifest in listing
        order.
        """
        manifest = await self.fetch(url)
        if not manifest.is_master:
            return [manifest]

        if depth >= MAX_VARIANT_DEPTH:
            raise ResolutionError(f"Variant playlists nested too deeply at {url}")

        logger.info(f"Master playlist {url} lists {len(manifest.variants)} variants")
        resolved: List[Manifest] = []
        for variant in manifest.variants:
            variant_url = resolve_uri(manifest.url, variant.uri)
            try:
                resolved.extend(await self.resolve(variant_url, depth + 1))
            except EmptyManifestError:
                logger.warning(f"Variant {variant_url} has no entries, skipping")
            except ResolutionError as exc:
                raise ResolutionError(f"Variant {variant_url} could not be resolved: {exc}") from exc
        return resolved

    async def resolve_all(self, urls: List[str]) -> List[Manifest]:
        """Resolve every recording URL, preserving arrival order.

        A recording whose playlist is empty is logged and skipped; deciding
        whether the job as a whole has anything to assemble is left to the
        caller.
        """
        manifests: List[Manifest] = []
        for position, url in enumerate(urls, start=1):
            logger.info(f"Resolving manifest {position}/{len(urls)}: {url}")
            try:
                manifests.extend(await self.resolve(url))
            except EmptyManifestError:
                logger.warning(f"No segments found in manifest {position}. Skipping.")
        return manifests


def resolve_uri(base: str, uri: str) -> str:
    """Resolve a playlist URI against the playlist URL, rejecting anything httpx cannot request."""
    try:
        resolved = urljoin(base, uri)
        httpx.URL(resolved)
    except (ValueError, httpx.InvalidURL) as exc:
        raise ResolutionError(f"Invalid URI {uri!r} in manifest {base}: {exc}") from exc
    return resolved


def build_segments(manifest: Manifest, manifest_index: int) -> List[Segment]:
    """Turn a manifest's segment references into Segments with absolute URIs."""
    return [
        Segment(
            manifest_index=manifest_index,
            index=index,
            uri=reference.uri,
            resolved_uri=resolve_uri(manifest.url, reference.uri),
        )
        for index, reference in enumerate(manifest.segments)
    ]
