"""Tolerant M3U playlist parser producing pipe-encoded channel URLs"""

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from iptvplay.config import FetchConfig, get_config
from iptvplay.importers.metadata_codec import (
    MetadataCodec,
    RawMetadata,
    normalize_drm_scheme,
)

logger = logging.getLogger(__name__)


class PlaylistFetchError(Exception):
    """Playlist text could not be retrieved."""

    def __init__(self, message: str, source: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.source = source
        self.original_error = original_error


class LineKind(str, Enum):
    """Classification of a single playlist line."""

    BLANK = "blank"
    HEADER = "header"  # #EXTM3U
    ENTRY = "entry"  # #EXTINF
    OPTION = "option"  # #EXTVLCOPT:key=value
    PROPERTY = "property"  # #KODIPROP:[namespace.]key=value
    RAW_JSON = "raw_json"  # #EXTHTTP:{...}
    URL = "url"
    OTHER = "other"  # any other tag


@dataclass(frozen=True)
class PlaylistLine:
    """A classified playlist line with its key/value already split out."""

    kind: LineKind
    text: str
    key: str = ""
    value: str = ""

    @property
    def is_tag(self) -> bool:
        return self.kind in (LineKind.OPTION, LineKind.PROPERTY, LineKind.RAW_JSON, LineKind.OTHER)


def classify_line(raw: str) -> PlaylistLine:
    """Classify one raw playlist line."""
    text = raw.strip()
    if not text:
        return PlaylistLine(LineKind.BLANK, text)
    if not text.startswith("#"):
        return PlaylistLine(LineKind.URL, text)

    upper = text.upper()
    if upper.startswith("#EXTM3U"):
        return PlaylistLine(LineKind.HEADER, text)
    if upper.startswith("#EXTINF"):
        return PlaylistLine(LineKind.ENTRY, text)

    body = text.split(":", 1)[1].strip() if ":" in text else ""

    if upper.startswith("#EXTVLCOPT"):
        key, _, value = body.partition("=")
        return PlaylistLine(LineKind.OPTION, text, key.strip().lower(), value.strip())

    if upper.startswith("#KODIPROP"):
        key, _, value = body.partition("=")
        # inputstream.adaptive.license_type -> license_type
        key = key.strip().lower().rsplit(".", 1)[-1]
        return PlaylistLine(LineKind.PROPERTY, text, key, value.strip())

    if upper.startswith("#EXTHTTP"):
        # Stored verbatim; the resolver parses it at play time
        return PlaylistLine(LineKind.RAW_JSON, text, "exthttp", body)

    return PlaylistLine(LineKind.OTHER, text)


@dataclass
class ChannelDescriptor:
    """A playable channel parsed from an M3U playlist"""

    name: str
    encoded_stream_url: str
    logo_url: Optional[str] = None
    group_title: Optional[str] = None
    tvg_id: Optional[str] = None
    tvg_name: Optional[str] = None
    # Owned by the favorites store, never set by the parser
    is_favorite: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "name": self.name,
            "encoded_stream_url": self.encoded_stream_url,
            "logo_url": self.logo_url,
            "group_title": self.group_title,
            "tvg_id": self.tvg_id,
            "tvg_name": self.tvg_name,
            "is_favorite": self.is_favorite,
        }


class M3UParser:
    """
    M3U parser that accepts metadata tags on either side of ``#EXTINF``.

    Both of these yield the same channel::

        #EXTINF:-1 tvg-id="x",Name          #KODIPROP:license_type=clearkey
        #KODIPROP:license_type=clearkey     #EXTINF:-1 tvg-id="x",Name
        https://stream.url                  https://stream.url
    """

    ATTR_PATTERN = re.compile(r'(\w+(?:-\w+)*)="([^"]*)"')

    OPTION_FIELDS = {
        "http-user-agent": "user_agent",
        "http-referrer": "referer",
        "http-referer": "referer",
        "http-cookie": "cookie",
        "http-origin": "origin",
        "drm-license": "drm_license_raw",
    }

    PROPERTY_FIELDS = {
        "license_key": "drm_license_raw",
    }

    # Parameters accepted in a "url|key=value" suffix on the URL line itself
    SUFFIX_FIELDS = {
        "user-agent": "user_agent",
        "useragent": "user_agent",
        "referer": "referer",
        "referrer": "referer",
        "origin": "origin",
        "cookie": "cookie",
        "drmscheme": "drm_scheme",
        "drm-scheme": "drm_scheme",
        "drm_scheme": "drm_scheme",
    }
    SUFFIX_LICENSE_KEYS = ("drmlicense", "drm-license", "drm_license", "license_key")

    @classmethod
    def parse(cls, content: str) -> list[ChannelDescriptor]:
        """
        Parse playlist text into channels.

        Blocks without a reachable stream URL are skipped; nothing here raises
        on malformed input.
        """
        lines = [classify_line(raw) for raw in content.splitlines()]
        channels: list[ChannelDescriptor] = []
        i = 0

        while i < len(lines):
            entry = lines[i]
            if entry.kind is not LineKind.ENTRY:
                i += 1
                continue

            meta_lines = cls._preceding_tags(lines, i)

            j = i + 1
            while j < len(lines):
                nxt = lines[j]
                if nxt.kind is LineKind.BLANK:
                    j += 1
                    continue
                if nxt.kind in (LineKind.ENTRY, LineKind.URL):
                    break
                meta_lines.append(nxt)
                j += 1

            if j >= len(lines) or lines[j].kind is not LineKind.URL:
                logger.debug(f"Skipping entry without stream URL: {entry.text[:80]}")
                i += 1
                continue

            i = j + 1
            channel = cls._build_channel(entry.text, meta_lines, lines[j].text)
            if channel is not None:
                channels.append(channel)

        logger.info(f"Parsed {len(channels)} channels from playlist")
        return channels

    @staticmethod
    def _preceding_tags(lines: list[PlaylistLine], index: int) -> list[PlaylistLine]:
        """Tag lines directly above an entry, in file order."""
        collected: list[PlaylistLine] = []
        back = index - 1
        while back >= 0 and lines[back].is_tag:
            collected.insert(0, lines[back])
            back -= 1
        return collected

    @classmethod
    def parse_extinf_line(cls, line: str) -> dict[str, Optional[str]]:
        """
        Extract display name and known attributes from an #EXTINF line.

        Format: #EXTINF:-1 tvg-id="..." tvg-name="..." tvg-logo="..." group-title="..." ,Channel Name
        """
        attrs = {key.lower(): value for key, value in cls.ATTR_PATTERN.findall(line)}
        name = line.rsplit(",", 1)[1].strip() if "," in line else ""
        return {
            "name": name,
            "logo_url": attrs.get("tvg-logo") or None,
            "group_title": attrs.get("group-title") or None,
            "tvg_id": attrs.get("tvg-id") or None,
            "tvg_name": attrs.get("tvg-name") or None,
        }

    @classmethod
    def collect_metadata(cls, meta_lines: list[PlaylistLine]) -> RawMetadata:
        """Fold classified tag lines into one RawMetadata; later lines win."""
        meta = RawMetadata()
        for line in meta_lines:
            if line.kind is LineKind.OPTION:
                if line.key == "drm-scheme":
                    meta.drm_scheme = normalize_drm_scheme(line.value)
                elif line.key in cls.OPTION_FIELDS and line.value:
                    value = line.value
                    if line.key == "http-cookie":
                        value = value.strip('"').strip()
                    setattr(meta, cls.OPTION_FIELDS[line.key], value)

            elif line.kind is LineKind.PROPERTY:
                if line.key == "license_type":
                    meta.drm_scheme = normalize_drm_scheme(line.value)
                elif line.key in cls.PROPERTY_FIELDS and line.value:
                    setattr(meta, cls.PROPERTY_FIELDS[line.key], line.value)

            elif line.kind is LineKind.RAW_JSON and line.value:
                meta.ext_http_json = line.value

        return meta

    @classmethod
    def split_url_suffix(cls, url_line: str) -> tuple[str, RawMetadata]:
        """
        Split ``url|key=value&...`` (or ``url|key=value|...``) found on a URL line.

        License parameters swallow the rest of the suffix.
        """
        base, sep, suffix = url_line.partition("|")
        base = base.rstrip("?").strip()
        meta = RawMetadata()
        if not sep or not base:
            return base, meta

        suffix = suffix.strip()
        separator = "&" if ("&" in suffix or "|" not in suffix) else "|"
        segments = suffix.split(separator)

        for n, segment in enumerate(segments):
            key, eq, value = segment.partition("=")
            if not eq:
                continue
            key = key.strip().lower()
            if key in cls.SUFFIX_LICENSE_KEYS:
                meta.drm_license_raw = separator.join([value, *segments[n + 1:]]).strip()
                break
            value = value.strip()
            attr = cls.SUFFIX_FIELDS.get(key)
            if attr is None or not value:
                continue
            if attr == "drm_scheme":
                value = normalize_drm_scheme(value)
            setattr(meta, attr, value)

        return base, meta

    @classmethod
    def _build_channel(
        cls, extinf: str, meta_lines: list[PlaylistLine], url_line: str
    ) -> Optional[ChannelDescriptor]:
        base_url, suffix_meta = cls.split_url_suffix(url_line)
        if not base_url:
            logger.debug(f"Skipping entry with empty base URL: {url_line[:80]}")
            return None

        attrs = cls.parse_extinf_line(extinf)
        meta = cls.collect_metadata(meta_lines)

        # Tag lines take precedence over the URL-line suffix
        for attr, value in suffix_meta.to_dict().items():
            if value and not getattr(meta, attr):
                setattr(meta, attr, value)

        if not meta.has_drm() and (meta.drm_scheme or meta.drm_license_raw):
            logger.debug(
                f"[{attrs['name']}] dropping unpaired DRM field "
                f"(scheme={meta.drm_scheme or '-'} license={'yes' if meta.drm_license_raw else 'no'})"
            )
            meta.drm_scheme = ""
            meta.drm_license_raw = ""

        logger.debug(
            f"[{attrs['name']}] scheme={meta.drm_scheme or '-'} "
            f"licenseLen={len(meta.drm_license_raw)} url={base_url[:60]}"
        )

        name = attrs["name"] or attrs["tvg_name"] or attrs["tvg_id"] or "Unknown Channel"
        return ChannelDescriptor(
            name=name,
            encoded_stream_url=MetadataCodec.encode(base_url, meta),
            logo_url=attrs["logo_url"],
            group_title=attrs["group_title"],
            tvg_id=attrs["tvg_id"],
            tvg_name=attrs["tvg_name"],
        )


def parse_playlist(content: str) -> list[ChannelDescriptor]:
    """Convenience wrapper around M3UParser.parse"""
    return M3UParser.parse(content)


async def fetch_playlist_text(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    fetch_config: Optional[FetchConfig] = None,
) -> str:
    """
    GET playlist text over HTTP.

    Raises:
        PlaylistFetchError: On an invalid URL, transport failure or a non-2xx status.
    """
    fetch_config = fetch_config or get_config().fetch
    headers = {"User-Agent": fetch_config.user_agent}
    logger.info(f"Fetching M3U from URL: {url}")

    try:
        if client is not None:
            response = await client.get(
                url, headers=headers, follow_redirects=fetch_config.follow_redirects
            )
            response.raise_for_status()
            return response.text

        timeout = httpx.Timeout(fetch_config.read_timeout, connect=fetch_config.connect_timeout)
        async with httpx.AsyncClient(
            timeout=timeout, follow_redirects=fetch_config.follow_redirects
        ) as own_client:
            response = await own_client.get(url, headers=headers)
            response.raise_for_status()
            return response.text
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise PlaylistFetchError(f"Could not fetch playlist: {e}", url, e) from e


async def load_playlist(
    source: str,
    client: Optional[httpx.AsyncClient] = None,
    fetch_config: Optional[FetchConfig] = None,
) -> list[ChannelDescriptor]:
    """
    Load and parse a playlist from an http(s) URL or a local file.

    Any failure is logged and yields an empty list.
    """
    try:
        if urlparse(source).scheme in ("http", "https"):
            text = await fetch_playlist_text(source, client=client, fetch_config=fetch_config)
        else:
            path = Path(source)
            logger.info(f"Reading M3U from file: {path}")
            text = await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
    except PlaylistFetchError as e:
        logger.error(f"Playlist fetch failed for {source}: {e}")
        return []
    except (OSError, ValueError) as e:
        logger.error(f"Playlist could not be read from {source}: {e}")
        return []

    return M3UParser.parse(text)
