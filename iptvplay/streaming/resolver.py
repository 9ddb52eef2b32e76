"""
Stream descriptor resolution.

Turns a persisted pipe-encoded channel URL into the structured description
the playback side works with: base URL, request headers and DRM settings.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Union

from iptvplay.importers.metadata_codec import DrmScheme, MetadataCodec

logger = logging.getLogger(__name__)

# Absolute URL as accepted for a DRM license server
LICENSE_URL_PATTERN = re.compile(
    r"^(?:https?|rtmps?|rtsp)://"
    r"(?:[a-zA-Z0-9.-]+|\d{1,3}(?:\.\d{1,3}){3})"
    r"(?::\d+)?"
    r"(?:[/?].*)?$"
)

# Lower-cased extHttpJson key -> canonical header name
CANONICAL_HEADERS = {
    "cookie": "Cookie",
    "user-agent": "User-Agent",
    "referer": "Referer",
    "origin": "Origin",
}


class ResolverError(Exception):
    """An encoded stream URL could not be turned into a playable descriptor."""

    def __init__(self, message: str, encoded_url: str = ""):
        super().__init__(message)
        self.encoded_url = encoded_url


@dataclass(frozen=True)
class LicenseUrl:
    """License is fetched from a license server."""

    url: str


@dataclass(frozen=True)
class InlineKeyMaterial:
    """License carries the keys itself (ClearKey JSON or kid:key pairs)."""

    raw: str


DrmLicense = Union[LicenseUrl, InlineKeyMaterial]


def is_license_url(value: str) -> bool:
    return LICENSE_URL_PATTERN.match(value) is not None


def classify_license(value: Optional[str]) -> Optional[DrmLicense]:
    """Decide which delivery path a raw license value describes."""
    if not value:
        return None
    if is_license_url(value):
        return LicenseUrl(value)
    return InlineKeyMaterial(value)


@dataclass
class StreamDescriptor:
    """
    Structured form of a channel's stream reference.

    Attributes:
        base_url: URL handed to the playback engine
        headers: Request headers, known names in canonical case
        drm_scheme: Declared DRM scheme, NONE when the stream is clear
        drm_license: License URL or inline keys; None exactly when drm_scheme is NONE
        drm_scheme_name: Scheme as written in the encoded URL, kept for diagnostics
        ext_http_json: Raw extHttpJson blob, if any
    """

    base_url: str
    headers: dict[str, str] = field(default_factory=dict)
    drm_scheme: DrmScheme = DrmScheme.NONE
    drm_license: Optional[DrmLicense] = None
    drm_scheme_name: Optional[str] = None
    ext_http_json: Optional[str] = None

    @property
    def has_drm(self) -> bool:
        return self.drm_scheme is not DrmScheme.NONE and self.drm_license is not None

    @property
    def has_explicit_user_agent(self) -> bool:
        return "User-Agent" in self.headers

    def request_headers(self, fallback_user_agent: str) -> dict[str, str]:
        """Headers for stream and license requests, with a User-Agent guaranteed."""
        headers = dict(self.headers)
        headers.setdefault("User-Agent", fallback_user_agent)
        return headers


def merge_ext_http_json(headers: dict[str, str], ext_http_json: Optional[str]) -> dict[str, str]:
    """
    Merge a flat JSON header object into ``headers`` in place.

    Existing headers win. Malformed JSON is logged and ignored.
    """
    if not ext_http_json:
        return headers

    try:
        data = json.loads(ext_http_json)
    except json.JSONDecodeError as e:
        logger.warning(f"extHttpJson parse error: {e}")
        return headers

    if not isinstance(data, dict):
        logger.warning(f"extHttpJson is not an object: {type(data).__name__}")
        return headers

    for key, value in data.items():
        if not isinstance(value, str):
            logger.debug(f"extHttpJson: ignoring non-string value for {key!r}")
            continue
        name = CANONICAL_HEADERS.get(key.lower(), key)
        headers.setdefault(name, value)

    return headers


class StreamDescriptorResolver:
    """Decodes pipe-encoded URLs into StreamDescriptors."""

    @staticmethod
    def resolve(encoded_url: str) -> StreamDescriptor:
        """
        Resolve an encoded stream URL.

        No User-Agent is injected here; the playback controller supplies one
        based on the session mode.

        Raises:
            ResolverError: If the encoded URL has no base URL.
        """
        decoded = MetadataCodec.decode(encoded_url)
        if not decoded.base_url:
            raise ResolverError("Stream URL is empty", encoded_url)

        meta = decoded.metadata
        headers: dict[str, str] = {}
        if meta.user_agent:
            headers["User-Agent"] = meta.user_agent
        if meta.cookie:
            headers["Cookie"] = meta.cookie
        if meta.referer:
            headers["Referer"] = meta.referer
        if meta.origin:
            headers["Origin"] = meta.origin
        for name, value in decoded.extra_headers.items():
            headers.setdefault(name, value)

        merge_ext_http_json(headers, meta.ext_http_json or None)

        scheme = DrmScheme.from_name(meta.drm_scheme)
        drm_license = classify_license(meta.drm_license_raw)
        if scheme is DrmScheme.NONE or drm_license is None:
            if scheme is not DrmScheme.NONE or drm_license is not None:
                logger.debug("Ignoring DRM scheme/license that arrived without its pair")
            scheme = DrmScheme.NONE
            drm_license = None

        return StreamDescriptor(
            base_url=decoded.base_url,
            headers=headers,
            drm_scheme=scheme,
            drm_license=drm_license,
            drm_scheme_name=meta.drm_scheme if scheme is not DrmScheme.NONE else None,
            ext_http_json=meta.ext_http_json or None,
        )


def resolve_stream_url(encoded_url: str) -> StreamDescriptor:
    """Convenience wrapper around StreamDescriptorResolver.resolve"""
    return StreamDescriptorResolver.resolve(encoded_url)
