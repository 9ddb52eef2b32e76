"""
Pipe-encoded stream URL codec.

A channel's stream URL, request headers and DRM key material travel as one
string::

    https://cdn.example.com/live.mpd|User-Agent=VLC&Cookie=a=1&drmScheme=clearkey&drmLicense=<url-or-keys>

Fields are emitted in a fixed order and ``drmLicense`` is always last. On
decode everything after ``drmLicense=`` is taken verbatim, so license URLs
that carry their own ``&`` and ``=`` survive a round trip. Other field values
must not contain ``&``; that collision is logged, not corrected.
"""

import logging
import re
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

PIPE = "|"
FIELD_SEPARATOR = "&"
LICENSE_FIELD = "drmLicense"


class DrmScheme(str, Enum):
    """DRM schemes a stream can declare."""

    NONE = "none"
    CLEARKEY = "clearkey"
    WIDEVINE = "widevine"
    PLAYREADY = "playready"
    UNKNOWN = "unknown"  # declared, but not one we can activate

    @property
    def system_uuid(self) -> str:
        """Standard DRM system identifier handed to the playback engine"""
        uuid_mapping = {
            DrmScheme.WIDEVINE: "edef8ba9-79d6-4ace-a3c8-27dcd51d21ed",
            DrmScheme.PLAYREADY: "9a04f079-9840-4286-ab92-e65be0885f95",
            DrmScheme.CLEARKEY: "e2719d58-a985-b3c9-781a-b030af78d30e",
        }
        return uuid_mapping.get(self, "")

    @property
    def is_supported(self) -> bool:
        return self in (DrmScheme.CLEARKEY, DrmScheme.WIDEVINE, DrmScheme.PLAYREADY)

    @classmethod
    def from_name(cls, name: Optional[str]) -> "DrmScheme":
        """Strict lookup of an already-normalized scheme name."""
        if not name or not name.strip():
            return cls.NONE
        try:
            scheme = cls(name.strip().lower())
        except ValueError:
            return cls.UNKNOWN
        return cls.UNKNOWN if scheme is cls.NONE else scheme


def normalize_drm_scheme(value: Optional[str]) -> str:
    """
    Map a free-form playlist scheme value onto the codec vocabulary.

    ``com.widevine.alpha`` -> ``widevine``, ``org.w3.clearkey`` -> ``clearkey``;
    anything unrecognised becomes the empty string.
    """
    if not value:
        return ""
    lowered = value.lower()
    for scheme in (DrmScheme.WIDEVINE, DrmScheme.PLAYREADY, DrmScheme.CLEARKEY):
        if scheme.value in lowered:
            return scheme.value
    return ""


@dataclass
class RawMetadata:
    """Auxiliary stream fields gathered while scanning a playlist entry"""

    user_agent: str = ""
    cookie: str = ""
    referer: str = ""
    origin: str = ""
    drm_scheme: str = ""
    drm_license_raw: str = ""
    ext_http_json: str = ""

    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))

    def has_drm(self) -> bool:
        return bool(self.drm_scheme and self.drm_license_raw)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class DecodedStream:
    """Result of decoding a pipe-encoded URL."""

    base_url: str
    metadata: RawMetadata = field(default_factory=RawMetadata)
    # Recognised but non-vocabulary parameters (Accept, Authorization, custom headers)
    extra_headers: dict[str, str] = field(default_factory=dict)


class MetadataCodec:
    """Encodes RawMetadata into a stream URL and decodes it back."""

    # Wire names in emission order, paired with the RawMetadata attribute.
    FIELD_ORDER: tuple[tuple[str, str], ...] = (
        ("User-Agent", "user_agent"),
        ("Cookie", "cookie"),
        ("Referer", "referer"),
        ("Origin", "origin"),
        ("extHttpJson", "ext_http_json"),
        ("drmScheme", "drm_scheme"),
        (LICENSE_FIELD, "drm_license_raw"),
    )

    # Lower-cased parameter key -> RawMetadata attribute
    METADATA_KEYS = {
        "user-agent": "user_agent",
        "useragent": "user_agent",
        "cookie": "cookie",
        "referer": "referer",
        "origin": "origin",
        "exthttpjson": "ext_http_json",
        "drmscheme": "drm_scheme",
    }

    # Lower-cased parameter key -> canonical header name
    HEADER_KEYS = {
        "accept": "Accept",
        "accept-language": "Accept-Language",
        "authorization": "Authorization",
    }

    # %26 and %3D stay encoded: decoding them would move the field boundaries.
    PERCENT_ESCAPES = {
        "%7C": "|",
        "%3F": "?",
        "%3A": ":",
        "%2F": "/",
        "%20": " ",
        "%2C": ",",
    }
    PERCENT_PATTERN = re.compile(r"%(?:7C|3F|3A|2F|20|2C)", re.IGNORECASE)

    LICENSE_MARKER = LICENSE_FIELD.lower() + "="

    @classmethod
    def encode(cls, base_url: str, metadata: RawMetadata | None = None) -> str:
        """
        Pack metadata onto a base URL.

        Empty fields are omitted; with nothing to pack the bare base URL is
        returned.
        """
        if metadata is None:
            return base_url

        parts = []
        for wire_name, attr in cls.FIELD_ORDER:
            value = getattr(metadata, attr)
            if not value:
                continue
            if wire_name != LICENSE_FIELD and FIELD_SEPARATOR in value:
                logger.warning(
                    f"{wire_name} value contains '{FIELD_SEPARATOR}' and will not decode intact"
                )
            parts.append(f"{wire_name}={value}")

        if not parts:
            return base_url
        return f"{base_url}{PIPE}{FIELD_SEPARATOR.join(parts)}"

    @classmethod
    def decode(cls, encoded: str) -> DecodedStream:
        """
        Split a pipe-encoded URL back into base URL, metadata and extra headers.

        Everything to the left of ``drmLicense=`` is parsed as ordinary
        ``key=value`` pairs; the license value runs to the end of the string.
        """
        # Trailing spaces may belong to the last value; only line breaks are dropped
        text = cls.unescape(encoded).lstrip().rstrip("\r\n")

        base_url, sep, params = text.partition(PIPE)
        if sep and base_url.endswith("?"):
            base_url = base_url[:-1]
        base_url = base_url.strip()
        params = params.lstrip()

        decoded = DecodedStream(base_url=base_url)
        if not params:
            return decoded

        license_idx = cls.find_license_index(params)
        if license_idx >= 0:
            simple_part = params[:license_idx]
            value_start = params.index("=", license_idx) + 1
            decoded.metadata.drm_license_raw = params[value_start:]
        else:
            simple_part = params

        for param in simple_part.split(FIELD_SEPARATOR):
            key, eq, value = param.partition("=")
            if not eq:
                continue
            key = key.strip()
            lowered = key.lower()

            if lowered in cls.METADATA_KEYS:
                setattr(decoded.metadata, cls.METADATA_KEYS[lowered], value)
            elif lowered in cls.HEADER_KEYS:
                decoded.extra_headers[cls.HEADER_KEYS[lowered]] = value
            elif key and value:
                decoded.extra_headers[key] = value

        return decoded

    @classmethod
    def unescape(cls, text: str) -> str:
        """Decode the fixed set of percent-escapes the codec understands."""
        return cls.PERCENT_PATTERN.sub(
            lambda m: cls.PERCENT_ESCAPES[m.group(0).upper()], text
        )

    @classmethod
    def find_license_index(cls, params: str) -> int:
        """
        Index of ``drmLicense=`` in a parameter string, or -1.

        Only matches at the start of the string or directly after ``&`` so a
        ``drmLicense=`` buried inside another value is not picked up.
        """
        lowered = params.lower()
        idx = lowered.find(cls.LICENSE_MARKER)
        while idx >= 0:
            if idx == 0 or params[idx - 1] == FIELD_SEPARATOR:
                return idx
            idx = lowered.find(cls.LICENSE_MARKER, idx + 1)
        return -1


def encode_stream_url(base_url: str, metadata: RawMetadata | None = None) -> str:
    """Convenience wrapper around MetadataCodec.encode"""
    return MetadataCodec.encode(base_url, metadata)


def decode_stream_url(encoded: str) -> DecodedStream:
    """Convenience wrapper around MetadataCodec.decode"""
    return MetadataCodec.decode(encoded)
