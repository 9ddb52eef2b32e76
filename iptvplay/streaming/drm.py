"""
DRM activation for a resolved stream.

Three delivery paths exist:

- PATH A: no DRM, plain media reference
- PATH B: license server URL, fetched by the engine with the stream headers
- PATH C: inline ClearKey keys (JSON key set or kid:key pairs), served to the
  engine locally. The media reference still declares the ClearKey scheme;
  without it the engine plays the encrypted stream raw and only audio comes out.
"""

import base64
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Union

from iptvplay.importers.metadata_codec import DrmScheme
from iptvplay.streaming.resolver import InlineKeyMaterial, LicenseUrl, StreamDescriptor

logger = logging.getLogger(__name__)

HEX_PATTERN = re.compile(r"[0-9a-fA-F]*")


@dataclass(frozen=True)
class NoDrm:
    """Plain playback."""

    @property
    def scheme(self) -> DrmScheme:
        return DrmScheme.NONE


@dataclass(frozen=True)
class HttpLicense:
    """License acquired from a server."""

    scheme: DrmScheme
    uri: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class InlineClearKey:
    """ClearKey key set delivered without a license server."""

    keys_json: str

    @property
    def scheme(self) -> DrmScheme:
        return DrmScheme.CLEARKEY


DrmActivation = Union[NoDrm, HttpLicense, InlineClearKey]

NO_DRM = NoDrm()


@dataclass(frozen=True)
class MediaConfig:
    """What the playback engine is asked to open."""

    uri: str
    drm: DrmActivation = NO_DRM

    @property
    def drm_scheme(self) -> DrmScheme:
        return self.drm.scheme

    @property
    def drm_system_uuid(self) -> str:
        return self.drm.scheme.system_uuid

    @property
    def license_uri(self) -> Optional[str]:
        # Inline ClearKey keeps the scheme but has no license URI
        return self.drm.uri if isinstance(self.drm, HttpLicense) else None


def hex_to_base64url(hex_value: str) -> str:
    """
    Convert a hex string to unpadded URL-safe base64.

    Raises:
        ValueError: On odd length or non-hex characters.
    """
    if len(hex_value) % 2:
        raise ValueError(f"Odd hex length: {len(hex_value)}")
    if not HEX_PATTERN.fullmatch(hex_value):
        raise ValueError(f"Not a hex string: {hex_value[:16]}")
    return base64.urlsafe_b64encode(bytes.fromhex(hex_value)).decode("ascii").rstrip("=")


def build_clearkey_json(license_value: str) -> Optional[str]:
    """
    Build a ClearKey key-set document from ``kid:key`` pairs.

    Pairs are separated by ``|`` when present, otherwise by ``,``. Each half
    is converted from hex; if either half is not valid hex both are used as
    given (assumed base64url already). Returns None when no usable pair remains.
    """
    separator = "|" if "|" in license_value else ","
    keys = []

    for pair in license_value.split(separator):
        kid, colon, key = pair.partition(":")
        kid = kid.strip()
        key = key.strip()
        if not colon or not kid or not key:
            continue
        try:
            kid_b64, key_b64 = hex_to_base64url(kid), hex_to_base64url(key)
        except ValueError as e:
            logger.debug(f"ClearKey pair is not hex ({e}); using it as base64url")
            kid_b64, key_b64 = kid, key
        keys.append({"kty": "oct", "k": key_b64, "kid": kid_b64})

    if not keys:
        return None
    return json.dumps({"keys": keys, "type": "temporary"}, separators=(",", ":"))


class DrmConfigBuilder:
    """Chooses the DRM activation for a resolved stream."""

    @staticmethod
    def build(descriptor: StreamDescriptor, headers: dict[str, str]) -> DrmActivation:
        """
        Select the DRM activation mode.

        Args:
            descriptor: Resolved stream descriptor
            headers: Final request headers; reused for license requests

        Returns:
            NoDrm, HttpLicense or InlineClearKey
        """
        scheme = descriptor.drm_scheme
        drm_license = descriptor.drm_license

        # PATH A
        if scheme is DrmScheme.NONE or drm_license is None:
            logger.debug("PATH A: plain stream")
            return NO_DRM

        if not scheme.is_supported:
            logger.warning(
                f"Unknown DRM '{descriptor.drm_scheme_name or scheme.value}' - playing without DRM"
            )
            return NO_DRM

        # PATH B
        if isinstance(drm_license, LicenseUrl):
            logger.debug(f"PATH B: {scheme.value} license server")
            return HttpLicense(scheme=scheme, uri=drm_license.url, headers=dict(headers))

        # PATH C
        raw = drm_license.raw if isinstance(drm_license, InlineKeyMaterial) else str(drm_license)
        if raw.lstrip().startswith("{"):
            keys_json: Optional[str] = raw
        else:
            keys_json = build_clearkey_json(raw)

        if keys_json is None:
            logger.warning("PATH C: no usable ClearKey pairs - playing without DRM")
            return NO_DRM

        if scheme is not DrmScheme.CLEARKEY:
            logger.debug(f"PATH C: inline keys declared as {scheme.value}, activating ClearKey")
        logger.debug(f"PATH C: inline ClearKey JSON={keys_json[:120]}")
        return InlineClearKey(keys_json=keys_json)

    @classmethod
    def build_media_config(
        cls, descriptor: StreamDescriptor, headers: dict[str, str]
    ) -> MediaConfig:
        return MediaConfig(uri=descriptor.base_url, drm=cls.build(descriptor, headers))
