"""Playlist importers

This module provides:
- M3U/M3U8 playlist parsing that tolerates tag-ordering variance
- The pipe-encoded stream URL codec shared with the playback side
"""

from iptvplay.importers.m3u_importer import (
    ChannelDescriptor,
    LineKind,
    M3UParser,
    PlaylistFetchError,
    PlaylistLine,
    classify_line,
    fetch_playlist_text,
    load_playlist,
    parse_playlist,
)
from iptvplay.importers.metadata_codec import (
    DecodedStream,
    DrmScheme,
    MetadataCodec,
    RawMetadata,
    decode_stream_url,
    encode_stream_url,
    normalize_drm_scheme,
)

__all__ = [
    "ChannelDescriptor",
    "DecodedStream",
    "DrmScheme",
    "LineKind",
    "M3UParser",
    "MetadataCodec",
    "PlaylistFetchError",
    "PlaylistLine",
    "RawMetadata",
    "classify_line",
    "decode_stream_url",
    "encode_stream_url",
    "fetch_playlist_text",
    "load_playlist",
    "normalize_drm_scheme",
    "parse_playlist",
]
