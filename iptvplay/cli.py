"""
Command line entry point.

Examples:
  iptvplay parse https://example.com/playlist.m3u
  iptvplay parse ./channels.m3u8 --json
  iptvplay resolve 'https://cdn.example.com/live.mpd|drmScheme=clearkey&drmLicense=ab12:cd34'
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional

from iptvplay import __version__
from iptvplay.config import IPTVPlayConfig, load_config
from iptvplay.importers import load_playlist
from iptvplay.streaming.drm import DrmConfigBuilder, HttpLicense, InlineClearKey
from iptvplay.streaming.resolver import LicenseUrl, ResolverError, resolve_stream_url
from iptvplay.utils import log_exception, setup_logging

logger = logging.getLogger(__name__)


def _configure(args: argparse.Namespace) -> IPTVPlayConfig:
    config = load_config(args.config)
    setup_logging(config.logging, level=args.log_level, log_to_file=args.log_to_file)
    return config


def cmd_parse(args: argparse.Namespace, config: IPTVPlayConfig) -> int:
    channels = asyncio.run(load_playlist(args.source, fetch_config=config.fetch))

    if args.json:
        print(json.dumps([c.to_dict() for c in channels], indent=2))
        return 0

    print(f"{len(channels)} channels")
    for channel in channels:
        group = f" [{channel.group_title}]" if channel.group_title else ""
        print(f"  {channel.name}{group}")
        print(f"    {channel.encoded_stream_url}")
    return 0


def describe_stream(encoded_url: str, config: IPTVPlayConfig, playlist_mode: bool) -> dict[str, Any]:
    """Resolve an encoded URL the way a first playback attempt would."""
    descriptor = resolve_stream_url(encoded_url)
    fallback = (
        config.playback.user_agents[0] if playlist_mode else config.playback.default_user_agent
    )
    headers = descriptor.request_headers(fallback)
    activation = DrmConfigBuilder.build(descriptor, headers)

    drm_license: Optional[dict[str, Any]] = None
    if isinstance(descriptor.drm_license, LicenseUrl):
        drm_license = {"kind": "url", "length": len(descriptor.drm_license.url)}
    elif descriptor.drm_license is not None:
        drm_license = {"kind": "inline", "length": len(descriptor.drm_license.raw)}

    result: dict[str, Any] = {
        "base_url": descriptor.base_url,
        "headers": headers,
        "drm_scheme": descriptor.drm_scheme.value,
        "drm_license": drm_license,
        "activation": type(activation).__name__,
    }
    if isinstance(activation, HttpLicense):
        result["license_uri"] = activation.uri
        result["drm_system_uuid"] = activation.scheme.system_uuid
    elif isinstance(activation, InlineClearKey):
        result["keys_json"] = activation.keys_json
        result["drm_system_uuid"] = activation.scheme.system_uuid
    return result


def cmd_resolve(args: argparse.Namespace, config: IPTVPlayConfig) -> int:
    try:
        result = describe_stream(args.encoded, config, args.playlist)
    except ResolverError as e:
        log_exception(logger, e, "Could not resolve stream URL")
        return 1
    print(json.dumps(result, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="iptvplay",
        description="Parse IPTV playlists and resolve encoded stream URLs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=str, help="Path to config.yaml")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override the configured log level",
    )
    parser.add_argument(
        "--log-to-file",
        action="store_true",
        help="Also write logs to the configured rotating log file",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    parse_cmd = subparsers.add_parser("parse", help="Parse a playlist URL or file")
    parse_cmd.add_argument("source", help="http(s) URL or local file path")
    parse_cmd.add_argument("--json", action="store_true", help="Print channels as JSON")
    parse_cmd.set_defaults(func=cmd_parse)

    resolve_cmd = subparsers.add_parser("resolve", help="Resolve a pipe-encoded stream URL")
    resolve_cmd.add_argument("encoded", help="Encoded stream URL")
    resolve_cmd.add_argument(
        "--playlist",
        action="store_true",
        help="Use the playlist User-Agent rotation instead of the direct-mode default",
    )
    resolve_cmd.set_defaults(func=cmd_resolve)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = _configure(args)
    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
