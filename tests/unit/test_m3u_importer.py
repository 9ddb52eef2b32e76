"""
Unit tests for M3U playlist parsing and loading.
"""

import httpx
import pytest

from iptvplay.config import FetchConfig
from iptvplay.importers.m3u_importer import (
    LineKind,
    M3UParser,
    PlaylistFetchError,
    classify_line,
    fetch_playlist_text,
    load_playlist,
    parse_playlist,
)
from iptvplay.importers.metadata_codec import decode_stream_url

KID = "1234567890abcdef1234567890abcdef"
KEY = "abcdef1234567890abcdef1234567890"


@pytest.mark.unit
class TestClassifyLine:
    """Tests for the line classifier."""

    def test_basic_kinds(self):
        """Test classification of the common line types."""
        assert classify_line("").kind is LineKind.BLANK
        assert classify_line("   ").kind is LineKind.BLANK
        assert classify_line("#EXTM3U url-tvg=\"x\"").kind is LineKind.HEADER
        assert classify_line("#EXTINF:-1,Name").kind is LineKind.ENTRY
        assert classify_line("https://cdn.example.com/a.m3u8").kind is LineKind.URL
        assert classify_line("#EXTGRP:News").kind is LineKind.OTHER

    def test_option_tag(self):
        """Test #EXTVLCOPT key/value split."""
        line = classify_line("#EXTVLCOPT:http-user-agent=Mozilla/5.0 (X11)")

        assert line.kind is LineKind.OPTION
        assert line.key == "http-user-agent"
        assert line.value == "Mozilla/5.0 (X11)"

    def test_property_tag_namespace_dropped(self):
        """Test that #KODIPROP keys lose their namespace prefix."""
        line = classify_line("#KODIPROP:inputstream.adaptive.license_type=clearkey")

        assert line.kind is LineKind.PROPERTY
        assert line.key == "license_type"
        assert line.value == "clearkey"

        bare = classify_line("#KODIPROP:license_key=ab12:cd34")
        assert bare.key == "license_key"
        assert bare.value == "ab12:cd34"

    def test_raw_json_kept_verbatim(self):
        """Test that #EXTHTTP JSON is not split."""
        line = classify_line('#EXTHTTP:{"cookie":"a=1","User-Agent":"x:y"}')

        assert line.kind is LineKind.RAW_JSON
        assert line.value == '{"cookie":"a=1","User-Agent":"x:y"}'

    def test_is_tag(self):
        """Test which kinds count as metadata tags."""
        assert classify_line("#EXTVLCOPT:a=b").is_tag
        assert classify_line("#EXTGRP:News").is_tag
        assert not classify_line("#EXTINF:-1,Name").is_tag
        assert not classify_line("https://x").is_tag
        assert not classify_line("").is_tag


@pytest.mark.unit
class TestM3UParser:
    """Tests for M3UParser.parse."""

    def test_tags_after_entry(self, playlist_tags_after):
        """Test the metadata-after-entry convention."""
        channels = parse_playlist(playlist_tags_after)

        assert len(channels) == 1
        channel = channels[0]
        assert channel.name == "News One"
        assert channel.tvg_id == "news.one"
        assert channel.logo_url == "https://img.example.com/news.png"
        assert channel.group_title == "News"
        assert channel.is_favorite is False
        assert channel.encoded_stream_url == (
            "https://cdn.example.com/news/index.mpd"
            "|User-Agent=TestAgent/1.0&Referer=https://ref.example.com/"
            f"&drmScheme=clearkey&drmLicense={KID}:{KEY}"
        )

    def test_tag_position_does_not_matter(self, playlist_tags_after, playlist_tags_before):
        """Test that tags before and after the entry give the same channel."""
        after = parse_playlist(playlist_tags_after)
        before = parse_playlist(playlist_tags_before)

        assert [c.to_dict() for c in before] == [c.to_dict() for c in after]

    def test_mixed_playlist(self, mixed_playlist):
        """Test skipping of blocks without URLs and name fallbacks."""
        channels = parse_playlist(mixed_playlist)

        assert [c.name for c in channels] == ["Sports HD", "Movies Alt", "Premium"]

        sports, movies, premium = channels
        assert sports.group_title == "Sports"
        assert sports.encoded_stream_url == "https://cdn.example.com/sports.m3u8"
        assert movies.encoded_stream_url == (
            "https://cdn.example.com/movies.m3u8|User-Agent=MovieAgent"
        )
        assert premium.encoded_stream_url == (
            "https://cdn.example.com/premium.mpd"
            "|drmScheme=widevine&drmLicense=https://lic.example.com/wv?a=1&b=2"
        )

    def test_preceding_tags_stop_at_previous_url(self):
        """Test that one channel's tags do not leak into the next."""
        content = (
            "#EXTINF:-1,First\n"
            "#EXTVLCOPT:http-user-agent=FirstAgent\n"
            "https://cdn.example.com/1.m3u8\n"
            "#EXTINF:-1,Second\n"
            "https://cdn.example.com/2.m3u8\n"
        )

        first, second = parse_playlist(content)

        assert first.encoded_stream_url.endswith("|User-Agent=FirstAgent")
        assert second.encoded_stream_url == "https://cdn.example.com/2.m3u8"

    def test_preceding_tags_stop_at_blank_line(self):
        """Test that a blank line separates stray tags from an entry."""
        content = (
            "#EXTVLCOPT:http-user-agent=Stray\n"
            "\n"
            "#EXTINF:-1,Channel\n"
            "https://cdn.example.com/c.m3u8\n"
        )

        (channel,) = parse_playlist(content)

        assert channel.encoded_stream_url == "https://cdn.example.com/c.m3u8"

    def test_later_tag_wins(self):
        """Test that a following tag overrides a preceding one."""
        content = (
            "#EXTVLCOPT:http-user-agent=Before\n"
            "#EXTINF:-1,Channel\n"
            "#EXTVLCOPT:http-user-agent=After\n"
            "https://cdn.example.com/c.m3u8\n"
        )

        (channel,) = parse_playlist(content)

        assert decode_stream_url(channel.encoded_stream_url).metadata.user_agent == "After"

    def test_option_tags(self):
        """Test every recognised #EXTVLCOPT option."""
        content = (
            "#EXTINF:-1,Channel\n"
            "#EXTVLCOPT:http-referer=https://ref.example.com/\n"
            '#EXTVLCOPT:http-cookie="sid=42"\n'
            "#EXTVLCOPT:http-origin=https://origin.example.com\n"
            "#EXTVLCOPT:drm-scheme=com.widevine.alpha\n"
            "#EXTVLCOPT:drm-license=https://lic.example.com/wv\n"
            "https://cdn.example.com/c.mpd\n"
        )

        (channel,) = parse_playlist(content)
        meta = decode_stream_url(channel.encoded_stream_url).metadata

        assert meta.referer == "https://ref.example.com/"
        assert meta.cookie == "sid=42"
        assert meta.origin == "https://origin.example.com"
        assert meta.drm_scheme == "widevine"
        assert meta.drm_license_raw == "https://lic.example.com/wv"

    def test_ext_http_json(self):
        """Test that #EXTHTTP JSON is carried through verbatim."""
        content = (
            "#EXTINF:-1,Channel\n"
            '#EXTHTTP:{"cookie":"a=1"}\n'
            "https://cdn.example.com/c.m3u8\n"
        )

        (channel,) = parse_playlist(content)

        assert channel.encoded_stream_url == (
            'https://cdn.example.com/c.m3u8|extHttpJson={"cookie":"a=1"}'
        )

    def test_unpaired_drm_dropped(self):
        """Test that a scheme without a license is not encoded."""
        content = (
            "#KODIPROP:inputstream.adaptive.license_type=clearkey\n"
            "#EXTINF:-1,Channel\n"
            "https://cdn.example.com/c.mpd\n"
        )

        (channel,) = parse_playlist(content)

        assert channel.encoded_stream_url == "https://cdn.example.com/c.mpd"

    def test_unrecognised_scheme_dropped(self):
        """Test that an unknown scheme normalizes away with its license."""
        content = (
            "#KODIPROP:inputstream.adaptive.license_type=fairplay\n"
            "#KODIPROP:inputstream.adaptive.license_key=ab12:cd34\n"
            "#EXTINF:-1,Channel\n"
            "https://cdn.example.com/c.mpd\n"
        )

        (channel,) = parse_playlist(content)

        assert channel.encoded_stream_url == "https://cdn.example.com/c.mpd"

    def test_unknown_channel_name(self):
        """Test the last-resort display name."""
        (channel,) = parse_playlist("#EXTINF:-1\nhttps://cdn.example.com/c.m3u8\n")

        assert channel.name == "Unknown Channel"

    def test_tvg_id_name_fallback(self):
        """Test tvg-id as display name when nothing better exists."""
        (channel,) = parse_playlist(
            '#EXTINF:-1 tvg-id="id.only",\nhttps://cdn.example.com/c.m3u8\n'
        )

        assert channel.name == "id.only"

    def test_windows_line_endings(self, playlist_tags_after):
        """Test CRLF playlists."""
        channels = parse_playlist(playlist_tags_after.replace("\n", "\r\n"))

        assert len(channels) == 1
        assert channels[0].name == "News One"

    def test_garbage_input(self):
        """Test that junk never raises."""
        assert parse_playlist("") == []
        assert parse_playlist("not a playlist\n#EXTINF\n\n") == []


@pytest.mark.unit
class TestUrlSuffix:
    """Tests for url|key=value suffixes on URL lines."""

    def test_ampersand_style(self):
        """Test the & separated suffix."""
        base, meta = M3UParser.split_url_suffix(
            "https://cdn.example.com/a.m3u8|User-Agent=Foo&Referer=https://r.example.com/"
        )

        assert base == "https://cdn.example.com/a.m3u8"
        assert meta.user_agent == "Foo"
        assert meta.referer == "https://r.example.com/"

    def test_pipe_style(self):
        """Test the | separated suffix and key aliases."""
        base, meta = M3UParser.split_url_suffix(
            "https://cdn.example.com/a.m3u8?|useragent=Foo|referrer=https://r.example.com/"
        )

        assert base == "https://cdn.example.com/a.m3u8"
        assert meta.user_agent == "Foo"
        assert meta.referer == "https://r.example.com/"

    def test_license_is_greedy(self):
        """Test that a license alias swallows the rest of the suffix."""
        _, meta = M3UParser.split_url_suffix(
            "https://cdn.example.com/a.mpd|drm_scheme=com.widevine.alpha"
            "&license_key=https://lic.example.com/k?a=1&b=2"
        )

        assert meta.drm_scheme == "widevine"
        assert meta.drm_license_raw == "https://lic.example.com/k?a=1&b=2"

    def test_suffix_encoded_into_channel(self):
        """Test that suffix values reach the encoded URL."""
        content = (
            "#EXTINF:-1,Channel\n"
            "https://cdn.example.com/a.mpd|drmScheme=widevine&drmLicense=https://lic.example.com/k?a=1&b=2\n"
        )

        (channel,) = parse_playlist(content)

        assert channel.encoded_stream_url == (
            "https://cdn.example.com/a.mpd"
            "|drmScheme=widevine&drmLicense=https://lic.example.com/k?a=1&b=2"
        )

    def test_tag_beats_suffix(self):
        """Test that a tag line value is not replaced by the suffix."""
        content = (
            "#EXTINF:-1,Channel\n"
            "#EXTVLCOPT:http-user-agent=FromTag\n"
            "https://cdn.example.com/a.m3u8|User-Agent=FromSuffix&Origin=https://o.example.com\n"
        )

        (channel,) = parse_playlist(content)
        meta = decode_stream_url(channel.encoded_stream_url).metadata

        assert meta.user_agent == "FromTag"
        assert meta.origin == "https://o.example.com"


@pytest.mark.unit
class TestLoadPlaylist:
    """Tests for playlist fetch and load."""

    @pytest.mark.asyncio
    async def test_load_from_url(self, playlist_tags_after):
        """Test fetching over HTTP with the configured User-Agent."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["ua"] = request.headers.get("User-Agent")
            return httpx.Response(200, text=playlist_tags_after)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            channels = await load_playlist(
                "https://lists.example.com/playlist.m3u",
                client=client,
                fetch_config=FetchConfig(user_agent="PlaylistFetcher/2.0"),
            )

        assert seen["ua"] == "PlaylistFetcher/2.0"
        assert [c.name for c in channels] == ["News One"]

    @pytest.mark.asyncio
    async def test_http_error_returns_empty(self):
        """Test that a server error degrades to no channels."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            channels = await load_playlist(
                "https://lists.example.com/playlist.m3u",
                client=client,
                fetch_config=FetchConfig(),
            )

        assert channels == []

    @pytest.mark.asyncio
    async def test_fetch_raises_playlist_fetch_error(self):
        """Test the fetch helper error type."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(PlaylistFetchError) as exc_info:
                await fetch_playlist_text(
                    "https://lists.example.com/playlist.m3u",
                    client=client,
                    fetch_config=FetchConfig(),
                )

        assert exc_info.value.source == "https://lists.example.com/playlist.m3u"
        assert isinstance(exc_info.value.original_error, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_load_from_file(self, temp_playlist_file):
        """Test reading a local playlist file."""
        channels = await load_playlist(str(temp_playlist_file))

        assert len(channels) == 1
        assert channels[0].group_title == "News"

    @pytest.mark.asyncio
    async def test_missing_file_returns_empty(self, tmp_path):
        """Test that an unreadable file degrades to no channels."""
        channels = await load_playlist(str(tmp_path / "missing.m3u"))

        assert channels == []

    @pytest.mark.asyncio
    async def test_malformed_url_returns_empty(self):
        """Test that a URL that cannot be parsed degrades to no channels."""
        channels = await load_playlist("http://[::1/playlist.m3u", fetch_config=FetchConfig())

        assert channels == []

    @pytest.mark.asyncio
    async def test_invalid_path_returns_empty(self):
        """Test that a path the OS rejects degrades to no channels."""
        channels = await load_playlist("chan\x00nels.m3u")

        assert channels == []

    @pytest.mark.asyncio
    async def test_invalid_url_raises_playlist_fetch_error(self):
        """Test that httpx URL validation errors use the fetch error type."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="#EXTM3U")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(PlaylistFetchError) as exc_info:
                await fetch_playlist_text(
                    "https://lists.example.com/play\x01list.m3u",
                    client=client,
                    fetch_config=FetchConfig(),
                )

            assert await load_playlist(
                "https://lists.example.com/play\x01list.m3u",
                client=client,
                fetch_config=FetchConfig(),
            ) == []

        assert isinstance(exc_info.value.original_error, httpx.InvalidURL)
