"""
IPTVPlay Test Configuration

Shared fixtures and configuration for all tests.
"""

import os
from pathlib import Path
from typing import Optional

import pytest

from iptvplay.config import PlaybackConfig
from iptvplay.streaming.engine import EngineRequest, PlaybackEngine, PlaybackEventSink
from iptvplay.streaming.tracks import Track, TrackGroup, TrackKind, TrackOverrides


CLEARKEY_KID = "1234567890abcdef1234567890abcdef"
CLEARKEY_KEY = "abcdef1234567890abcdef1234567890"


# ============ Playlist Fixtures ============


@pytest.fixture
def playlist_tags_after() -> str:
    """Channel with its metadata tags after the #EXTINF line."""
    return (
        "#EXTM3U\n"
        '#EXTINF:-1 tvg-id="news.one" tvg-logo="https://img.example.com/news.png" '
        'group-title="News",News One\n'
        "#EXTVLCOPT:http-user-agent=TestAgent/1.0\n"
        "#EXTVLCOPT:http-referrer=https://ref.example.com/\n"
        "#KODIPROP:inputstream.adaptive.license_type=clearkey\n"
        f"#KODIPROP:inputstream.adaptive.license_key={CLEARKEY_KID}:{CLEARKEY_KEY}\n"
        "https://cdn.example.com/news/index.mpd\n"
    )


@pytest.fixture
def playlist_tags_before() -> str:
    """Same channel with its metadata tags before the #EXTINF line."""
    return (
        "#EXTM3U\n"
        "#EXTVLCOPT:http-user-agent=TestAgent/1.0\n"
        "#EXTVLCOPT:http-referrer=https://ref.example.com/\n"
        "#KODIPROP:inputstream.adaptive.license_type=clearkey\n"
        f"#KODIPROP:inputstream.adaptive.license_key={CLEARKEY_KID}:{CLEARKEY_KEY}\n"
        '#EXTINF:-1 tvg-id="news.one" tvg-logo="https://img.example.com/news.png" '
        'group-title="News",News One\n'
        "https://cdn.example.com/news/index.mpd\n"
    )


@pytest.fixture
def mixed_playlist() -> str:
    """Several channels in different styles, including broken blocks."""
    return (
        "#EXTM3U\n"
        '#EXTINF:-1 group-title="Sports",Sports HD\n'
        "https://cdn.example.com/sports.m3u8\n"
        "\n"
        "#EXTINF:-1,Orphan Without URL\n"
        '#EXTINF:-1 tvg-name="Movies Alt",\n'
        "#EXTVLCOPT:http-user-agent=MovieAgent\n"
        "\n"
        "https://cdn.example.com/movies.m3u8\n"
        "#KODIPROP:inputstream.adaptive.license_type=com.widevine.alpha\n"
        "#KODIPROP:inputstream.adaptive.license_key=https://lic.example.com/wv?a=1&b=2\n"
        "#EXTINF:-1,Premium\n"
        "https://cdn.example.com/premium.mpd\n"
        "#EXTINF:-1,Trailing Block\n"
    )


@pytest.fixture
def temp_playlist_file(tmp_path: Path, playlist_tags_after: str) -> Path:
    """Playlist written to a temporary file."""
    path = tmp_path / "channels.m3u"
    path.write_text(playlist_tags_after, encoding="utf-8")
    return path


# ============ Playback Fixtures ============


class FakeEngine(PlaybackEngine):
    """Records what the controller asks of it; events are fired by the test."""

    def __init__(self, sink: PlaybackEventSink, groups: Optional[list[TrackGroup]] = None):
        self.sink = sink
        self.groups = list(groups or [])
        self.requests: list[EngineRequest] = []
        self.overrides: list[TrackOverrides] = []
        self.released = False

    def prepare(self, request: EngineRequest) -> None:
        self.requests.append(request)

    def release(self) -> None:
        self.released = True

    def track_groups(self) -> list[TrackGroup]:
        return list(self.groups)

    def set_track_overrides(self, overrides: TrackOverrides) -> None:
        self.overrides.append(overrides)

    @property
    def request(self) -> EngineRequest:
        return self.requests[-1]


class FakeEngineFactory:
    """Engine factory that keeps every engine it created."""

    def __init__(self, groups: Optional[list[TrackGroup]] = None):
        self.groups = groups
        self.engines: list[FakeEngine] = []

    def __call__(self, sink: PlaybackEventSink) -> FakeEngine:
        engine = FakeEngine(sink, self.groups)
        self.engines.append(engine)
        return engine

    @property
    def current(self) -> FakeEngine:
        return self.engines[-1]


@pytest.fixture
def engine_factory() -> FakeEngineFactory:
    return FakeEngineFactory()


@pytest.fixture
def engine_factory_with_tracks(video_audio_groups) -> FakeEngineFactory:
    """Engine factory whose engines report ``video_audio_groups``."""
    return FakeEngineFactory(video_audio_groups)


@pytest.fixture
def fast_playback_config() -> PlaybackConfig:
    """Playback settings with a 1 ms retry delay."""
    return PlaybackConfig(retry_delay_ms=1)


@pytest.fixture
def failures() -> list[str]:
    """Collects terminal failure messages."""
    return []


@pytest.fixture
def video_audio_groups() -> list[TrackGroup]:
    """Video left unselected by the engine, audio selected."""
    return [
        TrackGroup(
            group_id="video-0",
            kind=TrackKind.VIDEO,
            tracks=(
                Track(id="v-1080", kind=TrackKind.VIDEO, bitrate=4_000_000, height=1080, supported=False),
                Track(id="v-720", kind=TrackKind.VIDEO, bitrate=2_500_000, height=720, frame_rate=25.0),
            ),
        ),
        TrackGroup(
            group_id="audio-0",
            kind=TrackKind.AUDIO,
            tracks=(
                Track(id="a-en", kind=TrackKind.AUDIO, bitrate=128_000, channels=2, language="en"),
                Track(id="a-fr", kind=TrackKind.AUDIO, bitrate=96_000, language="fr"),
            ),
            selected_indices=(0,),
        ),
    ]


# ============ Environment Fixtures ============


@pytest.fixture(autouse=True)
def clean_environment():
    """Clean environment variables for each test."""
    original_env = os.environ.copy()

    for key in list(os.environ.keys()):
        if key.startswith("IPTVPLAY_"):
            del os.environ[key]

    yield

    os.environ.clear()
    os.environ.update(original_env)


# ============ Markers ============


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
