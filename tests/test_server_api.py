from __future__ import annotations

import asyncio
import threading
import time
from pathlib import Path
from typing import BinaryIO, List, Tuple

import pytest
from fastapi.testclient import TestClient

from season_stream import ServerSettings, create_app
from season_stream import main as main_module
from season_stream.services import (
    CoverCache,
    CoverResolver,
    TrackMetadata,
    TrackMetadataResolver,
    TrackTags,
    open_track,
)

SONG_BYTES = bytes(i % 256 for i in range(1000))


class StubCoverResolver:
    """Returns a predictable cover URL without touching tags or images."""

    def __init__(self, cache: CoverCache) -> None:
        self.cache = cache
        self.calls: List[str] = []

    def resolve(self, file_path: Path, cache_key: str) -> str:
        self.calls.append(cache_key)
        return self.cache.url_for(cache_key)


def _no_tags(path: Path, *, with_picture: bool = False) -> TrackTags:
    return TrackTags()


@pytest.fixture
def sample_data(tmp_path: Path) -> Path:
    music_root = tmp_path / "music"
    spring = music_root / "2023" / "spring"
    spring.mkdir(parents=True)
    (music_root / "2023" / "winter").mkdir()
    (music_root / "2022").mkdir()

    (spring / "song.mp3").write_bytes(SONG_BYTES)
    (spring / "Banana - Split.mp3").write_bytes(b"ID3")
    (spring / "apple.flac").write_bytes(b"fLaC")
    (spring / "liner notes.txt").write_text("not audio", encoding="utf-8")
    return tmp_path


@pytest.fixture
def test_client(sample_data: Path) -> TestClient:
    settings = ServerSettings(
        music_root=sample_data / "music",
        cover_cache_dir=sample_data / "covers",
        public_dir=sample_data / "public",
        cors_origins=[],
        gzip_min_size=32,
    )
    app = create_app(settings)
    app.state.metadata_resolver = TrackMetadataResolver(_no_tags)
    app.state.cover_resolver = StubCoverResolver(app.state.cover_cache)
    return TestClient(app)


def test_health(test_client: TestClient) -> None:
    assert test_client.get("/health").json() == {"status": "ok"}


def test_list_years(test_client: TestClient) -> None:
    response = test_client.get("/api/years")
    assert response.status_code == 200
    assert response.json() == ["2022", "2023"]


def test_list_seasons(test_client: TestClient) -> None:
    response = test_client.get("/api/seasons/2023")
    assert response.status_code == 200
    assert response.json() == ["spring", "winter"]


def test_missing_year_returns_error_payload(test_client: TestClient) -> None:
    response = test_client.get("/api/seasons/1999")
    assert response.status_code == 404
    assert "error" in response.json()


def test_list_files_payload(test_client: TestClient) -> None:
    response = test_client.get("/api/files/2023/spring")
    assert response.status_code == 200
    assert response.json() == [
        {
            "artist": "",
            "title": "apple",
            "ext": "flac",
            "cover": "/covers/apple.jpg",
            "url": "/stream/2023/spring/apple.flac",
        },
        {
            "artist": "Banana",
            "title": "Split",
            "ext": "mp3",
            "cover": "/covers/Banana_-_Split.jpg",
            "url": "/stream/2023/spring/Banana%20-%20Split.mp3",
        },
        {
            "artist": "",
            "title": "song",
            "ext": "mp3",
            "cover": "/covers/song.jpg",
            "url": "/stream/2023/spring/song.mp3",
        },
    ]


def test_empty_season_returns_empty_list(test_client: TestClient) -> None:
    response = test_client.get("/api/files/2023/winter")
    assert response.status_code == 200
    assert response.json() == []


def test_missing_season_returns_error_payload(test_client: TestClient) -> None:
    response = test_client.get("/api/files/2023/summer")
    assert response.status_code == 404
    assert "error" in response.json()


def test_listing_keeps_catalog_order_when_resolution_finishes_out_of_order(test_client: TestClient) -> None:
    finished: List[str] = []
    lock = threading.Lock()
    delays = {"apple.flac": 0.3, "Banana - Split.mp3": 0.0, "song.mp3": 0.1}

    class SlowResolver:
        def resolve(self, file_path: Path, file_name: str) -> TrackMetadata:
            time.sleep(delays[file_name])
            with lock:
                finished.append(file_name)
            return TrackMetadata(artist="", title=file_name)

    test_client.app.state.metadata_resolver = SlowResolver()
    response = test_client.get("/api/files/2023/spring")

    assert response.status_code == 200
    assert [item["title"] for item in response.json()] == ["apple.flac", "Banana - Split.mp3", "song.mp3"]
    assert finished[0] != "apple.flac"


def test_stream_full_file(test_client: TestClient) -> None:
    response = test_client.get("/stream/2023/spring/song.mp3")
    assert response.status_code == 200
    assert response.headers["Content-Length"] == "1000"
    assert response.headers["Content-Type"] == "audio/mpeg"
    assert response.content == SONG_BYTES


def test_stream_range_request(test_client: TestClient) -> None:
    response = test_client.get("/stream/2023/spring/song.mp3", headers={"Range": "bytes=100-199"})
    assert response.status_code == 206
    assert response.headers["Content-Range"] == "bytes 100-199/1000"
    assert response.headers["Content-Length"] == "100"
    assert response.headers["Accept-Ranges"] == "bytes"
    assert response.content == SONG_BYTES[100:200]


def test_stream_open_ended_range(test_client: TestClient) -> None:
    response = test_client.get("/stream/2023/spring/song.mp3", headers={"Range": "bytes=900-"})
    assert response.status_code == 206
    assert response.headers["Content-Range"] == "bytes 900-999/1000"
    assert response.content == SONG_BYTES[900:]


def test_stream_ranges_reassemble_file(test_client: TestClient) -> None:
    pieces = []
    for start in range(0, 1000, 300):
        end = min(start + 299, 999)
        response = test_client.get("/stream/2023/spring/song.mp3", headers={"Range": f"bytes={start}-{end}"})
        assert response.status_code == 206
        pieces.append(response.content)
    assert b"".join(pieces) == SONG_BYTES


def test_stream_unsatisfiable_range(test_client: TestClient) -> None:
    response = test_client.get("/stream/2023/spring/song.mp3", headers={"Range": "bytes=2000-"})
    assert response.status_code == 416
    assert response.headers["Content-Range"] == "bytes */1000"


def test_stream_missing_file(test_client: TestClient) -> None:
    response = test_client.get("/stream/2023/spring/missing.mp3")
    assert response.status_code == 404
    assert response.json() == {"error": "File not found"}


def test_stream_head_sends_headers_only(test_client: TestClient) -> None:
    response = test_client.head("/stream/2023/spring/song.mp3", headers={"Range": "bytes=0-9"})
    assert response.status_code == 206
    assert response.headers["Content-Length"] == "10"
    assert response.content == b""


def test_stream_unreadable_file_returns_not_found(test_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    original_open = Path.open

    def refuse_song(self: Path, *args, **kwargs):
        if self.name == "song.mp3":
            raise PermissionError(13, "Permission denied", str(self))
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", refuse_song)
    response = test_client.get("/stream/2023/spring/song.mp3")
    assert response.status_code == 404
    assert response.json() == {"error": "File not found"}


@pytest.mark.parametrize(
    ("method", "headers"),
    [("GET", {"Range": "bytes=2000-"}), ("HEAD", {}), ("GET", {"Range": "bytes=0-9"})],
)
def test_stream_releases_file_handle(
    test_client: TestClient, monkeypatch: pytest.MonkeyPatch, method: str, headers: dict
) -> None:
    opened: List[BinaryIO] = []

    def recording_open_track(path: Path) -> Tuple[BinaryIO, int]:
        handle, size = open_track(path)
        opened.append(handle)
        return handle, size

    monkeypatch.setattr(main_module, "open_track", recording_open_track)
    test_client.request(method, "/stream/2023/spring/song.mp3", headers=headers)
    assert len(opened) == 1
    assert opened[0].closed


def test_stream_opens_file_off_the_event_loop(test_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    loop_seen: List[bool] = []

    def checking_open_track(path: Path) -> Tuple[BinaryIO, int]:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            loop_seen.append(False)
        else:
            loop_seen.append(True)
        return open_track(path)

    monkeypatch.setattr(main_module, "open_track", checking_open_track)
    response = test_client.get("/stream/2023/spring/song.mp3")
    assert response.status_code == 200
    assert loop_seen == [False]


def test_backslash_file_name_streams_from_listing_url(test_client: TestClient, sample_data: Path) -> None:
    spring = sample_data / "music" / "2023" / "spring"
    (spring / "AC\\DC - Song.mp3").write_bytes(SONG_BYTES[:64])

    listing = test_client.get("/api/files/2023/spring").json()
    track = next(item for item in listing if item["title"] == "Song")
    assert track["artist"] == "AC\\DC"
    assert track["url"] == "/stream/2023/spring/AC%5CDC%20-%20Song.mp3"
    assert track["cover"] == "/covers/AC%5CDC_-_Song.jpg"

    response = test_client.get(track["url"])
    assert response.status_code == 200
    assert response.content == SONG_BYTES[:64]

    test_client.app.state.cover_cache.store("AC\\DC_-_Song", b"\xff\xd8acdc")
    cover = test_client.get(track["cover"])
    assert cover.status_code == 200
    assert cover.content == b"\xff\xd8acdc"


def test_cover_route_serves_cached_file(test_client: TestClient) -> None:
    test_client.app.state.cover_cache.store("song", b"\xff\xd8cached")
    response = test_client.get("/covers/song.jpg")
    assert response.status_code == 200
    assert response.headers["Content-Type"] == "image/jpeg"
    assert response.content == b"\xff\xd8cached"


def test_cover_route_redirects_to_default(test_client: TestClient) -> None:
    response = test_client.get("/covers/unknown.jpg", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["Location"] == "/default-cover.png"


def test_listing_generates_real_cover_once(sample_data: Path) -> None:
    settings = ServerSettings(
        music_root=sample_data / "music",
        cover_cache_dir=sample_data / "covers",
        public_dir=sample_data / "public",
    )
    app = create_app(settings)
    encodes: List[bytes] = []

    def fake_reader(path: Path, *, with_picture: bool = False) -> TrackTags:
        return TrackTags(picture=b"art" if with_picture and path.name == "song.mp3" else None)

    def fake_encoder(data: bytes) -> bytes:
        encodes.append(data)
        return b"\xff\xd8" + data

    app.state.cover_resolver = CoverResolver(
        app.state.cover_cache,
        settings.default_cover_url,
        tag_reader=fake_reader,
        encoder=fake_encoder,
    )
    app.state.metadata_resolver = TrackMetadataResolver(_no_tags)
    client = TestClient(app)

    first = client.get("/api/files/2023/spring").json()
    second = client.get("/api/files/2023/spring").json()

    covers = {item["url"].rsplit("/", 1)[-1]: item["cover"] for item in first}
    assert covers == {
        "apple.flac": "/default-cover.png",
        "Banana%20-%20Split.mp3": "/default-cover.png",
        "song.mp3": "/covers/song.jpg",
    }
    assert first == second
    assert encodes == [b"art"]
    assert (sample_data / "covers" / "song.jpg").read_bytes() == b"\xff\xd8art"
