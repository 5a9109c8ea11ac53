"""Tests for video-to-podcast ingestion (fake extractor, in-memory storage)."""

from __future__ import annotations

import asyncio
import hashlib

import feedparser
import httpx
import pytest

from telegram_relay.errors import (
    NotFoundError,
    SubprocessError,
    TransportError,
    ValidationError,
)
from telegram_relay.handlers import Outcome, PodcastHandler
from telegram_relay.handlers.podcast import EpisodeStore, deserialize_episodes, user_feed_keys
from telegram_relay.handlers.podcast.handler import extract_video_id

from .mock_services import FakeYoutube, make_message, make_user, write_script


WATCH_URL = "https://www.youtube.com/watch?v=abc123&t=42"
SHORT_LINK = "https://youtu.be/abc123?si=share"
FEED_URL = "https://storage.example/bucket/100/feed.xml"

# Resolves the output template for video abc123, writes the mp3 and records its env
FAKE_EXTRACTOR = (
    'echo "[$https_proxy]" > "$(dirname "$0")/env.txt"\n'
    "out=$(printf '%s' \"$5\" | sed -e 's/%(id)s/abc123/' -e 's/%(ext)s/mp3/')\n"
    'printf "ID3 fake audio" > "$out"\n'
)
FAILING_EXTRACTOR = 'echo "ERROR: Video unavailable" >&2\nexit 1\n'


def no_network(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")


@pytest.fixture
def tools_dir(tmp_path):
    path = tmp_path / "tools"
    path.mkdir()
    return path


def make_handler(
    telegram,
    storage,
    youtube,
    tools_dir,
    work_dir,
    script: str = FAKE_EXTRACTOR,
    transport=no_network,
) -> PodcastHandler:
    return PodcastHandler(
        telegram,
        storage=storage,
        youtube=youtube,
        episodes=EpisodeStore(storage),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(transport)),
        extractor_path=str(write_script(tools_dir / "youtube-dl", script)),
        tmp_dir=work_dir,
    )


class TestExtractVideoId:
    def test_watch_url(self):
        assert extract_video_id(WATCH_URL) == "abc123"

    def test_short_link(self):
        assert extract_video_id(SHORT_LINK) == "abc123"

    def test_no_id(self):
        with pytest.raises(NotFoundError):
            extract_video_id("https://www.youtube.com/watch?list=PL1")


# ---------------------------------------------------------------------------
# Video links
# ---------------------------------------------------------------------------


class TestVideoIngestion:
    @pytest.mark.asyncio
    async def test_end_to_end(self, mock_client, storage, youtube, tools_dir, work_dir):
        handler = make_handler(mock_client, storage, youtube, tools_dir, work_dir)

        outcome = await handler.process(make_message(12, WATCH_URL, chat_id=9))

        assert outcome is Outcome.HANDLED
        keys = user_feed_keys(100)

        audio, audio_type = storage.objects[keys.audio_key("abc123")]
        assert audio == b"ID3 fake audio"
        assert audio_type == "audio/mpeg"

        episodes = deserialize_episodes(storage.objects[keys.metadata_key][0])
        assert len(episodes) == 1
        episode = episodes[0]
        assert episode.source_id == "abc123"
        assert episode.display_name == "Interesting talk"
        assert episode.file_size == len(b"ID3 fake audio")
        assert episode.file_url == "https://storage.example/bucket/100/audio/abc123.mp3"
        assert episode.original_link == WATCH_URL
        assert episode.created_at.tzinfo is not None

        feed_xml, feed_type = storage.objects[keys.feed_key]
        assert feed_type == "application/rss+xml"
        parsed = feedparser.parse(feed_xml)
        assert parsed.feed.title == "Test User podcasts"
        assert [e.title for e in parsed.entries] == ["Interesting talk"]

        assert mock_client.texts() == [f"RSS feed updated: {FEED_URL}"]
        assert mock_client.sent[0].reply_to == 12
        assert list(work_dir.iterdir()) == []
        assert (tools_dir / "env.txt").read_text().strip() == "[]"

    @pytest.mark.asyncio
    async def test_short_link_and_newest_first(
        self, mock_client, storage, youtube, tools_dir, work_dir
    ):
        handler = make_handler(mock_client, storage, youtube, tools_dir, work_dir)

        await handler.process(make_message(1, WATCH_URL))
        await handler.process(make_message(2, SHORT_LINK))

        keys = user_feed_keys(100)
        episodes = deserialize_episodes(storage.objects[keys.metadata_key][0])
        assert [e.original_link for e in episodes] == [SHORT_LINK, WATCH_URL]
        parsed = feedparser.parse(storage.objects[keys.feed_key][0])
        assert len(parsed.entries) == 2

    @pytest.mark.asyncio
    async def test_users_get_separate_feeds(self, mock_client, storage, youtube, tools_dir, work_dir):
        handler = make_handler(mock_client, storage, youtube, tools_dir, work_dir)
        ann = make_user(1, "Ann", None)
        bob = make_user(2, "Bob", "Stone")

        await asyncio.gather(
            handler.process(make_message(1, WATCH_URL, sender=ann)),
            handler.process(make_message(2, SHORT_LINK, sender=bob)),
        )

        assert feedparser.parse(storage.objects["1/feed.xml"][0]).feed.title == "Ann podcasts"
        assert feedparser.parse(storage.objects["2/feed.xml"][0]).feed.title == "Bob Stone podcasts"

    @pytest.mark.asyncio
    async def test_missing_sender(self, mock_client, storage, youtube, tools_dir, work_dir):
        handler = make_handler(mock_client, storage, youtube, tools_dir, work_dir)

        with pytest.raises(ValidationError):
            await handler.process(make_message(1, WATCH_URL, anonymous=True))

        assert not (tools_dir / "env.txt").exists()
        assert storage.objects == {}

    @pytest.mark.asyncio
    async def test_unknown_title(self, mock_client, storage, tools_dir, work_dir):
        handler = make_handler(mock_client, storage, FakeYoutube(), tools_dir, work_dir)

        with pytest.raises(NotFoundError, match="abc123"):
            await handler.process(make_message(1, WATCH_URL))

        keys = user_feed_keys(100)
        assert keys.feed_key not in storage.objects
        assert keys.metadata_key not in storage.objects
        assert mock_client.sent == []
        assert list(work_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_extractor_failure(self, mock_client, storage, youtube, tools_dir, work_dir):
        handler = make_handler(
            mock_client, storage, youtube, tools_dir, work_dir, script=FAILING_EXTRACTOR
        )

        with pytest.raises(SubprocessError, match="Video unavailable"):
            await handler.process(make_message(1, WATCH_URL))

        assert storage.objects == {}
        assert mock_client.sent == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "text",
        [
            "hello",
            "ping",
            "https://www.youtube.com/shorts/Ab12Cd34Ef5",
            "https://www.instagram.com/reel/C1a2B3c4D5e/",
            "look https://cdn.example/a.mp3",
            None,
        ],
    )
    async def test_non_matching_messages(
        self, mock_client, storage, youtube, tools_dir, work_dir, text
    ):
        handler = make_handler(mock_client, storage, youtube, tools_dir, work_dir)

        outcome = await handler.process(make_message(1, text))

        assert outcome is Outcome.SKIPPED
        assert storage.objects == {}
        assert mock_client.sent == []
        assert youtube.requested == []


# ---------------------------------------------------------------------------
# Direct audio links
# ---------------------------------------------------------------------------


class TestDirectAudio:
    @pytest.mark.asyncio
    async def test_audio_suffix(self, mock_client, storage, youtube, tools_dir, work_dir):
        url = "https://cdn.example/shows/Episode%201.mp3"
        requests = []

        def transport(request: httpx.Request) -> httpx.Response:
            requests.append(request.method)
            return httpx.Response(
                200, content=b"mp3 bytes", headers={"content-type": "audio/mpeg"}
            )

        handler = make_handler(
            mock_client, storage, youtube, tools_dir, work_dir, transport=transport
        )

        outcome = await handler.process(make_message(3, url))

        assert outcome is Outcome.HANDLED
        assert requests == ["GET"]
        source_id = hashlib.sha1(url.encode()).hexdigest()[:16]
        keys = user_feed_keys(100)
        assert storage.objects[keys.audio_key(source_id)] == (b"mp3 bytes", "audio/mpeg")
        assert storage.uploaded_files == [keys.audio_key(source_id)]
        episode = deserialize_episodes(storage.objects[keys.metadata_key][0])[0]
        assert episode.display_name == "Episode 1"
        assert episode.source_id == source_id
        assert episode.file_size == len(b"mp3 bytes")
        assert youtube.requested == []
        assert mock_client.texts() == [f"RSS feed updated: {FEED_URL}"]
        assert list(work_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_large_body_is_streamed_to_disk(
        self, mock_client, storage, youtube, tools_dir, work_dir
    ):
        body = b"\xff\xfb" * 100_000

        def transport(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body, headers={"content-type": "audio/mpeg"})

        handler = make_handler(
            mock_client, storage, youtube, tools_dir, work_dir, transport=transport
        )

        await handler.process(make_message(7, "https://cdn.example/long.mp3"))

        keys = user_feed_keys(100)
        assert len(storage.uploaded_files) == 1
        assert storage.objects[storage.uploaded_files[0]][0] == body
        episode = deserialize_episodes(storage.objects[keys.metadata_key][0])[0]
        assert episode.file_size == len(body)
        assert list(work_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_interrupted_download_leaves_no_file(
        self, mock_client, storage, youtube, tools_dir, work_dir
    ):
        class BrokenStream(httpx.AsyncByteStream):
            async def __aiter__(self):
                yield b"partial"
                raise httpx.ReadError("connection reset")

        def transport(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, headers={"content-type": "audio/mpeg"}, stream=BrokenStream()
            )

        handler = make_handler(
            mock_client, storage, youtube, tools_dir, work_dir, transport=transport
        )

        with pytest.raises(TransportError, match="connection reset"):
            await handler.process(make_message(8, "https://cdn.example/cut.mp3"))

        assert storage.objects == {}
        assert list(work_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_audio_content_type(self, mock_client, storage, youtube, tools_dir, work_dir):
        def transport(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"ogg", headers={"content-type": "audio/ogg"})

        handler = make_handler(
            mock_client, storage, youtube, tools_dir, work_dir, transport=transport
        )

        outcome = await handler.process(make_message(4, "https://radio.example/stream?id=5"))

        assert outcome is Outcome.HANDLED
        episode = deserialize_episodes(storage.objects[user_feed_keys(100).metadata_key][0])[0]
        assert episode.mime_type == "audio/ogg"
        assert episode.file_url.startswith("https://storage.example/bucket/100/audio/")

    @pytest.mark.asyncio
    async def test_non_audio_page_skipped(self, mock_client, storage, youtube, tools_dir, work_dir):
        def transport(request: httpx.Request) -> httpx.Response:
            assert request.method == "HEAD"
            return httpx.Response(200, headers={"content-type": "text/html"})

        handler = make_handler(
            mock_client, storage, youtube, tools_dir, work_dir, transport=transport
        )

        outcome = await handler.process(make_message(5, "https://blog.example/post"))

        assert outcome is Outcome.SKIPPED
        assert storage.objects == {}

    @pytest.mark.asyncio
    async def test_download_failure(self, mock_client, storage, youtube, tools_dir, work_dir):
        def transport(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        handler = make_handler(
            mock_client, storage, youtube, tools_dir, work_dir, transport=transport
        )

        with pytest.raises(TransportError, match="404"):
            await handler.process(make_message(6, "https://cdn.example/gone.mp3"))
        assert storage.objects == {}
        assert list(work_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_audio_link_without_sender(self, mock_client, storage, youtube, tools_dir, work_dir):
        handler = make_handler(mock_client, storage, youtube, tools_dir, work_dir)

        with pytest.raises(ValidationError):
            await handler.process(
                make_message(9, "https://cdn.example/episode.mp3", anonymous=True)
            )

        assert storage.objects == {}


class TestHeadRequests:
    """Links that must be skipped without any network traffic."""

    @staticmethod
    def recording_handler(mock_client, storage, youtube, tools_dir, work_dir):
        requests = []

        def transport(request: httpx.Request) -> httpx.Response:
            requests.append(str(request.url))
            return httpx.Response(200, content=b"audio", headers={"content-type": "audio/mpeg"})

        handler = make_handler(
            mock_client, storage, youtube, tools_dir, work_dir, transport=transport
        )
        return handler, requests

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "url",
        [
            "https://github.com/foo/bar",
            "http://169.254.169.254/latest/meta-data",
            "https://m.youtube.com/watch?v=abc",
        ],
    )
    async def test_anonymous_sender_sends_nothing(
        self, mock_client, storage, youtube, tools_dir, work_dir, url
    ):
        handler, requests = self.recording_handler(
            mock_client, storage, youtube, tools_dir, work_dir
        )

        outcome = await handler.process(make_message(1, url, anonymous=True))

        assert outcome is Outcome.SKIPPED
        assert requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "url",
        [
            "http://127.0.0.1:8080/a",
            "http://localhost/status",
            "http://10.0.0.5/x",
            "http://192.168.1.1/episode.mp3",
            "http://169.254.169.254/latest/meta-data",
            "http://[::1]/a",
            "https://instagram.com/p/x",
            "https://m.youtube.com/watch?v=abc",
            "https://music.youtube.com/watch?v=abc",
        ],
    )
    async def test_internal_and_video_hosts_are_not_contacted(
        self, mock_client, storage, youtube, tools_dir, work_dir, url
    ):
        handler, requests = self.recording_handler(
            mock_client, storage, youtube, tools_dir, work_dir
        )

        outcome = await handler.process(make_message(1, url))

        assert outcome is Outcome.SKIPPED
        assert requests == []
        assert storage.objects == {}

    @pytest.mark.asyncio
    async def test_public_host_is_checked(self, mock_client, storage, youtube, tools_dir, work_dir):
        handler, requests = self.recording_handler(
            mock_client, storage, youtube, tools_dir, work_dir
        )

        outcome = await handler.process(make_message(1, "https://radio.example/live"))

        assert outcome is Outcome.HANDLED
        assert requests == ["https://radio.example/live", "https://radio.example/live"]
