import io

import pytest
from PIL import Image

from shotpipe.publisher import GRAPH_API_URL, IMGBB_UPLOAD_URL, InstagramPublisher, PublishError

from conftest import make_item


class FakeResponse:
    def __init__(self, payload, status_code=200, content=b""):
        self._payload = payload
        self.status_code = status_code
        self.ok = status_code < 400
        self.content = content
        self.headers = {}

    def json(self):
        return self._payload

    def raise_for_status(self):
        if not self.ok:
            raise RuntimeError("raise_for_status should not be reached")


class ScriptedSession:
    """Answers each POST with the next scripted response."""

    def __init__(self, responses, image=b""):
        self.responses = list(responses)
        self.image = image
        self.posts = []

    def post(self, url, json=None, data=None, timeout=None):
        self.posts.append((url, json if json is not None else data))
        return self.responses.pop(0)

    def get(self, url, headers=None, timeout=None):
        return FakeResponse(None, content=self.image)


def ok(identifier):
    return FakeResponse({"id": identifier})


def failed(message):
    return FakeResponse({"error": {"message": message}}, status_code=400)


def _bmp_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (64, 64), (10, 120, 200)).save(buffer, format="BMP")
    return buffer.getvalue()


def test_two_phase_publish_payloads(tmp_path):
    session = ScriptedSession([ok("container-1"), ok("post-1")])
    publisher = InstagramPublisher("token", "page", temp_dir=tmp_path, session=session)

    assert publisher.publish_url("https://img.example.com/a.jpg", "hello") == "post-1"

    (create_url, create), (publish_url, publish) = session.posts
    assert create_url == f"{GRAPH_API_URL}/page/media"
    assert create == {
        "image_url": "https://img.example.com/a.jpg",
        "caption": "hello",
        "access_token": "token",
    }
    assert publish_url == f"{GRAPH_API_URL}/page/media_publish"
    assert publish == {"creation_id": "container-1", "access_token": "token"}


def test_falls_back_to_url_without_query(tmp_path):
    item = make_item()
    item.media_url = "https://cdn.example.com/shot.jpg?imw=5000&imh=5000"
    session = ScriptedSession([failed("Invalid image"), ok("container-2"), ok("post-2")])
    publisher = InstagramPublisher("token", "page", temp_dir=tmp_path, session=session)

    assert publisher.publish(item, "caption") == "post-2"
    assert session.posts[0][1]["image_url"] == item.media_url
    assert session.posts[1][1]["image_url"] == "https://cdn.example.com/shot.jpg"


def test_processed_copy_is_hosted_when_key_is_configured(tmp_path):
    item = make_item()
    session = ScriptedSession(
        [
            failed("Unsupported aspect ratio"),
            FakeResponse({"data": {"url": "https://i.ibb.co/x/shot.jpg"}}),
            ok("container-3"),
            ok("post-3"),
        ],
        image=_bmp_bytes(),
    )
    publisher = InstagramPublisher(
        "token", "page", temp_dir=tmp_path, imgbb_api_key="imgbb", session=session
    )

    assert publisher.publish(item, "caption") == "post-3"
    upload_url, upload = session.posts[1]
    assert upload_url == IMGBB_UPLOAD_URL
    assert upload["key"] == "imgbb"
    assert session.posts[2][1]["image_url"] == "https://i.ibb.co/x/shot.jpg"
    assert list(tmp_path.iterdir()) == []


def test_every_strategy_failing_raises(tmp_path):
    session = ScriptedSession([failed("first"), failed("second")])
    publisher = InstagramPublisher("token", "page", temp_dir=tmp_path, session=session)

    with pytest.raises(PublishError, match="second"):
        publisher.publish(make_item(), "caption")
    assert len(session.posts) == 2


def test_missing_container_id_is_an_error(tmp_path):
    session = ScriptedSession([FakeResponse({})])
    publisher = InstagramPublisher("token", "page", temp_dir=tmp_path, session=session)
    with pytest.raises(PublishError, match="Unknown error"):
        publisher.publish_url("https://img.example.com/a.jpg", "c")


def test_close_releases_the_session(tmp_path):
    class ClosingSession(ScriptedSession):
        closed = False

        def close(self):
            self.closed = True

    session = ClosingSession([])
    InstagramPublisher("token", "page", temp_dir=tmp_path, session=session).close()
    assert session.closed
