"""Background downloads through a mocked requests session."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from adgen.services.errors import FetchError
from adgen.services.fetcher import BackgroundFetcher, filename_for_url


def _session(status_code=200, content=b"png-bytes", headers=None, error=None):
    session = MagicMock(spec=requests.Session)
    if error is not None:
        session.get.side_effect = error
    else:
        response = MagicMock()
        response.status_code = status_code
        response.content = content
        response.headers = headers or {"Content-Type": "image/png"}
        session.get.return_value = response
    return session


def test_fetch_returns_bytes_and_uses_given_filename():
    session = _session(content=b"abc", headers={"Content-Type": "image/webp; charset=binary"})
    fetcher = BackgroundFetcher(timeout=5, session=session)

    image = fetcher.fetch("https://cdn.example.com/bg.png", filename="square_background.png")

    assert image.data == b"abc"
    assert image.filename == "square_background.png"
    assert image.content_type == "image/webp"
    session.get.assert_called_once_with("https://cdn.example.com/bg.png", timeout=5)


def test_fetch_derives_filename_from_url():
    fetcher = BackgroundFetcher(session=_session())

    image = fetcher.fetch("https://cdn.example.com/path/hero-shot.png?sig=abc")

    assert image.filename.startswith("hero-shot_")
    assert image.filename.endswith(".png")


def test_filename_for_url_without_path_uses_image_stem():
    now = datetime(2024, 3, 1, 12, 30, 45, 123456, tzinfo=timezone.utc)

    assert filename_for_url("https://cdn.example.com", now=now) == "image_20240301123045123456.png"


def test_non_2xx_status_is_an_http_status_error():
    fetcher = BackgroundFetcher(session=_session(status_code=403))

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch("https://cdn.example.com/expired.png")

    assert excinfo.value.kind == FetchError.HTTP_STATUS
    assert excinfo.value.status_code == 403


def test_timeout_is_reported_as_timeout():
    fetcher = BackgroundFetcher(session=_session(error=requests.exceptions.ReadTimeout("slow")))

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch("https://cdn.example.com/slow.png")

    assert excinfo.value.kind == FetchError.TIMEOUT


def test_connection_error_is_reported_as_network():
    session = _session(error=requests.exceptions.ConnectionError("refused"))
    fetcher = BackgroundFetcher(session=session)

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch("https://cdn.example.com/bg.png")

    assert excinfo.value.kind == FetchError.NETWORK
    # Exactly one attempt; retrying is up to the caller.
    assert session.get.call_count == 1


def test_empty_url_is_rejected_without_a_request():
    session = _session()

    with pytest.raises(FetchError):
        BackgroundFetcher(session=session).fetch("")

    session.get.assert_not_called()
