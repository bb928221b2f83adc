from __future__ import annotations

import asyncio
import base64

import pytest

from autobuilder.attachments import materialize_attachments
from autobuilder.data_uri import DataUriError, decode_data_uri
from autobuilder.models import Attachment


def _b64_uri(mime: str, data: bytes) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode()}"


class TestDecodeDataUri:
    def test_base64_payload(self):
        mime, data = decode_data_uri(_b64_uri("text/csv", b"a,b\n1,2\n"))
        assert mime == "text/csv"
        assert data == b"a,b\n1,2\n"

    def test_percent_encoded_payload(self):
        mime, data = decode_data_uri("data:text/plain,hello%20world")
        assert mime == "text/plain"
        assert data == b"hello world"

    def test_missing_mime_defaults_to_text_plain(self):
        mime, data = decode_data_uri("data:,abc")
        assert mime == "text/plain"
        assert data == b"abc"

    def test_mime_parameters_are_dropped(self):
        mime, _ = decode_data_uri("data:text/plain;charset=utf-8;base64,aGk=")
        assert mime == "text/plain"

    @pytest.mark.parametrize("uri", ["https://example.com/a.png", "", "data:image/png;base64,@@@"])
    def test_rejects_unsupported(self, uri):
        with pytest.raises(DataUriError):
            decode_data_uri(uri)


def test_materialize_writes_files_and_returns_metadata(tmp_path):
    attachments = [
        Attachment(name="data.csv", url=_b64_uri("text/csv", b"x,y\n")),
        Attachment(name="logo.png", url=_b64_uri("image/png", b"\x89PNG")),
    ]

    infos = asyncio.run(materialize_attachments(attachments, str(tmp_path)))

    assert [(i.name, i.mime_type, i.size) for i in infos] == [
        ("data.csv", "text/csv", 4),
        ("logo.png", "image/png", 4),
    ]
    assert (tmp_path / "data.csv").read_bytes() == b"x,y\n"
    assert (tmp_path / "logo.png").read_bytes() == b"\x89PNG"


def test_materialize_skips_incomplete_entries(tmp_path):
    attachments = [Attachment(name="", url=_b64_uri("text/plain", b"a")), Attachment(name="b.txt", url="")]

    assert asyncio.run(materialize_attachments(attachments, str(tmp_path))) == []
    assert list(tmp_path.iterdir()) == []


def test_materialize_keeps_files_inside_target(tmp_path):
    target = tmp_path / "job"
    attachments = [Attachment(name="../../etc/evil.txt", url=_b64_uri("text/plain", b"x"))]

    infos = asyncio.run(materialize_attachments(attachments, str(target)))

    assert infos[0].name == "evil.txt"
    assert (target / "evil.txt").exists()
    assert not (tmp_path / "etc").exists()


def test_materialize_skips_only_the_bad_entries(tmp_path):
    attachments = [
        Attachment(name="a.txt", url="not-a-data-uri"),
        Attachment(name="b.csv", url=_b64_uri("text/csv", b"1,2\n")),
        Attachment(name="..", url=_b64_uri("text/plain", b"x")),
        Attachment(name="c.png", url="data:image/png;base64,@@@"),
        Attachment(name=None, url=_b64_uri("text/plain", b"y")),
    ]

    infos = asyncio.run(materialize_attachments(attachments, str(tmp_path)))

    assert [(i.name, i.mime_type, i.size) for i in infos] == [("b.csv", "text/csv", 4)]
    assert [p.name for p in tmp_path.iterdir()] == ["b.csv"]
