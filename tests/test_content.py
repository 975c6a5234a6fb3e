import pytest

from ncr.content import ContentResolver, image_dir_name
from ncr.errors import ContentUnavailable
from ncr.models import ImageContent, InlineContent


def test_inline_without_encoding_is_raw(resolver):
    assert resolver.resolve(InlineContent(data="hello")) == b"hello"


@pytest.mark.parametrize("encoding", ["base64", "b64"])
def test_inline_base64(resolver, encoding):
    assert resolver.resolve(InlineContent(data="ZmlsZTI=", encoding=encoding)) == b"file2"


def test_invalid_base64_is_unavailable(resolver):
    with pytest.raises(ContentUnavailable):
        resolver.resolve(InlineContent(data="not base64!!", encoding="base64"))


def test_unknown_encoding_is_unavailable(resolver):
    with pytest.raises(ContentUnavailable, match="unknown encoding"):
        resolver.resolve(InlineContent(data="x", encoding="gzip"))


def test_image_content_read_from_mount(resolver, image_dir):
    mount = image_dir / image_dir_name("registry.local/foo:1.0")
    (mount / "usr" / "bin").mkdir(parents=True)
    (mount / "usr" / "bin" / "tool").write_bytes(b"binary")

    content = ImageContent(image="registry.local/foo:1.0", path_in_image="/usr/bin/tool")
    assert resolver.resolve(content) == b"binary"


def test_image_not_mounted(resolver):
    with pytest.raises(ContentUnavailable, match="not mounted"):
        resolver.resolve(ImageContent(image="foo-image", path_in_image="/foo-file"))


def test_image_path_missing(resolver, image_dir):
    (image_dir / "foo-image").mkdir()
    with pytest.raises(ContentUnavailable, match="does not exist"):
        resolver.resolve(ImageContent(image="foo-image", path_in_image="/foo-file"))


def test_image_path_cannot_escape_mount(tmp_path, image_dir):
    (image_dir / "foo-image").mkdir()
    (tmp_path / "secret").write_bytes(b"nope")
    resolver = ContentResolver(str(image_dir))
    with pytest.raises(ContentUnavailable, match="escapes"):
        resolver.resolve(ImageContent(image="foo-image", path_in_image="/../../secret"))
