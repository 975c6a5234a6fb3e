import hashlib
import json
import os

import pytest

from ncr.document import parse_document
from ncr.errors import InvalidDocument
from ncr.models import ImageContent, InlineContent

DOC = b"""
files:
- path: /example/file
  permissions: 511
  content:
    inline:
      data: file1
units:
- name: unit1
  enable: true
  command: start
  content: "#unit1"
  dropIns:
  - name: drop
    content: "#unit1drop"
  files:
  - path: /third/file
    permissions: 488
    content:
      imageRef:
        image: foo-image
        filePathInImage: /foo-file
extensionFiles:
- path: /another/file
  content:
    inline:
      encoding: b64
      data: ZmlsZTI=
extensionUnits:
- name: unit1
  dropIns:
  - name: ext
    content: "#ext"
"""


def test_parse_full_document():
    doc = parse_document(DOC)

    assert doc.checksum == hashlib.sha256(DOC).hexdigest()
    assert doc.files[0].path == "/example/file"
    assert doc.files[0].permissions == 0o777
    assert doc.files[0].content == InlineContent(data="file1")
    assert doc.extension_files[0].content == InlineContent(data="ZmlsZTI=", encoding="b64")

    unit = doc.units[0]
    assert unit.enable is True and unit.command == "start"
    assert [d.name for d in unit.drop_ins] == ["drop"]
    assert unit.files[0].content == ImageContent(image="foo-image", path_in_image="/foo-file")
    assert doc.extension_units[0].is_fragment


def test_json_is_accepted():
    raw = json.dumps({"units": [{"name": "u", "content": "#u"}]}).encode()
    assert parse_document(raw).units[0].name == "u"


def test_empty_document_is_empty_state():
    doc = parse_document(b"")
    assert doc.files == [] and doc.units == []


@pytest.mark.parametrize(
    "raw",
    [
        b"files: [{path: /a, content: {}}]",
        b"files: [{path: /a, content: {inline: {data: x}, imageRef: {image: i, filePathInImage: /p}}}]",
        b"files: [{path: relative, content: {inline: {data: x}}}]",
        b"units: [{name: u, command: reload}]",
        b"units: [{name: ../escape, content: x}]",
        b"units: [{name: my unit, content: x}]",
        b"units: [{name: u, content: x, dropIns: [{name: \"..\", content: y}]}]",
        b"units: [{name: u, content: x, dropIns: [{name: .d/x, content: y}]}]",
        b"- just a list",
        b"files: [unterminated",
    ],
)
def test_invalid_documents(raw):
    with pytest.raises(InvalidDocument):
        parse_document(raw)


def test_shipped_sample_document_parses():
    root = os.path.dirname(os.path.dirname(__file__))
    with open(os.path.join(root, "examples", "desired-config.yaml"), "rb") as fh:
        doc = parse_document(fh.read())
    assert [u.name for u in doc.units] == ["app.service"]
    assert doc.extension_units[0].is_fragment
