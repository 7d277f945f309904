"""Tests for the EXIF and XMP carrier helpers."""

import json
from typing import Callable

import piexif
import piexif.helper
import pytest

from sdmeta.exif import (
    build_exif,
    decode_user_comment,
    expand_packed_comment,
    has_metadata_tags,
    load_exif,
    metadata_tags,
    pack_entries,
    read_exif_entries,
    strip_exif,
    strip_metadata_tags,
)
from sdmeta.models import MetadataEntry
from sdmeta.xmp import MAX_XMP_TEXT_LENGTH, build_xmp, read_xmp_entries


class TestDecodeUserComment:
    """Tests for decode_user_comment function."""

    def test_unicode_big_endian(self) -> None:
        assert decode_user_comment(b"UNICODE\x00" + "a cat".encode("utf-16-be")) == "a cat"

    def test_unicode_little_endian(self) -> None:
        assert decode_user_comment(b"UNICODE\x00" + "a cat".encode("utf-16-le")) == "a cat"

    def test_unicode_non_latin(self) -> None:
        assert decode_user_comment(b"UNICODE\x00" + "猫".encode("utf-16-be")) == "猫"

    def test_ascii(self) -> None:
        assert decode_user_comment(b"ASCII\x00\x00\x00a cat") == "a cat"

    def test_jis(self) -> None:
        assert decode_user_comment(b"JIS\x00\x00\x00\x00\x00" + "テスト".encode("shift_jis")) == "テスト"

    def test_undefined_prefix(self) -> None:
        assert decode_user_comment(b"\x00" * 8 + b"a cat") == "a cat"

    def test_no_prefix(self) -> None:
        assert decode_user_comment(b"Steps: 20") == "Steps: 20"

    def test_trailing_nuls_removed(self) -> None:
        assert decode_user_comment(b"ASCII\x00\x00\x00a cat\x00\x00") == "a cat"

    def test_empty(self) -> None:
        assert decode_user_comment(b"") is None
        assert decode_user_comment(b"UNICODE\x00") is None

    def test_piexif_dump(self) -> None:
        value = piexif.helper.UserComment.dump("a cat, 猫", encoding="unicode")
        assert decode_user_comment(value) == "a cat, 猫"


class TestPackedComment:
    """Tests for pack_entries and expand_packed_comment."""

    def test_single_parameters_entry_is_raw(self) -> None:
        assert pack_entries([MetadataEntry("parameters", "a cat")]) == "a cat"

    def test_several_entries_become_json(self) -> None:
        entries = [MetadataEntry("Source", "SDXL"), MetadataEntry("Comment", '{"steps": 28}')]
        packed = pack_entries(entries)
        assert json.loads(packed) == {"Source": "SDXL", "Comment": '{"steps": 28}'}
        assert expand_packed_comment(packed) == entries

    def test_single_other_keyword_is_json(self) -> None:
        packed = pack_entries([MetadataEntry("prompt", '{"3": {}}')])
        assert expand_packed_comment(packed) == [MetadataEntry("prompt", '{"3": {}}')]

    def test_plain_text_stays_comment(self) -> None:
        assert expand_packed_comment("a cat") == [MetadataEntry("Comment", "a cat")]

    def test_vendor_json_stays_comment(self) -> None:
        text = json.dumps({"prompt": "a cat", "steps": 20})
        assert expand_packed_comment(text) == [MetadataEntry("Comment", text)]

    def test_json_without_carrier_keys_stays_comment(self) -> None:
        text = json.dumps({"foo": "bar"})
        assert expand_packed_comment(text) == [MetadataEntry("Comment", text)]

    def test_broken_json_stays_comment(self) -> None:
        assert expand_packed_comment('{"Comment": ') == [MetadataEntry("Comment", '{"Comment": ')]

    def test_deeply_nested_json_stays_comment(self) -> None:
        text = '{"Comment": ' + "[" * 100_000
        assert expand_packed_comment(text) == [MetadataEntry("Comment", text)]

    def test_companion_keys_alone_stay_comment(self) -> None:
        text = json.dumps({"Software": "GIMP", "Title": "Harbour"})
        assert expand_packed_comment(text) == [MetadataEntry("Comment", text)]


class TestReadExifEntries:
    """Tests for read_exif_entries function."""

    def test_user_comment(self, make_exif: Callable[..., bytes]) -> None:
        assert read_exif_entries(make_exif(user_comment="a cat")) == [MetadataEntry("Comment", "a cat")]

    def test_prefixed_make_and_description(self, make_exif: Callable[..., bytes]) -> None:
        block = make_exif(
            ImageDescription=b'Workflow: {"nodes": []}',
            Make=b'Prompt: {"3": {"class_type": "KSampler"}}',
        )
        assert read_exif_entries(block) == [
            MetadataEntry("Workflow", '{"nodes": []}'),
            MetadataEntry("Prompt", '{"3": {"class_type": "KSampler"}}'),
        ]

    def test_plain_make_and_identity_tags(self, make_exif: Callable[..., bytes]) -> None:
        block = make_exif(Make=b"Canon", Software=b"NovelAI", DocumentName=b"NovelAI generated image")
        assert read_exif_entries(block) == [
            MetadataEntry("Make", "Canon"),
            MetadataEntry("Software", "NovelAI"),
            MetadataEntry("Title", "NovelAI generated image"),
        ]

    def test_camera_only_block(self, make_exif: Callable[..., bytes]) -> None:
        assert read_exif_entries(make_exif()) == []

    def test_tiff_without_exif_header(self, make_exif: Callable[..., bytes]) -> None:
        block = make_exif(user_comment="a cat")
        assert read_exif_entries(block[6:]) == [MetadataEntry("Comment", "a cat")]

    def test_unparseable_block(self) -> None:
        assert load_exif(b"garbage") is None
        assert read_exif_entries(b"Exif\x00\x00II*\x00\xff\xff") == []


class TestBuildExif:
    """Tests for build_exif and strip_exif functions."""

    def test_entries_round_trip(self) -> None:
        entries = [
            MetadataEntry("Description", "a cat"),
            MetadataEntry("Software", "NovelAI"),
            MetadataEntry("Title", "NovelAI generated image"),
            MetadataEntry("Comment", '{"steps": 28}'),
        ]
        assert read_exif_entries(build_exif(entries)) == entries

    def test_prompt_goes_to_make(self) -> None:
        block = build_exif([MetadataEntry("Prompt", '{"3": {}}')])
        assert piexif.load(block)["0th"][piexif.ImageIFD.Make] == b'Prompt: {"3": {}}'

    def test_keeps_unrelated_tags(self, make_exif: Callable[..., bytes]) -> None:
        base = piexif.load(make_exif(user_comment="old"))
        block = build_exif([MetadataEntry("parameters", "new")], base)

        exif = piexif.load(block)
        assert exif["0th"][piexif.ImageIFD.Model] == b"EOS 5D"
        assert read_exif_entries(block) == [MetadataEntry("Comment", "new")]

    def test_strip_keeps_camera_tags(self, make_exif: Callable[..., bytes]) -> None:
        cleaned = strip_exif(make_exif(user_comment="a cat", Software=b"NovelAI"))
        exif = piexif.load(cleaned)
        assert exif["0th"][piexif.ImageIFD.Model] == b"EOS 5D"
        assert piexif.ImageIFD.Software not in exif["0th"]
        assert read_exif_entries(cleaned) == []

    def test_strip_drops_emptied_block(self, make_exif: Callable[..., bytes]) -> None:
        assert strip_exif(make_exif(user_comment="a cat", model=None)) is None

    def test_camera_block_keeps_editor_tags(self, make_exif: Callable[..., bytes]) -> None:
        base = piexif.load(make_exif(Make=b"Canon", Software=b"Adobe Photoshop 25.0"))
        block = build_exif([MetadataEntry("parameters", "a cat")], base)
        zeroth = piexif.load(block)["0th"]
        assert zeroth[piexif.ImageIFD.Make] == b"Canon"
        assert zeroth[piexif.ImageIFD.Software] == b"Adobe Photoshop 25.0"


class TestMetadataTags:
    """Tests for metadata_tags and has_metadata_tags."""

    def test_camera_block_owns_nothing(self, make_exif: Callable[..., bytes]) -> None:
        exif_dict = piexif.load(
            make_exif(Make=b"Canon", Software=b"Adobe Photoshop 25.0", ImageDescription=b"Harbour at dusk")
        )
        assert metadata_tags(exif_dict) == []
        assert not has_metadata_tags(exif_dict)
        assert strip_metadata_tags(exif_dict)["0th"][piexif.ImageIFD.Software] == b"Adobe Photoshop 25.0"

    def test_user_comment_brings_companions(self, make_exif: Callable[..., bytes]) -> None:
        exif_dict = piexif.load(
            make_exif(user_comment="a cat", Make=b"Canon", Software=b"NovelAI", DocumentName=b"Image")
        )
        assert set(metadata_tags(exif_dict)) == {
            ("Exif", piexif.ExifIFD.UserComment),
            ("0th", piexif.ImageIFD.Software),
            ("0th", piexif.ImageIFD.DocumentName),
        }

    def test_prefixed_make_is_owned(self, make_exif: Callable[..., bytes]) -> None:
        exif_dict = piexif.load(make_exif(Make=b'Prompt: {"3": {}}'))
        assert metadata_tags(exif_dict) == [("0th", piexif.ImageIFD.Make)]

    def test_prefixed_unknown_keyword_is_not_owned(self, make_exif: Callable[..., bytes]) -> None:
        exif_dict = piexif.load(make_exif(ImageDescription=b'Settings: {"iso": 100}'))
        assert not has_metadata_tags(exif_dict)


class TestXmp:
    """Tests for XMP packet building and reading."""

    def test_round_trip(self) -> None:
        comment = json.dumps({"c": "cat & dog <3", "seed": 1})
        packet = build_xmp(creator_tool="Draw Things", user_comment=comment)
        assert read_xmp_entries(packet) == [
            MetadataEntry("CreatorTool", "Draw Things"),
            MetadataEntry("UserComment", comment),
        ]

    def test_attribute_creator_tool(self) -> None:
        packet = '<rdf:Description xmp:CreatorTool="Draw Things" rdf:about=""/>'
        assert read_xmp_entries(packet) == [MetadataEntry("CreatorTool", "Draw Things")]

    def test_dc_description(self) -> None:
        packet = (
            "<dc:description><rdf:Alt>"
            '<rdf:li xml:lang="x-default">a cat\nSteps: 20</rdf:li>'
            "</rdf:Alt></dc:description>"
        )
        assert read_xmp_entries(packet) == [MetadataEntry("parameters", "a cat\nSteps: 20")]

    def test_unrelated_packet(self) -> None:
        assert read_xmp_entries(build_xmp()) == []

    def test_oversized_packet(self) -> None:
        packet = build_xmp(creator_tool="Draw Things") + " " * MAX_XMP_TEXT_LENGTH
        assert read_xmp_entries(packet) == []

    @pytest.mark.parametrize("text", ["", "<x:xmpmeta/>"])
    def test_empty_packets(self, text: str) -> None:
        assert read_xmp_entries(text) == []
