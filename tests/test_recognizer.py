"""Tests for recognizer module and the decoder chain."""

import json

import pytest

from sdmeta.container import SegmentKind
from sdmeta.errors import DecodeError
from sdmeta.models import (
    Empty,
    Invalid,
    MetadataEntry,
    PayloadCandidate,
    Success,
    Unrecognized,
)
from sdmeta.recognizer import recognize
from sdmeta.vendors import DECODER_ORDER, DECODERS, Claimed, NotMine, codec_for
from sdmeta.vendors.a1111 import A1111Codec

A1111_TEXT = "a cat\nSteps: 20, Sampler: Euler a, CFG scale: 7, Seed: 12345, Size: 512x768"


def candidate(*entries: tuple[str, str]) -> PayloadCandidate:
    """Build a text candidate whose primary entry is the first one."""
    first = entries[0][1]
    return PayloadCandidate(
        source=SegmentKind.TEXT_KEY_VALUE,
        raw=first.encode("utf-8"),
        text=first,
        entries=tuple(MetadataEntry(k, v) for k, v in entries),
    )


class TestDecoderChain:
    """Tests for the ordered decoder chain constant."""

    def test_chain_order(self) -> None:
        assert DECODER_ORDER == (
            "novelai",
            "invokeai",
            "tensorart",
            "stability-matrix",
            "swarmui",
            "easydiffusion",
            "ruined-fooocus",
            "civitai",
            "hf-space",
            "fooocus",
            "draw-things",
            "comfyui",
            "a1111",
        )

    def test_generic_codecs_run_last(self) -> None:
        assert DECODER_ORDER.index("comfyui") > DECODER_ORDER.index("swarmui")
        assert DECODER_ORDER[-1] == "a1111"

    def test_every_software_has_a_codec(self) -> None:
        from sdmeta.constants import SOFTWARE_LABELS

        for software in SOFTWARE_LABELS:
            assert codec_for(software) is not None, software

    def test_a1111_forks_share_one_codec(self) -> None:
        assert codec_for("forge-neo") is codec_for("sd-webui")
        assert codec_for("sd-next").name == "a1111"


class TestRecognize:
    """Tests for recognize function."""

    def test_empty_without_candidates(self) -> None:
        assert isinstance(recognize([]), Empty)

    def test_success(self) -> None:
        outcome = recognize([candidate(("parameters", A1111_TEXT))])
        assert isinstance(outcome, Success)
        assert outcome.metadata.software == "sd-webui"
        assert outcome.source is SegmentKind.TEXT_KEY_VALUE
        assert outcome.entries == (MetadataEntry("parameters", A1111_TEXT),)

    def test_unrecognized_keeps_first_raw_payload(self) -> None:
        outcome = recognize([candidate(("parameters", "just a prompt")), candidate(("other", "x"))])
        assert isinstance(outcome, Unrecognized)
        assert outcome.raw_payload == b"just a prompt"
        assert outcome.entries == (MetadataEntry("parameters", "just a prompt"),)

    def test_invalid_when_claimed_payload_is_corrupt(self) -> None:
        outcome = recognize([candidate(("invokeai_metadata", '{"positive_prompt": "a cat",'))])
        assert isinstance(outcome, Invalid)
        assert outcome.software == "invokeai"
        assert "invalid JSON" in outcome.reason
        assert outcome.raw_payload == b'{"positive_prompt": "a cat",'

    def test_invalid_stops_the_chain(self) -> None:
        outcome = recognize(
            [
                candidate(("invokeai_metadata", "[]")),
                candidate(("parameters", A1111_TEXT)),
            ]
        )
        assert isinstance(outcome, Invalid)
        assert outcome.software == "invokeai"

    def test_first_candidate_wins(self) -> None:
        invoke = json.dumps({"positive_prompt": "a dog", "width": 512, "height": 512})
        outcome = recognize(
            [
                candidate(("parameters", A1111_TEXT)),
                candidate(("invokeai_metadata", invoke)),
            ]
        )
        assert isinstance(outcome, Success)
        assert outcome.metadata.software == "sd-webui"

    def test_later_candidate_recognized_after_unclaimed_one(self) -> None:
        outcome = recognize([candidate(("foo", "bar")), candidate(("parameters", A1111_TEXT))])
        assert isinstance(outcome, Success)

    def test_custom_decoder_chain(self) -> None:
        outcome = recognize([candidate(("parameters", A1111_TEXT))], decoders=(DECODERS[1],))
        assert isinstance(outcome, Unrecognized)

    @pytest.mark.parametrize(
        "entries",
        [
            [],
            [("parameters", A1111_TEXT)],
            [("parameters", "no settings here")],
            [("invokeai_metadata", "{")],
            [("Comment", "\x00\x00")],
        ],
    )
    def test_exactly_one_outcome(self, entries: list[tuple[str, str]]) -> None:
        candidates = [candidate(*entries)] if entries else []
        outcome = recognize(candidates)
        kinds = (Success, Empty, Unrecognized, Invalid)
        assert sum(isinstance(outcome, kind) for kind in kinds) == 1


class TestDispatchPriority:
    """A payload matching a generic shape goes to the marker-bearing vendor."""

    def test_swarmui_before_comfyui(self) -> None:
        params = json.dumps({"sui_image_params": {"prompt": "a cat", "width": 1024, "height": 1024}})
        graph = json.dumps({"3": {"class_type": "KSampler", "inputs": {"steps": 20}}})
        outcome = recognize([candidate(("parameters", params), ("prompt", graph))])
        assert isinstance(outcome, Success)
        assert outcome.metadata.software == "swarmui"

    def test_civitai_before_a1111(self) -> None:
        text = A1111_TEXT + ', Civitai resources: [{"type":"checkpoint","modelVersionId":128713}]'
        outcome = recognize([candidate(("parameters", text))])
        assert isinstance(outcome, Success)
        assert outcome.metadata.software == "civitai"
        assert outcome.metadata.sampling.steps == 20

    def test_ruined_fooocus_before_fooocus(self) -> None:
        payload = json.dumps(
            {"Prompt": "a cat", "prompt": "a cat", "base_model": "x", "software": "RuinedFooocus"}
        )
        outcome = recognize([candidate(("parameters", payload))])
        assert outcome.metadata.software == "ruined-fooocus"

    def test_novelai_before_generic_comment_json(self) -> None:
        comment = json.dumps({"prompt": "1girl", "width": 64, "height": 64, "noise_schedule": "karras"})
        outcome = recognize([candidate(("Comment", comment))])
        assert outcome.metadata.software == "novelai"


class TestTryDecode:
    """Tests for VendorCodec.try_decode."""

    def test_not_mine(self) -> None:
        assert isinstance(A1111Codec().try_decode(candidate(("parameters", "a cat"))), NotMine)

    def test_claimed_with_metadata(self) -> None:
        result = A1111Codec().try_decode(candidate(("parameters", A1111_TEXT)))
        assert isinstance(result, Claimed)
        assert result.metadata is not None
        assert result.malformed is None

    def test_decode_error_becomes_malformed(self) -> None:
        class Broken(A1111Codec):
            def decode(self, candidate):
                raise DecodeError("sd-webui", "boom")

        result = Broken().try_decode(candidate(("parameters", A1111_TEXT)))
        assert result == Claimed(malformed="boom")

    def test_structural_exception_becomes_malformed(self) -> None:
        class Broken(A1111Codec):
            def decode(self, candidate):
                return {}["missing"]

        result = Broken().try_decode(candidate(("parameters", A1111_TEXT)))
        assert isinstance(result, Claimed)
        assert result.malformed.startswith("KeyError")
