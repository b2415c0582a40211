import json

import pytest

from src.pitchcoach.client.capture import CaptureConstraints, capture_options
from src.pitchcoach.errors import ProviderConnectionFailed
from src.pitchcoach.services.transcription.deepgram import DeepgramConnector, LiveOptions, parse_live_message


def test_live_options_query_for_server_streams():
    query = LiveOptions(model="nova-2", language="en").to_query()

    assert query == {
        "model": "nova-2",
        "language": "en",
        "interim_results": "true",
        "punctuate": "true",
        "endpointing": "true",
        "vad_events": "true",
        "smart_format": "true",
    }


def test_capture_options_carry_client_parameters():
    query = capture_options("en", CaptureConstraints()).to_query()

    assert query["endpointing"] == "500"
    assert query["utterance_end_ms"] == "2500"
    assert query["filler_words"] == "false"
    assert query["encoding"] == "linear16"
    assert query["sample_rate"] == "16000"
    assert query["channels"] == "1"


def test_parse_results_message():
    raw = json.dumps(
        {
            "type": "Results",
            "is_final": True,
            "channel": {"alternatives": [{"transcript": "Hello there.", "confidence": 0.93}]},
        }
    )

    result = parse_live_message(raw)

    assert result is not None
    assert result.transcript == "Hello there."
    assert result.is_final
    assert result.confidence == pytest.approx(0.93)


def test_parse_ignores_non_result_and_malformed_messages():
    assert parse_live_message(json.dumps({"type": "Metadata", "request_id": "abc"})) is None
    assert parse_live_message(json.dumps({"type": "UtteranceEnd"})) is None
    assert parse_live_message("not json") is None


def test_results_without_alternatives_are_empty():
    result = parse_live_message(json.dumps({"type": "Results", "channel": {"alternatives": []}}))

    assert result is not None
    assert not result.has_text


async def test_connector_requires_api_key():
    with pytest.raises(ProviderConnectionFailed):
        await DeepgramConnector(None)(LiveOptions())
