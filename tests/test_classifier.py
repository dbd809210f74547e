import pytest

from callrelay.services import classifier
from callrelay.services.classifier import CallEvent, MessageEvent, Unclassified


def test_call_marker_in_path():
    ev = classifier.classify({"foo": "bar"}, {}, "/webhook/cloudtalk")
    assert isinstance(ev, CallEvent)


def test_call_marker_in_user_agent():
    ev = classifier.classify({"phone_number": "3331234567"}, {"User-Agent": "CloudTalk-Webhooks/1.0"}, "/webhook")
    assert isinstance(ev, CallEvent)
    assert ev.fields["phone_number"] == "3331234567"


def test_call_fields_detected_without_marker():
    ev = classifier.classify({"callId": "c-1", "eventType": "call_ended"}, {}, "/webhook")
    assert isinstance(ev, CallEvent)
    assert ev.fields["call_id"] == "c-1"
    assert ev.fields["event_type"] == "call_ended"


def test_data_wrapper_is_unwrapped():
    payload = {"data": {"call_id": 77, "phoneNumber": "+39 333 1234567", "duration": "42"}}
    ev = classifier.classify(payload, {}, "/webhook")
    assert isinstance(ev, CallEvent)
    assert ev.fields["call_id"] == "77"
    assert ev.fields["phone_number"] == "+39 333 1234567"
    assert ev.fields["duration"] == 42
    assert ev.fields["raw_data"] == payload["data"]


def test_phone_synonym_precedence():
    body = {"number": "5", "to": "4", "phoneNumber": "3", "phone_number": "2", "caller_number": "1"}
    assert classifier.extract_call_fields(body)["phone_number"] == "1"
    del body["caller_number"]
    assert classifier.extract_call_fields(body)["phone_number"] == "2"
    del body["phone_number"]
    assert classifier.extract_call_fields(body)["phone_number"] == "3"
    del body["phoneNumber"]
    assert classifier.extract_call_fields(body)["phone_number"] == "4"
    del body["to"]
    assert classifier.extract_call_fields(body)["phone_number"] == "5"


def test_empty_values_fall_through_to_next_synonym():
    fields = classifier.extract_call_fields({"caller_number": "", "phone_number": None, "phoneNumber": "333"})
    assert fields["phone_number"] == "333"


def test_boolean_flags_keep_false():
    fields = classifier.extract_call_fields({"call_id": "x", "should_send": False, "electricityBillReceived": "true"})
    assert fields["should_send"] is False
    assert fields["bill_received"] is True
    assert fields["interest_confirmed"] is None


def test_structured_message_shape():
    payload = {
        "data": {
            "messages": {
                "key": {"id": "ABC", "fromMe": False, "senderPn": "393331234567@s.whatsapp.net"},
                "message": {"conversation": "ciao"},
            }
        }
    }
    ev = classifier.classify(payload, {}, "/api/whatsapp-webhook")
    assert isinstance(ev, MessageEvent)
    assert ev.event.normalized_phone == "393331234567"
    assert ev.event.text == "ciao"
    assert ev.event.event_id == "ABC"
    assert ev.event.is_outbound is False


def test_structured_message_prefers_message_body_and_detects_media():
    payload = {
        "messages": {
            "key": {"fromMe": False, "cleanedSenderPn": "393331234567"},
            "messageBody": "",
            "message": {"documentMessage": {"fileName": "bolletta.pdf"}},
        }
    }
    ev = classifier.classify(payload)
    assert isinstance(ev, MessageEvent)
    assert ev.event.text == ""
    assert ev.event.message_type == "document"


def test_extended_text_message():
    payload = {"messages": {"key": {"fromMe": False, "remoteJid": "393331234567@s.whatsapp.net"},
                            "message": {"extendedTextMessage": {"text": "eccola"}}}}
    assert classifier.classify(payload).event.text == "eccola"


def test_whapi_list_shape():
    payload = {"messages": [{"id": "m1", "from_me": False, "type": "image", "from": "393331234567", "text": None}]}
    ev = classifier.classify(payload, {}, "/api/whatsapp-webhook")
    assert isinstance(ev, MessageEvent)
    assert ev.event.message_type == "image"
    assert ev.event.event_id == "m1"


def test_legacy_flat_shape():
    ev = classifier.classify({"from": "+393331234567", "body": {"body": "ok"}, "fromMe": False})
    assert isinstance(ev, MessageEvent)
    assert ev.event.text == "ok"


def test_outbound_flag_is_reported():
    ev = classifier.classify({"messages": {"key": {"fromMe": True, "senderPn": "393331234567"}, "messageBody": "hi"}})
    assert isinstance(ev, MessageEvent)
    assert ev.event.is_outbound is True

    ev = classifier.classify({"from": "393331234567", "text": "hi", "from_me": True})
    assert ev.event.is_outbound is True


def test_strong_call_keys_win_over_flat_message_shape():
    ev = classifier.classify({"call_id": "c1", "from": "3331234567", "text": "transcript"})
    assert isinstance(ev, CallEvent)
    assert ev.fields["transcript"] == "transcript"


def test_bare_phone_number_payload_is_a_call():
    ev = classifier.classify({"phone_number": "3331234567", "status": "answered"})
    assert isinstance(ev, CallEvent)


def test_unknown_shape_is_unclassified():
    assert isinstance(classifier.classify({"hello": "world"}, {}, "/webhook"), Unclassified)


@pytest.mark.parametrize(
    "payload",
    [
        None,
        "not json",
        42,
        [1, 2, 3],
        {"messages": 5},
        {"messages": {"key": "nope"}},
        {"messages": []},
        {"data": []},
        {"messages": [None]},
        {"messages": {"key": {"fromMe": False}}},
    ],
)
def test_malformed_input_never_raises(payload):
    assert isinstance(classifier.classify(payload, None, "/api/whatsapp-webhook"), Unclassified)


@pytest.mark.parametrize("duration", ["inf", "-inf", "nan", 1e30, "99999999999"])
def test_out_of_range_duration_is_dropped(duration):
    ev = classifier.classify({"call_id": "c1", "duration": duration})
    assert isinstance(ev, CallEvent)
    assert ev.fields["duration"] is None
