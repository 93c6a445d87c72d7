from natsreq.tools.nats.message import build_headers, build_request_message, header_values, stringify
from natsreq.tools.nats.models import MessageDescriptor, OutboundMessage


def test_headers_and_data_are_carried_over():
    descriptor = MessageDescriptor(headers={"k": ["a", "b"]}, data="X")

    message = build_request_message("svc.echo", descriptor)

    assert message.subject == "svc.echo"
    assert message.headers == {"k": ["a", "b"]}
    assert message.payload == b"X"


def test_empty_descriptor_builds_empty_message():
    message = build_request_message("svc.echo", MessageDescriptor())

    assert message.headers == {}
    assert message.payload == b""
    assert message.nats_headers() is None


def test_payload_is_utf8_encoded():
    message = build_request_message("svc.echo", MessageDescriptor(data="héllo ✓"))

    assert message.payload == "héllo ✓".encode("utf-8")
    assert message.payload.decode("utf-8") == "héllo ✓"


def test_subject_is_not_validated():
    message = build_request_message("not a valid subject ..", MessageDescriptor(data="x"))
    assert message.subject == "not a valid subject .."


def test_nats_headers_join_multiple_values():
    message = OutboundMessage(
        subject="svc.echo",
        headers={"k": ["a", "b"], "single": ["v"], "empty": []},
        payload=b"",
    )

    assert message.nats_headers() == {"k": "a, b", "single": "v", "empty": ""}


def test_header_values():
    assert header_values("v") == ["v"]
    assert header_values(["a", 1, None]) == ["a", "1", ""]
    assert header_values(("x", "y")) == ["x", "y"]
    assert header_values(False) == ["false"]


def test_build_headers_stringifies_keys():
    assert build_headers({1: "one", "two": ["2"]}) == {"1": ["one"], "two": ["2"]}


def test_stringify():
    assert stringify(None) == ""
    assert stringify("text") == "text"
    assert stringify(True) == "true"
    assert stringify(b"raw") == "raw"
    assert stringify(3) == "3"
    assert stringify({"a": [1, 2]}) == '{"a": [1, 2]}'
