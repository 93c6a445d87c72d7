import pytest
from jinja2 import Environment

from natsreq.core.errors import InvalidInputError
from natsreq.core.storage import MemoryBackend
from natsreq.tools.nats.payload import (
    MapSource,
    StorageSource,
    TextSource,
    classify_source,
    resolve_payload,
)


@pytest.fixture
def jenv():
    return Environment()


@pytest.fixture
def storage():
    return MemoryBackend({"kestra://company/team/request.json": '{"greeting": "hello"}'.encode("utf-8")})


@pytest.mark.parametrize("value", ["Hello", "", "plain text with spaces", "nats://not-internal"])
def test_plain_string_is_data(jenv, storage, value):
    descriptor = resolve_payload(value, jenv, {}, storage)
    assert descriptor.data == value
    assert descriptor.headers == {}


def test_string_is_rendered(jenv, storage):
    ctx = {"workload": {"name": "bob"}}
    descriptor = resolve_payload("Hello {{ workload.name }}", jenv, ctx, storage)
    assert descriptor.data == "Hello bob"
    assert descriptor.headers == {}


def test_rendered_digits_stay_strings(jenv, storage):
    descriptor = resolve_payload("{{ count }}", jenv, {"count": 42}, storage)
    assert descriptor.data == "42"


def test_internal_storage_reference_reads_file(jenv, storage):
    descriptor = resolve_payload("kestra://company/team/request.json", jenv, {}, storage)
    assert descriptor.data == '{"greeting": "hello"}'
    assert descriptor.headers == {}


def test_templated_internal_storage_reference(jenv, storage):
    ctx = {"outputs": {"upload": {"uri": "kestra://company/team/request.json"}}}
    descriptor = resolve_payload("{{ outputs.upload.uri }}", jenv, ctx, storage)
    assert descriptor.data == '{"greeting": "hello"}'


def test_internal_storage_unicode_content(jenv):
    storage = MemoryBackend({"kestra://ns/unicode.txt": "héllo ✓".encode("utf-8")})
    assert resolve_payload("kestra://ns/unicode.txt", jenv, {}, storage).data == "héllo ✓"


def test_internal_storage_missing_file(jenv, storage):
    with pytest.raises(InvalidInputError, match="not found"):
        resolve_payload("kestra://company/team/missing.json", jenv, {}, storage)


def test_internal_storage_malformed_uri_is_rejected(jenv, storage):
    # Matches the prefix but cannot be parsed as a URI
    with pytest.raises(InvalidInputError, match="Invalid internal storage URI"):
        resolve_payload("kestra://[broken", jenv, {}, storage)


def test_internal_storage_non_utf8_content(jenv):
    storage = MemoryBackend({"kestra://ns/binary.bin": b"\xff\xfe\x00"})
    with pytest.raises(InvalidInputError, match="UTF-8"):
        resolve_payload("kestra://ns/binary.bin", jenv, {}, storage)


def test_uppercase_scheme_is_plain_text(jenv, storage):
    descriptor = resolve_payload("KESTRA://company/team/request.json", jenv, {}, storage)
    assert descriptor.data == "KESTRA://company/team/request.json"


def test_map_passes_headers_and_data(jenv, storage):
    value = {
        "headers": {"k": ["a", "b"], "single": "v", "n": 1, "flag": True},
        "data": "X",
    }
    descriptor = resolve_payload(value, jenv, {}, storage)
    assert descriptor.headers == {
        "k": ["a", "b"],
        "single": ["v"],
        "n": ["1"],
        "flag": ["true"],
    }
    assert descriptor.data == "X"


def test_map_header_order_is_preserved(jenv, storage):
    value = {"headers": {"z": "1", "a": "2", "m": "3"}}
    descriptor = resolve_payload(value, jenv, {}, storage)
    assert list(descriptor.headers.keys()) == ["z", "a", "m"]


def test_empty_map(jenv, storage):
    descriptor = resolve_payload({}, jenv, {}, storage)
    assert descriptor.headers == {}
    assert descriptor.data == ""


def test_map_without_data_defaults_to_empty_string(jenv, storage):
    descriptor = resolve_payload({"headers": {"k": "v"}}, jenv, {}, storage)
    assert descriptor.data == ""
    assert descriptor.headers == {"k": ["v"]}


def test_map_null_data_is_empty_string(jenv, storage):
    assert resolve_payload({"data": None}, jenv, {}, storage).data == ""


def test_map_structured_data_is_serialized(jenv, storage):
    descriptor = resolve_payload({"data": {"id": 7, "tags": ["a"]}}, jenv, {}, storage)
    assert descriptor.data == '{"id": 7, "tags": ["a"]}'


def test_map_number_data_is_stringified(jenv, storage):
    assert resolve_payload({"data": 12.5}, jenv, {}, storage).data == "12.5"


def test_map_values_are_rendered(jenv, storage):
    value = {"headers": {"trace": "{{ execution_id }}"}, "data": "Hi {{ name }}"}
    descriptor = resolve_payload(value, jenv, {"execution_id": "e-1", "name": "bob"}, storage)
    assert descriptor.headers == {"trace": ["e-1"]}
    assert descriptor.data == "Hi bob"


def test_map_data_is_not_read_from_storage(jenv, storage):
    descriptor = resolve_payload({"data": "kestra://company/team/request.json"}, jenv, {}, storage)
    assert descriptor.data == "kestra://company/team/request.json"


def test_map_non_mapping_headers_are_ignored(jenv, storage):
    descriptor = resolve_payload({"headers": ["not", "a", "map"], "data": "X"}, jenv, {}, storage)
    assert descriptor.headers == {}
    assert descriptor.data == "X"


def test_single_item_list(jenv, storage):
    descriptor = resolve_payload([{"headers": {"k": "v"}, "data": "only-one"}], jenv, {}, storage)
    assert descriptor.data == "only-one"
    assert descriptor.headers == {"k": ["v"]}


@pytest.mark.parametrize("value", [[], [{"data": "only-one"}, {"data": "two"}], [{}, {}, {}]])
def test_list_must_have_exactly_one_item(jenv, storage, value):
    with pytest.raises(InvalidInputError, match="exactly one item"):
        resolve_payload(value, jenv, {}, storage)


@pytest.mark.parametrize("value", [["not-a-map"], [1], [["nested"]], [None]])
def test_list_item_must_be_a_map(jenv, storage, value):
    with pytest.raises(InvalidInputError, match="must be a map"):
        resolve_payload(value, jenv, {}, storage)


@pytest.mark.parametrize("value", [42, 3.5, True, None, b"bytes"])
def test_unsupported_types(jenv, storage, value):
    with pytest.raises(InvalidInputError, match="Unsupported 'from' type"):
        resolve_payload(value, jenv, {}, storage)


def test_invalid_input_is_a_value_error(jenv, storage):
    with pytest.raises(ValueError):
        resolve_payload(["a", "b"], jenv, {}, storage)


def test_classify_source_shapes(jenv):
    assert classify_source("hi", jenv, {}) == TextSource("hi")
    assert classify_source("kestra://ns/f.txt", jenv, {}) == StorageSource("kestra://ns/f.txt")
    assert classify_source({"data": "x"}, jenv, {}) == MapSource({"data": "x"})
    assert classify_source(({"data": "x"},), jenv, {}) == MapSource({"data": "x"})


def test_undefined_variable_is_invalid_input(jenv, storage):
    with pytest.raises(InvalidInputError, match="Template rendering error"):
        resolve_payload("Hello {{ missing }}", jenv, {}, storage)


@pytest.mark.parametrize(
    "value",
    [{"headers": {"k": b"\xff"}}, {"headers": {"k": [b"ok", b"\xfe"]}}, {"data": b"\xff\x00"}],
)
def test_map_non_utf8_bytes_are_invalid_input(jenv, storage, value):
    with pytest.raises(InvalidInputError, match="not valid UTF-8"):
        resolve_payload(value, jenv, {}, storage)


def test_map_utf8_bytes_are_decoded(jenv, storage):
    descriptor = resolve_payload({"headers": {"k": "✓".encode("utf-8")}, "data": b"raw"}, jenv, {}, storage)
    assert descriptor.headers == {"k": ["✓"]}
    assert descriptor.data == "raw"
