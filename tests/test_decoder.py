"""Tests for the data section decoder."""

import struct

import pytest

from exceptions import InvalidDatabaseError, TruncatedDataError
from mmdb_builder import Pointer, Raw, Typed, encode, encode_pointer
from storage.buffer import Buffer
from storage.decoder import DataType, Decoder


def decoder_for(data: bytes, **kwargs) -> Decoder:
    return Decoder(Buffer.from_bytes(data), **kwargs)


def place(size: int, chunks: dict[int, bytes]) -> bytes:
    """Build a buffer of ``size`` zero bytes with chunks written at offsets."""
    data = bytearray(size)
    for offset, chunk in chunks.items():
        data[offset : offset + len(chunk)] = chunk
    return bytes(data)


class TestScalars:
    """Decoding of scalar types."""

    @pytest.mark.parametrize(
        "value",
        ["", "hello", "Königreich", "ロンドン", b"", b"\x00\xff\x10", True, False, 0, 1, 255, 2**32 - 1],
    )
    def test_native_values(self, value):
        decoder = decoder_for(encode(value))
        assert decoder.decode_value(0) == value

    def test_bool_is_bool(self):
        assert decoder_for(encode(True)).decode_value(0) is True

    def test_double(self):
        assert decoder_for(encode(-0.0931)).decode_value(0) == -0.0931

    def test_float(self):
        data = encode(Typed(DataType.FLOAT, 1.5))
        assert data[:2] == b"\x04\x08"
        assert decoder_for(data).decode_value(0) == 1.5

    def test_uint16(self):
        assert decoder_for(encode(Typed(DataType.UINT16, 819))).decode_value(0) == 819

    def test_uint64(self):
        assert decoder_for(encode(Typed(DataType.UINT64, 2**64 - 1))).decode_value(0) == 2**64 - 1

    def test_uint128(self):
        assert decoder_for(encode(Typed(DataType.UINT128, 2**128 - 1))).decode_value(0) == 2**128 - 1

    def test_zero_length_uint32(self):
        # Control byte only: uint32 with an empty payload
        assert decoder_for(b"\xc0").decode_value(0) == 0

    def test_shortened_uint32_zero_extends(self):
        # uint32, 2-byte payload 0x0100
        assert decoder_for(b"\xc2\x01\x00").decode_value(0) == 256

    def test_int32_negative(self):
        data = b"\x04\x01" + struct.pack(">i", -2)
        assert decoder_for(data).decode_value(0) == -2

    def test_int32_min(self):
        data = b"\x04\x01\x80\x00\x00\x00"
        assert decoder_for(data).decode_value(0) == -(2**31)

    def test_int32_short_payload_is_positive(self):
        # A 2-byte payload is padded to 32 bits before the sign is applied
        assert decoder_for(b"\x02\x01\xff\xff").decode_value(0) == 65535

    def test_int32_positive_via_encoder(self):
        assert decoder_for(encode(-1234567)).decode_value(0) == -1234567

    def test_next_offset(self):
        data = encode("abc") + encode(7)
        decoder = decoder_for(data)
        value, offset = decoder.decode(0)
        assert value == "abc"
        assert offset == 4
        assert decoder.decode(offset) == (7, len(data))


class TestSizes:
    """Extended payload sizes."""

    @pytest.mark.parametrize("length", [28, 29, 284, 285, 65820, 65821, 70000])
    def test_string_lengths(self, length: int):
        value = "a" * length
        assert decoder_for(encode(value)).decode_value(0) == value

    def test_one_byte_size_encoding(self):
        data = encode("a" * 29)
        assert data[:2] == bytes([0x5D, 0x00])

    def test_two_byte_size_encoding(self):
        data = encode("a" * 300)
        assert data[:3] == bytes([0x5E, 0x00, 15])

    def test_three_byte_size_encoding(self):
        data = encode(b"x" * 65822)
        assert data[:4] == bytes([0x9F, 0x00, 0x00, 0x01])


class TestContainers:
    def test_map(self):
        value = {"en": "London", "geoname_id": 2643743, "nested": {"flag": True}}
        assert decoder_for(encode(value)).decode_value(0) == value

    def test_array(self):
        value = ["a", 1, [2.5, False], {"k": "v"}]
        assert decoder_for(encode(value)).decode_value(0) == value

    def test_empty_containers(self):
        assert decoder_for(encode({})).decode_value(0) == {}
        assert decoder_for(encode([])).decode_value(0) == []

    def test_map_key_via_pointer(self):
        key = encode("name")
        data = key + encode({Pointer(0): "x"})
        assert decoder_for(data).decode_value(len(key)) == {"name": "x"}

    def test_map_key_must_be_string(self):
        data = b"\xe1" + encode(5) + encode("x")
        with pytest.raises(InvalidDatabaseError, match="Map key must be a string"):
            decoder_for(data).decode_value(0)

    def test_map_count_past_end(self):
        data = b"\xe3" + encode("a") + encode(1)
        with pytest.raises(TruncatedDataError):
            decoder_for(data).decode_value(0)

    def test_data_cache_container(self):
        data = b"\x00\x05" + encode("cached")
        decoder = decoder_for(data)
        assert decoder.decode(0) == ("cached", len(data))


class TestPointers:
    """Pointers resolve transparently to their targets."""

    def test_pointer_returns_target(self):
        target = encode({"iso_code": "GB"})
        data = target + encode(Pointer(0))
        decoder = decoder_for(data)
        value, offset = decoder.decode(len(target))
        assert value == {"iso_code": "GB"}
        # Decoding continues after the pointer, not after the target
        assert offset == len(data)

    def test_size_class_0(self):
        assert encode_pointer(0x5FF) == b"\x25\xff"
        data = place(0x700, {0: encode_pointer(0x5FF), 0x5FF: encode("x")})
        assert decoder_for(data).decode(0) == ("x", 2)

    def test_size_class_1(self):
        target = 2048 + 10
        pointer = encode_pointer(target)
        assert pointer == b"\x28\x00\x0a"
        data = place(target + 8, {0: pointer, target: encode("one")})
        assert decoder_for(data).decode(0) == ("one", 3)

    def test_size_class_2(self):
        target = 526336 + 4
        pointer = encode_pointer(target)
        assert pointer == b"\x30\x00\x00\x04"
        data = place(target + 8, {0: pointer, target: encode("two")})
        assert decoder_for(data).decode(0) == ("two", 4)

    def test_size_class_3(self):
        pointer = encode_pointer(10, size_class=3)
        assert pointer == b"\x38\x00\x00\x00\x0a"
        data = place(16, {0: pointer, 10: encode("three")})
        assert decoder_for(data).decode(0) == ("three", 5)

    def test_pointer_base(self):
        # Pointers are relative to the section start
        section = encode("inside") + encode(Pointer(0))
        data = b"\xff" * 5 + section
        decoder = decoder_for(data, pointer_base=5)
        assert decoder.decode(len(encode("inside"))) == ("inside", len(section))

    def test_chained_pointers_are_transparent(self):
        value = {"names": {"en": "England"}, "iso_code": "ENG"}
        data = encode(value)
        first = len(data)
        data += encode(Pointer(0))
        second = len(data)
        data += encode(Pointer(first))
        decoder = decoder_for(data)
        assert decoder.decode_value(second) == decoder.decode_value(0) == value

    def test_pointer_cycle(self):
        with pytest.raises(InvalidDatabaseError, match="cycle"):
            decoder_for(encode(Pointer(0))).decode_value(0)

    def test_pointer_past_end(self):
        with pytest.raises(TruncatedDataError):
            decoder_for(encode(Pointer(100))).decode_value(0)


class TestInvalidData:
    """Malformed encodings raise typed errors."""

    def test_end_marker(self):
        with pytest.raises(InvalidDatabaseError, match="end marker"):
            decoder_for(b"\x00\x06").decode_value(0)

    def test_end_marker_inside_array(self):
        with pytest.raises(InvalidDatabaseError):
            decoder_for(b"\x02\x04" + encode(1) + b"\x00\x06").decode_value(0)

    def test_invalid_extended_type(self):
        with pytest.raises(InvalidDatabaseError, match="extended type"):
            decoder_for(b"\x00\x00").decode_value(0)
        with pytest.raises(InvalidDatabaseError, match="extended type"):
            decoder_for(b"\x00\x09").decode_value(0)

    def test_boolean_size_too_large(self):
        with pytest.raises(InvalidDatabaseError, match="boolean"):
            decoder_for(b"\x02\x07").decode_value(0)

    def test_uint16_too_wide(self):
        with pytest.raises(InvalidDatabaseError, match="UINT16"):
            decoder_for(b"\xa3\x01\x02\x03").decode_value(0)

    def test_uint128_too_wide(self):
        with pytest.raises(InvalidDatabaseError, match="UINT128"):
            decoder_for(b"\x11\x03" + b"\x01" * 17).decode_value(0)

    def test_double_too_wide(self):
        with pytest.raises(InvalidDatabaseError, match="DOUBLE"):
            decoder_for(b"\x69" + b"\x00" * 9).decode_value(0)

    def test_invalid_utf8(self):
        with pytest.raises(InvalidDatabaseError, match="UTF-8"):
            decoder_for(b"\x42\xff\xfe").decode_value(0)

    def test_truncated_string(self):
        with pytest.raises(TruncatedDataError):
            decoder_for(encode("hello")[:-2]).decode_value(0)

    def test_truncated_size_bytes(self):
        with pytest.raises(TruncatedDataError):
            decoder_for(b"\x5e\x00").decode_value(0)

    def test_offset_past_end(self):
        with pytest.raises(TruncatedDataError):
            decoder_for(b"").decode_value(0)

    def test_depth_limit(self):
        nested: object = "leaf"
        for _ in range(5):
            nested = [nested]
        data = encode(nested)
        assert decoder_for(data, max_depth=5).decode_value(0) == nested
        with pytest.raises(InvalidDatabaseError, match="depth"):
            decoder_for(encode([nested]), max_depth=5).decode_value(0)

    def test_pointer_fan_out_is_bounded(self):
        # Each level is an array of two pointers to the level below, so the
        # decoded tree doubles in size per level while the file grows by 5 bytes
        data = encode("leaf")
        previous = 0
        for _ in range(40):
            level = len(data)
            data += encode([Pointer(previous), Pointer(previous)])
            previous = level
        with pytest.raises(InvalidDatabaseError, match="budget"):
            decoder_for(data).decode_value(previous)

    def test_shared_pointer_targets_within_budget(self):
        data = encode("England")
        top = len(data)
        data += encode([Pointer(0), Pointer(0)])
        assert decoder_for(data).decode_value(top) == ["England", "England"]

    def test_raw_passthrough(self):
        assert decoder_for(encode(Raw(b"\x43abc"))).decode_value(0) == "abc"


class TestDeterminism:
    def test_decoding_twice_gives_equal_trees(self):
        data = encode({"a": [1, {"b": "c"}], "d": Typed(DataType.UINT64, 2**40)})
        decoder = decoder_for(data)
        first = decoder.decode_value(0)
        second = decoder.decode_value(0)
        assert first == second
        assert first is not second
        assert first["a"] is not second["a"]
