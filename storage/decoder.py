"""Decoder for the self-describing data section format.

Every value starts with a control byte:

    [type:3 bits][size:5 bits]

Type 0 means "extended": the real type is the next byte + 7. A size of
29, 30 or 31 means the size continues in the next 1, 2 or 3 bytes, added to
29, 285 or 65821 respectively. Byte order after the control byte:

    [control][extended type?][size bytes?][payload]

Pointers (type 1) reuse the size bits: bits 3-4 select how many bytes follow
and bits 0-2 are the high bits of the pointer value. A pointer refers to an
offset relative to the section start (``pointer_base``), never to its own
position. Decoding a pointer returns the target's value.

Pointers may share targets, so one decode call may visit at most as many
values as the buffer has bytes.

Struct format reference (https://docs.python.org/3/library/struct.html):
    >  = big-endian byte order
    i  = signed int (4 bytes)
    f  = float (4 bytes)
    d  = double (8 bytes)
"""

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from exceptions import InvalidDatabaseError
from storage.buffer import Buffer

# Bases added to the extended size bytes
SIZE_BASE_1 = 29
SIZE_BASE_2 = 285
SIZE_BASE_3 = 65821

# Bases added to pointer values, by pointer size class
POINTER_BASES = (0, 2048, 526336, 0)

# Nested containers plus pointer hops allowed before a value is rejected
DEFAULT_MAX_DEPTH = 256


class DataType(IntEnum):
    """Type numbers of the data section encoding."""

    EXTENDED = 0
    POINTER = 1
    UTF8_STRING = 2
    DOUBLE = 3
    BYTES = 4
    UINT16 = 5
    UINT32 = 6
    MAP = 7
    INT32 = 8
    UINT64 = 9
    UINT128 = 10
    ARRAY = 11
    DATA_CACHE_CONTAINER = 12
    END_MARKER = 13
    BOOLEAN = 14
    FLOAT = 15


# Maximum payload width in bytes for each numeric type
NUMERIC_WIDTHS = {
    DataType.UINT16: 2,
    DataType.UINT32: 4,
    DataType.INT32: 4,
    DataType.UINT64: 8,
    DataType.UINT128: 16,
    DataType.FLOAT: 4,
    DataType.DOUBLE: 8,
}


@dataclass
class _DecodeState:
    """Per-call bookkeeping shared by the recursive decode."""

    budget: int  # Values one call may visit; bounded by the buffer size
    values: int = 0
    pointer_chain: set[int] = field(default_factory=set)  # Targets of the pointers being followed


class Decoder:
    """Decodes values from one section of a database buffer.

    ``pointer_base`` is the absolute offset pointers are relative to: the data
    section start for records, the byte after the marker for metadata. All
    offsets taken and returned by ``decode`` are relative to it as well.

    The decoder keeps no state between calls, so one instance can serve any
    number of concurrent lookups.
    """

    def __init__(self, buffer: Buffer, pointer_base: int = 0, max_depth: int = DEFAULT_MAX_DEPTH):
        self._buffer = buffer
        self.pointer_base = pointer_base
        self.max_depth = max_depth

    def decode(self, offset: int) -> tuple[Any, int]:
        """Decode the value at ``offset``.

        Returns the value and the offset of the byte after it.
        """
        value, next_offset = self._decode(self.pointer_base + offset, 0, _DecodeState(budget=self._buffer.size))
        return value, next_offset - self.pointer_base

    def decode_value(self, offset: int) -> Any:
        """Decode the value at ``offset``, discarding the next offset."""
        return self.decode(offset)[0]

    def _decode(self, offset: int, depth: int, state: _DecodeState) -> tuple[Any, int]:
        if depth > self.max_depth:
            raise InvalidDatabaseError(f"Maximum data structure depth ({self.max_depth}) exceeded at offset {offset}")

        ctrl = self._buffer.read_byte(offset)
        state.values += 1
        if state.values > state.budget:
            raise InvalidDatabaseError(
                f"Decode exceeded its budget of {state.budget} values at offset {offset}; "
                "pointers in the data section fan out"
            )
        offset += 1
        type_num = ctrl >> 5

        if type_num == DataType.POINTER:
            target, offset = self._decode_pointer(ctrl, offset)
            if target in state.pointer_chain:
                raise InvalidDatabaseError(f"Pointer cycle detected at offset {target}")
            state.pointer_chain.add(target)
            try:
                value, _ = self._decode(target, depth + 1, state)
            finally:
                state.pointer_chain.discard(target)
            # Continue after the pointer, not after its target
            return value, offset

        if type_num == DataType.EXTENDED:
            ext = self._buffer.read_byte(offset)
            offset += 1
            type_num = ext + 7
            if type_num < DataType.INT32 or type_num > DataType.FLOAT:
                raise InvalidDatabaseError(f"Invalid extended type {ext} at offset {offset - 1}")

        size, offset = self._size_from_ctrl(ctrl, offset)
        data_type = DataType(type_num)

        if data_type == DataType.MAP:
            return self._decode_map(size, offset, depth, state)
        if data_type == DataType.ARRAY:
            return self._decode_array(size, offset, depth, state)
        if data_type == DataType.DATA_CACHE_CONTAINER:
            # The cached value follows the container's control bytes
            return self._decode(offset, depth + 1, state)
        if data_type == DataType.BOOLEAN:
            if size > 1:
                raise InvalidDatabaseError(f"Invalid boolean size {size} at offset {offset}")
            return size == 1, offset
        if data_type == DataType.END_MARKER:
            raise InvalidDatabaseError(f"Unexpected end marker at offset {offset - 1}")

        payload = self._buffer.read(offset, size)
        offset += size

        if data_type == DataType.UTF8_STRING:
            try:
                return payload.decode("utf-8"), offset
            except UnicodeDecodeError as e:
                raise InvalidDatabaseError(f"Invalid UTF-8 string at offset {offset - size}: {e}") from e
        if data_type == DataType.BYTES:
            return payload, offset

        return self._decode_number(data_type, payload), offset

    def _decode_pointer(self, ctrl: int, offset: int) -> tuple[int, int]:
        """Return the absolute pointer target and the offset after the pointer."""
        size_class = (ctrl >> 3) & 0x3
        length = size_class + 1
        raw = self._buffer.read(offset, length)
        offset += length

        if size_class == 3:
            value = int.from_bytes(raw, "big")
        else:
            value = ((ctrl & 0x7) << (8 * length)) | int.from_bytes(raw, "big")
        return self.pointer_base + value + POINTER_BASES[size_class], offset

    def _size_from_ctrl(self, ctrl: int, offset: int) -> tuple[int, int]:
        size = ctrl & 0x1F
        if size < SIZE_BASE_1:
            return size, offset

        length = size - 28
        extra = int.from_bytes(self._buffer.read(offset, length), "big")
        offset += length

        if length == 1:
            return SIZE_BASE_1 + extra, offset
        if length == 2:
            return SIZE_BASE_2 + extra, offset
        return SIZE_BASE_3 + extra, offset

    def _decode_map(self, size: int, offset: int, depth: int, state: _DecodeState) -> tuple[dict, int]:
        result = {}
        for _ in range(size):
            key, offset = self._decode(offset, depth + 1, state)
            if not isinstance(key, str):
                raise InvalidDatabaseError(f"Map key must be a string, got {type(key).__name__}")
            value, offset = self._decode(offset, depth + 1, state)
            result[key] = value
        return result, offset

    def _decode_array(self, size: int, offset: int, depth: int, state: _DecodeState) -> tuple[list, int]:
        result = []
        for _ in range(size):
            value, offset = self._decode(offset, depth + 1, state)
            result.append(value)
        return result, offset

    def _decode_number(self, data_type: DataType, payload: bytes) -> int | float:
        width = NUMERIC_WIDTHS[data_type]
        if len(payload) > width:
            raise InvalidDatabaseError(
                f"Payload of {len(payload)} bytes exceeds the {width}-byte width of {data_type.name}"
            )

        if data_type == DataType.DOUBLE:
            return struct.unpack(">d", payload.rjust(8, b"\x00"))[0]
        if data_type == DataType.FLOAT:
            return struct.unpack(">f", payload.rjust(4, b"\x00"))[0]
        if data_type == DataType.INT32:
            return struct.unpack(">i", payload.rjust(4, b"\x00"))[0]
        return int.from_bytes(payload, "big")
