"""Minimal big-endian NBT reader used when the structured parse path fails.

Only what Sponge schematics need is decoded into Python values: integers,
strings, byte/int/long arrays, lists and compounds. Floats and doubles are
consumed and returned as ``None``.
"""

from __future__ import annotations

import struct

TAG_END = 0
TAG_BYTE = 1
TAG_SHORT = 2
TAG_INT = 3
TAG_LONG = 4
TAG_FLOAT = 5
TAG_DOUBLE = 6
TAG_BYTE_ARRAY = 7
TAG_STRING = 8
TAG_LIST = 9
TAG_COMPOUND = 10
TAG_INT_ARRAY = 11
TAG_LONG_ARRAY = 12


class NBTError(ValueError):
    pass


class TagReader:
    __slots__ = ("data", "offset")

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.offset = 0

    def read_bytes(self, size: int) -> bytes:
        if size < 0:
            raise NBTError("negative length")
        end = self.offset + size
        if end > len(self.data):
            raise NBTError("unexpected EOF")
        chunk = self.data[self.offset : end]
        self.offset = end
        return chunk

    def _unpack(self, fmt: str, size: int) -> int:
        return struct.unpack(fmt, self.read_bytes(size))[0]

    def read_u8(self) -> int:
        return self._unpack(">B", 1)

    def read_i32(self) -> int:
        return self._unpack(">i", 4)

    def read_string(self) -> str:
        length = self._unpack(">H", 2)
        return self.read_bytes(length).decode("utf-8")

    def read_payload(self, tag: int):
        if tag == TAG_BYTE:
            return self._unpack(">b", 1)
        if tag == TAG_SHORT:
            return self._unpack(">h", 2)
        if tag == TAG_INT:
            return self.read_i32()
        if tag == TAG_LONG:
            return self._unpack(">q", 8)
        if tag == TAG_FLOAT:
            self.read_bytes(4)
            return None
        if tag == TAG_DOUBLE:
            self.read_bytes(8)
            return None
        if tag == TAG_BYTE_ARRAY:
            return self.read_bytes(self.read_i32())
        if tag == TAG_STRING:
            return self.read_string()
        if tag == TAG_LIST:
            inner = self.read_u8()
            length = self.read_i32()
            if length < 0:
                raise NBTError("negative list length")
            return [self.read_payload(inner) for _ in range(length)]
        if tag == TAG_COMPOUND:
            compound: dict[str, object] = {}
            while True:
                child = self.read_u8()
                if child == TAG_END:
                    return compound
                name = self.read_string()
                compound[name] = self.read_payload(child)
        if tag == TAG_INT_ARRAY:
            length = self.read_i32()
            return list(struct.unpack(f">{length}i", self.read_bytes(4 * length)))
        if tag == TAG_LONG_ARRAY:
            length = self.read_i32()
            return list(struct.unpack(f">{length}q", self.read_bytes(8 * length)))
        raise NBTError(f"unknown tag {tag}")


def read_root(data: bytes) -> tuple[str, dict]:
    """Parse an uncompressed NBT document; returns ``(root_name, root_compound)``."""
    reader = TagReader(data)
    tag = reader.read_u8()
    if tag != TAG_COMPOUND:
        raise NBTError(f"unexpected root tag: {tag} (expected compound)")
    name = reader.read_string()
    root = reader.read_payload(TAG_COMPOUND)
    return name, root
