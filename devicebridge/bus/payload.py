"""
Payload objects and message envelopes.

Every bus message is a msgpack envelope carrying one or more payload
objects (POs). A PO is a 32-bit type number plus opaque contents; the
type number is usually written in dotted form ``a.b.c.d``. Record POs in
this package carry msgpack-encoded maps.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

import msgpack

from ..core.errors import PayloadError

PO_TIMESERIES_READING = "2.0.9.1"
PO_METADATA = "2.0.3.1"
PO_XBOS_LIGHT = "2.1.1.1"


def from_dot_form(dotted: str) -> int:
    parts = dotted.strip().split(".")
    if len(parts) != 4:
        raise PayloadError(f"invalid dotted PO number {dotted!r}")
    try:
        octets = [int(p) for p in parts]
    except ValueError:
        raise PayloadError(f"invalid dotted PO number {dotted!r}") from None
    if any(o < 0 or o > 255 for o in octets):
        raise PayloadError(f"invalid dotted PO number {dotted!r}")
    a, b, c, d = octets
    return (a << 24) | (b << 16) | (c << 8) | d


def to_dot_form(ponum: int) -> str:
    return f"{(ponum >> 24) & 0xFF}.{(ponum >> 16) & 0xFF}.{(ponum >> 8) & 0xFF}.{ponum & 0xFF}"


def _parse_mask(df: str) -> tuple[int, int]:
    """Return (value, mask) for ``a.b.c.d`` or ``a.b.c.d/n``."""
    if "/" in df:
        dotted, bits_s = df.split("/", 1)
        try:
            bits = int(bits_s)
        except ValueError:
            raise PayloadError(f"invalid PO mask {df!r}") from None
        if bits < 0 or bits > 32:
            raise PayloadError(f"invalid PO mask {df!r}")
    else:
        dotted, bits = df, 32
    mask = (0xFFFFFFFF << (32 - bits)) & 0xFFFFFFFF
    return from_dot_form(dotted) & mask, mask


@dataclass(frozen=True)
class PayloadObject:
    ponum: int
    contents: bytes

    @property
    def dotted(self) -> str:
        return to_dot_form(self.ponum)

    def value(self) -> Any:
        """Decode msgpack contents."""
        try:
            return msgpack.unpackb(self.contents, raw=False)
        except (ValueError, TypeError, msgpack.UnpackException) as e:
            raise PayloadError(f"cannot decode contents: {e}", ponum=self.dotted) from e


def create_msgpack_po(dotted: str, obj: Any) -> PayloadObject:
    try:
        contents = msgpack.packb(obj, use_bin_type=True)
    except (TypeError, ValueError, OverflowError) as e:
        raise PayloadError(f"cannot encode {type(obj).__name__}: {e}", ponum=dotted) from e
    return PayloadObject(ponum=from_dot_form(dotted), contents=contents)


def pack_message(pos: Iterable[PayloadObject]) -> bytes:
    return msgpack.packb(
        {"pos": [{"ponum": po.ponum, "contents": po.contents} for po in pos]},
        use_bin_type=True,
    )


def unpack_message(data: bytes) -> list[PayloadObject]:
    """Parse an envelope. Raises PayloadError on anything malformed."""
    try:
        env = msgpack.unpackb(data, raw=False)
    except (ValueError, TypeError, msgpack.UnpackException) as e:
        raise PayloadError(f"malformed envelope: {e}") from e

    if not isinstance(env, dict) or not isinstance(env.get("pos"), list):
        raise PayloadError("malformed envelope: missing 'pos' list")

    pos: list[PayloadObject] = []
    for entry in env["pos"]:
        if not isinstance(entry, dict):
            raise PayloadError("malformed envelope: PO entry is not a map")
        ponum = entry.get("ponum")
        contents = entry.get("contents", b"")
        if not isinstance(ponum, int) or isinstance(ponum, bool):
            raise PayloadError("malformed envelope: PO number is not an integer")
        if not isinstance(contents, (bytes, bytearray)):
            raise PayloadError("malformed envelope: PO contents are not bytes")
        pos.append(PayloadObject(ponum=ponum & 0xFFFFFFFF, contents=bytes(contents)))
    return pos


def get_one_po(pos: Iterable[PayloadObject], df: str) -> Optional[PayloadObject]:
    """First PO matching dotted form ``df`` (``a.b.c.d`` or ``a.b.c.d/n``)."""
    value, mask = _parse_mask(df)
    for po in pos:
        if po.ponum & mask == value:
            return po
    return None
