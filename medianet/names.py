"""Hierarchical short names that identify published media."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace

SCHEME = "qr://"

# Width in bits of every field as it travels on the wire.
_FIELD_BITS = {
    "resource_id": 64,
    "sender_id": 32,
    "source_id": 8,
    "media_time": 32,
    "fragment_id": 8,
}


@dataclass(frozen=True, order=True)
class ShortName:
    """Name of a media chunk: resource / sender / source / media time / fragment.

    Names order field by field in that sequence, so a name with only a
    resource set sorts before every more specific name under it.
    """

    resource_id: int = 0
    sender_id: int = 0
    source_id: int = 0
    media_time: int = 0
    fragment_id: int = 0

    def __post_init__(self) -> None:
        for field in fields(self):
            value = getattr(self, field.name)
            bits = _FIELD_BITS[field.name]
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"{field.name} must be an integer")
            if not 0 <= value < (1 << bits):
                raise ValueError(f"{field.name}={value} does not fit in {bits} bits")

    @classmethod
    def from_string(cls, text: str) -> ShortName:
        """Parse ``qr://<resource>[/<sender>[/<source>[/<time>[/<fragment>]]]][/]``."""
        if not text.startswith(SCHEME):
            raise ValueError(f"short name must start with {SCHEME!r}: {text!r}")
        body = text[len(SCHEME):]
        if body.endswith("/"):
            body = body[:-1]
        parts = body.split("/") if body else []
        if not 1 <= len(parts) <= len(_FIELD_BITS):
            raise ValueError(f"short name needs 1 to 5 components: {text!r}")
        values = []
        for part in parts:
            if not (part.isascii() and part.isdigit()):
                raise ValueError(f"short name component is not an integer: {part!r}")
            values.append(int(part))
        return cls(*values)

    def with_fragment(self, fragment_id: int) -> ShortName:
        """Return a copy of this name with another fragment id."""
        return replace(self, fragment_id=fragment_id)

    def __str__(self) -> str:
        return (
            f"{SCHEME}{self.resource_id}/{self.sender_id}/{self.source_id}"
            f"/{self.media_time}/{self.fragment_id}"
        )