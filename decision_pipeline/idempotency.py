"""
Decision Pipeline - Idempotency Keys.

Deterministic keys that let retried producers recognise an
action they already created. The canonical form is

    v1|<purpose>|<store>|<sku>|<qty>|<horizon>|<safety>|<hub>

hashed with SHA-256 (64 lowercase hex characters).
"""

import hashlib

KEY_VERSION = "v1"
DEFAULT_PURPOSE = "transfer.create"


class IdempotencyKey:
    """Value object wrapping a SHA-256 idempotency digest."""

    __slots__ = ("_value",)

    def __init__(self, value: str):
        value = value.strip().lower()
        if len(value) != 64 or any(c not in "0123456789abcdef" for c in value):
            raise ValueError(f"Not a SHA-256 hex digest: {value!r}")
        self._value = value

    @classmethod
    def from_signal(
        cls,
        store_id: str,
        sku: str,
        qty: int,
        horizon_days: int,
        safety_days: int,
        source_hub: str,
        purpose: str = DEFAULT_PURPOSE,
    ) -> "IdempotencyKey":
        """Build the key for a replenishment-style action."""
        return cls(hashlib.sha256(cls.canonical(
            store_id, sku, qty, horizon_days, safety_days, source_hub, purpose
        ).encode("utf-8")).hexdigest())

    @staticmethod
    def canonical(
        store_id: str,
        sku: str,
        qty: int,
        horizon_days: int,
        safety_days: int,
        source_hub: str,
        purpose: str = DEFAULT_PURPOSE,
    ) -> str:
        """Canonical pre-image. Strings trimmed, integers floored at 0."""
        parts = [
            KEY_VERSION,
            str(purpose).strip(),
            str(store_id).strip(),
            str(sku).strip(),
            str(max(0, int(qty))),
            str(max(0, int(horizon_days))),
            str(max(0, int(safety_days))),
            str(source_hub).strip(),
        ]
        return "|".join(parts)

    @property
    def value(self) -> str:
        return self._value

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"IdempotencyKey({self._value[:12]}...)"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, IdempotencyKey):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)
