from typing import Optional, Any
from collections.abc import Iterator, Mapping, MutableMapping
from .exceptions import InvalidLabelError, LabelNotFoundError
from .validators import is_valid_label

SECRETS_FIELD = 'secrets'
DEFAULT_LABEL_FIELD = 'defaultLabel'


class Vault(MutableMapping[str, str]):
    """Vault dict-like object.

    Maps a label to its persisted secret envelope (plaintext Base32 or an
    ``enc:v1:`` AES-GCM envelope) and keeps a ``default_label`` pointer used
    when a request names no label.

    The default label always names a stored label:
    - storing a label while no default is set makes it the default.
    - deleting the default label moves the default to the first remaining
      label, or clears it when the vault becomes empty.
    """

    def __init__(
        self,
        secrets: Optional[Mapping[str, str]] = None,
        default_label: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None
    ) -> None:
        self._secrets: dict[str, str] = dict(secrets or {})
        self._default: Optional[str] = None
        # unknown top-level fields, preserved across a round trip
        self._extra: dict[str, Any] = dict(extra or {})
        if default_label in self._secrets:
            self._default = default_label
        elif default_label is not None:
            # dangling pointer
            self._repair_default()

    def __repr__(self) -> str:
        # envelopes never appear in repr.
        return (
            f'<Vault [labels:{sorted(self._secrets)}, '
            f'default:{self._default!r}]>'
        )

    def _repair_default(self) -> None:
        if self._default in self._secrets:
            return
        self._default = next(iter(self._secrets), None)

    # --- Properties ---

    @property
    def default_label(self) -> Optional[str]:
        return self._default

    @default_label.setter
    def default_label(self, label: Optional[str]) -> None:
        if label is not None and label not in self._secrets:
            raise LabelNotFoundError(f"Label {label!r} not found")
        self._default = label

    @property
    def labels(self) -> list[str]:
        """Stored labels in alphabetical order."""
        return sorted(self._secrets)

    @property
    def empty(self) -> bool:
        return not self._secrets

    # --- Magic Methods ---

    def __len__(self) -> int:
        return len(self._secrets)

    def __iter__(self) -> Iterator[str]:
        return iter(self._secrets)

    def __contains__(self, label: object) -> bool:
        return label in self._secrets

    def __getitem__(self, label: str) -> str:
        return self._secrets[label]

    def __setitem__(self, label: str, envelope: str) -> None:
        if not is_valid_label(label):
            raise InvalidLabelError(
                f"Invalid label {label!r}: use 2-32 lowercase letters, "
                "digits, '_' or '-'"
            )
        self._secrets[label] = envelope
        if self._default is None:
            self._default = label

    def __delitem__(self, label: str) -> None:
        del self._secrets[label]
        if self._default == label:
            self._default = None
            self._repair_default()

    def replace_envelope(self, label: str, envelope: str) -> None:
        """Swap the envelope of an existing label, e.g. after re-encryption."""
        if label not in self._secrets:
            raise LabelNotFoundError(f"Label {label!r} not found")
        self._secrets[label] = envelope

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Vault):
            return NotImplemented
        return (
            self._secrets == other._secrets
            and self._default == other._default
        )

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        """Return the persisted form: ``{"secrets": ..., "defaultLabel": ...}``."""
        data = dict(self._extra)
        data[SECRETS_FIELD] = dict(self._secrets)
        data[DEFAULT_LABEL_FIELD] = self._default
        return data

    @classmethod
    def from_dict(cls, data: Any) -> 'Vault':
        """Build a Vault from its persisted form.

        Tolerates legacy or damaged entries: a missing or non-mapping
        ``secrets`` becomes empty, non-string envelopes are dropped and a
        dangling ``defaultLabel`` is repaired.
        """
        if not isinstance(data, Mapping):
            return cls()
        raw = data.get(SECRETS_FIELD)
        secrets = {}
        if isinstance(raw, Mapping):
            secrets = {
                str(label): value for label, value in raw.items()
                if isinstance(value, str)
            }
        default = data.get(DEFAULT_LABEL_FIELD)
        extra = {
            k: v for k, v in data.items()
            if k not in (SECRETS_FIELD, DEFAULT_LABEL_FIELD)
        }
        return cls(
            secrets=secrets,
            default_label=default if isinstance(default, str) else None,
            extra=extra
        )


Snapshot = dict[str, Vault]
"""Full in-memory mapping of user identifier to that user's Vault."""


def snapshot_from_dict(data: Mapping[str, Any]) -> Snapshot:
    return {str(user_id): Vault.from_dict(entry) for user_id, entry in data.items()}


def snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    return {user_id: vault.to_dict() for user_id, vault in snapshot.items()}
