"""
Write-once variable store shared across a session.
"""

import logging
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

logger = logging.getLogger(__name__)


class VariableStore:
    """
    Mapping of variable name to string value.

    A variable counts as bound only when its value is non-empty. Once bound
    it is never overwritten or removed for the rest of the session.
    """

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._values: dict[str, str] = {
            name: value for name, value in (initial or {}).items() if value
        }

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.is_bound(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def get(self, name: str, default: str = "") -> str:
        """Get a variable's value, or `default` when unbound."""
        return self._values.get(name) or default

    def is_bound(self, name: str) -> bool:
        return bool(self._values.get(name))

    def all_bound(self, names: Iterable[str]) -> bool:
        """Check that every name has a non-empty value (vacuously true for none)."""
        return all(self.is_bound(name) for name in names)

    def missing(self, names: Iterable[str]) -> list[str]:
        return [name for name in names if not self.is_bound(name)]

    def bind(self, name: str, value: str) -> bool:
        """
        Bind a variable.

        Args:
            name: Variable name (case-sensitive).
            value: Non-empty string value.

        Returns:
            True if the variable was bound, False if it already had a value.

        Raises:
            ValueError: If the value is empty.
        """
        if not value:
            raise ValueError(f"Refusing to bind '{name}' to an empty value")
        if self.is_bound(name):
            if self._values[name] != value:
                logger.warning(f"Variable '{name}' is already bound; ignoring new value")
            return False
        self._values[name] = value
        return True

    def snapshot(self) -> Mapping[str, str]:
        """Get a read-only copy of the current bindings."""
        return MappingProxyType(dict(self._values))

    def to_dict(self) -> dict[str, str]:
        return dict(self._values)
