"""Expected correlations between the latent components of two relatives.

The default table covers the usual twin strata. Additive genetic (A) and
dominance (D) components correlate 1 in monozygotic pairs and 0.5 / 0.25 in
dizygotic pairs; the common environment (C) correlates 1 whatever the
zygosity; unique environment (E) is uncorrelated by definition.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Tuple, Union

from .errors import TwinModelError, UnknownGroupError

__all__ = [
    "ComponentKind",
    "Sex",
    "RelatednessEntry",
    "RelatednessTable",
    "DEFAULT_TABLE",
    "lookup",
    "normalize_label",
]


class ComponentKind(str, Enum):
    """Variance source of a latent component."""

    A = "A"
    C = "C"
    D = "D"
    E = "E"

    @classmethod
    def parse(cls, value: Union["ComponentKind", str]) -> "ComponentKind":
        if isinstance(value, cls):
            return value
        key = str(value).strip().upper()
        try:
            return cls(key)
        except ValueError:
            raise TwinModelError(f"Unknown component kind: {value!r}") from None


class Sex(str, Enum):
    MALE = "M"
    FEMALE = "F"

    @classmethod
    def parse(cls, value: Union["Sex", str]) -> "Sex":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if key in ("m", "male"):
            return cls.MALE
        if key in ("f", "female"):
            return cls.FEMALE
        raise TwinModelError(f"Unknown sex: {value!r}")


@dataclass(frozen=True)
class RelatednessEntry:
    """Cross-twin correlations of one group, plus the sex of each twin."""

    a: float
    d: float
    c: float = 1.0
    sexes: Optional[Tuple[Sex, Sex]] = None

    def __post_init__(self) -> None:
        for name in ("a", "d", "c"):
            value = float(getattr(self, name))
            if not 0.0 <= value <= 1.0:
                raise TwinModelError(f"Relatedness coefficient {name}={value} is outside [0, 1]")
            object.__setattr__(self, name, value)
        if self.sexes is not None:
            if len(self.sexes) != 2:
                raise TwinModelError("sexes must name exactly one sex per twin")
            object.__setattr__(self, "sexes", tuple(Sex.parse(s) for s in self.sexes))

    def coefficient(self, kind: Union[ComponentKind, str]) -> float:
        kind = ComponentKind.parse(kind)
        if kind is ComponentKind.E:
            return 0.0
        return getattr(self, kind.value.lower())


_DEFAULT_ENTRIES: Dict[str, RelatednessEntry] = {
    "MZ": RelatednessEntry(a=1.0, d=1.0),
    "DZ": RelatednessEntry(a=0.5, d=0.25),
    "MZM": RelatednessEntry(a=1.0, d=1.0, sexes=(Sex.MALE, Sex.MALE)),
    "MZF": RelatednessEntry(a=1.0, d=1.0, sexes=(Sex.FEMALE, Sex.FEMALE)),
    "DZM": RelatednessEntry(a=0.5, d=0.25, sexes=(Sex.MALE, Sex.MALE)),
    "DZF": RelatednessEntry(a=0.5, d=0.25, sexes=(Sex.FEMALE, Sex.FEMALE)),
    # Opposite-sex pairs are coded with the male twin first.
    "DOS": RelatednessEntry(a=0.5, d=0.25, sexes=(Sex.MALE, Sex.FEMALE)),
}


def normalize_label(label: object) -> str:
    normalized = str(label).strip().upper()
    if not normalized:
        raise UnknownGroupError("group labels cannot be empty")
    return normalized


class RelatednessTable:
    """Immutable mapping from group label to :class:`RelatednessEntry`."""

    def __init__(self, entries: Mapping[str, RelatednessEntry]) -> None:
        self._entries = MappingProxyType({normalize_label(k): v for k, v in entries.items()})

    def __getitem__(self, label: str) -> RelatednessEntry:
        return self.entry(label)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, label: object) -> bool:
        try:
            return normalize_label(label) in self._entries
        except UnknownGroupError:
            return False

    def entry(self, label: str) -> RelatednessEntry:
        key = normalize_label(label)
        if key not in self._entries:
            known = ", ".join(self._entries)
            raise UnknownGroupError(f"Unknown group '{label}'; expected one of: {known}")
        return self._entries[key]

    def lookup(self, kind: Union[ComponentKind, str], group: object) -> float:
        """Return the cross-twin correlation of ``kind`` in ``group``.

        ``group`` may be a label or a resolved group; resolved groups carry
        their own entry, which takes precedence over the table.
        """
        entry = getattr(group, "entry", None)
        if not isinstance(entry, RelatednessEntry):
            entry = self.entry(getattr(group, "label", group))
        return entry.coefficient(kind)

    def extend(
        self,
        label: str,
        *,
        a: float,
        d: float,
        c: float = 1.0,
        sexes: Optional[Tuple[Union[Sex, str], Union[Sex, str]]] = None,
    ) -> "RelatednessTable":
        """Return a copy of the table with one more group."""
        key = normalize_label(label)
        if key in self._entries:
            raise TwinModelError(f"Group '{key}' is already defined")
        entries = dict(self._entries)
        entries[key] = RelatednessEntry(a=a, d=d, c=c, sexes=sexes)
        return RelatednessTable(entries)

    def __repr__(self) -> str:
        return f"RelatednessTable({sorted(self._entries)})"


DEFAULT_TABLE = RelatednessTable(_DEFAULT_ENTRIES)


def lookup(kind: Union[ComponentKind, str], group: object, table: RelatednessTable = DEFAULT_TABLE) -> float:
    """Module-level shortcut for :meth:`RelatednessTable.lookup`."""
    return table.lookup(kind, group)
