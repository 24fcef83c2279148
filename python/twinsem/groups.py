"""Resolve observed zygosity/sex labels into ordered :class:`Group` values."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from .errors import DuplicateGroupError, UnknownGroupError
from .relatedness import (
    DEFAULT_TABLE,
    ComponentKind,
    RelatednessEntry,
    RelatednessTable,
    Sex,
    normalize_label,
)

__all__ = ["Group", "GroupDefinition", "GroupLike", "resolve", "resolve_from_data", "observed_order"]


@dataclass(frozen=True)
class GroupDefinition:
    """A group label with explicit relatedness metadata.

    Use this for strata the relatedness table does not know, or to override
    the table for one analysis.
    """

    label: str
    a: float
    d: float
    c: float = 1.0
    sexes: Optional[Tuple[Union[Sex, str], Union[Sex, str]]] = None

    def to_entry(self) -> RelatednessEntry:
        return RelatednessEntry(a=self.a, d=self.d, c=self.c, sexes=self.sexes)


@dataclass(frozen=True)
class Group:
    """A resolved stratum of twin pairs.

    ``position`` is the first-appearance index of the label among the
    observed labels it was resolved from.
    """

    label: str
    entry: RelatednessEntry
    position: int

    @property
    def sexes(self) -> Optional[Tuple[Sex, Sex]]:
        return self.entry.sexes

    def coefficient(self, kind: Union[ComponentKind, str]) -> float:
        return self.entry.coefficient(kind)

    def sex_of(self, twin: int) -> Optional[Sex]:
        if twin not in (1, 2):
            raise ValueError(f"twin index must be 1 or 2, got {twin}")
        if self.entry.sexes is None:
            return None
        return self.entry.sexes[twin - 1]

    def __str__(self) -> str:
        return self.label


GroupLike = Union[str, GroupDefinition, Group]


def _label_and_entry(item: GroupLike, table: RelatednessTable) -> Tuple[str, RelatednessEntry]:
    if isinstance(item, Group):
        return normalize_label(item.label), item.entry
    if isinstance(item, GroupDefinition):
        return normalize_label(item.label), item.to_entry()
    if item is None or (isinstance(item, float) and pd.isna(item)):
        raise UnknownGroupError("group labels cannot be missing")
    label = normalize_label(item)
    return label, table.entry(label)


def resolve(
    observed_labels: Iterable[GroupLike],
    table: RelatednessTable = DEFAULT_TABLE,
) -> Tuple[Group, ...]:
    """Resolve labels to groups, keeping their first-appearance order.

    Repeated labels collapse onto their first appearance as long as they carry
    the same relatedness metadata; conflicting metadata for one label raises
    :class:`DuplicateGroupError`. Unknown labels raise
    :class:`UnknownGroupError`.
    """
    seen: Dict[str, RelatednessEntry] = {}
    order: List[str] = []
    for item in observed_labels:
        label, entry = _label_and_entry(item, table)
        if label in seen:
            if seen[label] != entry:
                raise DuplicateGroupError(
                    f"Group '{label}' was given with conflicting relatedness metadata: "
                    f"{seen[label]} vs {entry}"
                )
            continue
        seen[label] = entry
        order.append(label)
    return tuple(Group(label, seen[label], i) for i, label in enumerate(order))


def observed_order(values: Union[pd.Series, Sequence[Any]], codes: Optional[Mapping[Any, str]] = None) -> List[str]:
    """Distinct labels of a data column in first-appearance order."""
    series = values if isinstance(values, pd.Series) else pd.Series(list(values))
    series = series.dropna()
    if codes is not None:
        unmapped = sorted({str(v) for v in series.unique() if v not in codes})
        if unmapped:
            raise UnknownGroupError(f"No group label given for codes: {', '.join(unmapped)}")
        series = series.map(codes)
    return list(dict.fromkeys(normalize_label(v) for v in pd.unique(series)))


def resolve_from_data(
    data: pd.DataFrame,
    column: str,
    *,
    codes: Optional[Mapping[Any, str]] = None,
    table: RelatednessTable = DEFAULT_TABLE,
) -> Tuple[Group, ...]:
    """Resolve the groups present in ``data[column]``.

    ``codes`` maps raw column values (e.g. ``1``/``2`` zygosity codes) to
    group labels. Rows with a missing group are ignored.
    """
    if column not in data.columns:
        raise ValueError(f"Grouping variable '{column}' not found in data")
    return resolve(observed_order(data[column], codes), table)
