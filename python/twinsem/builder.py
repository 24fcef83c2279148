"""Build :class:`StructuralSpecification` objects from a family and groups."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from .errors import GroupOrderMismatchError
from .families import (
    BuildOptions,
    ModelFamily,
    check_categories,
    check_identification,
    instantiate,
    template_for,
)
from .groups import Group, GroupLike, observed_order, resolve
from .relatedness import DEFAULT_TABLE, RelatednessTable
from .specification import StructuralSpecification

__all__ = [
    "BuildRequest",
    "build",
    "build_many",
    "check_group_order",
    "align",
]

logger = logging.getLogger(__name__)


def build(
    family: Union[ModelFamily, str],
    groups: Union[GroupLike, Iterable[GroupLike]],
    *,
    categories: Optional[int] = None,
    options: Optional[BuildOptions] = None,
    table: RelatednessTable = DEFAULT_TABLE,
) -> StructuralSpecification:
    """Build the twin model ``family`` for ``groups``.

    Parameters
    ----------
    family:
        A :class:`ModelFamily` or its name (``"ACE"``, ``"adex"``,
        ``"ACE-sex-limited"``, ...).
    groups:
        Group labels, :class:`GroupDefinition` objects or resolved groups, in
        the order the groups appear in the data.
    categories:
        Number of ordered categories for ``ACE-ORDINAL`` (``ACE-BINARY`` uses
        two). Must be ``None`` for continuous families.
    options:
        Phenotype naming, see :class:`BuildOptions`.
    table:
        Relatedness table used to resolve plain labels.

    Raises
    ------
    UnsupportedFamilyError, UnknownGroupError, DuplicateGroupError,
    InsufficientGroupsError, CategoryCountError
    """
    template = template_for(family)
    if isinstance(groups, (str, Group)) or not isinstance(groups, Iterable):
        groups = [groups]
    resolved = resolve(groups, table)
    categories = check_categories(template, categories)
    check_identification(template, resolved)

    logger.debug(
        "Building %s for groups %s (categories=%s)",
        template.family.value,
        [g.label for g in resolved],
        categories,
    )
    return instantiate(template, resolved, options or BuildOptions(), categories)


@dataclass(frozen=True)
class BuildRequest:
    """Arguments of one :func:`build` call."""

    family: Union[ModelFamily, str]
    groups: Tuple[GroupLike, ...]
    categories: Optional[int] = None
    options: Optional[BuildOptions] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "groups", tuple(self.groups))


def build_many(
    requests: Iterable[Union[BuildRequest, Mapping[str, Any]]],
    table: RelatednessTable = DEFAULT_TABLE,
) -> List[StructuralSpecification]:
    """Build several independent analyses; results follow request order."""
    specs = []
    for request in requests:
        if not isinstance(request, BuildRequest):
            request = BuildRequest(**request)
        specs.append(
            build(
                request.family,
                request.groups,
                categories=request.categories,
                options=request.options,
                table=table,
            )
        )
    return specs


def check_group_order(
    spec: StructuralSpecification,
    observed: Union[pd.Series, Sequence[Any]],
    codes: Optional[Mapping[Any, str]] = None,
) -> None:
    """Raise :class:`GroupOrderMismatchError` unless ``observed`` matches ``spec``.

    ``observed`` is a data column (or any sequence of labels); its distinct
    values in first-appearance order must equal the specification's group
    order. Engines that bind per-group values by position rely on this.
    """
    order = observed_order(observed, codes)
    expected = list(spec.group_labels)
    if order == expected:
        return
    if set(order) != set(expected):
        missing = sorted(set(expected) - set(order))
        extra = sorted(set(order) - set(expected))
        raise GroupOrderMismatchError(
            f"Data groups {order} do not match specification groups {expected} "
            f"(missing from data: {missing}, not in specification: {extra})"
        )
    raise GroupOrderMismatchError(
        f"Data groups appear in order {order} but the specification expects {expected}; "
        "rebuild with the data order or use align()"
    )


def align(
    spec: StructuralSpecification,
    observed: Union[pd.Series, Sequence[Any]],
    codes: Optional[Mapping[Any, str]] = None,
) -> StructuralSpecification:
    """Return ``spec`` with its groups reordered to match ``observed``."""
    order = observed_order(observed, codes)
    if order == list(spec.group_labels):
        return spec
    logger.debug("Reordering groups %s to data order %s", list(spec.group_labels), order)
    return spec.reorder(order)
