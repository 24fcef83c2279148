"""Model family templates.

Each family is described by a :class:`FamilyTemplate` record; one generic
:func:`instantiate` turns a template and the resolved groups into statements.
Families differ only in which between-pair component sits next to A (C or D),
and in the optional sibling-interaction, sex-limitation and threshold parts.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import (
    CategoryCountError,
    InsufficientGroupsError,
    TwinModelError,
    UnsupportedFamilyError,
)
from .groups import Group
from .relatedness import ComponentKind, Sex
from .specification import (
    Covariance,
    Fixed,
    Free,
    GroupValues,
    Intercept,
    LatentComponent,
    Loading,
    Regression,
    Statement,
    StructuralSpecification,
    Threshold,
    Value,
    Variance,
)

__all__ = [
    "ModelFamily",
    "FamilyTemplate",
    "BuildOptions",
    "TEMPLATES",
    "template_for",
    "check_identification",
    "instantiate",
]


class ModelFamily(str, Enum):
    ACE = "ACE"
    ADE = "ADE"
    ACEX = "ACEX"
    ADEX = "ADEX"
    ACE_SEX_LIMITED = "ACE-SEX-LIMITED"
    ACE_ORDINAL = "ACE-ORDINAL"
    ACE_BINARY = "ACE-BINARY"

    @classmethod
    def parse(cls, value: Union["ModelFamily", str]) -> "ModelFamily":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise UnsupportedFamilyError(f"Unsupported model family: {value!r}")
        key = value.strip().upper().replace("_", "-").replace(" ", "-")
        try:
            return cls(key)
        except ValueError:
            known = ", ".join(m.value for m in cls)
            raise UnsupportedFamilyError(
                f"Unsupported model family: {value!r}; expected one of: {known}"
            ) from None


@dataclass(frozen=True)
class FamilyTemplate:
    """Shape of a family: latent components plus optional model parts."""

    family: ModelFamily
    components: Tuple[ComponentKind, ComponentKind]
    sibling_interaction: bool = False
    sex_limited: bool = False
    ordinal: bool = False
    fixed_categories: Optional[int] = None

    @property
    def between_pair(self) -> ComponentKind:
        """The component modelled next to A (C or D)."""
        return self.components[1]


_A, _C, _D = ComponentKind.A, ComponentKind.C, ComponentKind.D

TEMPLATES: Dict[ModelFamily, FamilyTemplate] = {
    ModelFamily.ACE: FamilyTemplate(ModelFamily.ACE, (_A, _C)),
    ModelFamily.ADE: FamilyTemplate(ModelFamily.ADE, (_A, _D)),
    ModelFamily.ACEX: FamilyTemplate(ModelFamily.ACEX, (_A, _C), sibling_interaction=True),
    ModelFamily.ADEX: FamilyTemplate(ModelFamily.ADEX, (_A, _D), sibling_interaction=True),
    ModelFamily.ACE_SEX_LIMITED: FamilyTemplate(ModelFamily.ACE_SEX_LIMITED, (_A, _C), sex_limited=True),
    ModelFamily.ACE_ORDINAL: FamilyTemplate(ModelFamily.ACE_ORDINAL, (_A, _C), ordinal=True),
    ModelFamily.ACE_BINARY: FamilyTemplate(ModelFamily.ACE_BINARY, (_A, _C), ordinal=True, fixed_categories=2),
}


def template_for(family: Union[ModelFamily, str]) -> FamilyTemplate:
    return TEMPLATES[ModelFamily.parse(family)]


@dataclass(frozen=True)
class BuildOptions:
    """Naming of the two observed phenotypes.

    By default the phenotypes are ``phenotype`` followed by each twin suffix
    (``P1``/``P2``); ``variables`` overrides both names at once.
    """

    phenotype: str = "P"
    twin_suffixes: Tuple[str, str] = ("1", "2")
    variables: Optional[Tuple[str, str]] = None

    def __post_init__(self) -> None:
        names = self.phenotypes
        if len(names) != 2 or any(not n or not n.strip() for n in names):
            raise TwinModelError(f"two non-empty phenotype names are required, got {names!r}")
        if names[0] == names[1]:
            raise TwinModelError(f"twin phenotypes must have distinct names, got {names!r}")
        reserved = {f"{k.value}{t}" for k in ComponentKind for t in (1, 2)}
        clashes = sorted(set(names) & reserved)
        if clashes:
            raise TwinModelError(f"phenotype names clash with latent components: {clashes}")

    @property
    def phenotypes(self) -> Tuple[str, ...]:
        if self.variables is not None:
            return tuple(self.variables)
        return tuple(f"{self.phenotype}{s}" for s in self.twin_suffixes)


# ----------------------------------------------------------------------
# Identification
# ----------------------------------------------------------------------
def _pair_rank(groups: Sequence[Group], kinds: Sequence[ComponentKind]) -> int:
    matrix = np.array([[g.coefficient(k) for k in kinds] for g in groups], dtype=float)
    return int(np.linalg.matrix_rank(matrix))


def _check_pair_identified(template: FamilyTemplate, groups: Sequence[Group], context: str = "") -> None:
    labels = [g.label for g in groups]
    kinds = template.components
    if _pair_rank(groups, kinds) < 2:
        names = "/".join(k.value for k in kinds)
        raise InsufficientGroupsError(
            f"{template.family.value}{context}: groups {labels} cannot separate {names}; "
            "add groups with different relatedness (e.g. both MZ and DZ pairs)"
        )
    if template.between_pair is ComponentKind.D and all(g.coefficient(_D) == 1.0 for g in groups):
        raise InsufficientGroupsError(
            f"{template.family.value}{context}: at least one group with a dominance "
            f"correlation below 1 is required, got {labels}"
        )


def check_identification(template: FamilyTemplate, groups: Sequence[Group]) -> None:
    """Raise :class:`InsufficientGroupsError` when ``groups`` cannot identify the family."""
    if not groups:
        raise InsufficientGroupsError(f"{template.family.value}: at least one group is required")
    if not template.sex_limited:
        _check_pair_identified(template, groups)
        return

    unsexed = [g.label for g in groups if g.sexes is None]
    if unsexed:
        raise InsufficientGroupsError(
            f"{template.family.value}: groups {unsexed} carry no sex assignment; "
            "use sex-specific groups such as MZM, MZF, DZM, DZF, DOS"
        )
    for sex in (Sex.MALE, Sex.FEMALE):
        present = [g for g in groups if sex in g.sexes]
        if not present:
            continue
        same_sex = [g for g in present if g.sexes == (sex, sex)]
        if not same_sex:
            raise InsufficientGroupsError(
                f"{template.family.value}: {sex.name.lower()} paths need same-sex groups, "
                f"only {[g.label for g in present]} given"
            )
        _check_pair_identified(template, same_sex, context=f" ({sex.name.lower()})")


def check_categories(template: FamilyTemplate, categories: Optional[int]) -> Optional[int]:
    """Validate and return the category count the template will use."""
    if not template.ordinal:
        if categories is not None:
            raise CategoryCountError(f"{template.family.value} is not an ordinal family; categories must be None")
        return None
    if template.fixed_categories is not None:
        if categories is not None and categories != template.fixed_categories:
            raise CategoryCountError(
                f"{template.family.value} requires {template.fixed_categories} categories, got {categories}"
            )
        return template.fixed_categories
    if categories is None:
        raise CategoryCountError(f"{template.family.value} requires a category count")
    if isinstance(categories, bool) or not isinstance(categories, (int, np.integer)) or categories < 2:
        raise CategoryCountError(f"category count must be an integer >= 2, got {categories!r}")
    return int(categories)


# ----------------------------------------------------------------------
# Statement construction
# ----------------------------------------------------------------------
def _sex_suffix(sex: Sex) -> str:
    return "m" if sex is Sex.MALE else "f"


def _loading_value(template: FamilyTemplate, kind: ComponentKind, group: Group, twin: int) -> Value:
    label = kind.value.lower()
    if template.sex_limited:
        label += _sex_suffix(group.sex_of(twin))
    return Free(label)


def _residual_value(template: FamilyTemplate, group: Group, twin: int) -> Value:
    # Categories carry no information about the liability scale; t1 fixes
    # its location and a unit residual fixes its scale.
    if template.ordinal:
        return Fixed(1.0)
    if template.sex_limited:
        return Free(f"e{_sex_suffix(group.sex_of(twin))}2")
    return Free("e2")


def _per_group(groups: Sequence[Group], fn) -> GroupValues:
    return GroupValues((g.label, fn(g)) for g in groups)


def instantiate(
    template: FamilyTemplate,
    groups: Sequence[Group],
    options: BuildOptions,
    categories: Optional[int] = None,
) -> StructuralSpecification:
    """Compose the statements of ``template`` for ``groups``.

    Identification is not checked here; see :func:`check_identification`.
    """
    phenotypes = options.phenotypes
    twins = (1, 2)
    latents = [LatentComponent(kind, twin) for twin in twins for kind in template.components]
    statements: List[Statement] = []

    for comp in latents:
        indicator = phenotypes[comp.twin - 1]
        statements.append(
            Loading(comp, indicator, _per_group(groups, lambda g, c=comp: _loading_value(template, c.kind, g, c.twin)))
        )

    for comp in latents:
        statements.append(Variance(comp.name, GroupValues.uniform(groups, Fixed(1.0))))

    for kind in template.components:
        statements.append(
            Covariance(f"{kind.value}1", f"{kind.value}2", _per_group(groups, lambda g, k=kind: Fixed(g.coefficient(k))))
        )

    for i, left in enumerate(latents):
        for right in latents[i + 1:]:
            if left.kind != right.kind:
                statements.append(Covariance(left.name, right.name, GroupValues.uniform(groups, Fixed(0.0))))

    for twin in twins:
        statements.append(
            Variance(phenotypes[twin - 1], _per_group(groups, lambda g, t=twin: _residual_value(template, g, t)))
        )

    if template.sibling_interaction:
        beta = GroupValues.uniform(groups, Free("beta"))
        statements.append(Regression(phenotypes[0], phenotypes[1], beta))
        statements.append(Regression(phenotypes[1], phenotypes[0], beta))

    if template.ordinal:
        for name in phenotypes:
            statements.append(Intercept(name, GroupValues.uniform(groups, Free("mu"))))
        for name in phenotypes:
            statements.append(Threshold(name, 1, GroupValues.uniform(groups, Fixed(0.0))))
            for index in range(2, categories):
                statements.append(Threshold(name, index, GroupValues.uniform(groups, Free(f"t{index}"))))

    return StructuralSpecification(
        family=template.family,
        groups=tuple(groups),
        statements=tuple(statements),
        variables=tuple(phenotypes),
        categories=categories,
    )
