"""Twin structural equation model specifications for external SEM engines."""

from __future__ import annotations

from .errors import (
    CategoryCountError,
    DuplicateGroupError,
    GroupOrderMismatchError,
    InsufficientGroupsError,
    MissingParameterError,
    TwinModelError,
    UnknownGroupError,
    UnsupportedFamilyError,
)
from .relatedness import DEFAULT_TABLE, ComponentKind, RelatednessEntry, RelatednessTable, Sex, lookup
from .groups import Group, GroupDefinition, resolve, resolve_from_data
from .specification import (
    Covariance,
    Fixed,
    Free,
    GroupValues,
    Intercept,
    LatentComponent,
    Loading,
    Regression,
    StructuralSpecification,
    Threshold,
    Variance,
)
from .families import BuildOptions, FamilyTemplate, ModelFamily, TEMPLATES
from .builder import BuildRequest, align, build, build_many, check_group_order
from .syntax import to_lavaan
from .implied import ImpliedMoments, implied_moments
from .simulate import simulate_twins
from .fit import FitOptions, FitRequest, FitResult, FittingEngine, TwinFit, TwinFitSummary, fit_twin_model

__all__ = [
    "__version__",
    "TwinModelError",
    "UnknownGroupError",
    "UnsupportedFamilyError",
    "InsufficientGroupsError",
    "GroupOrderMismatchError",
    "DuplicateGroupError",
    "CategoryCountError",
    "MissingParameterError",
    "ComponentKind",
    "Sex",
    "RelatednessEntry",
    "RelatednessTable",
    "DEFAULT_TABLE",
    "lookup",
    "Group",
    "GroupDefinition",
    "resolve",
    "resolve_from_data",
    "Fixed",
    "Free",
    "GroupValues",
    "LatentComponent",
    "Loading",
    "Variance",
    "Covariance",
    "Regression",
    "Threshold",
    "Intercept",
    "StructuralSpecification",
    "ModelFamily",
    "FamilyTemplate",
    "BuildOptions",
    "TEMPLATES",
    "BuildRequest",
    "build",
    "build_many",
    "check_group_order",
    "align",
    "to_lavaan",
    "ImpliedMoments",
    "implied_moments",
    "simulate_twins",
    "FitOptions",
    "FitRequest",
    "FitResult",
    "FittingEngine",
    "TwinFit",
    "TwinFitSummary",
    "fit_twin_model",
]

__version__ = "0.1.0"
