"""Hand a specification to an external fitting engine and summarize its answer.

The package does not estimate models itself. An engine is any object with a
``fit(request) -> FitResult`` method, for instance a thin adapter around an
R/lavaan session or another SEM library. :func:`fit_twin_model` checks that the
data's group order matches the specification before the request leaves the
process, then wraps the engine's answer in a :class:`TwinFit`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

import numpy as np
import pandas as pd
from scipy.stats import chi2, norm

from .builder import align, check_group_order
from .errors import TwinModelError
from .relatedness import ComponentKind
from .specification import Fixed, StructuralSpecification

__all__ = [
    "FitOptions",
    "FitRequest",
    "FitResult",
    "FittingEngine",
    "TwinFit",
    "TwinFitSummary",
    "fit_twin_model",
]

logger = logging.getLogger(__name__)

ESTIMATORS = ("ML", "MLR", "WLSMV", "DWLS", "ULS")
PARAMETERIZATIONS = ("delta", "theta")
FIT_INDEX_KEYS = ("chisq", "df", "pvalue", "cfi", "tli", "rmsea", "srmr", "aic", "bic", "loglik")


@dataclass
class FitOptions:
    """Estimation settings forwarded to the engine.

    ``estimator`` and ``parameterization`` default to ``WLSMV``/``theta`` for
    ordinal families and ``ML``/``delta`` otherwise. ``engine_options`` is
    passed through untouched.
    """

    estimator: Optional[str] = None
    parameterization: Optional[str] = None
    group_column: str = "zyg"
    engine_options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.estimator is not None:
            self.estimator = self.estimator.upper()
            if self.estimator not in ESTIMATORS:
                raise TwinModelError(f"Unknown estimator '{self.estimator}'; expected one of {ESTIMATORS}")
        if self.parameterization is not None:
            self.parameterization = self.parameterization.lower()
            if self.parameterization not in PARAMETERIZATIONS:
                raise TwinModelError(
                    f"Unknown parameterization '{self.parameterization}'; expected one of {PARAMETERIZATIONS}"
                )

    def resolved_for(self, spec: StructuralSpecification) -> "FitOptions":
        ordinal = spec.categories is not None
        return replace(
            self,
            estimator=self.estimator or ("WLSMV" if ordinal else "ML"),
            parameterization=self.parameterization or ("theta" if ordinal else "delta"),
            engine_options=dict(self.engine_options),
        )


@dataclass(frozen=True)
class FitRequest:
    """Everything an engine needs for one multi-group twin fit."""

    specification: StructuralSpecification
    data: pd.DataFrame
    group_column: str
    estimator: str
    parameterization: str
    engine_options: Mapping[str, Any] = field(default_factory=dict)

    @property
    def model_syntax(self) -> str:
        return self.specification.to_lavaan()

    @property
    def group_labels(self) -> Tuple[str, ...]:
        return self.specification.group_labels

    @property
    def ordered(self) -> Tuple[str, ...]:
        """Phenotypes to declare as ordered categorical."""
        if self.specification.categories is None:
            return ()
        return tuple(self.specification.variables)


@dataclass
class FitResult:
    """What an engine returns: estimates keyed by free parameter label."""

    estimates: Dict[str, float]
    standard_errors: Dict[str, float] = field(default_factory=dict)
    fit_statistics: Dict[str, float] = field(default_factory=dict)
    converged: bool = True
    message: str = ""


@runtime_checkable
class FittingEngine(Protocol):
    def fit(self, request: FitRequest) -> FitResult:
        ...


class TwinFit:
    """Wrapper for an engine's result providing twin-specific summaries."""

    def __init__(self, specification: StructuralSpecification, result: FitResult, request: Optional[FitRequest] = None) -> None:
        self.specification = specification
        self.result = result
        self.request = request

    @property
    def converged(self) -> bool:
        return self.result.converged

    @property
    def parameter_estimates(self) -> Dict[str, float]:
        """Map free parameter labels to their estimated values."""
        return dict(self.result.estimates)

    @property
    def fit_indices(self) -> Dict[str, float]:
        """Return fit indices (Chi-square, CFI, TLI, RMSEA, SRMR, ...); NaN when not reported."""
        stats = self.result.fit_statistics
        return {key: float(stats.get(key, np.nan)) for key in FIT_INDEX_KEYS}

    def summary(self) -> "TwinFitSummary":
        """Return a summary object containing fit statistics and parameter estimates."""
        return TwinFitSummary(self)

    def variance_components(self) -> pd.DataFrame:
        """Unstandardized and standardized A/C/D/E variance per sex.

        Loadings are squared; the residual variance is taken as is. With a
        sibling interaction the components are reported before the
        interaction feedback is applied.
        """
        estimates = self.parameter_estimates
        rows = []
        for tag, params in self.specification.variance_parameters().items():
            variances = {}
            for kind, value in params.items():
                if isinstance(value, Fixed):
                    x = value.value
                else:
                    if value.label not in estimates:
                        raise ValueError(f"Parameter '{value.label}' not found in estimates.")
                    x = estimates[value.label]
                variances[kind] = x if kind is ComponentKind.E else x ** 2
            total = sum(variances.values())
            for kind, var in variances.items():
                rows.append(
                    {
                        "Sex": tag,
                        "Component": kind.value,
                        "Variance": var,
                        "Proportion": var / total if total > 0 else np.nan,
                    }
                )
        return pd.DataFrame(rows, columns=["Sex", "Component", "Variance", "Proportion"])

    def heritability(self, sex: str = "") -> float:
        """Proportion of phenotypic variance due to additive genetic effects."""
        table = self.variance_components()
        rows = table[(table["Sex"] == sex.lower()) & (table["Component"] == "A")]
        if rows.empty:
            available = sorted(set(table["Sex"]))
            raise ValueError(f"No variance components for sex '{sex}'; available: {available}")
        return float(rows["Proportion"].iloc[0])

    def compare(self, other: "TwinFit") -> pd.Series:
        """Likelihood-ratio test between two nested fits.

        Uses the chi-square statistics when both results report them, else
        twice the log-likelihood difference with the number of free parameters
        as degrees of freedom. The difference is only chi-square distributed
        for plain ML; robust estimators need a scaled test from the engine.
        """
        a, b = self.fit_indices, other.fit_indices
        if not any(np.isnan([a["chisq"], a["df"], b["chisq"], b["df"]])):
            delta = abs(a["chisq"] - b["chisq"])
            ddf = abs(a["df"] - b["df"])
        elif not np.isnan(a["loglik"]) and not np.isnan(b["loglik"]):
            delta = 2 * abs(a["loglik"] - b["loglik"])
            ddf = abs(len(self.specification.free_parameters) - len(other.specification.free_parameters))
        else:
            raise ValueError("Both fits must report chisq/df or loglik to be compared")
        if ddf == 0:
            raise ValueError("Models have the same degrees of freedom and are not nested")

        estimators = {fit.request.estimator for fit in (self, other) if fit.request is not None}
        if estimators - {"ML"}:
            logger.warning("Unscaled chi-square difference computed for estimator(s) %s", sorted(estimators))
        return pd.Series(
            {"chisq_diff": delta, "df_diff": ddf, "pvalue": float(chi2.sf(delta, ddf))}
        )


class TwinFitSummary:
    """Summary of a twin model fit."""

    def __init__(self, fit: TwinFit) -> None:
        self.fit = fit
        self.fit_indices = fit.fit_indices
        self.parameters = self._build_parameter_table()

    def _build_parameter_table(self) -> pd.DataFrame:
        estimates = self.fit.result.estimates
        ses = self.fit.result.standard_errors
        labels = [p for p in self.fit.specification.free_parameters if p in estimates]
        labels += [p for p in estimates if p not in labels]

        params = [estimates[p] for p in labels]
        se_values = [ses.get(p, np.nan) for p in labels]
        z_values = [p / se if se > 0 else np.nan for p, se in zip(params, se_values)]
        p_values = [
            2 * (1 - norm.cdf(abs(z))) if not np.isnan(z) else np.nan for z in z_values
        ]

        data = {
            "Estimate": params,
            "Std.Error": se_values,
            "z-value": z_values,
            "P(>|z|)": p_values,
        }
        return pd.DataFrame(data, index=labels)

    def __repr__(self) -> str:
        spec = self.fit.specification
        lines = [
            f"{spec.family.value} twin model, groups: {', '.join(spec.group_labels)}",
            f"Converged: {self.fit.converged}",
        ]
        if self.fit.result.message:
            lines.append(f"Message: {self.fit.result.message}")
        if self.fit.request is not None:
            lines.append(f"Estimator: {self.fit.request.estimator} ({self.fit.request.parameterization})")

        idx = self.fit_indices
        if not np.isnan(idx["chisq"]):
            lines.append(f"Chi-square: {idx['chisq']:.3f} (df={idx['df']:.0f})")
            if idx["df"] > 0:
                lines.append(f"P-value: {chi2.sf(idx['chisq'], idx['df']):.3f}")

        indices = [
            f"{key.upper()}: {idx[key]:.3f}" for key in ("cfi", "tli", "rmsea", "srmr") if not np.isnan(idx[key])
        ]
        if indices:
            lines.append(", ".join(indices))
        if not np.isnan(idx["aic"]) and not np.isnan(idx["bic"]):
            lines.append(f"AIC: {idx['aic']:.1f}, BIC: {idx['bic']:.1f}")

        lines.append("")
        lines.append(self.parameters.to_string())

        try:
            components = self.fit.variance_components()
        except ValueError:
            components = None
        if components is not None and not components.empty:
            lines.append("")
            lines.append("Variance Components:")
            lines.append(components.to_string(index=False))
        return "\n".join(lines)


def _options_from_kwargs(options: Optional[FitOptions], kwargs: Dict[str, Any]) -> FitOptions:
    if options is not None:
        if kwargs:
            raise TypeError("pass either options or keyword settings, not both")
        return options
    settings: Dict[str, Any] = {}
    for key in ("estimator", "parameterization", "group_column"):
        if key in kwargs:
            settings[key] = kwargs.pop(key)
    return FitOptions(engine_options=dict(kwargs), **settings)


def fit_twin_model(
    spec: StructuralSpecification,
    data: pd.DataFrame,
    engine: FittingEngine,
    *,
    align_groups: bool = False,
    codes: Optional[Mapping[Any, str]] = None,
    options: Optional[FitOptions] = None,
    **kwargs: Any,
) -> TwinFit:
    """Fit ``spec`` to ``data`` with ``engine``.

    Parameters
    ----------
    spec:
        The structural specification.
    data:
        One row per twin pair with both phenotypes and the group column.
    engine:
        Object implementing :class:`FittingEngine`.
    align_groups:
        Reorder the specification's groups to the data's first-appearance
        order instead of raising :class:`GroupOrderMismatchError`.
    codes:
        Mapping from raw group-column values to group labels; the column is
        recoded in a copy of ``data`` before it is handed over.
    options:
        Estimation settings. Alternatively pass ``estimator``,
        ``parameterization`` or ``group_column`` as keywords; other keywords
        are forwarded to the engine.

    Returns
    -------
    TwinFit
        The engine's result. Engine exceptions propagate unchanged; a result
        that did not converge is returned as is and logged as a warning.
    """
    settings = _options_from_kwargs(options, dict(kwargs)).resolved_for(spec)
    column = settings.group_column
    if column not in data.columns:
        raise ValueError(f"Grouping variable '{column}' not found in data")
    missing_cols: List[str] = [v for v in spec.variables if v not in data.columns]
    if missing_cols:
        raise ValueError(f"Data missing columns for variables: {missing_cols}")

    if codes is not None:
        data = data.copy()
        data[column] = data[column].map(lambda v: codes.get(v, v))

    if align_groups:
        spec = align(spec, data[column])
    else:
        check_group_order(spec, data[column])

    request = FitRequest(
        specification=spec,
        data=data,
        group_column=column,
        estimator=settings.estimator,
        parameterization=settings.parameterization,
        engine_options=settings.engine_options,
    )
    logger.debug(
        "Submitting %s fit (%s, %s) for groups %s",
        spec.family.value,
        request.estimator,
        request.parameterization,
        list(spec.group_labels),
    )
    result = engine.fit(request)
    if not result.converged:
        logger.warning("%s fit did not converge: %s", spec.family.value, result.message or "no message")
    return TwinFit(spec, result, request)
