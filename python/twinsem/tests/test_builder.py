"""Tests for the specification builder and the family templates."""

import pytest

from twinsem import (
    BuildOptions,
    BuildRequest,
    CategoryCountError,
    Fixed,
    Free,
    GroupDefinition,
    InsufficientGroupsError,
    ModelFamily,
    StructuralSpecification,
    TwinModelError,
    UnknownGroupError,
    UnsupportedFamilyError,
    build,
    build_many,
    resolve,
)

ALL_FAMILIES = [
    ("ACE", None),
    ("ADE", None),
    ("ACEx", None),
    ("ADEx", None),
    ("ACE-ordinal", 4),
    ("ACE-binary", None),
]


@pytest.mark.parametrize("family,categories", ALL_FAMILIES)
def test_build_is_deterministic(family, categories):
    first = build(family, ["MZ", "DZ"], categories=categories)
    second = build(family, ["MZ", "DZ"], categories=categories)
    assert isinstance(first, StructuralSpecification)
    assert first == second
    assert first.to_lavaan() == second.to_lavaan()


def test_sex_limited_build_is_deterministic():
    labels = ["MZM", "MZF", "DZM", "DZF", "DOS"]
    assert build("ACE-sex-limited", labels) == build("ACE-sex-limited", labels)


class TestACE:
    def setup_method(self):
        self.spec = build(ModelFamily.ACE, ["MZ", "DZ"])

    def test_twin_covariance_vectors(self):
        assert self.spec.constraint_vector(self.spec.covariance("A1", "A2")) == [1.0, 0.5]
        assert self.spec.constraint_vector(self.spec.covariance("C1", "C2")) == [1.0, 1.0]

    def test_covariance_lookup_ignores_argument_order(self):
        assert self.spec.covariance("A2", "A1") is self.spec.covariance("A1", "A2")

    def test_loadings_share_labels_across_twins_and_groups(self):
        for twin in (1, 2):
            assert self.spec.vector(self.spec.loading(f"A{twin}", f"P{twin}")) == [Free("a"), Free("a")]
            assert self.spec.vector(self.spec.loading(f"C{twin}", f"P{twin}")) == [Free("c"), Free("c")]

    def test_latent_variances_fixed_to_one(self):
        for name in ("A1", "A2", "C1", "C2"):
            assert self.spec.constraint_vector(self.spec.variance(name)) == [1.0, 1.0]

    def test_cross_component_covariances_fixed_to_zero(self):
        for left, right in [("A1", "C1"), ("A1", "C2"), ("A2", "C1"), ("A2", "C2")]:
            assert self.spec.constraint_vector(self.spec.covariance(left, right)) == [0.0, 0.0]

    def test_residual_variance(self):
        assert self.spec.constraint_vector(self.spec.variance("P1")) == ["e2", "e2"]
        assert self.spec.constraint_vector(self.spec.variance("P2")) == ["e2", "e2"]

    def test_free_parameters(self):
        assert self.spec.free_parameters == ("a", "c", "e2")

    def test_no_regressions_or_thresholds(self):
        assert self.spec.of_kind("regression") == []
        assert self.spec.thresholds("P1") == []
        assert self.spec.categories is None

    def test_latent_components(self):
        assert [c.name for c in self.spec.latent_components] == ["A1", "C1", "A2", "C2"]

    def test_parameter_table(self):
        table = self.spec.to_frame()
        assert len(table) == 16 * 2
        row = table[(table.lhs == "A1") & (table.rhs == "A2") & (table.group == "DZ")].iloc[0]
        assert row["value"] == 0.5
        assert not row["free"]


def test_ade_dominance_vector():
    spec = build("ADE", ["MZ", "DZ"])
    assert spec.constraint_vector(spec.covariance("D1", "D2")) == [1.0, 0.25]
    assert spec.constraint_vector(spec.covariance("A1", "A2")) == [1.0, 0.5]
    assert spec.free_parameters == ("a", "d", "e2")
    with pytest.raises(KeyError):
        spec.covariance("C1", "C2")


@pytest.mark.parametrize("family,shared", [("ACEX", "C"), ("ADEX", "D")])
def test_sibling_interaction_beta_is_shared(family, shared):
    spec = build(family, ["MZ", "DZ", "MZM"])
    forward = spec.regression("P1", "P2")
    backward = spec.regression("P2", "P1")
    assert spec.vector(forward) == [Free("beta")] * 3
    assert spec.vector(backward) == [Free("beta")] * 3
    assert spec.free_parameters[-1] == "beta"
    assert spec.loading(f"{shared}1", "P1") is not None


class TestSexLimited:
    labels = ["MZM", "MZF", "DZM", "DZF", "DOS"]

    def setup_method(self):
        self.spec = build("ACE-sex-limited", self.labels)

    def test_opposite_sex_loadings(self):
        a1 = self.spec.loading("A1", "P1")
        a2 = self.spec.loading("A2", "P2")
        assert a1.value("DOS") == Free("am")
        assert a2.value("DOS") == Free("af")
        assert self.spec.loading("C2", "P2").value("DOS") == Free("cf")

    def test_same_sex_loadings(self):
        a2 = self.spec.loading("A2", "P2")
        assert self.spec.constraint_vector(a2) == ["am", "af", "am", "af", "af"]

    def test_residuals_by_sex(self):
        assert self.spec.constraint_vector(self.spec.variance("P1")) == ["em2", "ef2", "em2", "ef2", "em2"]
        assert self.spec.constraint_vector(self.spec.variance("P2")) == ["em2", "ef2", "em2", "ef2", "ef2"]

    def test_genetic_correlations(self):
        assert self.spec.constraint_vector(self.spec.covariance("A1", "A2")) == [1.0, 1.0, 0.5, 0.5, 0.5]

    def test_variance_parameters_split_by_sex(self):
        params = self.spec.variance_parameters()
        assert set(params) == {"m", "f"}
        assert params["f"][next(iter(params["f"]))] == Free("af")

    def test_requires_sexed_groups(self):
        with pytest.raises(InsufficientGroupsError, match="sex"):
            build("ACE-sex-limited", ["MZ", "DZ"])

    def test_female_paths_need_same_sex_groups(self):
        with pytest.raises(InsufficientGroupsError, match="female"):
            build("ACE-sex-limited", ["MZM", "DZM", "DOS"])

    def test_single_sex_design(self):
        spec = build("ACE-sex-limited", ["MZM", "DZM"])
        assert spec.free_parameters == ("am", "cm", "em2")


class TestOrdinal:
    def test_three_categories(self):
        spec = build("ACE-ordinal", ["MZ", "DZ"], categories=3)
        for variable in ("P1", "P2"):
            thresholds = spec.thresholds(variable)
            assert len(thresholds) == 2
            assert spec.vector(thresholds[0]) == [Fixed(0.0), Fixed(0.0)]
            assert spec.vector(thresholds[1]) == [Free("t2"), Free("t2")]
            assert spec.vector(spec.intercept(variable)) == [Free("mu"), Free("mu")]
        assert spec.constraint_vector(spec.variance("P1")) == [1.0, 1.0]
        assert spec.free_parameters == ("a", "c", "mu", "t2")
        assert spec.categories == 3

    def test_generic_category_count(self):
        spec = build("ACE-ordinal", ["MZ", "DZ"], categories=5)
        assert [t.index for t in spec.thresholds("P2")] == [1, 2, 3, 4]
        assert "t4" in spec.free_parameters
        assert "t1" not in spec.free_parameters

    @pytest.mark.parametrize("family,categories", [("ACE-binary", None), ("ACE-binary", 2), ("ACE-ordinal", 2)])
    def test_binary(self, family, categories):
        spec = build(family, ["MZ", "DZ"], categories=categories)
        for variable in ("P1", "P2"):
            thresholds = spec.thresholds(variable)
            assert len(thresholds) == 1
            assert spec.vector(thresholds[0]) == [Fixed(0.0), Fixed(0.0)]
            assert spec.constraint_vector(spec.variance(variable)) == [1.0, 1.0]
        assert not any(label.startswith("t") for label in spec.free_parameters)
        assert spec.free_parameters == ("a", "c", "mu")

    def test_ordinal_requires_categories(self):
        with pytest.raises(CategoryCountError):
            build("ACE-ordinal", ["MZ", "DZ"])

    @pytest.mark.parametrize("categories", [1, 0, 2.5, True])
    def test_invalid_category_count(self, categories):
        with pytest.raises(CategoryCountError):
            build("ACE-ordinal", ["MZ", "DZ"], categories=categories)

    def test_binary_rejects_other_counts(self):
        with pytest.raises(CategoryCountError):
            build("ACE-binary", ["MZ", "DZ"], categories=3)

    def test_continuous_rejects_categories(self):
        with pytest.raises(CategoryCountError):
            build("ACE", ["MZ", "DZ"], categories=3)


def test_unknown_group_label():
    with pytest.raises(UnknownGroupError):
        build("ACE", ["MZ", "XX"])


@pytest.mark.parametrize("family", ["AE", "CE", "", 42])
def test_unsupported_family(family):
    with pytest.raises(UnsupportedFamilyError):
        build(family, ["MZ", "DZ"])


def test_family_name_spellings():
    assert ModelFamily.parse("ace_sex_limited") is ModelFamily.ACE_SEX_LIMITED
    assert ModelFamily.parse("ACEx") is ModelFamily.ACEX
    assert ModelFamily.parse(" ace ordinal ") is ModelFamily.ACE_ORDINAL


@pytest.mark.parametrize("labels", [[], ["MZ"], ["DZ", "DZM"], ["MZ", "MZF"]])
def test_insufficient_groups(labels):
    with pytest.raises(InsufficientGroupsError):
        build("ACE", labels)


def test_ade_needs_a_dominance_contrast():
    groups = ["MZ", GroupDefinition("AD", a=0.5, d=1.0)]
    build("ACE", groups)
    with pytest.raises(InsufficientGroupsError, match="dominance"):
        build("ADE", groups)


def test_single_label_is_not_split_into_characters():
    with pytest.raises(InsufficientGroupsError):
        build("ACE", "MZ")


def test_accepts_resolved_groups():
    groups = resolve(["DZ", "MZ"])
    spec = build("ACE", groups)
    assert spec.group_labels == ("DZ", "MZ")


class TestReordering:
    def test_coefficients_move_with_their_group(self):
        forward = build("ACE", ["MZ", "DZ"])
        backward = build("ACE", ["DZ", "MZ"])
        assert backward.group_labels == ("DZ", "MZ")
        assert backward.constraint_vector(backward.covariance("A1", "A2")) == [0.5, 1.0]
        for stmt in forward.statements:
            other = backward.find(stmt.lhs, stmt.op, stmt.rhs)
            for label in ("MZ", "DZ"):
                assert stmt.value(label) == other.value(label)

    def test_reorder_matches_rebuilt_specification(self):
        labels = ["MZM", "MZF", "DZM", "DZF", "DOS"]
        spec = build("ACE-sex-limited", labels)
        reordered = spec.reorder(list(reversed(labels)))
        assert reordered == build("ACE-sex-limited", list(reversed(labels)))
        assert [g.position for g in reordered.groups] == [0, 1, 2, 3, 4]
        assert reordered.loading("A2", "P2").value("DOS") == Free("af")

    def test_reorder_rejects_different_groups(self):
        spec = build("ACE", ["MZ", "DZ"])
        with pytest.raises(TwinModelError):
            spec.reorder(["MZ"])
        with pytest.raises(TwinModelError):
            spec.reorder(["MZ", "DZ", "DOS"])


def test_custom_phenotype_names():
    spec = build("ACE", ["MZ", "DZ"], options=BuildOptions(variables=("bmi_1", "bmi_2")))
    assert spec.variables == ("bmi_1", "bmi_2")
    assert spec.loading("A2", "bmi_2").value("MZ") == Free("a")
    spec = build("ACE", ["MZ", "DZ"], options=BuildOptions(phenotype="ht", twin_suffixes=("_T1", "_T2")))
    assert spec.variables == ("ht_T1", "ht_T2")


def test_phenotype_names_must_not_clash():
    with pytest.raises(TwinModelError):
        BuildOptions(variables=("A1", "x"))
    with pytest.raises(TwinModelError):
        BuildOptions(variables=("x", "x"))


def test_build_many():
    specs = build_many(
        [
            BuildRequest("ACE", ["MZ", "DZ"]),
            {"family": "ACE-ordinal", "groups": ["DZ", "MZ"], "categories": 3},
        ]
    )
    assert [s.family for s in specs] == [ModelFamily.ACE, ModelFamily.ACE_ORDINAL]
    assert specs[1].group_labels == ("DZ", "MZ")
