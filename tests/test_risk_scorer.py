"""Tests for risk scoring and the finding descriptions."""

import pytest

from codeclear.config_manager import RiskScoringConfig
from codeclear.models import AccessLevel, DeclarationKind, Marker, Modifier, Reference, RiskLevel
from codeclear.risk_descriptor import build_reason, detailed_explanation, suggested_action
from codeclear.risk_scorer import AUTO_SELECT_CEILING, RiskScorer, is_auto_selectable, risk_level

REF = Reference("src/other.py", 12, 3)
ACCESS_ORDER = [
    AccessLevel.PRIVATE,
    AccessLevel.FILEPRIVATE,
    AccessLevel.INTERNAL,
    AccessLevel.PUBLIC,
    AccessLevel.OPEN,
]


@pytest.fixture
def scorer() -> RiskScorer:
    return RiskScorer()


class TestVisibility:
    def test_bases(self, scorer, make_declaration):
        scores = [
            scorer.score(make_declaration(kind=DeclarationKind.TYPE, access=a, byte_length=500))
            for a in ACCESS_ORDER
        ]
        assert scores == [5, 10, 20, 90, 95]

    @pytest.mark.parametrize("kind", list(DeclarationKind))
    @pytest.mark.parametrize("byte_length", [50, 500])
    def test_monotonic_in_openness(self, scorer, make_declaration, kind, byte_length):
        scores = [
            scorer.score(make_declaration(kind=kind, access=a, byte_length=byte_length))
            for a in ACCESS_ORDER
        ]
        assert scores == sorted(scores)

    def test_open_never_below_public(self, make_declaration):
        scorer = RiskScorer(RiskScoringConfig(public_api_weight=97, open_api_weight=95))
        public = scorer.score(make_declaration(access=AccessLevel.PUBLIC, byte_length=500))
        opened = scorer.score(make_declaration(access=AccessLevel.OPEN, byte_length=500))
        assert opened >= public


class TestMarkers:
    @pytest.mark.parametrize(
        "marker",
        [Marker.PROGRAM_ENTRY, Marker.UI_APPLICATION_ROOT, Marker.FRAMEWORK_APPLICATION_ROOT],
    )
    def test_entry_markers_force_maximum(self, scorer, make_declaration, marker):
        decl = make_declaration(access=AccessLevel.PRIVATE, markers={marker})
        assert scorer.score(decl) == 100
        assert scorer.score(decl, [REF]) == 100

    def test_interop_and_dynamic(self, scorer, make_declaration):
        assert scorer.score(make_declaration(markers={Marker.INTEROP}, byte_length=500)) == 95
        assert scorer.score(make_declaration(modifiers={Modifier.DYNAMIC}, byte_length=500)) == 95

    def test_ui_binding(self, scorer, make_declaration):
        assert scorer.score(make_declaration(markers={Marker.UI_BINDING}, byte_length=500)) == 80

    def test_inlinable_scores_like_public_api(self, scorer, make_declaration):
        assert scorer.score(make_declaration(markers={Marker.INLINABLE}, byte_length=500)) == 90

    def test_protocol_requirement_adds_weight(self, scorer, make_declaration):
        decl = make_declaration(kind=DeclarationKind.METHOD, is_protocol_requirement=True, byte_length=500)
        assert scorer.score(decl) == 100

    def test_test_only_code(self, scorer, make_declaration):
        in_tests = make_declaration(file_path="tests/helpers.py", byte_length=500)
        harness = make_declaration(markers={Marker.TEST_HARNESS}, byte_length=500)
        assert scorer.score(in_tests) == 60
        assert scorer.score(harness) == 60


class TestAdjustments:
    def test_private_small_helper_clamp(self, scorer, make_declaration):
        small = make_declaration(access=AccessLevel.PRIVATE, markers={Marker.UI_BINDING}, byte_length=120)
        large = make_declaration(access=AccessLevel.PRIVATE, markers={Marker.UI_BINDING}, byte_length=400)
        assert scorer.score(small) == 10
        assert scorer.score(large) == 80

    def test_clamp_only_applies_to_helper_kinds(self, scorer, make_declaration):
        cls = make_declaration(kind=DeclarationKind.TYPE, access=AccessLevel.PRIVATE, markers={Marker.UI_BINDING})
        assert scorer.score(cls) == 80

    def test_references_halve(self, scorer, make_declaration):
        decl = make_declaration(access=AccessLevel.PUBLIC, byte_length=500)
        assert scorer.score(decl, [REF]) == 45
        assert scorer.score(decl, [REF, REF, REF]) == 45

    @pytest.mark.parametrize("access", ACCESS_ORDER)
    def test_references_never_increase(self, scorer, make_declaration, access):
        decl = make_declaration(access=access, byte_length=500)
        without = scorer.score(decl)
        with_refs = scorer.score(decl, [REF])
        assert with_refs < without or with_refs == 0

    def test_clamped_to_hundred(self, scorer, make_declaration):
        decl = make_declaration(
            access=AccessLevel.OPEN,
            file_path="tests/api.py",
            is_protocol_witness=True,
            byte_length=500,
        )
        assert scorer.score(decl) == 100


class TestAutoSelect:
    def test_threshold(self):
        assert is_auto_selectable(10)
        assert is_auto_selectable(20)
        assert not is_auto_selectable(21)

    def test_never_above_medium(self):
        assert is_auto_selectable(AUTO_SELECT_CEILING, threshold=100)
        assert not is_auto_selectable(50, threshold=100)
        assert not is_auto_selectable(95, threshold=100)

    def test_risk_level(self):
        assert risk_level(10) is RiskLevel.LOW
        assert risk_level(85) is RiskLevel.VERY_HIGH


class TestDescriptions:
    def test_reason_parts(self, make_declaration):
        decl = make_declaration(access=AccessLevel.PUBLIC, markers={Marker.TEST_HARNESS})
        reason = build_reason(decl, [], "Not an entry point, No references found anywhere")
        assert reason.split(" | ") == [
            "Not an entry point, No references found anywhere",
            "public API, may be used outside this project",
            "test-only code",
        ]

    def test_reason_without_base(self, make_declaration):
        assert "2 references found" in build_reason(make_declaration(), [REF, REF])
        assert "no references found" in build_reason(make_declaration(), [])

    @pytest.mark.parametrize(
        "score,prefix",
        [
            (5, "Safe to delete directly"),
            (30, "Verify then stage"),
            (60, "Do not delete; deprecate first"),
            (95, "Treat as a likely false positive"),
        ],
    )
    def test_suggested_action_escalates(self, make_declaration, score, prefix):
        assert suggested_action(score, make_declaration()).startswith(prefix)

    def test_high_risk_public_api_warns_about_breaking_change(self, make_declaration):
        action = suggested_action(60, make_declaration(access=AccessLevel.PUBLIC))
        assert "breaking change" in action

    def test_detailed_explanation_numbers_steps(self, make_declaration):
        text = detailed_explanation(60, make_declaration(name="old_api", access=AccessLevel.PUBLIC))
        assert "**Risk level: High** (60/100)" in text
        assert "1. Do not delete it yet" in text
        assert "2. Add a deprecation warning" in text
        assert "    warnings.warn(..., DeprecationWarning, stacklevel=2)" in text
        assert "3. Mention it in the release notes" in text
