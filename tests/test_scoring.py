"""Tests for the evaluation scoring engine."""

import pytest

from analysis.scoring import apply_classifications, final_score, percentage, rescore, score
from config.errors import FormNotFoundError
from config.schemas import (
    ClassificationType, EvaluationForm, FormGroup, FormParameter, ParameterResult, ScoringType,
)


def _form(*params, groups=None):
    return EvaluationForm(
        id="form-1",
        name="Support QA",
        parameters=list(params),
        groups=groups or [FormGroup(id="opening", name="Opening"), FormGroup(id="resolution", name="Resolution")],
    )


def _result(name, raw, classification="none"):
    return ParameterResult(name=name, raw_score=raw, classification=classification)


class TestScoringTypes:
    @pytest.mark.parametrize("raw", [0, 1, 2])
    def test_binary_low_scores_fail(self, raw):
        assert final_score(raw, 5, ScoringType.BINARY) == 0

    @pytest.mark.parametrize("raw", [3, 4, 5])
    def test_binary_high_scores_pass(self, raw):
        assert final_score(raw, 5, ScoringType.BINARY) == 5

    def test_binary_exact_half_fails(self):
        assert final_score(2, 4, ScoringType.BINARY) == 0

    def test_variable_caps_at_max(self):
        assert final_score(7, 5, ScoringType.VARIABLE) == 5
        assert final_score(3.5, 5, ScoringType.VARIABLE) == 3.5


class TestPercentage:
    def test_zero_max(self):
        assert percentage(0, 0) == 0

    def test_rounds_half_up(self):
        assert percentage(1, 8) == 13  # 12.5
        assert percentage(2, 3) == 67

    def test_recomputation_is_idempotent(self):
        form = _form(
            FormParameter(name="Greeting", group="opening", max_score=5),
            FormParameter(name="Empathy", group="opening", max_score=3),
        )
        result = score(form, [_result("Greeting", 4), _result("Empathy", 2)])
        for section in result.sections.values():
            assert percentage(section.adjusted_score, section.max_score) == section.percentage


class TestScore:
    def test_sections_and_overall(self):
        form = _form(
            FormParameter(name="Greeting", group="opening", max_score=5, scoring_type=ScoringType.BINARY),
            FormParameter(name="Verification", group="opening", max_score=5),
            FormParameter(name="Resolved", group="resolution", max_score=10),
        )
        result = score(form, [_result("Greeting", 4), _result("Verification", 3), _result("Resolved", 7)])

        opening = result.sections["opening"]
        assert (opening.raw_score, opening.max_score, opening.percentage) == (8, 10, 80)
        assert opening.adjusted_score == opening.raw_score
        resolution = result.sections["resolution"]
        assert (resolution.raw_score, resolution.max_score) == (7, 10)
        assert result.overall.raw_score == 15
        assert result.overall.max_score == 20
        assert result.overall.percentage == 75

    def test_not_applicable_excluded_everywhere(self):
        form = _form(
            FormParameter(name="Greeting", group="opening", max_score=5),
            FormParameter(name="Hold etiquette", group="opening", max_score=5),
        )
        result = score(form, [_result("Greeting", 5), _result("Hold etiquette", -1)])
        assert result.sections["opening"].max_score == 5
        assert result.sections["opening"].raw_score == 5
        assert result.overall.max_score == 5
        assert result.overall.percentage == 100
        hold = next(p for p in result.parameters if p.name == "Hold etiquette")
        assert hold.applicable is False

    def test_unknown_parameter_uses_default_max_and_group(self):
        form = _form(FormParameter(name="Greeting", group="opening", max_score=5))
        result = score(form, [_result("Greeting", 5), _result("Upsell attempt", 4)])
        default = result.sections["default"]
        assert default.name == "Default Group"
        assert default.max_score == 5
        assert default.raw_score == 4

    def test_missing_result_scores_zero(self):
        form = _form(
            FormParameter(name="Greeting", group="opening", max_score=5),
            FormParameter(name="Closing", group="opening", max_score=5),
        )
        result = score(form, [_result("Greeting", 5)])
        assert result.sections["opening"].max_score == 10
        assert result.sections["opening"].raw_score == 5

    def test_missing_form_is_terminal(self):
        with pytest.raises(FormNotFoundError):
            score(None, [_result("Greeting", 5)])

    def test_does_not_mutate_input(self):
        form = _form(FormParameter(name="Greeting", group="opening"))
        results = [_result("Greeting", 9)]
        score(form, results)
        assert results[0].raw_score == 9


class TestClassifications:
    def _section_form(self):
        # four classifiable parameters, 5 points each → section max 20
        return _form(
            *[
                FormParameter(name=f"P{i}", group="opening", max_score=5, classification=ClassificationType.MAJOR)
                for i in range(4)
            ],
            groups=[FormGroup(id="opening", name="Opening")],
        )

    def test_major_deducts_half_of_section_max(self):
        form = self._section_form()
        raw = score(form, [
            _result("P0", 5), _result("P1", 5), _result("P2", 4, "major"), _result("P3", 4),
        ])
        assert raw.sections["opening"].raw_score == 18

        adjusted = apply_classifications(raw, form)
        section = adjusted.sections["opening"]
        assert section.adjusted_score == 8
        assert section.percentage == 40
        assert section.classifications.major == 1
        assert section.highest_classification == ClassificationType.MAJOR
        assert adjusted.overall.adjusted_score == 8
        assert raw.sections["opening"].adjusted_score == 18

    def test_form_none_parameter_is_never_classified(self):
        form = _form(
            FormParameter(name="Greeting", group="opening", max_score=10),
            groups=[FormGroup(id="opening", name="Opening")],
        )
        raw = score(form, [_result("Greeting", 10, "major")])
        assert raw.parameters[0].form_classification == ClassificationType.NONE

        section = apply_classifications(raw, form).sections["opening"]
        assert section.adjusted_score == 10
        assert section.percentage == 100
        assert section.classifications.major == 0
        assert section.highest_classification is None

        overridden = rescore(form, [_result("Greeting", 10)], {"Greeting": ClassificationType.MAJOR})
        assert overridden.overall.adjusted_score == 10
        assert overridden.overall.percentage == 100

    def test_parameter_outside_form_is_never_classified(self):
        form = self._section_form()
        raw = score(form, [_result(f"P{i}", 5) for i in range(4)] + [_result("Upsell", 5, "major")])
        adjusted = apply_classifications(raw, form)
        assert adjusted.sections["default"].adjusted_score == 5
        assert adjusted.overall.adjusted_score == 25

    def test_deductions_accumulate_and_clamp(self):
        form = self._section_form()
        raw = score(form, [
            _result("P0", 2, "major"), _result("P1", 1, "major"), _result("P2", 0, "minor"), _result("P3", 0),
        ])
        section = apply_classifications(raw, form).sections["opening"]
        assert section.adjusted_score == 0
        assert section.classifications.major == 2
        assert section.classifications.minor == 1

    def test_applying_twice_is_stable(self):
        form = self._section_form()
        raw = score(form, [_result("P0", 5, "minor"), _result("P1", 5), _result("P2", 5), _result("P3", 5)])
        once = apply_classifications(raw, form)
        twice = apply_classifications(once, form)
        assert once.sections["opening"].adjusted_score == twice.sections["opening"].adjusted_score == 18

    def test_not_applicable_parameters_carry_no_deduction(self):
        form = self._section_form()
        raw = score(form, [_result("P0", -1, "major"), _result("P1", 5), _result("P2", 5), _result("P3", 5)])
        section = apply_classifications(raw, form).sections["opening"]
        assert section.adjusted_score == 15
        assert section.highest_classification is None

    def test_rescore_applies_overrides(self):
        form = self._section_form()
        results = [_result("P0", 5), _result("P1", 5), _result("P2", 4), _result("P3", 4)]
        updated = rescore(form, results, {"P2": ClassificationType.MODERATE})
        assert updated.sections["opening"].adjusted_score == 13  # 18 - 0.25 * 20
        assert updated.sections["opening"].highest_classification == ClassificationType.MODERATE

    def test_classification_parsed_leniently(self):
        assert ParameterResult(name="x", score=3, classification="Major").classification == ClassificationType.MAJOR
        assert ParameterResult(name="x", score=3, classification=None).classification == ClassificationType.NONE
