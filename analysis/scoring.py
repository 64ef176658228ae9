"""Evaluation scoring engine — per-parameter, per-section and overall scores.

Two pure functions, composed explicitly:
  score(form, parameters)            → raw scores (adjusted == raw)
  apply_classifications(result, form) → adjusted scores after classification deductions

Neither mutates its input. A human classification override is handled by `rescore()`,
which recomputes everything from the raw parameter results.
"""

import math

from loguru import logger

from config.errors import FormNotFoundError
from config.schemas import (
    DEFAULT_GROUP_ID, DEFAULT_GROUP_NAME, DEFAULT_MAX_SCORE,
    ClassificationCounts, ClassificationType, EvaluationForm, OverallScore,
    ParameterResult, ScoredParameter, ScoreResult, ScoringType, SectionScore,
)


NOT_APPLICABLE = -1

# Tie-break for equal impact percentages
_SEVERITY_RANK = {
    ClassificationType.NONE: 0,
    ClassificationType.MINOR: 1,
    ClassificationType.MODERATE: 2,
    ClassificationType.MAJOR: 3,
}


def percentage(adjusted: float, maximum: float) -> int:
    """round(100 * adjusted / maximum), half-up; 0 when maximum is 0."""
    if not maximum:
        return 0
    return int(math.floor(100 * adjusted / maximum + 0.5))


def final_score(raw: float, max_score: float, scoring_type: ScoringType) -> float:
    if scoring_type == ScoringType.BINARY:
        return 0.0 if raw <= max_score / 2 else float(max_score)
    return float(max(0.0, min(raw, max_score)))


def _overall(sections: dict[str, SectionScore]) -> OverallScore:
    raw = sum(s.raw_score for s in sections.values())
    adjusted = sum(s.adjusted_score for s in sections.values())
    maximum = sum(s.max_score for s in sections.values())
    return OverallScore(
        raw_score=raw, adjusted_score=adjusted, max_score=maximum,
        percentage=percentage(adjusted, maximum),
    )


def score(form: EvaluationForm | None, parameters: list[ParameterResult]) -> ScoreResult:
    """Score AI parameter results against a form.

    Args:
        form: Evaluation form (None is a terminal error; there is no default scoring)
        parameters: Per-parameter results from the AI evaluator

    Returns:
        ScoreResult with adjusted scores equal to raw scores

    Raises:
        FormNotFoundError: form is None
    """
    if form is None:
        raise FormNotFoundError(None)

    sections: dict[str, SectionScore] = {
        g.id: SectionScore(id=g.id, name=g.name) for g in form.groups
    }
    results = {}
    for result in parameters:
        if result.name in results:
            logger.warning(f"Duplicate AI result for parameter '{result.name}', keeping the last one")
        results[result.name] = result

    scored: list[ScoredParameter] = []

    for param in form.parameters:
        result = results.pop(param.name, None)
        if result is None:
            logger.warning(f"Form {form.id}: no AI result for parameter '{param.name}', scoring as 0")
            result = ParameterResult(name=param.name, raw_score=0)
        scored.append(_score_parameter(
            result, param.group, param.max_score, param.scoring_type, param.classification
        ))

    for result in results.values():
        logger.warning(
            f"Form {form.id}: parameter '{result.name}' not in form, "
            f"scoring with default max {DEFAULT_MAX_SCORE}"
        )
        scored.append(_score_parameter(result, DEFAULT_GROUP_ID, DEFAULT_MAX_SCORE, ScoringType.VARIABLE))

    for item in scored:
        section = sections.get(item.group)
        if section is None:
            name = DEFAULT_GROUP_NAME if item.group == DEFAULT_GROUP_ID else item.group
            section = sections[item.group] = SectionScore(id=item.group, name=name)
        if not item.applicable:
            continue
        section.raw_score += item.final_score
        section.max_score += item.max_score

    for section in sections.values():
        section.adjusted_score = section.raw_score
        section.percentage = percentage(section.adjusted_score, section.max_score)

    return ScoreResult(sections=sections, overall=_overall(sections), parameters=scored)


def _score_parameter(
    result: ParameterResult,
    group: str,
    max_score: int,
    scoring_type: ScoringType,
    form_classification: ClassificationType = ClassificationType.NONE,
) -> ScoredParameter:
    applicable = result.raw_score != NOT_APPLICABLE
    return ScoredParameter(
        name=result.name,
        group=group or DEFAULT_GROUP_ID,
        raw_score=result.raw_score,
        max_score=max_score,
        final_score=final_score(result.raw_score, max_score, scoring_type) if applicable else 0.0,
        classification=result.classification,
        form_classification=form_classification,
        applicable=applicable,
        explanation=result.explanation,
    )


def apply_classifications(result: ScoreResult, form: EvaluationForm) -> ScoreResult:
    """Deduct classification impacts from each section.

    Every applicable parameter tagged minor/moderate/major removes
    `impact_percentage / 100 * section.max_score` from its section. Parameters the form marks
    `none` (and parameters missing from the form) are never classified, whatever the AI
    evaluator or a human override tagged them with. The adjusted score is
    always recomputed from the raw score, so applying this twice gives the same result.
    """
    sections = {sid: s.model_copy(deep=True) for sid, s in result.sections.items()}

    for section in sections.values():
        counts = ClassificationCounts()
        deduction = 0.0
        highest: ClassificationType | None = None

        for param in result.parameters:
            if param.group != section.id or not param.applicable:
                continue
            tag = param.classification
            if tag == ClassificationType.NONE or param.form_classification == ClassificationType.NONE:
                continue
            impact = form.impact_of(tag)
            deduction += impact / 100 * section.max_score
            setattr(counts, tag.value, getattr(counts, tag.value) + 1)
            if highest is None or (impact, _SEVERITY_RANK[tag]) > (form.impact_of(highest), _SEVERITY_RANK[highest]):
                highest = tag

        section.classifications = counts
        section.highest_classification = highest
        section.adjusted_score = round(max(0.0, section.raw_score - deduction), 4)
        section.percentage = percentage(section.adjusted_score, section.max_score)

    return ScoreResult(sections=sections, overall=_overall(sections), parameters=list(result.parameters))


def rescore(
    form: EvaluationForm | None,
    parameters: list[ParameterResult],
    overrides: dict[str, ClassificationType] | None = None,
) -> ScoreResult:
    """Full recomputation after a human classification override."""
    overrides = overrides or {}
    unknown = set(overrides) - {p.name for p in parameters}
    if unknown:
        logger.warning(f"Classification overrides for unknown parameters ignored: {sorted(unknown)}")
    adjusted = [
        p.model_copy(update={"classification": overrides[p.name]}) if p.name in overrides else p
        for p in parameters
    ]
    return apply_classifications(score(form, adjusted), form)
