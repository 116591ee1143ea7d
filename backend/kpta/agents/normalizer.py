"""
Turns raw model text into typed analysis results.

The model is asked for strict JSON but frequently wraps it in code fences or
prose. Parsing is attempted on the fence-stripped text first, then on the
first balanced JSON span of the expected shape. When neither yields a valid
structure, a fallback is derived from the input data alone, so normalization
never raises.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from kpta.agents.models import (
    AnalysisKind,
    ResultSource,
    RetrospectiveItems,
    SentimentInput,
    ActionRequestInput,
    TryRequestInput,
    PatternAnalysis,
    SentimentAnalysis,
    ActionSuggestion,
    TrySuggestion,
    RetrospectiveSummary,
    RecurringTheme,
)
from kpta.core.config import settings
from kpta.core.exceptions import ParseError

logger = logging.getLogger(__name__)

_LEADING_FENCE = re.compile(r"^\s*```(?:json)?[ \t]*\n?", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\n?[ \t]*```\s*$")

_CLOSERS = {"{": "}", "[": "]"}


@dataclass
class NormalizedResult:
    """A usable analysis value plus where it came from (for logging only)"""
    kind: AnalysisKind
    value: Any
    source: ResultSource


def strip_code_fences(text: str) -> str:
    text = _LEADING_FENCE.sub("", text, count=1)
    text = _TRAILING_FENCE.sub("", text, count=1)
    return text.strip()


def find_balanced_span(text: str, opener: str) -> str:
    """
    Return the earliest-starting balanced span opened by ``opener``.

    Single pass: open positions are kept on a stack and every closer pops one,
    so each pop yields a balanced span. Brackets inside strings are ignored.
    """
    closer = _CLOSERS[opener]
    start = text.find(opener)
    if start == -1:
        raise ParseError(f"no {opener} in model output")

    open_positions: List[int] = []
    best: Optional[Tuple[int, int]] = None
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == opener:
            open_positions.append(i)
        elif ch == closer and open_positions:
            span_start = open_positions.pop()
            if best is None or span_start < best[0]:
                best = (span_start, i)
            if not open_positions:
                # Nothing still open can start earlier than ``best``
                break

    if best is None:
        raise ParseError(f"no balanced {opener}{closer} span found")
    return text[best[0]:best[1] + 1]


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (ValueError, RecursionError) as e:
        # RecursionError: nesting deeper than the interpreter stack allows
        raise ParseError(f"not valid JSON: {type(e).__name__}: {e}") from e


def extract_json(raw_text: str, expect: type = dict) -> Any:
    """Parse model output into a ``dict`` or ``list``, raising ParseError on failure"""
    if not raw_text or not raw_text.strip():
        raise ParseError("empty model output")

    cleaned = strip_code_fences(raw_text)
    try:
        parsed = _loads(cleaned)
        if isinstance(parsed, expect):
            return parsed
    except ParseError:
        pass

    opener = "{" if expect is dict else "["
    parsed = _loads(find_balanced_span(cleaned, opener))
    if not isinstance(parsed, expect):
        raise ParseError(f"expected {expect.__name__}, got {type(parsed).__name__}")
    return parsed


# ---------------------------------------------------------------------------
# Fallbacks
# ---------------------------------------------------------------------------

def fallback_patterns(sessions: Sequence[RetrospectiveItems]) -> PatternAnalysis:
    keep_count = sum(len(s.keeps) for s in sessions)
    problem_count = sum(len(s.problems) for s in sessions)
    session_count = len(sessions)

    themes = []
    if problem_count > keep_count:
        themes.append(RecurringTheme(
            theme=f"{problem_count} problems vs {keep_count} keeps",
            frequency=problem_count,
            category="growth",
        ))
    elif keep_count or problem_count:
        themes.append(RecurringTheme(
            theme=f"{keep_count} keeps vs {problem_count} problems",
            frequency=keep_count,
            category="strength",
        ))
    if session_count:
        themes.append(RecurringTheme(
            theme=f"{session_count} completed retrospectives",
            frequency=session_count,
            category="strength",
        ))

    recommendations = []
    latest_problems = next((s.problems for s in reversed(sessions) if s.problems), [])
    if latest_problems:
        recommendations.append(f"Focus on: {latest_problems[0]}")

    return PatternAnalysis(recurring_themes=themes, trends=[], recommendations=recommendations)


def fallback_sentiment(sessions: Sequence[SentimentInput] = ()) -> SentimentAnalysis:
    return SentimentAnalysis(
        overall_sentiment="Unable to analyze",
        sentiment_trend="stable",
        wellbeing_score=50,
        insights=[],
    )


def fallback_actions(request: ActionRequestInput) -> List[ActionSuggestion]:
    return [ActionSuggestion(
        text=request.try_text,
        suggested_deadline_days=settings.ACTION_FALLBACK_DEADLINE_DAYS,
    )]


def fallback_summary(session: RetrospectiveItems) -> RetrospectiveSummary:
    keeps, problems = session.keeps, session.problems
    more_keeps = len(keeps) > len(problems)
    if more_keeps:
        summary = f"Good progress with {len(keeps)} wins and {len(problems)} challenges."
    else:
        summary = f"Focus needed: {len(problems)} challenges vs {len(keeps)} wins."
    return RetrospectiveSummary(
        summary=summary,
        key_insight=f"Priority: {problems[0]}" if problems else "Keep building on current momentum",
        suggestions=[f"Address: {p}" for p in problems[:2]],
        overall_sentiment="positive" if more_keeps else "mixed",
    )


def fallback_tries(request: TryRequestInput) -> List[TrySuggestion]:
    return [
        TrySuggestion(text=f"Try one small change this week to address: {problem}", related_problems=[i])
        for i, problem in enumerate(request.problems[:3])
    ]


def fallback(kind: AnalysisKind, source_data: Any) -> Any:
    """Deterministic substitute derived from the analysis input only"""
    if kind == AnalysisKind.PATTERNS:
        return fallback_patterns(source_data)
    if kind == AnalysisKind.SENTIMENT:
        return fallback_sentiment(source_data)
    if kind == AnalysisKind.ACTIONS:
        return fallback_actions(source_data)
    if kind == AnalysisKind.SUMMARY:
        return fallback_summary(source_data)
    if kind == AnalysisKind.TRIES:
        return fallback_tries(source_data)
    raise ValueError(f"Unknown analysis kind: {kind}")


def fallback_result(kind: AnalysisKind, source_data: Any) -> NormalizedResult:
    return NormalizedResult(kind=kind, value=fallback(kind, source_data), source=ResultSource.FALLBACK)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _parse(kind: AnalysisKind, raw_text: str, source_data: Any) -> Any:
    if kind == AnalysisKind.PATTERNS:
        return PatternAnalysis.model_validate(extract_json(raw_text, dict))
    if kind == AnalysisKind.SENTIMENT:
        return SentimentAnalysis.model_validate(extract_json(raw_text, dict))
    if kind == AnalysisKind.SUMMARY:
        return RetrospectiveSummary.model_validate(extract_json(raw_text, dict))
    if kind == AnalysisKind.ACTIONS:
        items = extract_json(raw_text, list)
        actions = [ActionSuggestion.model_validate(item) for item in items]
        if not actions:
            raise ParseError("model returned no actions")
        return actions[:settings.ACTION_MAX_SUGGESTIONS]
    if kind == AnalysisKind.TRIES:
        problem_count = len(source_data.problems)
        suggestions = [TrySuggestion.model_validate(item) for item in extract_json(raw_text, list)]
        if not suggestions:
            raise ParseError("model returned no try suggestions")
        for suggestion in suggestions:
            suggestion.related_problems = [i for i in suggestion.related_problems if i < problem_count]
        return suggestions[:settings.TRY_MAX_SUGGESTIONS]
    raise ValueError(f"Unknown analysis kind: {kind}")


def normalize(kind: AnalysisKind, raw_text: str, source_data: Any) -> NormalizedResult:
    """Parse ``raw_text`` for ``kind``; fall back to a value built from ``source_data``"""
    try:
        value = _parse(kind, raw_text, source_data)
    except (ParseError, ValidationError) as e:
        logger.warning(f"[{kind.value}] unparseable model output, using fallback: {e}")
        return fallback_result(kind, source_data)
    return NormalizedResult(kind=kind, value=value, source=ResultSource.MODEL)
