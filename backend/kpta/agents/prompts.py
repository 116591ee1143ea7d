"""Prompt builders for each analysis kind"""
from typing import List, Sequence

from kpta.agents.models import RetrospectiveItems, SentimentInput, ActionRequestInput, TryRequestInput


def _numbered(items: Sequence[str], empty: str = "None") -> str:
    if not items:
        return empty
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, 1))


def build_patterns_prompt(sessions: Sequence[RetrospectiveItems]) -> str:
    blocks: List[str] = []
    for i, retro in enumerate(sessions, 1):
        blocks.append(
            f"Retrospective {i} ({retro.created_at.strftime('%Y-%m-%d')}):\n"
            f"Keeps: {'; '.join(retro.keeps)}\n"
            f"Problems: {'; '.join(retro.problems)}\n"
            f"Tries: {'; '.join(retro.tries)}"
        )
    history = "\n\n".join(blocks)

    return f"""Here are {len(sessions)} retrospectives in chronological order:

{history}

Analyze these retrospectives and provide:

1. RECURRING THEMES: Identify 3-5 themes that appear multiple times
   - Theme name
   - How many times it appears (frequency)
   - Category (keep/problem/try)
   - Examples from the data

2. TRENDS: Identify 2-4 trends over time
   - What's improving, declining, or staying stable
   - Brief description

3. RECOMMENDATIONS: 3-5 personalized recommendations for continued growth, most important first

Format your response as JSON:
{{
  "recurringThemes": [
    {{"theme": "theme name", "frequency": 2, "category": "keep|problem|try", "examples": ["example1"]}}
  ],
  "trends": [
    {{"description": "trend description", "direction": "improving|declining|stable"}}
  ],
  "recommendations": ["rec1", "rec2"]
}}"""


def build_sentiment_prompt(sessions: Sequence[SentimentInput]) -> str:
    blocks = [
        f"Session {i} ({s.created_at.strftime('%Y-%m-%d')}):\n"
        f"Positives: {'; '.join(s.keeps)}\n"
        f"Challenges: {'; '.join(s.problems)}"
        for i, s in enumerate(sessions, 1)
    ]
    history = "\n\n".join(blocks)

    return f"""Analyze the emotional tone and well-being across these retrospectives:

{history}

Provide:
1. Overall sentiment description
2. Sentiment trend (improving/stable/declining)
3. Well-being score (0-100, where 100 is excellent)
4. 2-3 insights about emotional patterns

Format as JSON:
{{
  "overallSentiment": "description",
  "sentimentTrend": "improving|stable|declining",
  "wellbeingScore": 72,
  "insights": ["insight1", "insight2"]
}}"""


def build_actions_prompt(request: ActionRequestInput) -> str:
    return f"""CONTEXT:
A professional wants to try this new approach:
"{request.try_text}"

This is addressing these challenges:
{_numbered(request.problems, empty="General improvement")}

YOUR TASK:
Generate 2-3 specific, executable action items (Specific, Measurable, Achievable, Relevant, Time-bound).
Each action starts with a verb and directly supports the approach above.

For deadline suggestions:
- Quick wins or habit starters: 1-3 days
- Small projects or first steps: 3-7 days
- Moderate initiatives: 7-14 days
- Larger efforts: 14-30 days

Return ONLY a valid JSON array:
[
  {{"text": "Action starting with a verb", "suggestedDeadlineDays": 3, "reasoning": "Brief explanation of impact"}}
]"""


def build_summary_prompt(retro: RetrospectiveItems) -> str:
    return f"""Analyze this reflection and provide simple, clear feedback.

WHAT WENT WELL:
{_numbered(retro.keeps)}

CHALLENGES:
{_numbered(retro.problems)}

Give me:
1. SUMMARY (1-2 sentences): the overall picture.
2. KEY INSIGHT (1 sentence): the most important thing to focus on.
3. SUGGESTED APPROACHES (2-3 concrete, actionable things to try).

Return ONLY this JSON format:
{{
  "summary": "Clear 1-2 sentence overview",
  "keyInsight": "The one most important thing",
  "suggestions": ["Try this specific thing", "Try this other thing"],
  "overallSentiment": "positive|mixed|negative|neutral"
}}"""


def build_tries_prompt(request: TryRequestInput) -> str:
    keeps = f"\n\nThings they want to Keep doing:\n{_numbered(request.keeps)}" if request.keeps else ""
    context = ""
    if request.past_problems:
        lines = [f"Retro {i}: Problems: {', '.join(problems)}" for i, problems in enumerate(request.past_problems, 1)]
        context = "\n\nPast context (for reference):\n" + "\n".join(lines)

    return f"""Based on these Problems they're facing:
{_numbered(request.problems)}{keeps}{context}

Generate 3-5 specific, actionable "Try" suggestions. Each suggestion should:
- Be concrete and specific (not vague like "be more organized")
- Be achievable within 1-2 weeks
- Address one or more of the problems
- Build on their strengths (Keeps) when possible

Return ONLY a JSON array in this exact format:
[
  {{"text": "Try the Pomodoro technique: 25min focused work, 5min break", "rationale": "Helps with focus", "relatedProblems": [0, 2]}}
]
relatedProblems are zero-based positions in the Problems list above."""
