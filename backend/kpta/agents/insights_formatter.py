"""
Formatter for presenting insight snapshots in a readable format
"""

from typing import List, Union

from kpta.models.api import InsightsResponse, NotEnoughDataResponse


class InsightsFormatter:
    """Format insight results into human-readable text"""

    TREND_ARROWS = {"improving": "↗", "stable": "→", "declining": "↘"}

    @staticmethod
    def format_insights(result: Union[InsightsResponse, NotEnoughDataResponse]) -> str:
        """Format an insights result into a markdown-style report"""
        lines: List[str] = ["# Your Retrospective Insights\n"]

        if isinstance(result, NotEnoughDataResponse):
            lines.append(f"{result.message}\n")
            lines.append(f"Progress: {result.current_count}/{result.required_count} completed retrospectives")
            return "\n".join(lines)

        lines.append("## Wellbeing\n")
        arrow = InsightsFormatter.TREND_ARROWS.get(result.wellbeing_trend, "")
        lines.append(f"{InsightsFormatter._score_bar(result.wellbeing_score)} {result.wellbeing_score}/100")
        lines.append(f"Trend: {arrow} {result.wellbeing_trend}\n")

        if result.top_themes:
            lines.append("## Recurring Themes\n")
            for theme in result.top_themes:
                marker = "+" if theme.category == "strength" else "*"
                lines.append(f"{marker} **{theme.theme}** ({theme.category})")
            lines.append("")

        lines.append("## Focus\n")
        lines.append(f"{result.key_recommendation}\n")

        lines.append("---")
        if result.from_cache and result.cached_at:
            lines.append(f"*Cached {result.cached_at.strftime('%B %d, %Y %H:%M')}*")
        else:
            lines.append("*Freshly generated*")

        return "\n".join(lines)

    @staticmethod
    def _score_bar(score: int, width: int = 10) -> str:
        filled = round(score / 100 * width)
        return "█" * filled + "░" * (width - filled)
