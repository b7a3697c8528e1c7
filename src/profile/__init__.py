"""Profile maintenance: folds events into per-user learning profiles."""

from src.profile.maintainer import ProfileMaintainer, compute_improvement_rate
from src.profile.skills import TOOL_SKILLS, skills_for_tool, tools_for_skill

__all__ = [
    "ProfileMaintainer",
    "TOOL_SKILLS",
    "compute_improvement_rate",
    "skills_for_tool",
    "tools_for_skill",
]
