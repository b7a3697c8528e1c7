"""
Static tool -> skill mapping.

Each tool on the platform exercises one or more skill areas. Tools missing from
the table are tracked as a skill of the same name.
"""

from __future__ import annotations

TOOL_SKILLS: dict[str, list[str]] = {
    "memory_games": ["working_memory", "visual_processing", "attention"],
    "reading_spelling": ["phonemic_awareness", "reading_comprehension", "spelling"],
    "phonics_tiles": ["letter_recognition", "sound_blending", "phonics"],
    "math_games": ["number_recognition", "counting", "arithmetic"],
    "communication": ["symbol_recognition", "message_construction", "social_communication"],
}


def skills_for_tool(tool_name: str) -> list[str]:
    """Skills exercised by a tool."""
    return list(TOOL_SKILLS.get(tool_name.strip().lower(), [tool_name]))


def tools_for_skill(skill: str) -> list[str]:
    """Reverse lookup: every tool that exercises a skill."""
    tools = [tool for tool, skills in TOOL_SKILLS.items() if skill in skills]
    return tools or [skill]
