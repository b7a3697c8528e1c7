"""
Static focus-keyword -> activity catalog.

The activity catalog itself lives outside this service; this table only names
the activities the engine knows how to recommend and the keywords that select
them.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.core.models import Activity


@dataclass(frozen=True)
class ActivityTemplate:
    name: str
    game_type: str
    modality: str
    keywords: tuple[str, ...]
    target_skills: tuple[str, ...]
    actions: tuple[str, ...]
    expected_outcomes: tuple[str, ...]

    def activity(self, difficulty: int) -> Activity:
        return Activity(
            name=self.name,
            game_type=self.game_type,
            modality=self.modality,
            target_skills=list(self.target_skills),
            difficulty=difficulty,
        )


ACTIVITY_CATALOG: tuple[ActivityTemplate, ...] = (
    ActivityTemplate(
        name="Visual Sequence Memory",
        game_type="memory_games",
        modality="visual",
        keywords=("memory", "working memory", "visual processing", "sequence"),
        target_skills=("working_memory", "visual_processing"),
        actions=(
            "Start with 3-item sequences and add one item after two clean rounds",
            "Use high-contrast colors for each item",
        ),
        expected_outcomes=("Longer recalled sequences", "Faster visual scanning"),
    ),
    ActivityTemplate(
        name="Message Construction Practice",
        game_type="communication",
        modality="visual",
        keywords=("communication", "message", "social"),
        target_skills=("message_construction", "social_communication"),
        actions=(
            "Build two-symbol messages about a preferred activity",
            "Model the message before asking for an independent attempt",
        ),
        expected_outcomes=("More independent multi-symbol messages",),
    ),
    ActivityTemplate(
        name="AAC Tile Navigation Practice",
        game_type="communication",
        modality="kinesthetic",
        keywords=("aac", "symbol", "communication", "navigation"),
        target_skills=("symbol_recognition", "message_construction"),
        actions=(
            "Navigate to a target tile from the home page",
            "Reduce prompting after each correct selection",
        ),
        expected_outcomes=("Quicker tile selection", "Fewer navigation errors"),
    ),
    ActivityTemplate(
        name="Phonics Tile Building",
        game_type="phonics_tiles",
        modality="kinesthetic",
        keywords=("phonics", "phonemic", "reading", "letter", "sound", "blending", "spelling"),
        target_skills=("phonics", "sound_blending", "letter_recognition"),
        actions=(
            "Blend three-letter CVC words with tile support",
            "Say each sound aloud while placing its tile",
        ),
        expected_outcomes=("Accurate sound blending", "Growing sight vocabulary"),
    ),
    ActivityTemplate(
        name="Number Pattern Builder",
        game_type="math_games",
        modality="visual",
        keywords=("math", "number", "counting", "arithmetic"),
        target_skills=("number_recognition", "counting", "arithmetic"),
        actions=(
            "Complete number patterns with manipulatives on screen",
            "Count aloud before selecting the answer",
        ),
        expected_outcomes=("Reliable counting to 20", "Recognition of simple patterns"),
    ),
    ActivityTemplate(
        name="Focus Spotlight",
        game_type="memory_games",
        modality="visual",
        keywords=("attention", "focus spotlight", "concentration"),
        target_skills=("attention",),
        actions=(
            "Track the highlighted object while distractors appear",
            "Take a short movement break between rounds",
        ),
        expected_outcomes=("Longer sustained attention",),
    ),
)


def match_templates(focus_text: str, skill: str | None = None, limit: int = 2) -> list[ActivityTemplate]:
    """
    Activities whose keywords or target skills appear in the focus area.

    Returns at most `limit` templates in catalog order; empty when nothing matches.
    """
    haystack = focus_text.lower().replace("_", " ")
    if skill:
        haystack = f"{haystack} {skill.lower().replace('_', ' ')}"

    matches = []
    for template in ACTIVITY_CATALOG:
        keyword_hit = any(k in haystack for k in template.keywords)
        skill_hit = skill is not None and skill in template.target_skills
        if keyword_hit or skill_hit:
            matches.append(template)
    return matches[:limit]


def generic_template(focus_text: str, skill: str | None = None) -> ActivityTemplate:
    """Fallback activity for focus areas outside the catalog."""
    label = focus_text.strip() or (skill or "skill")
    return ActivityTemplate(
        name=f"Guided {label} Practice",
        game_type="practice",
        modality="visual",
        keywords=(),
        target_skills=(skill,) if skill else (),
        actions=(f"Practice {label} with guided prompts", "Review mistakes together at the end"),
        expected_outcomes=(f"Steady progress in {label}",),
    )
