# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Skill matching — pure computation, no side effects.

Scores a volunteer's verified skills against an incident's requirements.
Every verified skill whose name matches a requirement is recorded, but only
those at or above the required level add the requirement's priority weight
to the score.
"""

from typing import Iterable, Sequence

from relief_dispatch.models.domain import CandidateSkill, SkillRequirement, VolunteerSkill

LEVEL_VALUES: dict[str, int] = {
    "beginner": 1,
    "intermediate": 2,
    "advanced": 3,
    "expert": 4,
}
PRIORITY_WEIGHTS: dict[str, int] = {
    "high": 3,
    "medium": 2,
    "low": 1,
}
DEFAULT_LEVEL_VALUE = LEVEL_VALUES["intermediate"]
DEFAULT_PRIORITY_WEIGHT = PRIORITY_WEIGHTS["medium"]


def level_value(level: str | None) -> int:
    """Ordinal of a proficiency level; unknown levels count as intermediate."""
    return LEVEL_VALUES.get((level or "").strip().lower(), DEFAULT_LEVEL_VALUE)


def priority_weight(priority: str | None) -> int:
    """Score weight of a requirement priority; unknown or missing is medium."""
    return PRIORITY_WEIGHTS.get((priority or "").strip().lower(), DEFAULT_PRIORITY_WEIGHT)


def _find_verified(name: str, offered: Iterable[VolunteerSkill]) -> VolunteerSkill | None:
    key = name.strip().lower()
    for skill in offered:
        if skill.verified and skill.skill.strip().lower() == key:
            return skill
    return None


def match(
    required: Sequence[SkillRequirement],
    offered: Sequence[VolunteerSkill],
) -> tuple[list[CandidateSkill], int]:
    """Return (matched_skills, score) for one volunteer."""
    matched: list[CandidateSkill] = []
    score = 0
    for requirement in required:
        skill = _find_verified(requirement.skill, offered)
        if skill is None:
            continue
        matched.append(CandidateSkill(
            skill=skill.skill,
            level=skill.level,
            required_level=requirement.min_level,
            priority=requirement.priority,
        ))
        if level_value(skill.level) >= level_value(requirement.min_level):
            score += priority_weight(requirement.priority)
    return matched, score
