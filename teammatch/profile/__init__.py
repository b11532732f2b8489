"""
Skill profiles and skill extraction.

This package turns raw skill data (JSON documents, tag arrays or free
text) into a canonical :class:`SkillProfile` and extracts ranked
skills from long documents with an LLM.
"""

from .skill_profile import (  # noqa: F401
    EMPTY_PROFILE,
    Role,
    SkillProfile,
    infer_role_from_tags,
    infer_role_from_text,
    parse_role,
    role_display,
    split_terms,
)
from .extract_skills import ExtractedSkill, chunk_text, extract_skill_scores, extract_skills, merge_skill_scores  # noqa: F401
