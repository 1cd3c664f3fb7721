"""Prompt builders for candidate analysis, follow-ups and meeting prep."""

import re
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import (
    ASSISTANT_ROLE,
    SYSTEM_ROLE,
    USER_ROLE,
    Candidate,
    ChatMessage,
)

ANALYST_BASE = """You are an AI analyst for venture capital investors.

Your role is to analyze founders and companies and provide investment-relevant insights.

Guidelines:
- Be concise and direct, investors are busy
- Focus on signals that matter for investment decisions
- Acknowledge when data is limited and do not invent facts
- Highlight both opportunities and risks honestly
- Use bullet points for easy scanning"""

TOOL_INSTRUCTIONS = """You have access to the following tools:
{catalog}

To use a tool, respond with:
<tool>tool_name</tool>
<args>{{"param": "value"}}</args>

After receiving tool results, provide your final analysis."""

FINAL_ANALYSIS_INSTRUCTION = (
    "Provide your final analysis now using the information above. "
    "Do not request any more tools."
)

FALLBACK_ANSWER = "I could not produce an analysis this time. Please try again."


def build_context(
    persona_summary: str = "",
    preference_summary: str = "",
    entity_context: str = "",
    conversation: str = "",
) -> str:
    """Joins the non-empty context sections with headings."""
    sections = [
        ("ACTIVE PERSONA", persona_summary),
        ("USER PREFERENCES", preference_summary),
        ("CURRENT ENTITY", entity_context),
        ("RECENT CONVERSATION", conversation),
    ]
    return "\n\n".join(f"{title}:\n{body}" for title, body in sections if body)


def build_system_prompt(
    context: str = "",
    catalog: Optional[str] = None,
    persona_prompt: Optional[str] = None,
) -> str:
    parts = [persona_prompt or ANALYST_BASE]
    if context:
        parts.append(
            f"User Context:\n{context}\n\n"
            "Use this context to personalize your analysis: highlight aspects that "
            "align with the user's interests and flag potential mismatches."
        )
    if catalog:
        parts.append(TOOL_INSTRUCTIONS.format(catalog=catalog))
    return "\n\n".join(parts)


def format_candidate(candidate: Candidate) -> str:
    lines = [f"Name: {candidate.name}", f"ID: {candidate.id}"]
    if candidate.title:
        role = candidate.title
        if candidate.company:
            role += f" at {candidate.company}"
        lines.append(f"Current Role: {role}")
    elif candidate.company:
        lines.append(f"Company: {candidate.company}")
    if candidate.company_id:
        lines.append(f"Company ID: {candidate.company_id}")
    if candidate.location:
        lines.append(f"Location: {candidate.location}")

    features = candidate.features
    if features.industry:
        lines.append(f"Industry: {features.industry}")
    if features.seniority:
        lines.append(f"Seniority: {features.seniority}")
    if features.region:
        lines.append(f"Region: {features.region}")
    if features.tags:
        lines.append("Highlights: " + ", ".join(t.replace("_", " ") for t in features.tags))
    if candidate.summary:
        lines.append(f"Summary: {candidate.summary}")
    return "\n".join(lines)


def build_summary_messages(candidate: Candidate, context: str = "") -> List[ChatMessage]:
    return [
        ChatMessage(role=SYSTEM_ROLE, content=build_system_prompt(context)),
        ChatMessage(
            role=USER_ROLE,
            content=f"""Analyze this founder for an investor:

{format_candidate(candidate)}

Provide a brief analysis with these exact sections:

**SUMMARY**
(3-4 bullet points about this person as a founder/talent)

**STRENGTHS**
(2-3 points that would appeal to investors)

**RISKS**
(2-3 concerns or open questions to validate)

Be concise. Each bullet should be 1 line.""",
        ),
    ]


def build_follow_up_messages(
    candidate: Candidate, previous_analysis: str, question: str, context: str = ""
) -> List[ChatMessage]:
    return [
        ChatMessage(role=SYSTEM_ROLE, content=build_system_prompt(context)),
        ChatMessage(
            role=USER_ROLE,
            content=f"Founder profile:\n{format_candidate(candidate)}",
        ),
        ChatMessage(role=ASSISTANT_ROLE, content=previous_analysis),
        ChatMessage(role=USER_ROLE, content=question),
    ]


def build_meeting_prep_messages(candidate: Candidate, context: str = "") -> List[ChatMessage]:
    return [
        ChatMessage(role=SYSTEM_ROLE, content=build_system_prompt(context)),
        ChatMessage(
            role=USER_ROLE,
            content=f"""I'm about to meet with this person:

{format_candidate(candidate)}

Give me a 60-second briefing:
1. Key background (2-3 points)
2. 3 smart questions to ask based on their profile
3. 2 things to validate/watch for""",
        ),
    ]


class ParsedAnalysis(BaseModel):
    summary: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    raw: str = ""


_BULLET = re.compile(r"^(?:[-*•]|\d+\.)\s+")
_NUMBERED = re.compile(r"^\d+\.\s+")


def _section_of(line: str) -> Optional[str]:
    lower = line.strip("*#: ").lower()
    if "summary" in lower or "background" in lower:
        return "summary"
    if "strength" in lower:
        return "strengths"
    if "risk" in lower or "concern" in lower or "question" in lower or "validate" in lower:
        return "risks"
    return None


def parse_analysis(text: str) -> ParsedAnalysis:
    """Splits a sectioned model answer into summary, strengths and risks.

    Headings may be plain lines (``**RISKS**``, ``Strengths:``) or numbered
    items (``1. Key background``) followed by ``-``, ``*`` or ``•`` bullets.
    """
    result = ParsedAnalysis(raw=text or "")
    lines = [l.strip() for l in (text or "").splitlines() if l.strip()]
    current = None
    for i, line in enumerate(lines):
        next_line = lines[i + 1] if i + 1 < len(lines) else ""
        # A numbered item with sub-bullets under it is a heading.
        if _NUMBERED.match(line) and _BULLET.match(next_line) and not _NUMBERED.match(next_line):
            section = _section_of(_NUMBERED.sub("", line))
            if section:
                current = section
                continue
        if _BULLET.match(line):
            content = _BULLET.sub("", line).strip("* ").strip()
            if content and current:
                getattr(result, current).append(content)
            continue
        current = _section_of(line) or current
    return result
