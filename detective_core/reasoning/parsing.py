"""
Reasoning Output Parsing
========================

Tolerant extraction of structured steps from free-text generator replies.

Every extraction returns an explicit ParseResult so callers can tell
"the model said nothing" (EMPTY) apart from "the parser found nothing" (PARSE_FAILED).
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from ..schemas import ConfidenceLevel, SelfReflection, StageStatus

MIN_STEP_LENGTH = 10
MIN_REFLECTION_ITEM_LENGTH = 5

# "1. text", "1) text", "- text", "* text", "• text"
LIST_ITEM = re.compile(r"^\s*(?:\d+[.)]\s*|[-*•]\s+)(.*\S)\s*$")

CONFIDENCE_BEFORE = re.compile(r"(\d{1,3})\s*%?\s*(?:confidence|confident)", re.IGNORECASE)
CONFIDENCE_AFTER = re.compile(r"(?:confidence|confident)\D{0,20}?(\d{1,3})\s*%", re.IGNORECASE)
PERCENTAGE = re.compile(r"(\d{1,3})\s*%")

CONFIDENCE_WORDS = (
    (("certain", "definite"), 90),
    (("likely", "probable"), 75),
    (("possible", "might"), 50),
    (("uncertain", "unclear"), 30),
)
DEFAULT_CONFIDENCE = 60

EVIDENCE_MENTION = re.compile(r"\bevidence\s+#?([A-Za-z0-9][\w-]*)", re.IGNORECASE)
STEP_REFERENCE = re.compile(r"\bstep\s+#?(\d+)", re.IGNORECASE)
FAILURE_WORDS = ("invalid", "error", "unsupported", "incorrect")

SECTION_HEADING = re.compile(
    r"^\s*(?:\d+[.)]\s*)?[#*\s]*"
    r"(strengths?|weakness(?:es)?|improvements?|(?:overall\s+)?confidence(?:\s+level)?)"
    r"[*\s]*(?::(.*))?$",
    re.IGNORECASE,
)

# Prose headings such as "Strengths I noticed:" or "Confidence is low"
SECTION_KEYWORD = re.compile(
    r"^[#*\s]*(strengths?|weakness(?:es)?|improvements?|(?:overall\s+)?confidence(?:\s+level)?)\b(.*)$",
    re.IGNORECASE,
)


@dataclass
class ParsedStep:
    content: str
    confidence: int
    evidence: List[str] = field(default_factory=list)


@dataclass
class ParseResult:
    """Steps extracted from one reply plus the extraction status"""
    steps: List[ParsedStep]
    status: StageStatus

    @property
    def ok(self) -> bool:
        return self.status == StageStatus.OK


def _clamp(value: int) -> int:
    return max(0, min(100, value))


def estimate_confidence(content: str) -> int:
    """Confidence from an in-line percentage, else from hedging words."""
    for pattern in (CONFIDENCE_BEFORE, CONFIDENCE_AFTER, PERCENTAGE):
        match = pattern.search(content)
        if match:
            return _clamp(int(match.group(1)))

    lower = content.lower()
    # "uncertain" contains "certain", so check it first
    if "uncertain" in lower or "unclear" in lower:
        return 30
    for words, value in CONFIDENCE_WORDS:
        if any(w in lower for w in words):
            return value
    return DEFAULT_CONFIDENCE


def extract_evidence_references(content: str, evidence_ids: Iterable[str] = ()) -> List[str]:
    """
    Evidence ids referenced by a step.

    Known ids are matched anywhere in the text; "evidence <ID>" mentions are
    kept when the token looks like an identifier (contains a digit).
    """
    found: List[str] = []
    lower = content.lower()
    for evidence_id in evidence_ids:
        if evidence_id and re.search(rf"(?<![\w-]){re.escape(evidence_id.lower())}(?![\w-])", lower):
            found.append(evidence_id)
    for match in EVIDENCE_MENTION.finditer(content):
        token = match.group(1)
        if any(ch.isdigit() for ch in token) and token not in found:
            found.append(token)
    return found


def extract_step_references(content: str) -> List[int]:
    refs = []
    for match in STEP_REFERENCE.finditer(content):
        number = int(match.group(1))
        if number not in refs:
            refs.append(number)
    return refs


def validation_passed(content: str) -> bool:
    lower = content.lower()
    return not any(word in lower for word in FAILURE_WORDS)


def list_items(text: str, min_length: int = 0) -> List[str]:
    items = []
    for line in (text or "").splitlines():
        match = LIST_ITEM.match(line)
        if match:
            item = match.group(1).strip()
            if len(item) > min_length:
                items.append(item)
    return items


def parse_steps(
    text: Optional[str],
    evidence_ids: Iterable[str] = (),
    min_length: int = MIN_STEP_LENGTH,
) -> ParseResult:
    """Extract numbered/bulleted lines from a reply as reasoning steps."""
    if not text or not text.strip():
        return ParseResult(steps=[], status=StageStatus.EMPTY)

    evidence_ids = list(evidence_ids)
    steps = [
        ParsedStep(
            content=item,
            confidence=estimate_confidence(item),
            evidence=extract_evidence_references(item, evidence_ids),
        )
        for item in list_items(text, min_length=min_length)
    ]
    if not steps:
        return ParseResult(steps=[], status=StageStatus.PARSE_FAILED)
    return ParseResult(steps=steps, status=StageStatus.OK)


def _confidence_level(text: str) -> Optional[ConfidenceLevel]:
    match = re.search(r"\b(high|medium|moderate|low)\b", text, re.IGNORECASE)
    if not match:
        return None
    word = match.group(1).lower()
    if word == "moderate":
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel(word)


def _section_heading(line: str) -> Optional[Tuple[str, str]]:
    """(keyword, trailing text) when the line opens a reflection section"""
    heading = SECTION_HEADING.match(line)
    if heading:
        return heading.group(1).lower(), (heading.group(2) or "").strip()
    if LIST_ITEM.match(line):
        return None
    heading = SECTION_KEYWORD.match(line)
    if not heading:
        return None
    rest = heading.group(2)
    if ":" in rest:
        rest = rest.split(":", 1)[1]
    return heading.group(1).lower(), rest.strip()


def parse_reflection(text: Optional[str]) -> Tuple[SelfReflection, StageStatus]:
    """
    Split a self-reflection reply into keyword-bounded sections.

    Any non-list line starting with Strengths / Weaknesses / Improvements /
    Confidence opens a section; list items below it belong to that section.
    A reply with no strengths, weaknesses or improvements is PARSE_FAILED.
    """
    if not text or not text.strip():
        return SelfReflection(), StageStatus.EMPTY

    sections = {"strengths": [], "weaknesses": [], "improvements": []}
    level: Optional[ConfidenceLevel] = None
    current: Optional[str] = None

    for line in text.splitlines():
        heading = _section_heading(line)
        if heading:
            name, rest = heading
            if name.startswith("strength"):
                current = "strengths"
            elif name.startswith("weakness"):
                current = "weaknesses"
            elif name.startswith("improvement"):
                current = "improvements"
            else:
                current = "confidence"
                level = level or _confidence_level(rest)
            continue

        if current == "confidence":
            level = level or _confidence_level(line)
            continue

        if current:
            match = LIST_ITEM.match(line)
            if match:
                item = match.group(1).strip()
                if len(item) > MIN_REFLECTION_ITEM_LENGTH:
                    sections[current].append(item)

    if not any(sections.values()):
        return SelfReflection(), StageStatus.PARSE_FAILED

    reflection = SelfReflection(
        strengths=sections["strengths"],
        weaknesses=sections["weaknesses"],
        improvements=sections["improvements"],
        confidence_level=level or ConfidenceLevel.MEDIUM,
    )
    return reflection, StageStatus.OK
