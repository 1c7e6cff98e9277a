"""
Reasoning Stage Prompts
=======================

Prompt builders for each pipeline stage. Every builder receives the
accumulated transcript so later stages reason over earlier output.
"""

from typing import Dict, List, Optional, Sequence

from ..schemas import CaseRecord, ReasoningStage, ReasoningStep, StepType

SIMILAR_CASES_IN_PROMPT = 5

SYSTEM_PROMPTS: Dict[ReasoningStage, str] = {
    ReasoningStage.OBSERVATION:
        "You are a meticulous detective making careful observations. Be specific and evidence-based.",
    ReasoningStage.EVIDENCE_INFERENCE:
        "You are analyzing evidence methodically, looking for connections and inconsistencies.",
    ReasoningStage.PATTERN_HYPOTHESIS:
        "You are identifying patterns with careful reasoning, avoiding false connections.",
    ReasoningStage.HYPOTHESIS_GENERATION:
        "You are generating hypotheses with clear logical reasoning, considering alternatives.",
    ReasoningStage.VALIDATION:
        "You are a critical validator, checking reasoning for errors and improvements.",
    ReasoningStage.SELF_REFLECTION:
        "You are engaging in honest self-reflection to improve your reasoning.",
    ReasoningStage.SELF_CORRECTION:
        "You are correcting your reasoning to improve accuracy and quality.",
    ReasoningStage.CONCLUSION:
        "You are drawing final conclusions with clear reasoning and appropriate confidence.",
}


def system_prompt(stage: ReasoningStage, guidance: Optional[str] = None) -> str:
    base = SYSTEM_PROMPTS[stage]
    if guidance:
        return f"{base}\n\n{guidance}"
    return base


def format_transcript(steps: Sequence[ReasoningStep], with_confidence: bool = False) -> str:
    if not steps:
        return "(no prior steps)"
    lines = []
    for s in steps:
        line = f"Step {s.step} ({s.type.value}): {s.content}"
        if with_confidence:
            line += f" (Confidence: {s.confidence}%)"
        lines.append(line)
    return "\n".join(lines)


def observation_prompt(case: CaseRecord) -> str:
    return f"""Analyze this case and make initial observations. List 5-7 key observations with reasoning.

Case: {case.label}
Date: {case.date.isoformat() if case.date else 'unknown'}
Jurisdiction: {case.jurisdiction or 'unknown'}
Description: {case.description}
Evidence Count: {len(case.evidence)}

For each observation, explain:
1. What you observe
2. Why it's significant
3. What evidence supports it

Format as numbered list."""


def evidence_prompt(case: CaseRecord, transcript: Sequence[ReasoningStep]) -> str:
    evidence = "\n".join(
        f"- [{e.id}] {e.category.value}: {e.description}" for e in case.evidence
    ) or "(no evidence recorded)"

    return f"""Based on previous observations, analyze the evidence systematically.

Previous Observations:
{format_transcript(transcript)}

Evidence:
{evidence}

For each piece of evidence, determine:
1. What it tells us
2. How it connects to observations
3. What questions it raises
4. Reliability assessment

Refer to evidence by its id. Format as numbered list with reasoning."""


def pattern_prompt(
    case: CaseRecord,
    corpus: Sequence[CaseRecord],
    transcript: Sequence[ReasoningStep],
    insights: Optional[List[str]] = None,
) -> str:
    similar = [
        f"- {c.label} ({c.date.isoformat() if c.date else 'undated'})"
        for c in corpus if c.id != case.id
    ][:SIMILAR_CASES_IN_PROMPT]
    similar_text = "\n".join(similar) or "(none)"
    context = [s for s in transcript if s.type in (StepType.OBSERVATION, StepType.INFERENCE)]
    detected = "\n".join(f"- {i}" for i in insights or []) or "(none)"

    return f"""Identify patterns and connections.

Case Context:
{format_transcript(context)}

Similar Cases:
{similar_text}

Detected Patterns:
{detected}

Analyze:
1. Patterns in MO, timing, location
2. Connections to other cases
3. What patterns suggest
4. Confidence in pattern matches

Format as numbered list with detailed reasoning."""


def hypothesis_prompt(transcript: Sequence[ReasoningStep]) -> str:
    return f"""Generate hypotheses based on the reasoning chain.

Reasoning So Far:
{format_transcript(transcript)}

For each hypothesis:
1. State the hypothesis clearly
2. Explain the reasoning that leads to it
3. List supporting evidence
4. Consider alternative explanations
5. Assess confidence level

Format as numbered list with full reasoning."""


def validation_prompt(transcript: Sequence[ReasoningStep]) -> str:
    return f"""Validate the reasoning chain. Check each step for:
1. Logical consistency
2. Evidence support
3. Potential errors or biases
4. Missing considerations

Reasoning Chain:
{format_transcript(transcript, with_confidence=True)}

For each validation:
- Name the step you are checking as "Step N"
- Explain why it's valid or invalid
- Suggest improvements if needed

Format as numbered list."""


def reflection_prompt(transcript: Sequence[ReasoningStep]) -> str:
    return f"""Reflect on your reasoning process. Be honest and critical.

Reasoning Process:
{format_transcript(transcript, with_confidence=True)}

Assess, using these headings:
Strengths: What did you do well?
Weaknesses: Where could you improve?
Improvements: Specific ways to enhance reasoning
Confidence: High, Medium, or Low and why

List items under each heading. Be specific and actionable."""


def correction_prompt(weaknesses: Sequence[str], weak_steps: Sequence[ReasoningStep]) -> str:
    weakness_text = "\n".join(f"- {w}" for w in weaknesses)
    return f"""Correct weaknesses in your reasoning.

Identified Weaknesses:
{weakness_text}

Steps Needing Correction:
{format_transcript(weak_steps)}

Provide corrected reasoning for each weak step as a numbered list."""


def conclusion_prompt(transcript: Sequence[ReasoningStep]) -> str:
    key_steps = [s for s in transcript if s.type in (StepType.HYPOTHESIS, StepType.REFLECTION)]
    return f"""Draw final conclusions based on the complete reasoning chain.

Key Reasoning:
{format_transcript(key_steps)}

Provide 5-8 specific, actionable conclusions. Each should:
1. Be clearly stated
2. Be supported by the reasoning chain
3. Include confidence level
4. Be actionable

Format as numbered list."""
