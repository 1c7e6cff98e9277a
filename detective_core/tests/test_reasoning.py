"""
Tests for Reasoning Chain Engine
================================

Tests:
1. Full pipeline with a scripted generator
2. Degraded generators (empty, timeout, exception, unparseable)
3. Reply parsing and quality scoring
"""

import asyncio
from datetime import date, datetime, timezone

import pytest

from conftest import make_case
from detective_core.exceptions import GenerationError
from detective_core.reasoning import ReasoningEngine, parse_reflection, parse_steps, score_quality
from detective_core.reasoning.parsing import estimate_confidence, extract_evidence_references
from detective_core.schemas import (
    ChainStatus,
    ConfidenceLevel,
    ReasoningStage,
    ReasoningStep,
    SelfReflection,
    StageStatus,
    StepType,
    ValidationResult,
)


# Keyed by a phrase from each stage's system prompt
SCRIPT = (
    ("careful observations",
     "1. The victim reported forced entry through the rear window (likely)\n"
     "2. Evidence c1-ev-1 shows pry marks on the frame, 80% confidence"),
    ("analyzing evidence methodically",
     "1. Pry marks in c1-ev-1 indicate a tool was used\n"
     "2. The handwritten note suggests premeditation, probable"),
    ("identifying patterns",
     "1. Possible link to earlier burglaries in the same area"),
    ("generating hypotheses",
     "- The offender is likely a local repeat burglar"),
    ("critical validator",
     "1. Step 1 is supported by the case description\n"
     "2. Step 3 is unsupported by the physical findings"),
    ("self-reflection",
     "Strengths:\n- Observations grounded in the evidence\n"
     "Weaknesses:\n- Pattern link relies on little data\n"
     "Improvements:\n- Compare with more cases\n"
     "Confidence: medium"),
    ("correcting your reasoning",
     "1. Pattern link downgraded to possible pending more cases"),
    ("drawing final conclusions",
     "1. Forced entry by a tool-using offender\n"
     "2. The note indicates premeditation"),
)


def scripted_generate(calls=None):
    async def generate(prompt, system_prompt=None):
        if calls is not None:
            calls.append((prompt, system_prompt))
        for phrase, reply in SCRIPT:
            if phrase in (system_prompt or ""):
                return reply
        return ""
    return generate


@pytest.fixture
def engine():
    return ReasoningEngine(
        require_validation=True,
        self_reflection=True,
        self_correction=True,
        stage_timeout=5.0,
    )


@pytest.fixture
def case():
    return make_case("c1", incident_date=date(2021, 3, 1))


def _report(chain, stage):
    return next(r for r in chain.stage_reports if r.stage == stage)


# =============================================================================
# Full pipeline
# =============================================================================

class TestPipeline:
    """Scripted end-to-end runs"""

    @pytest.mark.asyncio
    async def test_steps_numbered_contiguously(self, engine, case):
        chain = await engine.reason_through_case(case, [], scripted_generate())

        assert chain.status == ChainStatus.COMPLETED
        assert [s.step for s in chain.steps] == list(range(1, len(chain.steps) + 1))
        assert len(chain.steps) == 11
        assert [r.stage for r in chain.stage_reports] == list(ReasoningStage)

    @pytest.mark.asyncio
    async def test_stage_types(self, engine, case):
        chain = await engine.reason_through_case(case, [], scripted_generate())
        types = [s.type for s in chain.steps]
        assert types[:2] == [StepType.OBSERVATION, StepType.OBSERVATION]
        assert types[2:4] == [StepType.INFERENCE, StepType.INFERENCE]
        assert types[4:6] == [StepType.HYPOTHESIS, StepType.HYPOTHESIS]
        assert types[6:8] == [StepType.VALIDATION, StepType.VALIDATION]
        assert types[8] == StepType.REFLECTION
        assert types[9:] == [StepType.CONCLUSION, StepType.CONCLUSION]

    @pytest.mark.asyncio
    async def test_validation_written_onto_referenced_steps(self, engine, case):
        chain = await engine.reason_through_case(case, [], scripted_generate())

        assert chain.steps[0].validation.passed is True
        assert chain.steps[2].validation.passed is False
        assert chain.steps[1].validation is None
        # Content is never rewritten by validation
        assert chain.steps[0].content.startswith("The victim reported forced entry")

    @pytest.mark.asyncio
    async def test_confidence_and_evidence_extracted(self, engine, case):
        chain = await engine.reason_through_case(case, [], scripted_generate())
        assert chain.steps[0].confidence == 75
        assert chain.steps[1].confidence == 80
        assert chain.steps[1].evidence == ["c1-ev-1"]

    @pytest.mark.asyncio
    async def test_reflection_and_correction(self, engine, case):
        chain = await engine.reason_through_case(case, [], scripted_generate())

        assert chain.self_reflection.strengths == ["Observations grounded in the evidence"]
        assert chain.self_reflection.weaknesses == ["Pattern link relies on little data"]
        assert chain.self_reflection.confidence_level == ConfidenceLevel.MEDIUM
        assert _report(chain, ReasoningStage.SELF_CORRECTION).status == StageStatus.OK
        assert chain.steps[8].stage == ReasoningStage.SELF_CORRECTION

    @pytest.mark.asyncio
    async def test_conclusions(self, engine, case):
        chain = await engine.reason_through_case(case, [], scripted_generate())
        assert chain.conclusions == [
            "Forced entry by a tool-using offender",
            "The note indicates premeditation",
        ]

    @pytest.mark.asyncio
    async def test_quality_and_validated_consistent(self, engine, case):
        chain = await engine.reason_through_case(case, [], scripted_generate())
        assert 0 <= chain.reasoning_quality <= 10
        assert chain.validated == (chain.reasoning_quality >= 8)
        assert 0 <= chain.overall_confidence <= 100

    @pytest.mark.asyncio
    async def test_guidance_reaches_system_prompt(self, engine, case):
        calls = []
        await engine.reason_through_case(case, [], scripted_generate(calls), guidance="Avoid: Timeline Error")
        assert calls
        assert all("Avoid: Timeline Error" in system for _, system in calls)

    @pytest.mark.asyncio
    async def test_disabled_stages_skipped(self, case):
        engine = ReasoningEngine(require_validation=False, self_reflection=False, self_correction=False)
        chain = await engine.reason_through_case(case, [], scripted_generate())

        for stage in (ReasoningStage.VALIDATION, ReasoningStage.SELF_REFLECTION, ReasoningStage.SELF_CORRECTION):
            assert _report(chain, stage).status == StageStatus.SKIPPED
        assert all(s.validation is None for s in chain.steps)

    @pytest.mark.asyncio
    async def test_correction_skipped_without_weaknesses(self, engine, case):
        async def generate(prompt, system_prompt=None):
            if "self-reflection" in system_prompt:
                return "Strengths:\n- Solid evidence handling\nConfidence: high"
            return await scripted_generate()(prompt, system_prompt)

        chain = await engine.reason_through_case(case, [], generate)
        assert _report(chain, ReasoningStage.SELF_CORRECTION).status == StageStatus.SKIPPED
        assert not any(s.stage == ReasoningStage.SELF_CORRECTION for s in chain.steps)


# =============================================================================
# Degraded generators
# =============================================================================

class TestDegradedGeneration:
    """The pipeline always completes"""

    @pytest.mark.asyncio
    async def test_empty_replies(self, engine, case):
        async def generate(prompt, system_prompt=None):
            return ""

        chain = await engine.reason_through_case(case, [], generate)

        assert chain.steps == []
        assert chain.overall_confidence == 0
        assert chain.reasoning_quality == 0
        assert chain.validated is False
        assert chain.status == ChainStatus.COMPLETED
        assert _report(chain, ReasoningStage.OBSERVATION).status == StageStatus.EMPTY
        assert _report(chain, ReasoningStage.SELF_CORRECTION).status == StageStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_timeout(self, case):
        engine = ReasoningEngine(stage_timeout=0.01)

        async def generate(prompt, system_prompt=None):
            await asyncio.sleep(1)
            return "1. never seen because the stage timed out"

        chain = await engine.reason_through_case(case, [], generate)

        assert chain.steps == []
        assert _report(chain, ReasoningStage.OBSERVATION).status == StageStatus.GENERATION_FAILED
        assert "timeout" in _report(chain, ReasoningStage.OBSERVATION).error

    @pytest.mark.asyncio
    async def test_exception(self, engine, case):
        async def generate(prompt, system_prompt=None):
            raise GenerationError("backend unavailable")

        chain = await engine.reason_through_case(case, [], generate)

        assert chain.status == ChainStatus.COMPLETED
        assert chain.steps == []
        failed = [r for r in chain.stage_reports if r.status == StageStatus.GENERATION_FAILED]
        assert ReasoningStage.CONCLUSION in [r.stage for r in failed]
        assert "backend unavailable" in failed[0].error

    @pytest.mark.asyncio
    async def test_unparseable_reply(self, engine, case):
        async def generate(prompt, system_prompt=None):
            return "Nothing notable stands out in this case."

        chain = await engine.reason_through_case(case, [], generate)
        assert _report(chain, ReasoningStage.OBSERVATION).status == StageStatus.PARSE_FAILED
        assert _report(chain, ReasoningStage.SELF_REFLECTION).status == StageStatus.PARSE_FAILED


# =============================================================================
# Parsing
# =============================================================================

class TestParsing:
    """Tolerant reply parsing"""

    def test_list_formats(self):
        text = "1. First numbered observation\n2) Second numbered observation\n- A dashed observation\n* A starred observation\nplain prose line"
        result = parse_steps(text)
        assert result.status == StageStatus.OK
        assert [s.content for s in result.steps] == [
            "First numbered observation",
            "Second numbered observation",
            "A dashed observation",
            "A starred observation",
        ]

    def test_short_items_dropped(self):
        assert parse_steps("1. short\n2. tiny").status == StageStatus.PARSE_FAILED

    def test_empty(self):
        assert parse_steps("   ").status == StageStatus.EMPTY
        assert parse_steps(None).status == StageStatus.EMPTY

    @pytest.mark.parametrize("text,expected", [
        ("Confidence: 85% that entry was forced", 85),
        ("It is certain the window was forced", 90),
        ("Entry was likely forced", 75),
        ("The offender might be local", 50),
        ("It is uncertain who left the note", 30),
        ("The note was handwritten", 60),
    ])
    def test_estimate_confidence(self, text, expected):
        assert estimate_confidence(text) == expected

    def test_evidence_references(self):
        refs = extract_evidence_references("Compare c1-ev-2 with evidence E42 and evidence notes", ["c1-ev-2", "c1-ev-3"])
        assert refs == ["c1-ev-2", "E42"]

    def test_reflection_sections(self):
        text = (
            "**Strengths:**\n1. Clear observation of the entry point\n"
            "**Weaknesses:**\n1. Confidence in step 3 is not justified\n"
            "**Overall confidence level:** low"
        )
        reflection, status = parse_reflection(text)
        assert status == StageStatus.OK
        assert reflection.strengths == ["Clear observation of the entry point"]
        assert reflection.weaknesses == ["Confidence in step 3 is not justified"]
        assert reflection.confidence_level == ConfidenceLevel.LOW

    def test_reflection_prose_headings(self):
        text = (
            "Strengths I noticed:\n- Clear linkage between the burglaries\n"
            "Weaknesses found:\n- Timeline support is thin\n"
            "Overall confidence: low"
        )
        reflection, status = parse_reflection(text)
        assert status == StageStatus.OK
        assert reflection.strengths == ["Clear linkage between the burglaries"]
        assert reflection.weaknesses == ["Timeline support is thin"]
        assert reflection.confidence_level == ConfidenceLevel.LOW

    def test_reflection_with_only_confidence_fails(self):
        reflection, status = parse_reflection("Overall confidence: low\nThe reasoning looks reasonable.")
        assert status == StageStatus.PARSE_FAILED
        assert reflection == SelfReflection()

    def test_reflection_without_headings(self):
        reflection, status = parse_reflection("I think it went fine.")
        assert status == StageStatus.PARSE_FAILED
        assert reflection == SelfReflection()


# =============================================================================
# Quality scoring
# =============================================================================

def _step(n, confidence=80, passed=True):
    return ReasoningStep(
        id=f"s{n}",
        step=n,
        type=StepType.OBSERVATION,
        stage=ReasoningStage.OBSERVATION,
        content=f"observation {n}",
        confidence=confidence,
        validation=ValidationResult(passed=passed),
    )


class TestQuality:
    """Five-part quality score"""

    def test_empty_is_zero(self):
        assert score_quality([], SelfReflection(), []) == 0

    def test_maximum(self):
        steps = [_step(i) for i in range(1, 11)]
        reflection = SelfReflection(strengths=["good"], weaknesses=["thin"])
        assert score_quality(steps, reflection, ["a", "b", "c", "d", "e"]) == 10

    def test_partial(self):
        steps = [_step(i, passed=i % 2 == 0) for i in range(1, 6)]
        reflection = SelfReflection(strengths=["good"])
        # 5 steps (1) + 2/5 passed (0) + one side (1) + zero variance (2) + 3 conclusions (1)
        assert score_quality(steps, reflection, ["a", "b", "c"]) == 5
