"""
Reasoning Chain Engine
======================

Sequential multi-stage chain-of-thought pipeline over an injected
generate(prompt, system_prompt) coroutine.

Stages, in order:
    OBSERVATION → EVIDENCE_INFERENCE → PATTERN_HYPOTHESIS → HYPOTHESIS_GENERATION
    → VALIDATION → SELF_REFLECTION → SELF_CORRECTION → CONCLUSION

The only state passed between stages is the accumulated transcript, an
immutable tuple of ReasoningStep. A stage whose generation fails, times out
or returns unusable text contributes zero steps; the pipeline always
completes and returns a chain.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from statistics import mean, pvariance
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from ..config import Settings, get_settings
from ..llm.openrouter_base import safe_log_content
from ..schemas import (
    CaseRecord,
    ChainStatus,
    ReasoningChain,
    ReasoningStage,
    ReasoningStep,
    SelfReflection,
    StageReport,
    StageStatus,
    StepType,
    ValidationResult,
)
from . import prompts
from .parsing import (
    ParseResult,
    extract_step_references,
    parse_reflection,
    parse_steps,
    validation_passed,
)

logger = logging.getLogger(__name__)


GenerateFn = Callable[[str, Optional[str]], Awaitable[str]]
Transcript = Tuple[ReasoningStep, ...]

MAX_CONCLUSIONS = 8
VALIDATED_QUALITY = 8
WEAK_STEP_CONFIDENCE = 70


@dataclass
class StageRun:
    """Result of one generate() call"""
    text: Optional[str]
    error: Optional[str] = None


def score_quality(
    steps: Sequence[ReasoningStep],
    reflection: SelfReflection,
    conclusions: Sequence[str],
) -> int:
    """
    Five 0-2 sub-scores summed into 0-10.

    Step count, validation pass ratio, reflection coverage, confidence
    variance and conclusion count. Ratio and variance score 0 with no steps.
    """
    score = 0

    if len(steps) >= 10:
        score += 2
    elif len(steps) >= 5:
        score += 1

    if steps:
        passed = sum(1 for s in steps if s.validation and s.validation.passed)
        ratio = passed / len(steps)
        if ratio >= 0.8:
            score += 2
        elif ratio >= 0.5:
            score += 1

    if reflection.strengths and reflection.weaknesses:
        score += 2
    elif reflection.strengths or reflection.weaknesses:
        score += 1

    if steps:
        variance = pvariance([s.confidence for s in steps])
        if variance < 100:
            score += 2
        elif variance < 200:
            score += 1

    if len(conclusions) >= 5:
        score += 2
    elif len(conclusions) >= 3:
        score += 1

    return max(0, min(10, score))


def overall_confidence(steps: Sequence[ReasoningStep]) -> int:
    if not steps:
        return 0
    return round(mean(s.confidence for s in steps))


class ReasoningEngine:
    """
    Runs the reasoning pipeline for one case at a time.

    Usage:
        engine = ReasoningEngine()
        chain = await engine.reason_through_case(case, corpus, generate)
    """

    def __init__(
        self,
        require_validation: Optional[bool] = None,
        self_reflection: Optional[bool] = None,
        self_correction: Optional[bool] = None,
        stage_timeout: Optional[float] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.require_validation = (
            settings.reasoning_require_validation if require_validation is None else require_validation
        )
        self.self_reflection = settings.reasoning_self_reflection if self_reflection is None else self_reflection
        self.self_correction = settings.reasoning_self_correction if self_correction is None else self_correction
        self.stage_timeout = settings.reasoning_stage_timeout if stage_timeout is None else stage_timeout

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    async def _generate(
        self,
        generate: GenerateFn,
        stage: ReasoningStage,
        prompt: str,
        guidance: Optional[str],
    ) -> StageRun:
        try:
            text = await asyncio.wait_for(
                generate(prompt, prompts.system_prompt(stage, guidance)),
                timeout=self.stage_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Stage {stage.value} timed out after {self.stage_timeout}s")
            return StageRun(text=None, error=f"timeout after {self.stage_timeout}s")
        except Exception as e:
            logger.error(f"Stage {stage.value} generation failed: {type(e).__name__}: {e}")
            return StageRun(text=None, error=f"{type(e).__name__}: {e}")

        if text is not None and not isinstance(text, str):
            text = str(text)
        logger.debug(f"Stage {stage.value} reply: {safe_log_content(text or '')}")
        return StageRun(text=text)

    def _make_steps(
        self,
        parsed: ParseResult,
        stage: ReasoningStage,
        step_type: StepType,
        start: int,
    ) -> List[ReasoningStep]:
        return [
            ReasoningStep(
                id=f"step-{start + i}-{uuid.uuid4().hex[:8]}",
                step=start + i,
                type=step_type,
                stage=stage,
                content=p.content,
                evidence=p.evidence,
                confidence=p.confidence,
            )
            for i, p in enumerate(parsed.steps)
        ]

    def _report(self, stage: ReasoningStage, run: StageRun, status: StageStatus, added: int = 0) -> StageReport:
        if run.error:
            return StageReport(stage=stage, status=StageStatus.GENERATION_FAILED, error=run.error)
        if status != StageStatus.OK:
            logger.warning(f"Stage {stage.value} produced no steps ({status.value})")
        return StageReport(stage=stage, status=status, steps_added=added)

    async def _list_stage(
        self,
        generate: GenerateFn,
        stage: ReasoningStage,
        step_type: StepType,
        prompt: str,
        transcript: Transcript,
        evidence_ids: List[str],
        guidance: Optional[str],
    ) -> Tuple[Transcript, List[ReasoningStep], StageReport]:
        run = await self._generate(generate, stage, prompt, guidance)
        if run.error:
            return transcript, [], self._report(stage, run, StageStatus.GENERATION_FAILED)

        parsed = parse_steps(run.text, evidence_ids)
        new_steps = self._make_steps(parsed, stage, step_type, len(transcript) + 1)
        return transcript + tuple(new_steps), new_steps, self._report(stage, run, parsed.status, len(new_steps))

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def reason_through_case(
        self,
        case: CaseRecord,
        corpus: Sequence[CaseRecord],
        generate: GenerateFn,
        insights: Optional[List[str]] = None,
        guidance: Optional[str] = None,
    ) -> ReasoningChain:
        """
        Run every stage for one case.

        Args:
            case: Target case
            corpus: Other cases, used for pattern context
            generate: async (prompt, system_prompt) -> text
            insights: Pattern descriptions already derived for the case
            guidance: Learned guidance appended to every system prompt

        Returns:
            Completed ReasoningChain (never raises on generation problems)
        """
        chain = ReasoningChain(
            id=f"reasoning-{uuid.uuid4().hex[:12]}",
            case_id=case.id,
            timestamp=datetime.now(timezone.utc),
        )
        chain.status = ChainStatus.IN_PROGRESS
        logger.info(f"Reasoning started: case={case.id} chain={chain.id}")

        evidence_ids = [e.id for e in case.evidence]
        transcript: Transcript = ()
        reports: List[StageReport] = []

        # 1-4: list stages over the growing transcript
        list_stages = (
            (ReasoningStage.OBSERVATION, StepType.OBSERVATION,
             lambda t: prompts.observation_prompt(case)),
            (ReasoningStage.EVIDENCE_INFERENCE, StepType.INFERENCE,
             lambda t: prompts.evidence_prompt(case, t)),
            (ReasoningStage.PATTERN_HYPOTHESIS, StepType.HYPOTHESIS,
             lambda t: prompts.pattern_prompt(case, corpus, t, insights)),
            (ReasoningStage.HYPOTHESIS_GENERATION, StepType.HYPOTHESIS,
             lambda t: prompts.hypothesis_prompt(t)),
        )
        for stage, step_type, build_prompt in list_stages:
            transcript, _, report = await self._list_stage(
                generate, stage, step_type, build_prompt(transcript), transcript, evidence_ids, guidance
            )
            reports.append(report)

        # 5: validation writes verdicts onto the steps it references
        if self.require_validation:
            transcript, report = await self._validate(generate, transcript, evidence_ids, guidance)
        else:
            report = StageReport(stage=ReasoningStage.VALIDATION, status=StageStatus.SKIPPED)
        reports.append(report)

        # 6: self-reflection
        reflection = SelfReflection()
        if self.self_reflection:
            reflection, report = await self._reflect(generate, transcript, guidance)
        else:
            report = StageReport(stage=ReasoningStage.SELF_REFLECTION, status=StageStatus.SKIPPED)
        reports.append(report)

        # 7: self-correction, append-only
        if self.self_correction and reflection.weaknesses:
            weak = [
                s for s in transcript
                if s.confidence < WEAK_STEP_CONFIDENCE or not (s.validation and s.validation.passed)
            ]
            transcript, _, report = await self._list_stage(
                generate,
                ReasoningStage.SELF_CORRECTION,
                StepType.REFLECTION,
                prompts.correction_prompt(reflection.weaknesses, weak),
                transcript,
                evidence_ids,
                guidance,
            )
        else:
            report = StageReport(stage=ReasoningStage.SELF_CORRECTION, status=StageStatus.SKIPPED)
        reports.append(report)

        # 8: conclusions
        transcript, conclusions, report = await self._conclude(generate, transcript, evidence_ids, guidance)
        reports.append(report)

        steps = list(transcript)
        chain.steps = steps
        chain.conclusions = conclusions
        chain.self_reflection = reflection
        chain.stage_reports = reports
        chain.overall_confidence = overall_confidence(steps)
        chain.reasoning_quality = score_quality(steps, reflection, conclusions)
        chain.validated = chain.reasoning_quality >= VALIDATED_QUALITY
        chain.status = ChainStatus.COMPLETED

        degraded = [r.stage.value for r in reports if r.status not in (StageStatus.OK, StageStatus.SKIPPED)]
        logger.info(
            f"Reasoning completed: case={case.id} steps={len(steps)} "
            f"quality={chain.reasoning_quality} confidence={chain.overall_confidence} "
            f"degraded={degraded}"
        )
        return chain

    async def _validate(
        self,
        generate: GenerateFn,
        transcript: Transcript,
        evidence_ids: List[str],
        guidance: Optional[str],
    ) -> Tuple[Transcript, StageReport]:
        prior = list(transcript)
        updated, validation_steps, report = await self._list_stage(
            generate,
            ReasoningStage.VALIDATION,
            StepType.VALIDATION,
            prompts.validation_prompt(transcript),
            transcript,
            evidence_ids,
            guidance,
        )

        for v_step in validation_steps:
            verdict = ValidationResult(passed=validation_passed(v_step.content), reason=v_step.content)
            for ref in extract_step_references(v_step.content):
                if 1 <= ref <= len(prior):
                    prior[ref - 1] = prior[ref - 1].model_copy(update={"validation": verdict})

        return tuple(prior) + tuple(validation_steps), report

    async def _reflect(
        self,
        generate: GenerateFn,
        transcript: Transcript,
        guidance: Optional[str],
    ) -> Tuple[SelfReflection, StageReport]:
        stage = ReasoningStage.SELF_REFLECTION
        run = await self._generate(generate, stage, prompts.reflection_prompt(transcript), guidance)
        if run.error:
            return SelfReflection(), self._report(stage, run, StageStatus.GENERATION_FAILED)

        reflection, status = parse_reflection(run.text)
        return reflection, self._report(stage, run, status)

    async def _conclude(
        self,
        generate: GenerateFn,
        transcript: Transcript,
        evidence_ids: List[str],
        guidance: Optional[str],
    ) -> Tuple[Transcript, List[str], StageReport]:
        stage = ReasoningStage.CONCLUSION
        run = await self._generate(generate, stage, prompts.conclusion_prompt(transcript), guidance)
        if run.error:
            return transcript, [], self._report(stage, run, StageStatus.GENERATION_FAILED)

        parsed = parse_steps(run.text, evidence_ids, min_length=0)
        parsed.steps = parsed.steps[:MAX_CONCLUSIONS]
        steps = self._make_steps(parsed, stage, StepType.CONCLUSION, len(transcript) + 1)
        conclusions = [s.content for s in steps]
        return transcript + tuple(steps), conclusions, self._report(stage, run, parsed.status, len(steps))
