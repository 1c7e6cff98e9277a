"""
Pydantic Schemas for Case Linkage Core
======================================

Stable schemas for case input, analysis output and feedback.
All outputs are guaranteed valid JSON.

Model groups:
- Case input: CaseRecord, EvidenceItem (read-only, supplied by the case store)
- Similarity: SimilarityScore with per-factor breakdown
- Patterns: IntelligentPattern, PatternAnalysis
- Reasoning: ReasoningStep, ReasoningChain, SelfReflection, StageReport
- Learning: CaseOutcome, LearningMetrics, ImprovementStrategy

Note: every confidence/accuracy exposed to callers is an integer in [0, 100];
similarity scores and factor values are floats in [0, 1].
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator
from enum import Enum
from datetime import date as Date, datetime


# =============================================================================
# ENUMS - Case Data
# =============================================================================

class EvidenceCategory(str, Enum):
    """Evidence item categories"""
    DOCUMENT = "document"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    PHYSICAL = "physical"
    WITNESS_STATEMENT = "witness_statement"
    FORENSIC = "forensic"
    OTHER = "other"


class Priority(str, Enum):
    """Case priority"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class LLMMode(str, Enum):
    """LLM usage mode"""
    NONE = "none"           # Heuristics only, reasoning chains skipped
    OPENROUTER = "openrouter"
    OLLAMA = "ollama"       # Local Llama models via Ollama


# =============================================================================
# ENUMS - Patterns
# =============================================================================

class PatternType(str, Enum):
    """
    Closed set of cross-case pattern types.

    - SERIAL_OFFENDER: Several highly similar cases close in time and place
    - GEOGRAPHIC_CLUSTER: Cases grouped by jurisdiction proximity
    - TEMPORAL_SERIES: Cases recurring at a weekly/monthly/seasonal rhythm
    - EVIDENCE_CHAIN: Cases sharing most of the target's evidence types
    - SUSPECT_LINK: Cases with similar suspect descriptions
    """
    SERIAL_OFFENDER = "serial_offender"
    GEOGRAPHIC_CLUSTER = "geographic_cluster"
    TEMPORAL_SERIES = "temporal_series"
    EVIDENCE_CHAIN = "evidence_chain"
    SUSPECT_LINK = "suspect_link"


class RiskLevel(str, Enum):
    """
    Risk / severity levels (1-4 scale).

    - CRITICAL (4)
    - HIGH (3)
    - MEDIUM (2)
    - LOW (1)
    """
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Anomalies share the same four-level scale
Severity = RiskLevel


class AnomalyType(str, Enum):
    """Anomaly categories"""
    INCONSISTENCY = "inconsistency"
    TIMELINE_GAP = "timeline_gap"
    EVIDENCE_CONFLICT = "evidence_conflict"
    WITNESS_DISCREPANCY = "witness_discrepancy"
    DATA_QUALITY = "data_quality"


class HypothesisCategory(str, Enum):
    """Hypothesis categories"""
    SUSPECT = "suspect"
    TIMELINE = "timeline"
    MOTIVE = "motive"
    CONNECTION = "connection"
    LOCATION = "location"
    OTHER = "other"


# =============================================================================
# ENUMS - Reasoning
# =============================================================================

class StepType(str, Enum):
    """Kind of a single reasoning step"""
    OBSERVATION = "observation"
    INFERENCE = "inference"
    HYPOTHESIS = "hypothesis"
    VALIDATION = "validation"
    REFLECTION = "reflection"
    CONCLUSION = "conclusion"


class ReasoningStage(str, Enum):
    """
    Pipeline stages in execution order.

    OBSERVATION → EVIDENCE_INFERENCE → PATTERN_HYPOTHESIS → HYPOTHESIS_GENERATION
    → VALIDATION → SELF_REFLECTION → SELF_CORRECTION → CONCLUSION
    """
    OBSERVATION = "observation"
    EVIDENCE_INFERENCE = "evidence_inference"
    PATTERN_HYPOTHESIS = "pattern_hypothesis"
    HYPOTHESIS_GENERATION = "hypothesis_generation"
    VALIDATION = "validation"
    SELF_REFLECTION = "self_reflection"
    SELF_CORRECTION = "self_correction"
    CONCLUSION = "conclusion"


class StageStatus(str, Enum):
    """
    Outcome of one pipeline stage.

    - OK: Steps were extracted
    - EMPTY: Generator returned nothing useful
    - PARSE_FAILED: Generator returned text but no list items could be extracted
    - GENERATION_FAILED: Generator raised or timed out
    - SKIPPED: Stage disabled or precondition not met
    """
    OK = "ok"
    EMPTY = "empty"
    PARSE_FAILED = "parse_failed"
    GENERATION_FAILED = "generation_failed"
    SKIPPED = "skipped"


class ChainStatus(str, Enum):
    """Reasoning chain lifecycle"""
    CREATED = "created"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ConfidenceLevel(str, Enum):
    """Self-assessed confidence level"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ActualOutcome(str, Enum):
    """Real-world outcome of a verified case"""
    SOLVED = "solved"
    CLOSED = "closed"
    ONGOING = "ongoing"


# =============================================================================
# INPUT SCHEMAS - Case Data
# =============================================================================

class EvidenceItem(BaseModel):
    """A typed, described piece of evidence attached to a case"""
    id: str = Field(..., description="Evidence identifier")
    category: EvidenceCategory = Field(EvidenceCategory.OTHER, description="Evidence category")
    description: str = Field("", description="Free-text description")
    source: Optional[str] = Field(None, description="Where the evidence came from")
    date: Optional[Date] = Field(None, description="Collection date")
    confidence: Optional[int] = Field(None, ge=0, le=100, description="Reliability estimate")

    class Config:
        frozen = True


class CaseRecord(BaseModel):
    """One investigative case. Read-only input to the core."""
    id: str = Field(..., min_length=1, description="Case identifier")
    title: str = Field("", description="Case title")
    description: str = Field("", description="Narrative text")
    date: Optional[Date] = Field(None, description="Incident date")
    jurisdiction: Optional[str] = Field(None, description="e.g. 'San Francisco, California'")
    priority: Priority = Field(Priority.MEDIUM, description="Case priority")
    evidence: List[EvidenceItem] = Field(default_factory=list, description="Ordered evidence list")
    tags: List[str] = Field(default_factory=list)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "id": "case-001",
                "title": "Riverside burglary",
                "description": "Forced entry through rear window, note left at scene.",
                "date": "2021-03-14",
                "jurisdiction": "Riverside, California",
                "priority": "high",
                "evidence": [
                    {"id": "ev-1", "category": "physical", "description": "Pry bar marks on window frame"},
                    {"id": "ev-2", "category": "document", "description": "Handwritten note"},
                ],
            }
        }

    @property
    def label(self) -> str:
        return self.title or self.id

    def full_text(self) -> str:
        """Narrative plus all evidence descriptions, lower-cased"""
        parts = [self.description] + [e.description for e in self.evidence]
        return " ".join(p for p in parts if p).lower()

    def evidence_categories(self) -> set:
        return {e.category for e in self.evidence}


# =============================================================================
# OUTPUT SCHEMAS - Similarity
# =============================================================================

class FactorBreakdown(BaseModel):
    """Per-factor similarity values. None means the factor was skipped."""
    narrative: Optional[float] = Field(None, ge=0.0, le=1.0)
    evidence_type: Optional[float] = Field(None, ge=0.0, le=1.0)
    keyword: Optional[float] = Field(None, ge=0.0, le=1.0)
    jurisdiction: Optional[float] = Field(None, ge=0.0, le=1.0)
    temporal: Optional[float] = Field(None, ge=0.0, le=1.0)

    def applicable(self) -> Dict[str, float]:
        return {k: v for k, v in self.model_dump().items() if v is not None}


class SimilarityScore(BaseModel):
    """Composite similarity of one corpus case against the target"""
    case_id: str
    case_title: str = ""
    score: float = Field(..., ge=0.0, le=1.0)
    factors: FactorBreakdown = Field(default_factory=FactorBreakdown)
    matching_factors: List[str] = Field(default_factory=list)


# =============================================================================
# OUTPUT SCHEMAS - Patterns, Anomalies, Hypotheses
# =============================================================================

class IntelligentPattern(BaseModel):
    """A named higher-order relationship across several cases"""
    id: str
    name: str
    type: PatternType
    confidence: int = Field(..., ge=0, le=100)
    risk_level: RiskLevel
    cases: List[str] = Field(default_factory=list, description="Member case IDs")
    description: str = ""
    indicators: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class PatternAnalysis(BaseModel):
    """Patterns found for one target plus the aggregate serial-offender probability"""
    patterns: List[IntelligentPattern] = Field(default_factory=list)
    serial_offender_probability: int = Field(0, ge=0, le=100)
    recommendations: List[str] = Field(default_factory=list)
    clusters: List[List[str]] = Field(default_factory=list)


class Anomaly(BaseModel):
    """Inconsistency or data-quality issue inside a single case"""
    id: str
    type: AnomalyType
    severity: Severity
    description: str
    affected_elements: List[str] = Field(default_factory=list)
    suggested_investigation: List[str] = Field(default_factory=list)


class Hypothesis(BaseModel):
    """Rule-based investigative hypothesis"""
    id: str
    title: str
    description: str
    confidence: int = Field(..., ge=0, le=100)
    supporting_evidence: List[str] = Field(default_factory=list)
    recommended_actions: List[str] = Field(default_factory=list)
    category: HypothesisCategory = HypothesisCategory.OTHER


# =============================================================================
# OUTPUT SCHEMAS - Reasoning
# =============================================================================

class ValidationResult(BaseModel):
    """Pass/fail verdict written onto a step by the validation stage"""
    passed: bool
    reason: str = ""


class ReasoningStep(BaseModel):
    """One entry of a reasoning chain"""
    id: str
    step: int = Field(..., ge=1)
    type: StepType
    stage: ReasoningStage
    content: str
    evidence: List[str] = Field(default_factory=list)
    confidence: int = Field(..., ge=0, le=100)
    validation: Optional[ValidationResult] = None

    class Config:
        frozen = True


class SelfReflection(BaseModel):
    """Self-assessment produced by the reflection stage"""
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    confidence_level: ConfidenceLevel = ConfidenceLevel.MEDIUM


class StageReport(BaseModel):
    """Audit record of one pipeline stage"""
    stage: ReasoningStage
    status: StageStatus
    steps_added: int = 0
    error: Optional[str] = None


class ReasoningChain(BaseModel):
    """Ordered multi-stage chain-of-thought record"""
    id: str
    case_id: str
    timestamp: datetime
    status: ChainStatus = ChainStatus.CREATED
    steps: List[ReasoningStep] = Field(default_factory=list)
    overall_confidence: int = Field(0, ge=0, le=100)
    reasoning_quality: int = Field(0, ge=0, le=10)
    conclusions: List[str] = Field(default_factory=list)
    self_reflection: SelfReflection = Field(default_factory=SelfReflection)
    validated: bool = False
    stage_reports: List[StageReport] = Field(default_factory=list)


# =============================================================================
# LEARNING SCHEMAS
# =============================================================================

class CaseOutcome(BaseModel):
    """
    Human-verified ground truth for one analyzed case.

    Immutable once created. Every analyzed item belongs to exactly one of the
    correct/incorrect lists of its category.
    """
    case_id: str = Field(..., description="Case the feedback refers to")
    verified: bool = True
    accuracy: int = Field(0, ge=0, le=100)
    correct_insights: List[str] = Field(default_factory=list)
    incorrect_insights: List[str] = Field(default_factory=list)
    correct_hypotheses: List[str] = Field(default_factory=list)
    incorrect_hypotheses: List[str] = Field(default_factory=list)
    correct_anomalies: List[str] = Field(default_factory=list)
    incorrect_anomalies: List[str] = Field(default_factory=list)
    actual_outcome: Optional[ActualOutcome] = None
    solved_by: Optional[str] = None
    notes: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: datetime = Field(..., description="When the outcome was verified")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "case_id": "case-001",
                "verified": True,
                "accuracy": 80,
                "correct_insights": ["Forced entry matches prior cases"],
                "incorrect_insights": ["Timeline suggests two offenders"],
                "verified_at": "2024-05-01T12:00:00Z",
            }
        }

    @field_validator("case_id")
    @classmethod
    def _case_id_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("case_id cannot be empty")
        return value

    @model_validator(mode="after")
    def _disjoint_sets(self):
        for category in ("insights", "hypotheses", "anomalies"):
            correct = set(getattr(self, f"correct_{category}"))
            incorrect = set(getattr(self, f"incorrect_{category}"))
            overlap = correct & incorrect
            if overlap:
                raise ValueError(
                    f"{category} marked both correct and incorrect: {sorted(overlap)}"
                )
        return self


class MistakeSummary(BaseModel):
    """One bucket of recurring mistakes"""
    type: str
    count: int
    description: str


class CategoryAccuracy(BaseModel):
    """Accuracy per analysis component (0-100)"""
    insights: int = Field(0, ge=0, le=100)
    hypotheses: int = Field(0, ge=0, le=100)
    anomalies: int = Field(0, ge=0, le=100)
    patterns: int = Field(0, ge=0, le=100)


class LearningMetrics(BaseModel):
    """Aggregated accuracy statistics over all stored outcomes"""
    total_cases: int = 0
    verified_cases: int = 0
    average_accuracy: int = Field(0, ge=0, le=100)
    accuracy_by_category: CategoryAccuracy = Field(default_factory=CategoryAccuracy)
    improvement_trend: List[int] = Field(default_factory=list)
    common_mistakes: List[MistakeSummary] = Field(default_factory=list)


class ImprovementStrategy(BaseModel):
    """Current tunable thresholds/weights plus learned textual rules"""
    focus_areas: List[str] = Field(default_factory=list)
    confidence_threshold: int = Field(60, ge=0, le=100)
    pattern_matching_weight: float = Field(0.3, ge=0.0, le=1.0)
    anomaly_sensitivity: float = Field(0.7, ge=0.0, le=1.0)
    learned_rules: List[str] = Field(default_factory=list)


class CalibrationBucket(BaseModel):
    """Predicted vs actual accuracy for one confidence band"""
    predicted: int = 0
    actual: int = 0


class AccuracyMetrics(BaseModel):
    """Accuracy of one analysis measured against its verified outcome"""
    case_id: str
    timestamp: datetime
    overall_accuracy: int = Field(0, ge=0, le=100)
    component_accuracy: CategoryAccuracy = Field(default_factory=CategoryAccuracy)
    confidence_calibration: Dict[str, CalibrationBucket] = Field(default_factory=dict)


class PatternAccuracyMetrics(BaseModel):
    """Estimated accuracy of a set of similarity matches"""
    total_pattern_matches: int = 0
    verified_pattern_matches: int = 0
    correct_pattern_matches: int = 0
    incorrect_pattern_matches: int = 0
    accuracy: int = Field(0, ge=0, le=100)


class TrainingExample(BaseModel):
    """Analysis output paired with human corrections"""
    case_id: str
    context: str
    insights: List[str] = Field(default_factory=list)
    hypotheses: List[Hypothesis] = Field(default_factory=list)
    anomalies: List[Anomaly] = Field(default_factory=list)
    accuracy: int = Field(0, ge=0, le=100)
    corrections: List[str] = Field(default_factory=list)
    timestamp: datetime


# =============================================================================
# OUTPUT SCHEMAS - Full Analysis
# =============================================================================

class ConfidenceScores(BaseModel):
    """Headline scores for one analysis"""
    overall: int = Field(0, ge=0, le=100)
    evidence_quality: int = Field(0, ge=0, le=100)
    forensic_strength: int = Field(0, ge=0, le=100)
    serial_offender_probability: int = Field(0, ge=0, le=100)


class AuditEntry(BaseModel):
    """Audit trail entry"""
    timestamp: datetime
    action: str
    details: Dict[str, Any] = Field(default_factory=dict)


class CaseAnalysis(BaseModel):
    """Complete analysis of one case against a corpus"""
    case_id: str
    timestamp: datetime
    insights: List[str] = Field(default_factory=list)
    hypotheses: List[Hypothesis] = Field(default_factory=list)
    matches: List[SimilarityScore] = Field(default_factory=list)
    intelligent_patterns: List[IntelligentPattern] = Field(default_factory=list)
    anomalies: List[Anomaly] = Field(default_factory=list)
    confidence_scores: ConfidenceScores = Field(default_factory=ConfidenceScores)
    recommendations: List[str] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    audit_trail: List[AuditEntry] = Field(default_factory=list)
    reasoning_chain: Optional[ReasoningChain] = None


# =============================================================================
# API SCHEMAS
# =============================================================================

class SimilarityRequest(BaseModel):
    """Score a target case against a corpus"""
    target: CaseRecord
    corpus: List[CaseRecord] = Field(default_factory=list)
    min_score: Optional[float] = Field(None, ge=0.0, le=1.0)


class SimilarityResponse(BaseModel):
    matches: List[SimilarityScore] = Field(default_factory=list)


class PatternRequest(BaseModel):
    """Derive cross-case patterns for a target case"""
    target: CaseRecord
    corpus: List[CaseRecord] = Field(default_factory=list)


class AnalyzeCaseRequest(BaseModel):
    """Run the full analysis for one case"""
    case: CaseRecord
    corpus: List[CaseRecord] = Field(default_factory=list)
    use_reasoning: bool = True


class FeedbackResponse(BaseModel):
    success: bool = True
    message: str = "Feedback recorded successfully"
    metrics: LearningMetrics
    progress_to_target: int = Field(0, ge=0, le=100)


class MetricsResponse(BaseModel):
    metrics: LearningMetrics
    progress_to_target: int = Field(0, ge=0, le=100)
    target_accuracy: int = 95
    current_strategy: Optional[ImprovementStrategy] = None


class HealthResponse(BaseModel):
    """Health check response"""
    status: str = "healthy"
    version: str
    llm_mode: LLMMode
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Error response"""
    error: str
    detail: Optional[str] = None
