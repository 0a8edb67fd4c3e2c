"""
Marking orchestration: local rule-based marking and chunked remote marking.

Local mode runs segmentation -> topic classification -> answer quality
scoring -> aggregation and renders a markdown report. It never touches the
network and costs zero tokens.

Remote mode sends the document to a CompletionClient. Documents that do
not fit one request are chunked and marked one chunk at a time with a fixed
pause between chunks; a chunk that still fails after retries becomes an
inline placeholder so the rest of the document is still marked. Chunk
results are concatenated, never summarized by a second call.
"""

import asyncio
import logging
import re
from typing import Awaitable, Callable, List, Optional, Tuple

from app.config import Settings, get_settings
from app.models.document import Document
from app.models.marking import (
    AssessmentType,
    LocalMarkingResult,
    ScoreItem,
    ScoreResult,
)
from app.services.answer_scorer import score_answer
from app.services.document_chunker import chunk_document
from app.services.gemini_client import CompletionClient
from app.services.question_segmenter import segment_document
from app.services.rubrics import analyze_with_rubric, detect_assessment_type, select_rubric
from app.utils.errors import MarkingError, MarkingValidationError, SizeLimitError, UnknownFailureError
from app.utils.normalizers import (
    UNGRADED,
    compute_percentage,
    format_marks,
    letter_grade,
    round_half_up,
)
from app.utils.retry import RetryPolicy, RetryScheduler
from app.utils.tokens import estimate_tokens

logger = logging.getLogger(__name__)

# Tokens a remote call spends on prompts and output beyond the document itself
REMOTE_OVERHEAD_TOKENS = 2000

UNKNOWN = "Unknown"
PLACEHOLDER_PREFIX = "Section unavailable"
PROCESSING_COMPLETE = "=== PROCESSING COMPLETE ==="

SYSTEM_PROMPT = """You are an expert academic marker. Follow the provided marking guidelines exactly.

For assessments: Provide structured feedback with section breakdowns, marks, and totals.
For projects: Provide detailed evaluation with strengths, areas for improvement, and final grades.
{memo_clause}
Always maintain professional, constructive tone and provide specific, actionable feedback."""

MEMO_CLAUSE = (
    "\nIMPORTANT: You have been provided with a MARKING MEMO/RUBRIC. Use this as your "
    "primary reference for marking. Award marks based on how well the student's answers "
    "match the expected answers in the memo.\n"
)

ASSESSMENT_FOCUS = {
    "assessment": "This submission is an assessment. Mark each question and report marks per section and in total.",
    "project": "This submission is a project. Evaluate it as a whole and give a final grade.",
}

FEEDBACK_BANDS = (
    (85, "**Outstanding Performance!**",
     "You have demonstrated excellent understanding across most areas. Your responses show "
     "strong analytical skills and comprehensive knowledge. Keep up the excellent work!"),
    (75, "**Great Job!**",
     "You have shown good understanding of the material with solid responses. There are areas "
     "where you excelled, and with a bit more detail in some sections, you'll reach even higher levels."),
    (65, "**Good Effort!**",
     "You have covered the basic requirements well. Focus on expanding your answers with more "
     "examples and explanations to improve your scores further."),
    (50, "**Keep Improving!**",
     "You're on the right track! Work on providing more detailed responses and ensure you "
     "address all parts of each question. Practice will help you improve significantly."),
)
FEEDBACK_FLOOR = (
    "**Room for Growth!**",
    "This is a learning opportunity! Review the material thoroughly and practice writing more "
    "comprehensive answers. Don't be discouraged, improvement comes with effort and practice.",
)
ENCOURAGE_STRONG = "You're demonstrating solid academic skills. Continue building on this foundation!"
ENCOURAGE_DEVELOPING = "Every expert was once a beginner. Keep studying, practicing, and asking questions!"
STRONG_SHARE = 0.6


# =============================================================================
# LOCAL MARKING
# =============================================================================

def score_units(text: str) -> ScoreResult:
    """Segment a document and score every answer unit."""
    items: List[ScoreItem] = []
    for unit in segment_document(text):
        assessment = score_answer(unit.content, unit.topic)
        items.append(ScoreItem(
            id=unit.label,
            awarded=round_half_up(unit.max_marks * assessment.score),
            max_marks=unit.max_marks,
            topic=unit.topic,
            quality=assessment.quality,
            reasoning=assessment.reasoning,
        ))

    total_awarded = sum(item.awarded for item in items)
    total_available = sum(item.max_marks for item in items)
    return ScoreResult(
        kind="unit",
        items=items,
        total_awarded=total_awarded,
        total_available=total_available,
        percentage=compute_percentage(total_awarded, total_available),
    )


def _feedback_band(percentage: int) -> Tuple[str, str]:
    for minimum, heading, body in FEEDBACK_BANDS:
        if percentage >= minimum:
            return heading, body
    return FEEDBACK_FLOOR


def render_local_report(result: LocalMarkingResult) -> str:
    """Render a local marking result as a markdown report."""
    units = result.unit_scores
    lines = [
        "### Final Assessment Report",
        "",
        f"**Student**: {result.student_name}",
        f"**Assignment**: {result.assignment_title}",
        f"**Detected Type**: {result.assessment_type}",
        f"**Marking Method**: {result.marking_method}",
        f"**Total Questions/Tasks**: {len(units.items)}",
        f"**Total Marks Available**: {format_marks(units.total_available)}",
        "",
        "---",
        "",
    ]

    if not units.items:
        lines += [
            "No questions, tasks or sections could be detected in this document, "
            "so no marks were awarded.",
            "",
            f"**Grade: {UNGRADED}**",
        ]
        return "\n".join(lines) + "\n"

    lines += [
        "### Question-by-Question Mark Breakdown",
        "",
        "| Topic | Mark |",
        "| ----- | ---- |",
    ]
    for item in units.items:
        lines.append(f"| {item.id}: {item.topic} | {format_marks(item.awarded)}/{format_marks(item.max_marks)} |")

    lines += [
        "",
        "---",
        "",
        "### Total Marks Obtained",
        "",
        f"**{format_marks(units.total_awarded)} / {format_marks(units.total_available)} = {units.percentage}%**",
        "",
        f"**Grade: {result.grade}**",
        "",
        "---",
        "",
        "### Rubric Alignment",
        "",
        f"Rubric: {result.rubric.source}",
        "",
    ]
    for section in result.rubric_scores.items:
        lines.append(f"- **{section.id}**: {format_marks(round(section.awarded, 1))}/{format_marks(section.max_marks)}")
        lines.extend(f"  - {line}" for line in section.feedback)

    heading, body = _feedback_band(units.percentage)
    lines += ["", "---", "", "### Feedback & Encouragement", "", heading, "", body, ""]

    excellent = sum(1 for item in units.items if item.quality == "excellent")
    good = sum(1 for item in units.items if item.quality == "good")
    if excellent:
        lines += [f"**Strengths:** Strong performance in {excellent} areas showing excellent understanding.", ""]

    encouragement = ENCOURAGE_STRONG if good + excellent >= len(units.items) * STRONG_SHARE else ENCOURAGE_DEVELOPING
    lines.append(f"**Encouragement:** {encouragement}")
    return "\n".join(lines) + "\n"


# =============================================================================
# REMOTE MARKING HELPERS
# =============================================================================

def build_system_prompt(assessment_type: AssessmentType, memo: Optional[str] = None) -> str:
    """System prompt for remote marking."""
    prompt = SYSTEM_PROMPT.format(memo_clause=MEMO_CLAUSE if memo else "")
    return f"{prompt}\n\n{ASSESSMENT_FOCUS[assessment_type]}"


def build_base_prompt(
    prompt: str,
    memo: Optional[str] = None,
    student_name: Optional[str] = None,
    assignment_title: Optional[str] = None,
) -> str:
    """User prompt preceding the document text."""
    memo_block = f"MARKING MEMO/RUBRIC:\n{memo}\n\n" if memo else ""
    return (
        f"{prompt}\n\n{memo_block}"
        f"Student: {student_name or UNKNOWN}\n"
        f"Assignment: {assignment_title or UNKNOWN}\n\n"
        "Document to mark:\n"
    )


_PERCENT_PATTERN = re.compile(r"(\d{1,3}(?:\.\d+)?)\s*%")
_FRACTION_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*/\s*(\d+(?:\.\d+)?)")
_TOTAL_PATTERN = re.compile(r"total[^:\n]*:\s*\**\s*(\d+(?:\.\d+)?)", re.IGNORECASE)


def extract_score_from_marking(text: str) -> Tuple[Optional[float], Optional[int]]:
    """
    Recover (total marks, percentage) from free-text marking output.

    Uses the first "NN%" figure, the first "a / b" fraction and a
    "Total ...: N" line. A fraction supplies the percentage when no explicit
    percentage appears.
    """
    total_marks: Optional[float] = None
    percentage: Optional[int] = None

    percent_match = _PERCENT_PATTERN.search(text)
    if percent_match:
        value = float(percent_match.group(1))
        if value <= 100:
            percentage = round_half_up(value)

    fraction_match = _FRACTION_PATTERN.search(text)
    if fraction_match:
        total_marks = float(fraction_match.group(1))
        if percentage is None:
            percentage = compute_percentage(total_marks, float(fraction_match.group(2)))

    if total_marks is None:
        total_match = _TOTAL_PATTERN.search(text)
        if total_match:
            total_marks = float(total_match.group(1))

    return total_marks, percentage


# =============================================================================
# ENGINE
# =============================================================================

class RubricEngine:
    """Marks documents locally or through a remote completion client.

    Args:
        client: Remote completion capability (only needed for remote marking)
        settings: Settings override (defaults to get_settings())
        scheduler: Retry scheduler override (defaults to one built from settings)
        sleep: Awaitable sleep used for the inter-chunk pause
    """

    def __init__(
        self,
        client: Optional[CompletionClient] = None,
        settings: Optional[Settings] = None,
        scheduler: Optional[RetryScheduler] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.settings = settings or get_settings()
        self.scheduler = scheduler or RetryScheduler(
            policy=RetryPolicy(
                max_retries=self.settings.retry_max_retries,
                base_delay=self.settings.retry_base_delay_seconds,
                max_jitter=self.settings.retry_max_jitter_seconds,
                max_delay=self.settings.retry_max_delay_seconds,
            ),
            sleep=sleep,
            attempt_timeout=self.settings.request_timeout_seconds,
        )
        self._sleep = sleep

    def mark_locally(self, document: Document, memo: Optional[str] = None) -> LocalMarkingResult:
        """
        Mark a document with the rule-based engine.

        Args:
            document: Submission; student name and assignment title are required
            memo: Optional memo used to derive a custom rubric

        Returns:
            LocalMarkingResult including the rendered report

        Raises:
            MarkingValidationError: If text, student name or assignment title is missing
        """
        missing = [
            field for field, value in (
                ("document_content", document.text),
                ("student_name", document.student_name),
                ("assignment_title", document.assignment_title),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise MarkingValidationError(f"Missing required fields: {', '.join(missing)}")

        text = document.text
        assessment_type = detect_assessment_type(text)
        rubric = select_rubric(text, memo)
        unit_scores = score_units(text)

        result = LocalMarkingResult(
            student_name=document.student_name,
            assignment_title=document.assignment_title,
            assessment_type=assessment_type,
            rubric=rubric,
            unit_scores=unit_scores,
            rubric_scores=analyze_with_rubric(text, rubric),
            grade=letter_grade(unit_scores.percentage),
            tokens_saved=estimate_tokens(text) + REMOTE_OVERHEAD_TOKENS,
            report="",
        )
        logger.info(
            f"Locally marked '{result.assignment_title}': {len(unit_scores.items)} units, "
            f"{unit_scores.percentage}% ({result.grade})"
        )
        return result.model_copy(update={"report": render_local_report(result)})

    async def mark_remotely(
        self,
        prompt: str,
        document: Document,
        assessment_type: AssessmentType,
        memo: Optional[str] = None,
    ) -> str:
        """
        Mark a document with the remote completion client.

        Args:
            prompt: Marking instructions
            document: Submission
            assessment_type: "assessment" or "project"
            memo: Optional memo passed to the model

        Returns:
            Marking text; chunked documents get one section per chunk

        Raises:
            MarkingValidationError: If no client is configured or inputs are missing
            SizeLimitError: If the prompts leave no room for content or the
                document needs more chunks than allowed
            RemoteCompletionError: If a single-request document still fails after
                retries; unclassified failures arrive as UnknownFailureError
        """
        if self.client is None:
            raise MarkingValidationError("Remote marking is not configured: no completion client")
        if not prompt or not prompt.strip():
            raise MarkingValidationError("Missing required field: prompt")
        if not document.text or not document.text.strip():
            raise MarkingValidationError("Missing required field: document_content")

        system_prompt = build_system_prompt(assessment_type, memo)
        base_prompt = build_base_prompt(prompt, memo, document.student_name, document.assignment_title)
        content_budget = self.settings.max_request_tokens - estimate_tokens(system_prompt + base_prompt)
        if content_budget <= 0:
            raise SizeLimitError(
                "The marking prompt and memo alone exceed the request budget of "
                f"{self.settings.max_request_tokens} tokens. Please shorten the prompt or memo."
            )

        document_tokens = estimate_tokens(document.text)
        if document_tokens <= content_budget:
            logger.info(f"Document fits in one request ({document_tokens} tokens)")
            try:
                return await self.scheduler.run(
                    lambda: self.client.complete(
                        system_prompt,
                        base_prompt + document.text,
                        self.settings.single_max_output_tokens,
                        self.settings.temperature,
                    ),
                    description="Remote marking",
                )
            except MarkingError:
                raise
            except Exception as e:
                raise UnknownFailureError.wrap(e) from e

        logger.info(f"Document too large ({document_tokens} tokens), chunking at {content_budget} tokens")
        return await self._mark_chunked(system_prompt, base_prompt, document.text, content_budget)

    async def _mark_chunked(
        self,
        system_prompt: str,
        base_prompt: str,
        text: str,
        content_budget: int,
    ) -> str:
        chunks = chunk_document(text, content_budget)
        limit = self.settings.max_chunks_per_document
        if len(chunks) > limit:
            raise SizeLimitError(
                f"Document is too large and would require {len(chunks)} chunks. Please use a "
                f"shorter document or split it manually. Maximum recommended chunks: {limit}."
            )

        sections: List[str] = []
        for chunk in chunks:
            i, total = chunk.index + 1, chunk.total_count
            chunk_system = (
                f"{system_prompt}\n\nIMPORTANT: This is part {i} of {total} of the document. "
                "Provide detailed feedback for this section."
            )
            chunk_prompt = f"{base_prompt}[PART {i} of {total}]\n\n{chunk.text}"

            try:
                body = await self.scheduler.run(
                    lambda: self.client.complete(
                        chunk_system,
                        chunk_prompt,
                        self.settings.chunk_max_output_tokens,
                        self.settings.temperature,
                    ),
                    description=f"Chunk {i}/{total}",
                )
            except Exception as e:
                logger.warning(f"Chunk {i}/{total} failed after retries: {e}")
                body = f"{PLACEHOLDER_PREFIX}: {e}"

            sections.append(f"=== SECTION {i} of {total} ===\n{body}")

            if i < total:
                logger.info(f"Waiting {self.settings.chunk_delay_seconds:g}s between chunks...")
                await self._sleep(self.settings.chunk_delay_seconds)

        return (
            "\n\n".join(sections)
            + f"\n\n{PROCESSING_COMPLETE}\n"
            f"Document was processed in {len(chunks)} sections due to size. "
            "Each section has been marked individually above."
        )
