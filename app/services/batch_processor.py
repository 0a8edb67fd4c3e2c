"""
Sequential batch marking service.

Marks a set of documents one at a time, in submission order. Remote mode
pauses between documents so a rate-limited remote service is never hit
concurrently; local mode is CPU only and runs without pauses. Per-document failures are recorded on the job and rendered
as error text with a suggestion; they never abort the remaining documents.
Only a failing ResultSink (the persistence collaborator) aborts the job.
"""

import asyncio
import glob
import logging
import os
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence

from app.config import Settings, get_settings
from app.models.batch import JobProgress, MarkingJob, MarkingMode, MarkingOutcome
from app.models.document import Document
from app.models.marking import AssessmentType
from app.services.batch_advisor import recommend_batch, split_into_batches
from app.services.document_metadata import detect_document_metadata, generate_marked_file_name
from app.services.rubric_engine import RubricEngine, extract_score_from_marking
from app.utils.errors import MarkingValidationError, SizeLimitError, describe_failure

logger = logging.getLogger(__name__)

UNKNOWN_STUDENT = "Unknown Student"
DEFAULT_ASSIGNMENT = "Assignment"


class ResultSink(Protocol):
    """Persistence collaborator receiving each successful outcome."""

    async def save(self, outcome: MarkingOutcome) -> None:
        ...


ProgressCallback = Callable[[JobProgress], None]


class BatchMarker:
    """Marks documents sequentially in local or remote mode.

    Args:
        engine: Marking engine (its client is required for remote mode)
        mode: "local" or "remote"
        prompt: Marking instructions (required for remote mode)
        assessment_type: Remote assessment type
        memo: Optional memo applied to every document
        sink: Optional persistence collaborator
        on_progress: Called with the job progress after each document
        settings: Settings override (defaults to get_settings())
        sleep: Awaitable sleep used for the remote inter-document pause
    """

    def __init__(
        self,
        engine: RubricEngine,
        mode: MarkingMode = "local",
        prompt: Optional[str] = None,
        assessment_type: AssessmentType = "assessment",
        memo: Optional[str] = None,
        sink: Optional[ResultSink] = None,
        on_progress: Optional[ProgressCallback] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.engine = engine
        self.mode = mode
        self.prompt = prompt
        self.assessment_type = assessment_type
        self.memo = memo
        self.sink = sink
        self.on_progress = on_progress
        self.settings = settings or get_settings()
        self._sleep = sleep

    def validate(self, documents: Sequence[Document]) -> None:
        """Raise MarkingValidationError for missing required inputs."""
        if not documents:
            raise MarkingValidationError("No documents to mark")
        if self.mode == "remote":
            if not self.prompt or not self.prompt.strip():
                raise MarkingValidationError("Missing required field: prompt")
            if self.engine.client is None:
                raise MarkingValidationError("Remote marking is not configured: no completion client")
        empty = [str(i) for i, doc in enumerate(documents) if not doc.text or not doc.text.strip()]
        if empty:
            raise MarkingValidationError(f"Documents without text at positions: {', '.join(empty)}")

    def _report_progress(self, job: MarkingJob) -> None:
        if self.on_progress is not None:
            self.on_progress(job.progress.model_copy())

    async def process(self, documents: Sequence[Document]) -> MarkingJob:
        """
        Mark every document and return the finished job.

        Args:
            documents: Documents in submission order

        Returns:
            MarkingJob with one outcome per document, in input order

        Raises:
            MarkingValidationError: If required inputs are missing
            SizeLimitError: If the batch plan is unprocessable
            Exception: Whatever the ResultSink raised (job marked failed)
        """
        self.validate(documents)

        job = MarkingJob(
            documents=list(documents),
            mode=self.mode,
            progress=JobProgress(total=len(documents)),
        )
        job.plan = recommend_batch([doc.text for doc in documents])
        if not job.plan.is_processable:
            job.progress.status = "failed"
            raise SizeLimitError(f"Batch cannot be processed: {job.plan.reason}")

        logger.info(
            f"Marking {len(documents)} documents ({self.mode}) in {job.plan.total_batches} "
            f"batches of up to {job.plan.recommended_batch_size} (risk={job.plan.risk_level})"
        )
        job.progress.status = "processing"
        self._report_progress(job)

        indexed = list(enumerate(job.documents))
        for batch_number, batch in enumerate(split_into_batches(indexed, job.plan.recommended_batch_size), start=1):
            logger.info(f"Batch {batch_number}/{job.plan.total_batches}: {len(batch)} documents")

            for index, document in batch:
                if self.mode == "remote" and index > 0:
                    await self._sleep(self.settings.document_delay_seconds)

                job.progress.current_label = document.file_name or document.student_name or f"Document {index + 1}"
                outcome = await self._mark_one(index, document)
                job.outcomes.append(outcome)
                if outcome.error:
                    job.errors.append(f"{outcome.student_name}: {outcome.error}")

                if self.sink is not None and outcome.status == "ok":
                    try:
                        await self.sink.save(outcome)
                    except Exception:
                        logger.exception("Result sink failed; aborting batch")
                        job.progress.status = "failed"
                        self._report_progress(job)
                        raise

                job.progress.processed += 1
                self._report_progress(job)

        job.progress.status = "completed"
        job.progress.current_label = ""
        job.completed_at = datetime.utcnow()
        self._report_progress(job)

        logger.info(f"Batch complete: {len(job.outcomes) - len(job.errors)}/{len(job.outcomes)} succeeded")
        return job

    async def _mark_one(self, index: int, document: Document) -> MarkingOutcome:
        metadata = detect_document_metadata(document.text, document.file_name)
        student_name = document.student_name or metadata.student_name or UNKNOWN_STUDENT
        assignment_title = document.assignment_title or DEFAULT_ASSIGNMENT
        original_name = document.file_name or f"document_{index + 1}.pdf"
        marked_file_name = generate_marked_file_name(
            original_name,
            student_name if student_name != UNKNOWN_STUDENT else None,
            metadata.subject,
        )
        named = document.model_copy(update={"student_name": student_name, "assignment_title": assignment_title})

        outcome = MarkingOutcome(
            index=index,
            student_name=student_name,
            assignment_title=assignment_title,
            subject=metadata.subject,
            mode=self.mode,
            status="ok",
            content="",
            marked_file_name=marked_file_name,
        )

        try:
            if self.mode == "local":
                result = self.engine.mark_locally(named, self.memo)
                outcome.content = result.report
                outcome.total_marks = result.unit_scores.total_awarded
                outcome.percentage = result.unit_scores.percentage
            else:
                content = await self.engine.mark_remotely(self.prompt, named, self.assessment_type, self.memo)
                outcome.content = content
                outcome.total_marks, outcome.percentage = extract_score_from_marking(content)
        except Exception as e:
            logger.error(f"Failed to mark document {index + 1} ({student_name}): {e}")
            outcome.status = "failed"
            outcome.error = str(e) or type(e).__name__
            outcome.content = describe_failure(e)

        return outcome


def summarize_batch(job: MarkingJob) -> str:
    """Plain-text summary of a finished job."""
    scored = [o.percentage for o in job.outcomes if o.status == "ok" and o.percentage is not None]
    failed = sum(1 for o in job.outcomes if o.status == "failed")

    lines = [
        "BATCH MARKING SUMMARY",
        "=" * 40,
        f"Mode: {job.mode}",
        f"Documents: {len(job.outcomes)}",
        f"Succeeded: {len(job.outcomes) - failed}",
        f"Failed: {failed}",
    ]
    if scored:
        lines.append(f"Average: {sum(scored) / len(scored):.1f}%")

    lines.append("")
    for outcome in job.outcomes:
        if outcome.status == "failed":
            score = f"FAILED ({outcome.error})"
        elif outcome.percentage is not None:
            score = f"{outcome.percentage}%"
        else:
            score = "marked"
        lines.append(f"{outcome.index + 1}. {outcome.student_name} - {outcome.assignment_title}: {score}")

    return "\n".join(lines)


def load_text_documents(directory: str, pattern: str = "*.txt") -> List[Document]:
    """Load every matching text file in a directory as a Document, sorted by name."""
    documents = []
    for path in sorted(glob.glob(os.path.join(directory, pattern))):
        with open(path, "r", encoding="utf-8") as f:
            documents.append(Document(text=f.read(), file_name=os.path.basename(path)))
    return documents
