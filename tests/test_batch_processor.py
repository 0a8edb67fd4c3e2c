"""Tests for sequential batch marking."""

import pytest

from app.models.document import Document
from app.services.batch_processor import (
    UNKNOWN_STUDENT,
    BatchMarker,
    load_text_documents,
    summarize_batch,
)
from app.services.document_profiler import VERY_LARGE_MAX_TOKENS
from app.services.rubric_engine import RubricEngine
from app.utils.errors import MarkingValidationError, SizeLimitError
from app.utils.retry import RetryPolicy, RetryScheduler


ANSWER = (
    "Task 1: Explain what a firewall does.\n"
    "A firewall monitors network traffic and blocks threats such as malware because it "
    "filters packets using rules. For example, it protects a server from attacks.\n"
)


class RecordingSink:
    """ResultSink collecting saved outcomes."""

    def __init__(self, fail_on=None):
        self.saved = []
        self.fail_on = fail_on

    async def save(self, outcome):
        if outcome.index == self.fail_on:
            raise RuntimeError("database unavailable")
        self.saved.append(outcome)


def _documents(count=3):
    return [
        Document(text=ANSWER, student_name=f"Student {i}", assignment_title="Networks", file_name=f"s{i}.pdf")
        for i in range(count)
    ]


def _remote_engine(settings, client, fake_sleep):
    scheduler = RetryScheduler(policy=RetryPolicy(max_retries=0), sleep=fake_sleep)
    return RubricEngine(client=client, settings=settings, scheduler=scheduler, sleep=fake_sleep)


# =============================================================================
# VALIDATION
# =============================================================================

class TestValidation:
    """Test BatchMarker.validate()."""

    @pytest.mark.asyncio
    async def test_no_documents(self, settings):
        marker = BatchMarker(RubricEngine(settings=settings), settings=settings)

        with pytest.raises(MarkingValidationError, match="No documents"):
            await marker.process([])

    @pytest.mark.asyncio
    async def test_remote_requires_prompt(self, settings, fake_client, fake_sleep):
        marker = BatchMarker(_remote_engine(settings, fake_client, fake_sleep), mode="remote", settings=settings)

        with pytest.raises(MarkingValidationError, match="prompt"):
            await marker.process(_documents(1))

    @pytest.mark.asyncio
    async def test_remote_requires_client(self, settings):
        marker = BatchMarker(RubricEngine(settings=settings), mode="remote", prompt="Mark", settings=settings)

        with pytest.raises(MarkingValidationError, match="not configured"):
            await marker.process(_documents(1))

    @pytest.mark.asyncio
    async def test_empty_document_text(self, settings):
        marker = BatchMarker(RubricEngine(settings=settings), settings=settings)
        documents = _documents(2) + [Document(text="   ")]

        with pytest.raises(MarkingValidationError, match="positions: 2"):
            await marker.process(documents)

    @pytest.mark.asyncio
    async def test_unprocessable_plan(self, settings, fake_sleep):
        huge = Document(text="word " * (VERY_LARGE_MAX_TOKENS * 4 // 5 + 10), student_name="Big")
        marker = BatchMarker(RubricEngine(settings=settings), settings=settings, sleep=fake_sleep)

        with pytest.raises(SizeLimitError, match="Batch cannot be processed"):
            await marker.process([huge])


# =============================================================================
# PROCESSING
# =============================================================================

class TestLocalBatch:
    """Test local-mode batch processing."""

    @pytest.mark.asyncio
    async def test_outcomes_in_input_order(self, settings, fake_sleep):
        marker = BatchMarker(RubricEngine(settings=settings), settings=settings, sleep=fake_sleep)

        job = await marker.process(_documents(3))

        assert [o.index for o in job.outcomes] == [0, 1, 2]
        assert [o.student_name for o in job.outcomes] == ["Student 0", "Student 1", "Student 2"]
        assert all(o.status == "ok" for o in job.outcomes)
        assert all(o.content.startswith("### Final Assessment Report") for o in job.outcomes)
        assert job.progress.status == "completed"
        assert job.progress.processed == 3
        assert job.completed_at is not None

    @pytest.mark.asyncio
    async def test_local_mode_does_not_pause(self, settings, fake_sleep):
        marker = BatchMarker(RubricEngine(settings=settings), settings=settings, sleep=fake_sleep)

        await marker.process(_documents(3))

        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_progress_reported_per_document(self, settings, fake_sleep):
        updates = []
        marker = BatchMarker(
            RubricEngine(settings=settings),
            on_progress=updates.append,
            settings=settings,
            sleep=fake_sleep,
        )

        await marker.process(_documents(2))

        assert [u.processed for u in updates] == [0, 1, 2, 2]
        assert updates[1].current_label == "s0.pdf"
        assert updates[-1].status == "completed"
        assert updates[-1].current_label == ""

    @pytest.mark.asyncio
    async def test_metadata_fallbacks(self, settings, fake_sleep):
        documents = [
            Document(text="Name: Thandi Mokoena\nSubject: History\n\n" + ANSWER, file_name="essay.docx"),
            Document(text=ANSWER),
        ]
        marker = BatchMarker(RubricEngine(settings=settings), settings=settings, sleep=fake_sleep)

        job = await marker.process(documents)

        first, second = job.outcomes
        assert first.student_name == "Thandi Mokoena"
        assert first.subject == "History"
        assert first.assignment_title == "Assignment"
        assert first.marked_file_name == "MARKED_ThandiMokoena_History.docx"
        assert second.student_name == UNKNOWN_STUDENT
        assert second.marked_file_name == "MARKED_document_2.pdf"

    @pytest.mark.asyncio
    async def test_sink_receives_successful_outcomes(self, settings, fake_sleep):
        sink = RecordingSink()
        marker = BatchMarker(RubricEngine(settings=settings), sink=sink, settings=settings, sleep=fake_sleep)

        await marker.process(_documents(2))

        assert [o.index for o in sink.saved] == [0, 1]

    @pytest.mark.asyncio
    async def test_sink_failure_aborts_job(self, settings, fake_sleep):
        updates = []
        sink = RecordingSink(fail_on=1)
        marker = BatchMarker(
            RubricEngine(settings=settings),
            sink=sink,
            on_progress=updates.append,
            settings=settings,
            sleep=fake_sleep,
        )

        with pytest.raises(RuntimeError, match="database unavailable"):
            await marker.process(_documents(3))

        assert [o.index for o in sink.saved] == [0]
        assert updates[-1].status == "failed"
        assert updates[-1].processed == 1


class TestRemoteBatch:
    """Test remote-mode batch processing."""

    @pytest.mark.asyncio
    async def test_scores_extracted_from_marking(self, settings, fake_client, fake_sleep):
        marker = BatchMarker(
            _remote_engine(settings, fake_client, fake_sleep),
            mode="remote",
            prompt="Mark each task out of 10",
            settings=settings,
            sleep=fake_sleep,
        )

        job = await marker.process(_documents(2))

        assert len(fake_client.calls) == 2
        assert all(o.total_marks == 7.0 and o.percentage == 70 for o in job.outcomes)
        assert fake_sleep.delays == [5.0]

    @pytest.mark.asyncio
    async def test_pauses_between_each_remote_document(self, settings, fake_client, fake_sleep):
        marker = BatchMarker(
            _remote_engine(settings, fake_client, fake_sleep),
            mode="remote",
            prompt="Mark",
            settings=settings,
            sleep=fake_sleep,
        )

        await marker.process(_documents(3))

        assert fake_sleep.delays == [5.0, 5.0]

    @pytest.mark.asyncio
    async def test_failed_document_does_not_stop_batch(self, settings, make_client, fake_sleep):
        client = make_client("Total: 9/10", ValueError("Invalid argument"), "Total: 5/10")
        marker = BatchMarker(
            _remote_engine(settings, client, fake_sleep),
            mode="remote",
            prompt="Mark",
            settings=settings,
            sleep=fake_sleep,
        )

        job = await marker.process(_documents(3))

        statuses = [o.status for o in job.outcomes]
        assert statuses == ["ok", "failed", "ok"]
        failed = job.outcomes[1]
        assert failed.error == "Invalid argument"
        assert failed.content.startswith("Invalid argument\n\nSuggestion: ")
        assert job.errors == ["Student 1: Invalid argument"]
        assert job.progress.status == "completed"
        assert job.outcomes[2].percentage == 50


# =============================================================================
# HELPERS
# =============================================================================

@pytest.mark.asyncio
async def test_summarize_batch(settings, make_client, fake_sleep):
    client = make_client("Total: 8/10", RuntimeError("boom"), "Looks fine")
    marker = BatchMarker(
        _remote_engine(settings, client, fake_sleep),
        mode="remote",
        prompt="Mark",
        settings=settings,
        sleep=fake_sleep,
    )
    job = await marker.process(_documents(3))

    summary = summarize_batch(job).splitlines()

    assert summary[0] == "BATCH MARKING SUMMARY"
    assert "Mode: remote" in summary
    assert "Succeeded: 2" in summary
    assert "Failed: 1" in summary
    assert "Average: 80.0%" in summary
    assert summary[-3:] == [
        "1. Student 0 - Networks: 80%",
        "2. Student 1 - Networks: FAILED (boom)",
        "3. Student 2 - Networks: marked",
    ]


def test_load_text_documents(tmp_path):
    (tmp_path / "b.txt").write_text("second", encoding="utf-8")
    (tmp_path / "a.txt").write_text("first", encoding="utf-8")
    (tmp_path / "notes.md").write_text("ignored", encoding="utf-8")

    documents = load_text_documents(str(tmp_path))

    assert [d.file_name for d in documents] == ["a.txt", "b.txt"]
    assert [d.text for d in documents] == ["first", "second"]
