"""
SeriCare Backend — Upload Service (Submit Flow) Tests
======================================================

What:  The submission state machine end to end, with a fake classifier and
       a real file system + database.

Test Strategy:
    ✅ Healthy and diseased verdicts produce a record and keep the file
    ✅ Every failure after intake removes the stored file
    ✅ Every failure carries the state the flow reached (aborted_at)
    ✅ Unexpected exceptions become ServiceError
    ✅ Cancellation mid-classification leaves no file behind
    ✅ Concurrent submissions get distinct files and records
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from conftest import stored_files
from sericare.exceptions import (
    PersistenceError,
    ServiceError,
    ServiceUnavailableError,
    ValidationError,
)
from sericare.models.upload import Upload
from sericare.schemas.upload import Prediction
from sericare.services.disease_service import DISEASE_PROFILES
from sericare.services.file_service import IncomingImage
from sericare.services.upload_service import SubmissionFlow, UploadState
from sericare.services.upload_store import UploadAnnotations


async def _count_uploads(session_factory):
    async with session_factory() as session:
        return (await session.execute(select(func.count(Upload.id)))).scalar()


class TestSuccessfulSubmission:

    @pytest.mark.asyncio
    async def test_healthy(self, upload_service, db_session, owner, incoming_image, upload_dir):
        flow = SubmissionFlow(owner.id)

        result = await upload_service.submit(db_session, owner, incoming_image, flow=flow)

        assert result.prediction.label == "healthy"
        assert result.prediction.confidence == 0.93
        assert result.prediction.disease is None
        assert result.prediction.preventive_measures == []
        assert result.image.filename in stored_files(upload_dir)
        assert result.image.url == f"/uploads/{result.image.filename}"
        assert result.image.size == len(incoming_image.content)
        assert flow.history == [
            UploadState.AUTHENTICATED,
            UploadState.FILE_ACCEPTED,
            UploadState.CLASSIFIED,
            UploadState.ENRICHED,
            UploadState.PERSISTED,
            UploadState.RESPONDED,
        ]

        record = await db_session.get(Upload, result.upload_id)
        assert record.owner_id == owner.id
        assert record.stored_file_name == result.image.filename
        assert record.disease_info is None

    @pytest.mark.asyncio
    async def test_diseased(self, upload_service, fake_classifier, db_session, owner, incoming_image, upload_dir):
        fake_classifier.prediction = Prediction(label="diseased", confidence=0.81)

        result = await upload_service.submit(db_session, owner, incoming_image)

        names = {p.name for p in DISEASE_PROFILES.values()}
        assert result.prediction.label == "diseased"
        assert result.prediction.disease in names
        assert len(result.prediction.preventive_measures) > 0
        assert stored_files(upload_dir) == [result.image.filename]

        record = await db_session.get(Upload, result.upload_id)
        assert record.disease_name == result.prediction.disease
        assert record.preventive_measures == result.prediction.preventive_measures

    @pytest.mark.asyncio
    async def test_annotations_stored(self, upload_service, db_session, owner, incoming_image):
        annotations = UploadAnnotations(notes="Second instar", latitude=12.3, longitude=76.6, village="Mandya")

        result = await upload_service.submit(db_session, owner, incoming_image, annotations)

        record = await db_session.get(Upload, result.upload_id)
        assert (record.notes, record.latitude, record.longitude, record.village) == (
            "Second instar",
            12.3,
            76.6,
            "Mandya",
        )

    @pytest.mark.asyncio
    async def test_classifier_sees_stored_file(self, upload_service, fake_classifier, db_session, owner, incoming_image):
        result = await upload_service.submit(db_session, owner, incoming_image)
        assert [s.file_name for s in fake_classifier.calls] == [result.image.filename]

    @pytest.mark.asyncio
    async def test_concurrent_submissions(self, upload_service, session_factory, owner, incoming_image, upload_dir):
        async def submit_one():
            async with session_factory() as session:
                return await upload_service.submit(session, owner, incoming_image)

        results = await asyncio.gather(*(submit_one() for _ in range(5)))

        assert len({r.upload_id for r in results}) == 5
        assert len({r.image.filename for r in results}) == 5
        assert len(stored_files(upload_dir)) == 5
        assert await _count_uploads(session_factory) == 5


class TestIntakeFailures:
    """Nothing is written, the classifier is never called."""

    @pytest.mark.asyncio
    async def test_missing_file(self, upload_service, fake_classifier, db_session, owner, upload_dir):
        with pytest.raises(ValidationError, match="No image file provided") as exc_info:
            await upload_service.submit(db_session, owner, None)

        assert exc_info.value.context["aborted_at"] == "authenticated"
        assert "aborted_at" not in exc_info.value.to_response()["details"]
        assert fake_classifier.calls == []
        assert stored_files(upload_dir) == []

    @pytest.mark.asyncio
    async def test_non_image(self, upload_service, fake_classifier, db_session, owner, upload_dir, session_factory):
        upload = IncomingImage(filename="notes.txt", content_type="text/plain", content=b"hello")

        with pytest.raises(ValidationError, match="Only image files allowed"):
            await upload_service.submit(db_session, owner, upload)

        assert fake_classifier.calls == []
        assert stored_files(upload_dir) == []
        assert await _count_uploads(session_factory) == 0


class TestFailuresAfterIntake:
    """The stored file must be gone whenever no record was committed."""

    @pytest.mark.asyncio
    async def test_classifier_unavailable(
        self, upload_service, fake_classifier, db_session, owner, incoming_image, upload_dir, session_factory
    ):
        fake_classifier.error = ServiceUnavailableError()

        with pytest.raises(ServiceUnavailableError) as exc_info:
            await upload_service.submit(db_session, owner, incoming_image)

        assert exc_info.value.status_code == 503
        assert exc_info.value.context["aborted_at"] == "file_accepted"
        assert len(fake_classifier.calls) == 1
        assert stored_files(upload_dir) == []
        assert await _count_uploads(session_factory) == 0

    @pytest.mark.asyncio
    async def test_classifier_error(
        self, upload_service, fake_classifier, db_session, owner, incoming_image, upload_dir, session_factory
    ):
        fake_classifier.error = ServiceError(message="AI service returned an invalid prediction.")

        with pytest.raises(ServiceError, match="invalid prediction"):
            await upload_service.submit(db_session, owner, incoming_image)

        assert stored_files(upload_dir) == []
        assert await _count_uploads(session_factory) == 0

    @pytest.mark.asyncio
    async def test_persistence_failure(self, upload_service, db_session, owner, incoming_image, upload_dir, session_factory):
        upload_service.store.create = AsyncMock(side_effect=PersistenceError())

        with pytest.raises(PersistenceError) as exc_info:
            await upload_service.submit(db_session, owner, incoming_image)

        assert exc_info.value.context["aborted_at"] == "enriched"
        assert stored_files(upload_dir) == []
        assert await _count_uploads(session_factory) == 0

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_service_error(
        self, upload_service, fake_classifier, db_session, owner, incoming_image, upload_dir
    ):
        fake_classifier.error = KeyError("label")

        with pytest.raises(ServiceError) as exc_info:
            await upload_service.submit(db_session, owner, incoming_image)

        assert exc_info.value.message == "Error processing upload"
        assert exc_info.value.context["aborted_at"] == "file_accepted"
        assert exc_info.value.context["error_type"] == "KeyError"
        assert isinstance(exc_info.value.__cause__, KeyError)
        assert stored_files(upload_dir) == []

    @pytest.mark.asyncio
    async def test_enrichment_failure(self, upload_service, fake_classifier, db_session, owner, incoming_image, upload_dir):
        fake_classifier.prediction = Prediction(label="diseased", confidence=0.9)

        with patch("sericare.services.upload_service.enrich", side_effect=RuntimeError("no profiles")):
            with pytest.raises(ServiceError) as exc_info:
                await upload_service.submit(db_session, owner, incoming_image)

        assert exc_info.value.context["aborted_at"] == "classified"
        assert stored_files(upload_dir) == []

    @pytest.mark.asyncio
    async def test_flow_ends_aborted(self, upload_service, fake_classifier, db_session, owner, incoming_image):
        fake_classifier.error = ServiceUnavailableError()
        flow = SubmissionFlow(owner.id)

        with pytest.raises(ServiceUnavailableError):
            await upload_service.submit(db_session, owner, incoming_image, flow=flow)

        assert flow.state is UploadState.ABORTED
        assert UploadState.CLASSIFIED not in flow.history


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancelled_during_classification(
        self, upload_service, fake_classifier, db_session, owner, incoming_image, upload_dir, session_factory
    ):
        classifying = asyncio.Event()

        async def slow_classify(stored):
            classifying.set()
            await asyncio.sleep(3600)

        fake_classifier.classify = slow_classify

        task = asyncio.create_task(upload_service.submit(db_session, owner, incoming_image))
        await classifying.wait()
        assert len(stored_files(upload_dir)) == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert stored_files(upload_dir) == []
        assert await _count_uploads(session_factory) == 0

    @pytest.mark.asyncio
    async def test_cancelled_during_intake_write(
        self, upload_service, fake_classifier, db_session, owner, incoming_image, upload_dir
    ):
        writing = asyncio.Event()

        class StallingFile:
            def __init__(self, path, mode):
                self.handle = open(path, mode)

            async def __aenter__(self):
                return self

            async def __aexit__(self, *exc_info):
                self.handle.close()
                return False

            async def write(self, content):
                self.handle.write(content[:1])
                self.handle.flush()
                writing.set()
                await asyncio.sleep(3600)

        with patch("sericare.services.file_service.aiofiles.open", side_effect=StallingFile):
            task = asyncio.create_task(upload_service.submit(db_session, owner, incoming_image))
            await writing.wait()
            assert len(stored_files(upload_dir)) == 1

            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert stored_files(upload_dir) == []
        assert fake_classifier.calls == []
