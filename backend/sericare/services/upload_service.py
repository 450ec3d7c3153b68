"""
SeriCare Backend — Upload Service (Submission Orchestrator)
============================================================

What:  Runs one silkworm image submission end to end: intake → classify →
       enrich → persist → respond, and governs cleanup when a step fails.
Why:   The only place where the stored file, the classifier call and the
       record insert are sequenced, so the "no orphaned files" rule is
       enforced once.
How:   Composes FileService, a Classifier, disease_service.enrich and
       UploadStore. The stored file is held by a StoredFileGuard for every
       step after intake and released unless the record was committed.
Who:   Called by POST /upload after get_current_user resolved the owner.

Flow States:
    AUTHENTICATED → FILE_ACCEPTED → CLASSIFIED → ENRICHED → PERSISTED → RESPONDED
         │               │              │                       │
         └───────────────┴──────────────┴───────────────────────┴──→ ABORTED

    Step fails           Error raised                    Stored file
    ───────────────────  ──────────────────────────────  ────────────
    intake               ValidationError / FileStorage   none written
    classify             ServiceUnavailable / Service    removed
    persist              PersistenceError                removed
    cancelled (any)      CancelledError (re-raised)      removed

    Invariant: the stored file exists after submit() returns or raises
    if and only if the flow reached PERSISTED.

Every exception leaving submit() is one of the SeriCareError kinds and
carries context["aborted_at"], the last state the flow reached. Unexpected
exceptions are wrapped in ServiceError.
"""

import enum
import logging
import random
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from sericare.exceptions import SeriCareError, ServiceError
from sericare.models.user import User
from sericare.schemas.upload import ImageOut, PredictionOut, UploadResult
from sericare.services.classifier_base import Classifier
from sericare.services.disease_service import enrich
from sericare.services.file_service import FileService, IncomingImage, file_service
from sericare.services.inference_client import inference_client
from sericare.services.upload_store import UploadAnnotations, UploadStore, upload_store

logger = logging.getLogger(__name__)


class UploadState(str, enum.Enum):
    AUTHENTICATED = "authenticated"
    FILE_ACCEPTED = "file_accepted"
    CLASSIFIED = "classified"
    ENRICHED = "enriched"
    PERSISTED = "persisted"
    RESPONDED = "responded"
    ABORTED = "aborted"


class SubmissionFlow:
    """Tracks the state of one submission for logging and error context."""

    def __init__(self, owner_id):
        self.owner_id = owner_id
        self.state = UploadState.AUTHENTICATED
        self.history: List[UploadState] = [self.state]

    def advance(self, state: UploadState) -> None:
        logger.info("Upload flow for %s: %s → %s", self.owner_id, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def abort(self, error: SeriCareError) -> SeriCareError:
        """Record the abort and stamp the error with the last reached state."""
        error.context.setdefault("aborted_at", self.state.value)
        logger.warning(
            "Upload flow for %s aborted at %s: %s (%s)",
            self.owner_id,
            self.state.value,
            error.error_code,
            error.message,
        )
        self.advance(UploadState.ABORTED)
        return error


class UploadService:
    """
    Orchestrates upload submissions.

    Collaborators are injected so tests can swap the classifier or the
    storage directory; the module-level `upload_service` uses the
    application singletons.
    """

    def __init__(
        self,
        files: Optional[FileService] = None,
        classifier: Optional[Classifier] = None,
        store: Optional[UploadStore] = None,
        rng: Optional[random.Random] = None,
    ):
        self.files = files or file_service
        self.classifier = classifier or inference_client
        self.store = store or upload_store
        self.rng = rng

    async def submit(
        self,
        db: AsyncSession,
        owner: User,
        upload: Optional[IncomingImage],
        annotations: Optional[UploadAnnotations] = None,
        flow: Optional[SubmissionFlow] = None,
    ) -> UploadResult:
        """
        Process one authenticated image submission.

        Args:
            db: Async database session (request-scoped)
            owner: Identity resolved from the bearer credential
            upload: The multipart image field, or None if it was not sent
            annotations: Optional notes / location from the form
            flow: State tracker; created when not supplied

        Returns:
            UploadResult (uploadId, prediction, image, timestamp)

        Raises:
            ValidationError: missing / non-image / oversized file
            FileStorageError: the image could not be written
            ServiceUnavailableError: classifier unreachable
            ServiceError: classifier failed, or an unexpected error
            PersistenceError: the record could not be saved
        """
        flow = flow or SubmissionFlow(owner.id)

        try:
            stored = await self.files.accept(upload)
            flow.advance(UploadState.FILE_ACCEPTED)

            async with self.files.hold(stored) as guard:
                prediction = await self.classifier.classify(stored)
                flow.advance(UploadState.CLASSIFIED)

                disease = enrich(prediction, self.rng)
                flow.advance(UploadState.ENRICHED)

                record = await self.store.create(
                    db,
                    owner_id=owner.id,
                    stored=stored,
                    prediction=prediction,
                    disease=disease,
                    annotations=annotations,
                )
                guard.keep()
                flow.advance(UploadState.PERSISTED)

        except SeriCareError as e:
            raise flow.abort(e)
        except Exception as e:
            logger.error("Unexpected error in upload flow: %s", str(e), exc_info=True)
            raise flow.abort(
                ServiceError(
                    message="Error processing upload",
                    context={"error_type": type(e).__name__},
                )
            ) from e

        result = UploadResult(
            upload_id=record.id,
            prediction=PredictionOut(
                label=prediction.label,
                confidence=prediction.confidence,
                probabilities=prediction.probabilities,
                disease=disease.name if disease else None,
                preventive_measures=list(disease.preventive_measures) if disease else [],
            ),
            image=ImageOut(url=record.image_url, filename=record.stored_file_name, size=record.image_size_bytes),
            timestamp=record.created_at,
        )
        flow.advance(UploadState.RESPONDED)
        logger.info(
            "Upload %s analyzed for %s: %s (%.2f)%s",
            record.id,
            owner.id,
            prediction.label,
            prediction.confidence,
            f", disease={disease.name}" if disease else "",
        )
        return result


upload_service = UploadService()


def get_upload_service() -> UploadService:
    """FastAPI dependency; tests override it with a service built on a fake classifier."""
    return upload_service
