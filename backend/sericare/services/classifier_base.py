"""
SeriCare Backend — Abstract Classifier Interface
=================================================

What:  Abstract base class defining the contract for silkworm image classifiers.
Why:   The upload pipeline only needs "image in, Prediction out"; the HTTP
       inference client is one implementation, test doubles are others.
How:   Concrete implementations inherit from Classifier and implement
       classify() and health_check().
Who:   Called by UploadService between intake and enrichment.
"""

from abc import ABC, abstractmethod

from sericare.schemas.upload import Prediction
from sericare.services.file_service import StoredFile


class Classifier(ABC):
    """
    Abstract interface for image classification.

    Contract:
        - classify() makes exactly one attempt; no retries
        - every failure is raised as ServiceUnavailableError (endpoint could
          not be reached) or ServiceError (anything else)
        - the returned Prediction is already validated: label is 'healthy' or
          'diseased', confidence is in [0, 1]
    """

    @abstractmethod
    async def classify(self, stored: StoredFile) -> Prediction:
        """
        Classify a stored image.

        Args:
            stored: The accepted image on durable storage.

        Returns:
            Prediction with normalized label, confidence, optional probabilities.

        Raises:
            ServiceUnavailableError: the classifier refused the connection.
            ServiceError: timeout, non-2xx response, malformed verdict.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """
        What:    Lightweight reachability test (no image is sent).
        Who:     Called by the health check endpoint.
        Returns: True if the service answered at all, False otherwise.
        """
        ...
