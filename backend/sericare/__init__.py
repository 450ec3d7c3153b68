"""
SeriCare Backend — Application Package Initializer
===================================================

What: Marks the `sericare` directory as a Python package.
Why:  Enables module imports like `from sericare.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend follows the same layered shape for every request:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, auth dependency
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Intake, classifier, enrichment, orchestration
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    The upload pipeline lives in services/upload_service.py; everything it
    composes (file_service, inference_client, disease_service, upload_store)
    can be exercised on its own without HTTP.
"""

__version__ = "1.0.0"
