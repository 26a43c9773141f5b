"""
TravelDiary Backend: Application Package Initializer
=====================================================

What: Marks the `travel_diary` directory as a Python package.
Who:  Used by uvicorn (`travel_diary.main:app`), Alembic and pytest.

Architecture Note:
    The backend follows the same layered shape on every request:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │    Services (Entry, Image, Auth)    │  ← validation, defaults, sharing
    ├─────────────────────────────────────┤
    │     Repositories (Memory / SQL)     │  ← ids, timestamps, atomic writes
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    └─────────────────────────────────────┘

    The capture package sits outside this stack: it is the client-side
    acquisition state machine that feeds raw images to the image service.
"""

__version__ = "1.0.0"
