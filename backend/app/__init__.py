"""
Point Cloud Annotator Backend: Application Package Initializer
================================================================

What: Marks the `app` directory as a Python package.
Who:  Imported by uvicorn (app.main:app), the `python -m app` entrypoint,
      Alembic and pytest.

Architecture Note:
    One codebase, two process roles selected by SERVICE_ROLE:

    gateway                          handler
    ┌──────────────────────┐         ┌─────────────────────────────────────┐
    │ Routes: proxy, health│  HTTP   │ Routes: annotations, health         │
    ├──────────────────────┤ ──────▶ ├─────────────────────────────────────┤
    │ ProxyService (httpx) │         │ AnnotationService (cache-aside)     │
    └──────────────────────┘         ├──────────────────┬──────────────────┤
                                     │ AnnotationStore  │ AnnotationCache  │
                                     │ (SQLAlchemy/PG)  │ (Redis)          │
                                     └──────────────────┴──────────────────┘
"""

__version__ = "1.0.0"

SERVICE_NAME = "point-cloud-annotator"
