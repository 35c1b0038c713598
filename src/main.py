"""
main.py

Entry point for the Project Calculation API.

Wires the in-memory infrastructure into the FastAPI app and starts uvicorn.

Usage
-----
    # Option 1 — run directly (host/port/reload from PROJECTCALC_* settings)
    python main.py

    # Option 2 — run via uvicorn CLI (recommended for development)
    uvicorn main:app --reload --port 8000

Once running, open your browser at:
    http://localhost:8000/docs      ← Swagger UI  (try every endpoint interactively)
    http://localhost:8000/redoc     ← ReDoc
    http://localhost:8000/health    ← liveness check

Quick-start walkthrough (use Swagger UI or curl)
-------------------------------------------------
1.  POST  /api/v1/users                           — create a manager and some employees
2.  POST  /api/v1/projects                        — create a project owned by the manager
3.  POST  /api/v1/projects/{id}/milestones        — add milestones
4.  POST  /api/v1/milestones/{mid}/tasks          — add tasks with estimated hours and coworkers
5.  PATCH /api/v1/tasks/{tid}/hours               — record actual hours
6.  PATCH /api/v1/milestones/{mid}/status         — complete a milestone
7.  GET   /api/v1/projects/{id}/details           — view the project with progress
8.  GET   /api/v1/projects/{id}/hours             — estimated vs. actual hours
9.  GET   /api/v1/projects/details?employee_id=N  — projects an employee works on
"""

import uvicorn

from api import app, get_uow, settings
from infrastructure import InMemoryUnitOfWork


# ---------------------------------------------------------------------------
# Wire the concrete Unit of Work into the FastAPI dependency system.
# To swap databases, replace InMemoryUnitOfWork with your SQL implementation.
# ---------------------------------------------------------------------------

app.dependency_overrides[get_uow] = lambda: InMemoryUnitOfWork()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
