from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sponsorship_admin.api.v1.academic_years.router import router as academic_years_router
from sponsorship_admin.api.v1.audit_logs.router import router as audit_logs_router
from sponsorship_admin.api.v1.auth.roles_router import router as roles_router
from sponsorship_admin.api.v1.auth.router import router as auth_router
from sponsorship_admin.api.v1.dashboard.router import router as dashboard_router
from sponsorship_admin.api.v1.exams.router import router as exams_router
from sponsorship_admin.api.v1.maintenance.router import router as maintenance_router
from sponsorship_admin.api.v1.settings.router import router as settings_router
from sponsorship_admin.api.v1.sponsors.router import router as sponsors_router
from sponsorship_admin.api.v1.students.router import router as students_router
from sponsorship_admin.api.v1.users.router import router as users_router
from sponsorship_admin.core.academic_years import YearChanged, year_change_notifier
from sponsorship_admin.core.app_logger import get_logger, setup_logging
from sponsorship_admin.core.config import settings

logger = get_logger("app")


async def log_year_change(event: YearChanged) -> None:
    logger.info("Academic year is now %s (was %s)", event.current, event.previous or "unset")


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title="Sponsorship Admin")

    # CORS: allow the admin frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(auth_router)
    app.include_router(roles_router)
    app.include_router(users_router)
    app.include_router(academic_years_router)
    app.include_router(students_router)
    app.include_router(sponsors_router)
    app.include_router(exams_router)
    app.include_router(dashboard_router)
    app.include_router(audit_logs_router)
    app.include_router(settings_router)
    app.include_router(maintenance_router)

    year_change_notifier.subscribe(log_year_change)
    return app


app = create_app()
