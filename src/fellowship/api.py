from fastapi import APIRouter

from fellowship.modules.applications.admin_router import router as admin_applications_router
from fellowship.modules.applications.router import router as applications_router
from fellowship.modules.cohorts.cron_router import router as cohorts_cron_router
from fellowship.modules.cohorts.router import router as cohorts_router
from fellowship.modules.content.router import router as content_router
from fellowship.modules.institutions.admin_router import router as root_admin_institutions_router
from fellowship.modules.institutions.router import router as institutions_router
from fellowship.modules.messaging.router import router as messaging_router
from fellowship.modules.sessions.router import router as sessions_router
from fellowship.modules.users.router import router as users_router

api_router = APIRouter()

api_router.include_router(users_router, prefix="/users", tags=["Users"])

api_router.include_router(institutions_router, prefix="/institutions", tags=["Institutions"])

api_router.include_router(
    root_admin_institutions_router,
    prefix="/root-admin/institutions",
    tags=["Root Admin - Institutions"],
)

api_router.include_router(cohorts_router, prefix="/cohorts", tags=["Cohorts"])

api_router.include_router(cohorts_cron_router, prefix="/cron", tags=["Cron"])

api_router.include_router(applications_router, prefix="/applications", tags=["Applications"])

api_router.include_router(
    admin_applications_router,
    prefix="/admin/applications",
    tags=["Admin - Applications"],
)

api_router.include_router(sessions_router, prefix="/sessions", tags=["Sessions"])

api_router.include_router(content_router, prefix="/content", tags=["Content"])

api_router.include_router(messaging_router, prefix="/conversations", tags=["Messaging"])
