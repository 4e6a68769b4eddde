from fastapi import APIRouter

from empleos.api.routes import admin, applications, auth, company, health, jobs, omil, profile, reports, saved_jobs

api_router = APIRouter(prefix="/api")
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["public"])
api_router.include_router(profile.router, prefix="/me", tags=["job-seeker"])
api_router.include_router(applications.router, prefix="/me/applications", tags=["job-seeker"])
api_router.include_router(saved_jobs.router, prefix="/me/saved-jobs", tags=["job-seeker"])
api_router.include_router(company.router, prefix="/me/company", tags=["company"])
api_router.include_router(omil.router, prefix="/me/omil", tags=["omil"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
api_router.include_router(reports.router, prefix="/admin/reports", tags=["admin"])
