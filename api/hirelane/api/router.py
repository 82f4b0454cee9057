from fastapi import APIRouter

from hirelane.api.routes import applications, auth, employers, health, jobs, notifications, profiles

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(profiles.router, prefix="/profiles", tags=["profiles"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
api_router.include_router(applications.router, prefix="/applications", tags=["applications"])
api_router.include_router(employers.router, prefix="/employers", tags=["employers"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
