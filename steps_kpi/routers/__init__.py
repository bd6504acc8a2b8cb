from fastapi import APIRouter

from steps_kpi.routers import datasets, reporting

api_router = APIRouter()
api_router.include_router(reporting.router)
api_router.include_router(datasets.router)

__all__ = ["api_router"]
