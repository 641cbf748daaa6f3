from fastapi import APIRouter

from spotsave.api.v1.endpoints import auth, aws, export, policies, session

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(aws.router, prefix="/aws", tags=["aws"])
api_router.include_router(export.router, prefix="/export", tags=["export"])
api_router.include_router(policies.router, prefix="/policies", tags=["policies"])
api_router.include_router(session.router, prefix="/session", tags=["session"])
