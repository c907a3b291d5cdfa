from fastapi import APIRouter

from prompt_library.api.routes import health, prompts, taxonomy

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(prompts.router, prefix="/prompts", tags=["prompts"])
api_router.include_router(taxonomy.router, tags=["taxonomy"])
