# recipebox/app/main.py
from __future__ import annotations
import logging
import sys
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from recipebox.app.config import settings
from recipebox.app.deps import get_recipe_agent
from recipebox.app.routers.ingest import router as ingest_router
from recipebox.services.recipe_agent import RecipeAgent

# Plain stdout logging, fine for dev and containers
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

app = FastAPI(title="Recipebox Import API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ingest_router)


@app.get("/health")
def health(agent: RecipeAgent = Depends(get_recipe_agent)):
    return {"ok": True, "aiConfigured": agent.client.is_configured}


@app.get("/health/ai")
async def health_ai(agent: RecipeAgent = Depends(get_recipe_agent)):
    return {"ok": await agent.client.check_connection()}
