# recipebox/app/deps.py

from __future__ import annotations

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from supabase import Client, create_client

from recipebox.app.config import settings
from recipebox.app.services.usage_limiter import UsageLimiter
from recipebox.services.ingest import RecipeImporter
from recipebox.services.recipe_agent import RecipeAgent

_client: Client | None = None
_limiter: UsageLimiter | None = None
_agent: RecipeAgent | None = None


def get_supabase() -> Client:
    global _client
    if _client is None:
        if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Authentication backend not configured",
            )
        _client = create_client(str(settings.SUPABASE_URL),
                                settings.SUPABASE_SERVICE_ROLE_KEY.get_secret_value())
    return _client


def get_usage_limiter() -> UsageLimiter:
    # One limiter per process so the in-memory backend sees every import
    global _limiter
    if _limiter is None:
        _limiter = UsageLimiter()
    return _limiter


def get_recipe_agent() -> RecipeAgent:
    global _agent
    if _agent is None:
        _agent = RecipeAgent()
    return _agent


def get_recipe_importer(
    limiter: UsageLimiter = Depends(get_usage_limiter),
    agent: RecipeAgent = Depends(get_recipe_agent),
) -> RecipeImporter:
    return RecipeImporter(limiter=limiter, agent=agent)


auth_scheme = HTTPBearer(auto_error=False)

class CurrentUser(BaseModel):
    id: str
    email: str | None = None

async def get_current_user(
    cred: HTTPAuthorizationCredentials | None = Depends(auth_scheme),
    supa: Client = Depends(get_supabase),
) -> CurrentUser:
    """
    Validates an `Authorization: Bearer <access_token>` issued by Supabase Auth
    and returns the minimal user identity the import routes need.
    """
    if cred is None or cred.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")

    token = cred.credentials
    try:
        res = supa.auth.get_user(token)
        user = res.user
        if not user:
            raise HTTPException(status_code=401, detail="Invalid token")

        return CurrentUser(id=str(user.id), email=user.email)
    except HTTPException:
        raise
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid/expired token")
