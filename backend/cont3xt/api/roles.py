"""Role listing endpoint."""

from typing import Any

from fastapi import APIRouter, Depends

from cont3xt.api.auth import get_current_user
from cont3xt.api.deps import get_db
from cont3xt.database import Db
from cont3xt.models.user import User

router = APIRouter()


@router.get("")
async def list_roles(
    current_user: User = Depends(get_current_user),
    db: Db = Depends(get_db),
) -> dict[str, Any]:
    """Roles known to the users store, for link group role pickers."""
    return {"success": True, "roles": await db.list_roles()}
