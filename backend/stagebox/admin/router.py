"""Admin routes, guarded by the admin API key.

Endpoints:
    POST /admin/users  - Create a user account
"""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from stagebox.auth.dependencies import require_admin_key
from stagebox.auth.service import UserService
from stagebox.metadata.service import MetadataStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin_key)])


class CreateUserRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=64)
    password: str = Field(..., min_length=8)


class CreateUserResponse(BaseModel):
    id: int
    username: str


@router.post("/users", response_model=CreateUserResponse, status_code=201)
def create_user(body: CreateUserRequest) -> CreateUserResponse:
    """Create a user.

    Raises:
        401: Bad or missing admin key.
        409: Username already taken.
    """
    user = UserService(MetadataStore.get_instance()).create_user(body.username, body.password)
    logger.info("Admin created user %s (%s)", user.id, user.username)
    return CreateUserResponse(id=user.id, username=user.username)
