"""
当前用户API路由
"""
from fastapi import APIRouter, Depends, status

from ..services.dto import AuthUser
from ..utils.request_helpers import get_current_user

router = APIRouter(prefix="/api", tags=["users"])


@router.get("/me", response_model=AuthUser, status_code=status.HTTP_200_OK)
async def get_me(user: AuthUser = Depends(get_current_user)):
    """
    获取当前认证用户
    """
    return user
