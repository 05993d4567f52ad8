"""
用户设置API路由
"""
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from ..services.dto import AuthUser, UserSettings
from ..services.user_settings_service import UserSettingsService, get_user_settings_service
from ..utils.logger import get_logger
from ..utils.request_helpers import get_current_user

logger = get_logger(__name__)
router = APIRouter(prefix="/api/user-settings", tags=["user-settings"])


class UserSettingsResponse(BaseModel):
    """用户设置响应"""
    ok: bool = True
    settings: UserSettings


@router.get("", response_model=UserSettingsResponse, status_code=status.HTTP_200_OK)
async def get_user_settings(
    user: AuthUser = Depends(get_current_user),
    service: UserSettingsService = Depends(get_user_settings_service),
):
    """
    获取当前用户的设置
    """
    try:
        return UserSettingsResponse(settings=service.get_settings(user.sis_user_id))

    except Exception as e:
        logger.error(f"获取用户设置失败: user={user.sis_user_id}, error={str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "获取用户设置失败"}
        )


@router.put("", response_model=UserSettingsResponse, status_code=status.HTTP_200_OK)
async def save_user_settings(
    body: UserSettings,
    user: AuthUser = Depends(get_current_user),
    service: UserSettingsService = Depends(get_user_settings_service),
):
    """
    保存当前用户的设置

    未提交的字段按关闭处理。
    """
    try:
        return UserSettingsResponse(settings=service.save_settings(user.sis_user_id, body))

    except Exception as e:
        logger.error(f"保存用户设置失败: user={user.sis_user_id}, error={str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "保存用户设置失败"}
        )
