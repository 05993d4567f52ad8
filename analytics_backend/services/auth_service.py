"""
身份认证服务
根据上游网关传入的邮箱解析分析平台用户
"""
import os
from typing import Any, Dict, Optional

from sqlalchemy import func, select

from ..database import Database, get_database
from ..models.user import User
from ..utils.datetime_helper import utc_now
from ..utils.logger import get_logger
from .dto import AuthUser

logger = get_logger(__name__)


class AuthError(Exception):
    """认证/授权错误基类"""
    http_status = 401

    def __init__(self, error: str, message: Optional[str] = None):
        self.error = error
        self.message = message
        super().__init__(error)

    def to_payload(self) -> Dict[str, Any]:
        payload = {"error": self.error}
        if self.message:
            payload["message"] = self.message
        return payload


class AuthenticationError(AuthError):
    """未认证（缺少身份信息）"""
    http_status = 401


class AuthorizationError(AuthError):
    """已认证但无权访问"""
    http_status = 403


class AuthService:
    """身份认证服务"""

    def __init__(self, database: Database, allowed_domain: Optional[str] = None):
        """
        初始化认证服务

        Args:
            database: 元数据库实例
            allowed_domain: 允许的邮箱域名，为None时读取环境变量 ALLOWED_EMAIL_DOMAIN（未设置则不限制）
        """
        self.database = database
        if allowed_domain is None:
            allowed_domain = os.getenv("ALLOWED_EMAIL_DOMAIN", "")
        self.allowed_domain = allowed_domain.strip().lower().lstrip("@")

    def require_auth(self, email: Optional[str]) -> AuthUser:
        """
        解析并校验调用方

        Args:
            email: 上游传入的邮箱（X-Email）

        Returns:
            AuthUser

        Raises:
            AuthenticationError: 缺少邮箱
            AuthorizationError: 域名不符、用户未开通或已停用
        """
        email = (email or "").strip().lower()
        if not email:
            raise AuthenticationError("Unauthorized: missing X-Email header")

        if self.allowed_domain and not email.endswith(f"@{self.allowed_domain}"):
            logger.warning(f"拒绝非允许域名的访问: {email}")
            raise AuthorizationError(f"Forbidden: must be @{self.allowed_domain}")

        with self.database.get_session() as session:
            user = session.execute(
                select(User).where(func.lower(User.email) == email).limit(1)
            ).scalar_one_or_none()

            if user is None:
                logger.warning(f"用户未开通: {email}")
                raise AuthorizationError(
                    "Access not provisioned",
                    "Your account is not enabled for analytics.",
                )

            if not user.is_active:
                logger.warning(f"用户已停用: {email}")
                raise AuthorizationError(
                    "Account disabled",
                    "Your analytics account is disabled.",
                )

            user.last_login_at = utc_now()

            auth_user = AuthUser(
                sis_user_id=str(user.sis_user_id),
                email=user.email,
                display_name=user.display_name,
                is_admin=bool(user.is_admin),
            )

        logger.debug(f"认证成功: sis_user_id={auth_user.sis_user_id}, is_admin={auth_user.is_admin}")
        return auth_user


# 全局认证服务实例
_auth_service = None


def get_auth_service() -> AuthService:
    """获取全局认证服务实例"""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService(get_database())
    return _auth_service
