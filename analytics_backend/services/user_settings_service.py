"""
用户设置服务
读取和保存当前用户的界面设置（深色模式、默认脱敏）
"""
from ..database import Database, get_database
from ..models.user_setting import UserSetting
from ..utils.logger import get_logger
from .dto import UserSettings

logger = get_logger(__name__)


class UserSettingsService:
    """用户设置服务类"""

    def __init__(self, database: Database):
        self.database = database

    def get_settings(self, sis_user_id: str) -> UserSettings:
        """
        获取用户设置

        没有保存过设置的用户返回默认值（全部关闭）。
        """
        with self.database.get_session() as session:
            row = session.get(UserSetting, sis_user_id)
            if row is None:
                return UserSettings()
            return UserSettings(dark_mode=bool(row.dark_mode), anonymize=bool(row.anonymize))

    def save_settings(self, sis_user_id: str, settings: UserSettings) -> UserSettings:
        """
        保存用户设置（不存在则插入，存在则覆盖）

        Args:
            sis_user_id: 用户ID
            settings: 新的设置

        Returns:
            保存后的设置
        """
        with self.database.get_session() as session:
            row = session.get(UserSetting, sis_user_id)
            if row is None:
                row = UserSetting(sis_user_id=sis_user_id)
                session.add(row)
            row.dark_mode = settings.dark_mode
            row.anonymize = settings.anonymize
            session.flush()
            saved = UserSettings(dark_mode=bool(row.dark_mode), anonymize=bool(row.anonymize))

        logger.info(
            f"保存用户设置: sis_user_id={sis_user_id}, "
            f"dark_mode={saved.dark_mode}, anonymize={saved.anonymize}"
        )
        return saved


# 全局用户设置服务实例
_user_settings_service = None


def get_user_settings_service() -> UserSettingsService:
    """获取全局用户设置服务实例"""
    global _user_settings_service
    if _user_settings_service is None:
        _user_settings_service = UserSettingsService(get_database())
    return _user_settings_service
