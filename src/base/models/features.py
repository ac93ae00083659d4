from enum import Enum


class Feature(Enum):
    """Dashboard areas a user can be granted"""

    CALENDAR = "calendar"
    KANBAN = "kanban"
    APPROVALS = "approvals"
    IDEAS = "ideas"
    LINKEDIN = "linkedin"
    TESTING = "testing"
    ADMIN = "admin"

    @classmethod
    def base_features(cls) -> list[str]:
        """Features every regular user gets by default"""
        return [feature.value for feature in cls if feature is not cls.ADMIN]

    @classmethod
    def admin_features(cls) -> list[str]:
        """Features for administrators: the base set plus admin"""
        return [feature.value for feature in cls]
