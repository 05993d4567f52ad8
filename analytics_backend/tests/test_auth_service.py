"""
身份认证服务测试
"""
import pytest

from analytics_backend.models import User
from analytics_backend.services.auth_service import (
    AuthenticationError,
    AuthorizationError,
    AuthService,
)


@pytest.fixture
def auth(seeded_database):
    return AuthService(seeded_database, allowed_domain="example.edu")


class TestRequireAuth:
    """测试调用方解析"""

    @pytest.mark.parametrize("email", [None, "", "   "])
    def test_missing_email(self, auth, email):
        with pytest.raises(AuthenticationError) as exc_info:
            auth.require_auth(email)
        assert exc_info.value.http_status == 401
        assert exc_info.value.to_payload() == {"error": "Unauthorized: missing X-Email header"}

    def test_wrong_domain(self, auth):
        with pytest.raises(AuthorizationError) as exc_info:
            auth.require_auth("someone@gmail.com")
        assert exc_info.value.http_status == 403
        assert exc_info.value.error == "Forbidden: must be @example.edu"

    def test_not_provisioned(self, auth):
        with pytest.raises(AuthorizationError) as exc_info:
            auth.require_auth("nobody@example.edu")
        assert exc_info.value.to_payload() == {
            "error": "Access not provisioned",
            "message": "Your account is not enabled for analytics.",
        }

    def test_disabled(self, auth):
        with pytest.raises(AuthorizationError) as exc_info:
            auth.require_auth("former@example.edu")
        assert exc_info.value.error == "Account disabled"

    def test_case_insensitive_lookup(self, auth):
        user = auth.require_auth("  Student.Analyst@Example.EDU ")
        assert user.sis_user_id == "123"
        assert user.is_admin is False
        assert user.display_name == "Analyst"

    def test_admin_flag(self, auth):
        assert auth.require_auth("admin@example.edu").is_admin is True

    def test_last_login_stamped(self, auth, seeded_database):
        auth.require_auth("student.analyst@example.edu")
        with seeded_database.get_session() as session:
            assert session.get(User, "123").last_login_at is not None
            assert session.get(User, "900").last_login_at is None


def test_domain_check_disabled(seeded_database):
    auth = AuthService(seeded_database, allowed_domain="")
    with pytest.raises(AuthorizationError) as exc_info:
        auth.require_auth("someone@gmail.com")
    assert exc_info.value.error == "Access not provisioned"


def test_domain_normalized(seeded_database):
    auth = AuthService(seeded_database, allowed_domain=" @Example.edu ")
    assert auth.allowed_domain == "example.edu"
