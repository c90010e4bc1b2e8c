import pytest

from users.models import User


@pytest.mark.django_db
class TestUserManager:
    def test_create_user(self):
        user = User.objects.create_user(email="parent@example.com", password="testpassword123")

        assert user.email == "parent@example.com"
        assert user.check_password("testpassword123")
        assert user.is_active
        assert not user.is_staff
        assert not user.is_superuser

    def test_create_user_with_phone_number(self):
        user = User.objects.create_user(
            email="parent@example.com", password="testpassword123", phone_number="5511999990000"
        )

        assert user.phone_number == "5511999990000"

    def test_create_user_normalizes_email_domain(self):
        user = User.objects.create_user(email="Parent@EXAMPLE.com", password="testpassword123")

        assert user.email == "Parent@example.com"

    def test_create_user_requires_email(self):
        with pytest.raises(ValueError):
            User.objects.create_user(email="", password="testpassword123")

        assert not User.objects.exists()

    def test_create_superuser(self):
        admin_user = User.objects.create_superuser(
            email="admin@example.com", password="adminpassword123"
        )

        assert admin_user.check_password("adminpassword123")
        assert admin_user.is_staff
        assert admin_user.is_superuser

    def test_create_superuser_must_be_staff(self):
        with pytest.raises(ValueError):
            User.objects.create_superuser(
                email="admin@example.com", password="adminpassword123", is_staff=False
            )

    def test_user_without_profile_is_displayed_by_email(self):
        user = User.objects.create_user(email="parent@example.com", password="testpassword123")

        assert user.display_name == "parent@example.com"
        assert str(user) == "parent@example.com <parent@example.com>"
