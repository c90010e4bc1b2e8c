from collections.abc import Callable

from cuid2 import cuid_wrapper
from model_bakery import baker

from users.models import Profile, User


cuid_generator: Callable[[], str] = cuid_wrapper()


DEFAULT_TEST_USER_PASSWORD = "123456"  # noqa: S105


class UserFactory:
    def create_user(self, **kwargs) -> User:
        """Create a household member with a profile, or get it when the email exists."""
        try:
            return User.objects.get(email=kwargs.get("email", ""))
        except User.DoesNotExist:
            pass

        first_name = kwargs.pop("first_name", "")
        last_name = kwargs.pop("last_name", "")

        user = baker.prepare(
            User,
            email=kwargs.get("email", f"member{cuid_generator()}@example.com"),
            phone_number=kwargs.get("phone_number", ""),
        )
        user.set_password(kwargs.get("password", DEFAULT_TEST_USER_PASSWORD))
        user.save()

        ProfileFactory().create_profile(user=user, first_name=first_name, last_name=last_name)
        return user

    def create_user_without_profile(self, **kwargs) -> User:
        return baker.make(
            User, email=kwargs.pop("email", f"member{cuid_generator()}@example.com"), **kwargs
        )


class ProfileFactory:
    def create_profile(self, user, **kwargs) -> Profile:
        return baker.make(Profile, user=user, **kwargs)
