import pytest
from rest_framework.test import APIClient


@pytest.fixture
def user_password():
    from users.factories import DEFAULT_TEST_USER_PASSWORD

    return DEFAULT_TEST_USER_PASSWORD


@pytest.fixture
def user(user_password):
    """The household member logged in by `auth_client`."""
    from users.factories import UserFactory

    return UserFactory().create_user(password=user_password)


@pytest.fixture
def auth_client(user, user_password):
    client = APIClient()
    client.login(username=user.email, password=user_password)
    return client


@pytest.fixture
def anonymous_client():
    return APIClient()


@pytest.fixture
def event_factory():
    from calendar_events.factories import CalendarEventFactory

    return CalendarEventFactory()


@pytest.fixture
def di_container():
    """The app container wired at startup, providers can be overridden in tests."""
    from di_core.containers import container

    return container
