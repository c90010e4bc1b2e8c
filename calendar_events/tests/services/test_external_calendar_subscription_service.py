import datetime

import pytest

from calendar_events.constants import ExternalCalendarSyncStatus
from calendar_events.exceptions import (
    ExternalCalendarSubscriptionLimitError,
    ExternalCalendarSubscriptionNotFoundError,
)
from calendar_events.factories import ExternalCalendarFactory
from calendar_events.models import ExternalCalendarEvent, ExternalCalendarSubscription
from calendar_events.services.dataclasses import ExternalCalendarSubscriptionInputData
from calendar_events.services.external_calendar_subscription_service import (
    ExternalCalendarSubscriptionService,
    normalize_ics_url,
)
from users.factories import UserFactory


def _dt(year, month, day, hour=9, minute=0):
    return datetime.datetime(year, month, day, hour, minute, tzinfo=datetime.UTC)


@pytest.fixture
def service():
    return ExternalCalendarSubscriptionService(max_subscriptions_per_user=2)


@pytest.fixture
def external_calendar_factory():
    return ExternalCalendarFactory()


@pytest.mark.parametrize(
    "ics_url, expected",
    [
        ("webcal://calendar.example.com/school.ics", "https://calendar.example.com/school.ics"),
        ("WEBCAL://calendar.example.com/school.ics", "https://calendar.example.com/school.ics"),
        (" https://calendar.example.com/work.ics ", "https://calendar.example.com/work.ics"),
    ],
)
def test_normalize_ics_url(ics_url, expected):
    assert normalize_ics_url(ics_url) == expected


@pytest.mark.django_db
class TestExternalCalendarSubscriptionService:
    def test_create_subscription(self, service, user):
        subscription = service.create_subscription(
            ExternalCalendarSubscriptionInputData(
                name="School",
                ics_url="webcal://calendar.example.com/school.ics",
                color=" #00ff00 ",
                sync_interval_minutes=30,
            ),
            user_id=user.id,
        )

        assert subscription.user == user
        assert subscription.ics_url == "https://calendar.example.com/school.ics"
        assert subscription.color == "#00ff00"
        assert subscription.sync_interval_minutes == 30
        assert subscription.is_active
        assert subscription.last_sync_status == ExternalCalendarSyncStatus.NOT_STARTED

    def test_create_subscription_over_limit(self, service, user, external_calendar_factory):
        external_calendar_factory.create_subscription(user)
        external_calendar_factory.create_subscription(user)
        # Other users' subscriptions don't count
        external_calendar_factory.create_subscription(UserFactory().create_user())

        with pytest.raises(ExternalCalendarSubscriptionLimitError):
            service.create_subscription(
                ExternalCalendarSubscriptionInputData(
                    name="Work", ics_url="https://calendar.example.com/work.ics"
                ),
                user_id=user.id,
            )

        assert ExternalCalendarSubscription.objects.filter(user=user).count() == 2

    def test_get_subscriptions_only_for_user(self, service, user, external_calendar_factory):
        work = external_calendar_factory.create_subscription(user, name="Work")
        school = external_calendar_factory.create_subscription(user, name="School")
        external_calendar_factory.create_subscription(UserFactory().create_user(), name="Other")
        external_calendar_factory.create_event(work, _dt(2024, 6, 3, 13), _dt(2024, 6, 3, 14))

        subscriptions = list(service.get_subscriptions(user.id))

        assert [subscription.id for subscription in subscriptions] == [school.id, work.id]
        assert [subscription.event_count for subscription in subscriptions] == [0, 1]

    def test_get_subscription_of_other_user(self, service, user, external_calendar_factory):
        subscription = external_calendar_factory.create_subscription(
            UserFactory().create_user()
        )

        with pytest.raises(ExternalCalendarSubscriptionNotFoundError):
            service.get_subscription(subscription.id, user.id)

    def test_update_subscription(self, service, user, external_calendar_factory):
        subscription = external_calendar_factory.create_subscription(
            user,
            last_synced_at=_dt(2024, 6, 1),
            last_sync_status=ExternalCalendarSyncStatus.SUCCESS,
        )

        updated = service.update_subscription(
            subscription.id,
            ExternalCalendarSubscriptionInputData(
                name="Soccer club",
                ics_url=subscription.ics_url,
                sync_interval_minutes=120,
                is_active=False,
            ),
            user_id=user.id,
        )

        assert updated.name == "Soccer club"
        assert updated.sync_interval_minutes == 120
        assert not updated.is_active
        assert updated.last_synced_at == _dt(2024, 6, 1)
        assert updated.last_sync_status == ExternalCalendarSyncStatus.SUCCESS

    def test_update_subscription_url_resets_sync(self, service, user, external_calendar_factory):
        subscription = external_calendar_factory.create_subscription(
            user,
            last_synced_at=_dt(2024, 6, 1),
            last_sync_status=ExternalCalendarSyncStatus.FAILED,
        )

        updated = service.update_subscription(
            subscription.id,
            ExternalCalendarSubscriptionInputData(
                name=subscription.name, ics_url="webcal://calendar.example.com/new.ics"
            ),
            user_id=user.id,
        )

        assert updated.ics_url == "https://calendar.example.com/new.ics"
        assert updated.last_synced_at is None
        assert updated.last_sync_status == ExternalCalendarSyncStatus.NOT_STARTED

    def test_delete_subscription_removes_events(self, service, user, external_calendar_factory):
        subscription = external_calendar_factory.create_subscription(user)
        kept = external_calendar_factory.create_subscription(user)
        external_calendar_factory.create_event(subscription, _dt(2024, 6, 3), _dt(2024, 6, 3, 10))
        kept_event = external_calendar_factory.create_event(
            kept, _dt(2024, 6, 3), _dt(2024, 6, 3, 10)
        )

        service.delete_subscription(subscription.id, user.id)

        assert not ExternalCalendarSubscription.objects.filter(id=subscription.id).exists()
        assert list(ExternalCalendarEvent.objects.values_list("id", flat=True)) == [kept_event.id]

    def test_delete_subscription_of_other_user(self, service, user, external_calendar_factory):
        subscription = external_calendar_factory.create_subscription(
            UserFactory().create_user()
        )

        with pytest.raises(ExternalCalendarSubscriptionNotFoundError):
            service.delete_subscription(subscription.id, user.id)

        assert ExternalCalendarSubscription.objects.filter(id=subscription.id).exists()
