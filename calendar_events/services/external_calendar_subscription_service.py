import logging

from django.conf import settings
from django.db import transaction

from calendar_events.constants import ExternalCalendarSyncStatus
from calendar_events.exceptions import (
    ExternalCalendarSubscriptionLimitError,
    ExternalCalendarSubscriptionNotFoundError,
)
from calendar_events.models import ExternalCalendarSubscription
from calendar_events.querysets import ExternalCalendarSubscriptionQuerySet
from calendar_events.services.dataclasses import ExternalCalendarSubscriptionInputData


logger = logging.getLogger(__name__)

WEBCAL_SCHEME = "webcal://"


def normalize_ics_url(ics_url: str) -> str:
    """Feeds shared as webcal:// links are served over https."""
    ics_url = ics_url.strip()
    if ics_url.lower().startswith(WEBCAL_SCHEME):
        return "https://" + ics_url[len(WEBCAL_SCHEME) :]
    return ics_url


class ExternalCalendarSubscriptionService:
    """
    Manages the external calendars a user subscribes to. Their imported events
    count as busy time; fetching the feeds is not done here.
    """

    def __init__(self, max_subscriptions_per_user: int | None = None) -> None:
        self.max_subscriptions_per_user = (
            max_subscriptions_per_user or settings.CALENDAR_MAX_EXTERNAL_CALENDARS_PER_USER
        )

    def get_subscriptions(self, user_id: int) -> ExternalCalendarSubscriptionQuerySet:
        return (
            ExternalCalendarSubscription.objects.filter_by_user(user_id)
            .annotate_event_count()
            .order_by("name", "id")
        )

    def get_subscription(self, subscription_id: int, user_id: int) -> ExternalCalendarSubscription:
        """
        :raises ExternalCalendarSubscriptionNotFoundError: if the subscription doesn't
            exist or belongs to another user.
        """
        try:
            return self.get_subscriptions(user_id).get(id=subscription_id)
        except ExternalCalendarSubscription.DoesNotExist as e:
            raise ExternalCalendarSubscriptionNotFoundError(
                f"External calendar subscription {subscription_id} not found."
            ) from e

    @transaction.atomic()
    def create_subscription(
        self, subscription_data: ExternalCalendarSubscriptionInputData, user_id: int
    ) -> ExternalCalendarSubscription:
        current_count = ExternalCalendarSubscription.objects.filter_by_user(user_id).count()
        if current_count >= self.max_subscriptions_per_user:
            raise ExternalCalendarSubscriptionLimitError(
                f"Maximum of {self.max_subscriptions_per_user} external calendar "
                "subscriptions per user reached."
            )

        subscription = ExternalCalendarSubscription.objects.create(
            user_id=user_id,
            name=subscription_data.name,
            ics_url=normalize_ics_url(subscription_data.ics_url),
            color=subscription_data.color.strip(),
            sync_interval_minutes=subscription_data.sync_interval_minutes,
            is_active=subscription_data.is_active,
        )
        logger.info(
            "Created external calendar subscription %s for user %s", subscription.id, user_id
        )
        return subscription

    @transaction.atomic()
    def update_subscription(
        self,
        subscription_id: int,
        subscription_data: ExternalCalendarSubscriptionInputData,
        user_id: int,
    ) -> ExternalCalendarSubscription:
        """
        Update a subscription. Changing the feed URL resets its sync status,
        the events imported from the previous feed are kept until the next sync.
        """
        subscription = self.get_subscription(subscription_id, user_id)

        ics_url = normalize_ics_url(subscription_data.ics_url)
        if ics_url != subscription.ics_url:
            subscription.ics_url = ics_url
            subscription.last_synced_at = None
            subscription.last_sync_status = ExternalCalendarSyncStatus.NOT_STARTED
        subscription.name = subscription_data.name
        subscription.color = subscription_data.color.strip()
        subscription.sync_interval_minutes = subscription_data.sync_interval_minutes
        subscription.is_active = subscription_data.is_active
        subscription.save()

        logger.info("Updated external calendar subscription %s", subscription.id)
        return subscription

    def delete_subscription(self, subscription_id: int, user_id: int) -> None:
        """Delete a subscription and the events imported from it."""
        subscription = self.get_subscription(subscription_id, user_id)
        event_count = subscription.event_count
        subscription.delete()

        logger.info(
            "Deleted external calendar subscription %s with %s event(s)",
            subscription_id,
            event_count,
        )
