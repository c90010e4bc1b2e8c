import dataclasses
import datetime
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Annotated

from django.db import DatabaseError, transaction
from django.utils import timezone

from dependency_injector.wiring import Provide, inject

from calendar_events.constants import ParticipationType, RecurrenceEditScope
from calendar_events.exceptions import (
    CalendarEventNotFoundError,
    CalendarEventPersistenceError,
    MissingOccurrenceStartError,
    RecurrenceRuleParseError,
)
from calendar_events.models import (
    CalendarEvent,
    CalendarEventException,
    CalendarEventMember,
    ExternalCalendarEvent,
)
from calendar_events.occurrence_utils import OccurrenceExpander, overlaps
from calendar_events.recurrence_utils import RecurrenceRuleEvaluator, truncate_to_seconds
from calendar_events.services.dataclasses import (
    CalendarEventInputData,
    CalendarEventMemberInputData,
    CalendarEventOccurrenceData,
)
from users.services import UserDirectoryService


if TYPE_CHECKING:
    from users.models import User


logger = logging.getLogger(__name__)

SPLIT_CUTOFF = datetime.timedelta(seconds=1)


def _truncate_event_times(event_data: CalendarEventInputData) -> CalendarEventInputData:
    return dataclasses.replace(
        event_data,
        start_time=truncate_to_seconds(event_data.start_time),
        end_time=truncate_to_seconds(event_data.end_time),
        recurrence_end=truncate_to_seconds(event_data.recurrence_end),
    )


class CalendarEventService:
    """
    Creates, reads and changes calendar events. Changes to recurring events
    are applied to a single occurrence, to an occurrence and the following
    ones, or to the whole series.
    """

    @inject
    def __init__(
        self,
        occurrence_expander: Annotated[
            OccurrenceExpander | None, Provide["occurrence_expander"]
        ] = None,
        recurrence_rule_evaluator: Annotated[
            RecurrenceRuleEvaluator | None, Provide["recurrence_rule_evaluator"]
        ] = None,
        user_directory_service: Annotated[
            UserDirectoryService | None, Provide["user_directory_service"]
        ] = None,
    ) -> None:
        self.recurrence_rule_evaluator = recurrence_rule_evaluator or RecurrenceRuleEvaluator()
        self.occurrence_expander = occurrence_expander or OccurrenceExpander(
            self.recurrence_rule_evaluator
        )
        self.user_directory_service = user_directory_service or UserDirectoryService()

    # Reads

    def get_event(self, event_id: int) -> CalendarEvent:
        try:
            return CalendarEvent.objects.get_queryset().prefetch_occurrence_data().get(id=event_id)
        except CalendarEvent.DoesNotExist as e:
            raise CalendarEventNotFoundError(f"Calendar event {event_id} not found.") from e

    def get_occurrences(
        self,
        start_time: datetime.datetime,
        end_time: datetime.datetime,
        user_ids: Iterable[int] | None = None,
        include_external_events: bool = False,
    ) -> list[CalendarEventOccurrenceData]:
        """
        List the occurrences overlapping a window.
        Events with an invalid recurrence rule are skipped and logged.
        :param start_time: window start (inclusive).
        :param end_time: window end (exclusive).
        :param user_ids: only include events having one of these users as member,
            and external events owned by them.
        :param include_external_events: include events of active external calendars.
        :return: occurrences ordered by start time.
        """
        if start_time >= end_time:
            return []
        user_ids = list(user_ids) if user_ids else None

        events = CalendarEvent.objects.filter_in_range(start_time, end_time)
        if user_ids:
            events = events.filter_by_members(user_ids)

        occurrences: list[CalendarEventOccurrenceData] = []
        for event in events.prefetch_occurrence_data():
            try:
                occurrences.extend(
                    occurrence
                    for occurrence in self.occurrence_expander.expand(event, start_time, end_time)
                    # Overridden occurrences may have been moved out of the window.
                    if overlaps(occurrence.start_time, occurrence.end_time, start_time, end_time)
                )
            except RecurrenceRuleParseError:
                logger.exception(
                    "Skipping calendar event %s with invalid recurrence rule %s",
                    event.id,
                    event.recurrence_rule,
                )

        if include_external_events:
            occurrences.extend(self._get_external_occurrences(start_time, end_time, user_ids))

        occurrences.sort(key=lambda occurrence: (occurrence.start_time, occurrence.end_time))
        return occurrences

    def get_upcoming_occurrences(
        self, days: int = 7, user_id: int | None = None
    ) -> list[CalendarEventOccurrenceData]:
        now = timezone.now()
        return self.get_occurrences(
            start_time=now,
            end_time=now + datetime.timedelta(days=days),
            user_ids=[user_id] if user_id is not None else None,
            include_external_events=True,
        )

    def _get_external_occurrences(
        self,
        start_time: datetime.datetime,
        end_time: datetime.datetime,
        user_ids: list[int] | None,
    ) -> list[CalendarEventOccurrenceData]:
        external_events = (
            ExternalCalendarEvent.objects.filter_active()
            .filter_in_range(start_time, end_time)
            .select_related("subscription")
        )
        if user_ids:
            external_events = external_events.filter_by_owners(user_ids)
        external_events = list(external_events)
        if not external_events:
            return []

        display_names = self.user_directory_service.get_display_names(
            {external_event.subscription.user_id for external_event in external_events}
        )
        return [
            CalendarEventOccurrenceData(
                event_id=None,
                title=external_event.title,
                start_time=external_event.start_time,
                end_time=external_event.end_time,
                is_all_day=external_event.is_all_day,
                color=external_event.subscription.color,
                is_external=True,
                subscription_id=external_event.subscription_id,
                owner_display_name=display_names[external_event.subscription.user_id],
            )
            for external_event in external_events
        ]

    # Mutations

    def create_event(
        self, event_data: CalendarEventInputData, created_by: "User | None" = None
    ) -> CalendarEvent:
        """
        Create an event and its members. The creator is added as an involved
        member when not already listed.
        """
        event_data = _truncate_event_times(event_data)
        self._validate_recurrence_rule(event_data.recurrence_rule, event_data.start_time)

        members = list(event_data.members or [])
        if created_by is not None and all(member.user_id != created_by.id for member in members):
            members.append(
                CalendarEventMemberInputData(
                    user_id=created_by.id, participation_type=ParticipationType.INVOLVED
                )
            )

        try:
            event = self._create_event(event_data, members, created_by)
        except DatabaseError as e:
            logger.exception("Failed to create calendar event %s", event_data.title)
            raise CalendarEventPersistenceError() from e

        logger.info("Created calendar event %s with %s member(s)", event.id, len(members))
        return event

    def update_event(
        self,
        event_id: int,
        event_data: CalendarEventInputData,
        scope: RecurrenceEditScope | None = None,
        occurrence_start_time: datetime.datetime | None = None,
    ) -> CalendarEvent:
        """
        Update an event with the given scope.
        :param event_id: id of the event (the series for recurring events).
        :param event_data: the requested values.
        :param scope: which occurrences are changed, defaults to the entire series.
            Ignored for non recurring events.
        :param occurrence_start_time: original start time of the edited occurrence,
            required by the this-occurrence and this-and-future scopes.
        :return: the series holding the edited occurrence, a new series for
            the this-and-future scope.
        """
        event_data = _truncate_event_times(event_data)
        occurrence_start_time = truncate_to_seconds(occurrence_start_time)
        self._validate_recurrence_rule(event_data.recurrence_rule, event_data.start_time)
        try:
            event = self._update_event(event_id, event_data, scope, occurrence_start_time)
        except DatabaseError as e:
            logger.exception("Failed to update calendar event %s", event_id)
            raise CalendarEventPersistenceError() from e

        logger.info("Updated calendar event %s with scope %s", event_id, scope)
        return event

    def delete_event(
        self,
        event_id: int,
        scope: RecurrenceEditScope | None = None,
        occurrence_start_time: datetime.datetime | None = None,
    ) -> None:
        """
        Delete an event with the given scope.
        :param event_id: id of the event (the series for recurring events).
        :param scope: which occurrences are deleted, defaults to the entire series.
            Ignored for non recurring events.
        :param occurrence_start_time: original start time of the deleted occurrence,
            required by the this-occurrence and this-and-future scopes.
        """
        occurrence_start_time = truncate_to_seconds(occurrence_start_time)
        try:
            self._delete_event(event_id, scope, occurrence_start_time)
        except DatabaseError as e:
            logger.exception("Failed to delete calendar event %s", event_id)
            raise CalendarEventPersistenceError() from e

        logger.info("Deleted calendar event %s with scope %s", event_id, scope)

    @transaction.atomic()
    def _create_event(
        self,
        event_data: CalendarEventInputData,
        members: list[CalendarEventMemberInputData],
        created_by: "User | None",
    ) -> CalendarEvent:
        event = CalendarEvent.objects.create(
            title=event_data.title,
            description=event_data.description,
            location=event_data.location,
            color=event_data.color,
            start_time=event_data.start_time,
            end_time=event_data.end_time,
            is_all_day=event_data.is_all_day,
            recurrence_rule=event_data.recurrence_rule or "",
            recurrence_end=event_data.recurrence_end if event_data.recurrence_rule else None,
            reminder_minutes_before=event_data.reminder_minutes_before,
            created_by=created_by,
        )
        CalendarEventMember.objects.bulk_create(
            CalendarEventMember(
                event=event,
                user_id=member.user_id,
                participation_type=member.participation_type,
            )
            for member in members
        )
        return event

    @transaction.atomic()
    def _update_event(
        self,
        event_id: int,
        event_data: CalendarEventInputData,
        scope: RecurrenceEditScope | None,
        occurrence_start_time: datetime.datetime | None,
    ) -> CalendarEvent:
        event = self._get_event_for_update(event_id)
        scope = self._resolve_scope(event, scope, occurrence_start_time)

        if scope == RecurrenceEditScope.THIS_OCCURRENCE:
            self._override_occurrence(event, occurrence_start_time, event_data)  # type: ignore[arg-type]
            return event
        if scope == RecurrenceEditScope.THIS_AND_FUTURE:
            previous_recurrence_end = event.recurrence_end
            self._truncate_series(event, occurrence_start_time)  # type: ignore[arg-type]
            return self._create_continuation_series(
                event,
                occurrence_start_time,  # type: ignore[arg-type]
                event_data,
                previous_recurrence_end,
            )

        self._update_series(event, event_data)
        return event

    @transaction.atomic()
    def _delete_event(
        self,
        event_id: int,
        scope: RecurrenceEditScope | None,
        occurrence_start_time: datetime.datetime | None,
    ) -> None:
        event = self._get_event_for_update(event_id)
        scope = self._resolve_scope(event, scope, occurrence_start_time)

        if scope == RecurrenceEditScope.THIS_OCCURRENCE:
            exception, _ = CalendarEventException.objects.get_or_create(
                event=event, original_start_time=occurrence_start_time
            )
            exception.is_deleted = True
            exception.clear_overrides()
            exception.save()
        elif scope == RecurrenceEditScope.THIS_AND_FUTURE:
            self._truncate_series(event, occurrence_start_time)  # type: ignore[arg-type]
        else:
            # Members and exceptions are removed by cascade.
            event.delete()

    def _get_event_for_update(self, event_id: int) -> CalendarEvent:
        try:
            return CalendarEvent.objects.select_for_update().get(id=event_id)
        except CalendarEvent.DoesNotExist as e:
            raise CalendarEventNotFoundError(f"Calendar event {event_id} not found.") from e

    @staticmethod
    def _resolve_scope(
        event: CalendarEvent,
        scope: RecurrenceEditScope | None,
        occurrence_start_time: datetime.datetime | None,
    ) -> RecurrenceEditScope:
        if not event.is_recurring or scope is None:
            return RecurrenceEditScope.ENTIRE_SERIES
        if (
            scope
            in (
                RecurrenceEditScope.THIS_OCCURRENCE,
                RecurrenceEditScope.THIS_AND_FUTURE,
            )
            and occurrence_start_time is None
        ):
            raise MissingOccurrenceStartError()
        return RecurrenceEditScope(scope)

    def _validate_recurrence_rule(
        self, recurrence_rule: str | None, start_time: datetime.datetime
    ) -> None:
        if recurrence_rule:
            self.recurrence_rule_evaluator.validate(recurrence_rule, start_time)

    @staticmethod
    def _override_occurrence(
        event: CalendarEvent,
        occurrence_start_time: datetime.datetime,
        event_data: CalendarEventInputData,
    ) -> CalendarEventException:
        exception, _ = CalendarEventException.objects.update_or_create(
            event=event,
            original_start_time=occurrence_start_time,
            defaults={
                "is_deleted": False,
                "override_title": event_data.title,
                "override_description": event_data.description,
                "override_location": event_data.location,
                "override_start_time": event_data.start_time,
                "override_end_time": event_data.end_time,
                "override_is_all_day": event_data.is_all_day,
            },
        )
        return exception

    @staticmethod
    def _truncate_series(event: CalendarEvent, split_start_time: datetime.datetime) -> None:
        """
        End the series right before ``split_start_time`` and drop the exceptions
        of the occurrences that no longer exist.
        """
        event.recurrence_end = split_start_time - SPLIT_CUTOFF
        event.save(update_fields=["recurrence_end", "modified"])
        event.exceptions.filter(original_start_time__gte=split_start_time).delete()

    def _create_continuation_series(
        self,
        event: CalendarEvent,
        split_start_time: datetime.datetime,
        event_data: CalendarEventInputData,
        previous_recurrence_end: datetime.datetime | None,
    ) -> CalendarEvent:
        if event_data.recurrence_rule is None:
            recurrence_rule = (
                self.recurrence_rule_evaluator.continuation_rule(
                    event.recurrence_rule, event.start_time, split_start_time
                )
                or ""
            )
            recurrence_end = event_data.recurrence_end or previous_recurrence_end
        else:
            recurrence_rule = event_data.recurrence_rule
            recurrence_end = event_data.recurrence_end

        continuation = CalendarEvent.objects.create(
            title=event_data.title,
            description=event_data.description,
            location=event_data.location,
            color=event_data.color,
            start_time=event_data.start_time,
            end_time=event_data.end_time,
            is_all_day=event_data.is_all_day,
            recurrence_rule=recurrence_rule,
            recurrence_end=recurrence_end if recurrence_rule else None,
            reminder_minutes_before=event_data.reminder_minutes_before,
            created_by_id=event.created_by_id,
            split_from=event,
        )
        CalendarEventMember.objects.bulk_create(
            CalendarEventMember(
                event=continuation,
                user_id=member.user_id,
                participation_type=member.participation_type,
            )
            for member in event.members.all()
        )
        return continuation

    def _update_series(self, event: CalendarEvent, event_data: CalendarEventInputData) -> None:
        event.title = event_data.title
        event.description = event_data.description
        event.location = event_data.location
        event.color = event_data.color
        event.start_time = event_data.start_time
        event.end_time = event_data.end_time
        event.is_all_day = event_data.is_all_day
        event.reminder_minutes_before = event_data.reminder_minutes_before
        if event_data.recurrence_rule is not None:
            event.recurrence_rule = event_data.recurrence_rule
        event.save()

        if event_data.members is not None:
            self._sync_members(event, event_data.members)

    @staticmethod
    def _sync_members(
        event: CalendarEvent, members: Iterable[CalendarEventMemberInputData]
    ) -> None:
        requested = {member.user_id: member.participation_type for member in members}
        existing = {member.user_id: member for member in event.members.all()}

        event.members.exclude(user_id__in=list(requested)).delete()

        to_update = []
        for user_id, participation_type in requested.items():
            member = existing.get(user_id)
            if member is not None and member.participation_type != participation_type:
                member.participation_type = participation_type
                to_update.append(member)
        CalendarEventMember.objects.bulk_update(to_update, ["participation_type"])

        CalendarEventMember.objects.bulk_create(
            CalendarEventMember(event=event, user_id=user_id, participation_type=participation_type)
            for user_id, participation_type in requested.items()
            if user_id not in existing
        )
