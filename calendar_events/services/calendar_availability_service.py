import datetime
import logging
from collections import defaultdict
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Annotated

from dependency_injector.wiring import Provide, inject

from calendar_events.availability_utils import find_free_slots, merge_time_slots
from calendar_events.constants import ParticipationType
from calendar_events.exceptions import RecurrenceRuleParseError
from calendar_events.models import CalendarEvent, CalendarEventException, ExternalCalendarEvent
from calendar_events.occurrence_utils import OccurrenceExpander, overlaps
from calendar_events.services.dataclasses import FindSlotsInputData, FreeBusyData, TimeSlot
from calendar_events.timezone_utils import resolve_timezone
from users.services import UserDirectoryService


logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


@dataclass
class _UserBusySource:
    """Rows already fetched from the database for one user."""

    user_id: int
    events: list[tuple[CalendarEvent, list[CalendarEventException]]] = dataclass_field(
        default_factory=list
    )
    external_events: list[ExternalCalendarEvent] = dataclass_field(default_factory=list)


class CalendarAvailabilityService:
    """
    Computes busy time of household members and finds common free slots.
    Only events where a user is an involved member, and events of the user's
    active external calendars, make that user busy.
    """

    @inject
    def __init__(
        self,
        occurrence_expander: Annotated[
            OccurrenceExpander | None, Provide["occurrence_expander"]
        ] = None,
        user_directory_service: Annotated[
            UserDirectoryService | None, Provide["user_directory_service"]
        ] = None,
        max_workers: int | None = None,
    ) -> None:
        self.occurrence_expander = occurrence_expander or OccurrenceExpander()
        self.user_directory_service = user_directory_service or UserDirectoryService()
        self.max_workers = max_workers or DEFAULT_MAX_WORKERS

    def get_busy_slots(
        self, user_id: int, start_time: datetime.datetime, end_time: datetime.datetime
    ) -> list[TimeSlot]:
        """
        Get the merged busy slots of a user in a window.
        :param user_id: the user id.
        :param start_time: window start (inclusive).
        :param end_time: window end (exclusive).
        :return: ordered, disjoint busy slots.
        """
        busy_slots_by_user = self._gather_busy_slots_by_user([user_id], start_time, end_time)
        return merge_time_slots(busy_slots_by_user[user_id])

    def get_free_busy(
        self,
        user_ids: Iterable[int],
        start_time: datetime.datetime,
        end_time: datetime.datetime,
    ) -> list[FreeBusyData]:
        """
        Get the merged busy slots of each user, computed independently per user.
        :return: one entry per distinct user id, in the requested order.
        """
        user_ids = list(dict.fromkeys(user_ids))
        logger.info(
            "Getting free/busy for %s user(s) from %s to %s", len(user_ids), start_time, end_time
        )

        busy_slots_by_user = self._gather_busy_slots_by_user(user_ids, start_time, end_time)
        display_names = self.user_directory_service.get_display_names(user_ids)
        return [
            FreeBusyData(
                user_id=user_id,
                user_display_name=display_names[user_id],
                busy_slots=merge_time_slots(busy_slots_by_user[user_id]),
            )
            for user_id in user_ids
        ]

    def find_available_slots(self, find_slots_data: FindSlotsInputData) -> list[TimeSlot]:
        """
        Find slots where none of the users is busy.
        Preferred hours are interpreted in ``find_slots_data.timezone``, or in
        UTC when it is empty or unknown.
        """
        user_ids = list(dict.fromkeys(find_slots_data.user_ids))
        logger.info(
            "Finding available slots for %s user(s), duration=%smin, from %s to %s",
            len(user_ids),
            find_slots_data.duration_minutes,
            find_slots_data.start_time,
            find_slots_data.end_time,
        )

        busy_slots_by_user = self._gather_busy_slots_by_user(
            user_ids, find_slots_data.start_time, find_slots_data.end_time
        )
        # Any user being busy makes the group busy.
        group_busy_slots = [
            slot for user_id in user_ids for slot in busy_slots_by_user[user_id]
        ]

        return find_free_slots(
            busy_slots=group_busy_slots,
            window_start=find_slots_data.start_time,
            window_end=find_slots_data.end_time,
            duration=datetime.timedelta(minutes=find_slots_data.duration_minutes),
            max_results=find_slots_data.max_results,
            preferred_start_hour=find_slots_data.preferred_start_hour,
            preferred_end_hour=find_slots_data.preferred_end_hour,
            zone=resolve_timezone(find_slots_data.timezone),
        )

    def _gather_busy_slots_by_user(
        self,
        user_ids: list[int],
        start_time: datetime.datetime,
        end_time: datetime.datetime,
    ) -> dict[int, list[TimeSlot]]:
        """
        Fetch rows once for every user, then compute each user's unmerged busy
        slots in parallel. Workers don't touch the database.
        """
        if not user_ids or start_time >= end_time:
            return {user_id: [] for user_id in user_ids}

        sources = self._fetch_busy_sources(user_ids, start_time, end_time)
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            busy_slots = executor.map(
                lambda source: self._collect_busy_slots(source, start_time, end_time), sources
            )
            return {
                source.user_id: slots for source, slots in zip(sources, busy_slots, strict=True)
            }

    def _fetch_busy_sources(
        self,
        user_ids: list[int],
        start_time: datetime.datetime,
        end_time: datetime.datetime,
    ) -> list[_UserBusySource]:
        sources = {user_id: _UserBusySource(user_id=user_id) for user_id in user_ids}

        events = (
            CalendarEvent.objects.filter_in_range(start_time, end_time)
            .filter_by_members(user_ids, ParticipationType.INVOLVED)
            .prefetch_occurrence_data()
        )
        for event in events:
            exceptions = list(event.exceptions.all())
            for member in event.members.all():
                if (
                    member.participation_type == ParticipationType.INVOLVED
                    and member.user_id in sources
                ):
                    sources[member.user_id].events.append((event, exceptions))

        external_events = (
            ExternalCalendarEvent.objects.filter_active()
            .filter_in_range(start_time, end_time)
            .filter_by_owners(user_ids)
            .select_related("subscription")
        )
        external_events_by_user: dict[int, list[ExternalCalendarEvent]] = defaultdict(list)
        for external_event in external_events:
            external_events_by_user[external_event.subscription.user_id].append(external_event)
        for user_id, user_external_events in external_events_by_user.items():
            sources[user_id].external_events = user_external_events

        return list(sources.values())

    def _collect_busy_slots(
        self,
        source: _UserBusySource,
        start_time: datetime.datetime,
        end_time: datetime.datetime,
    ) -> list[TimeSlot]:
        busy_slots: list[TimeSlot] = []
        for event, exceptions in source.events:
            try:
                occurrences = list(
                    self.occurrence_expander.expand(event, start_time, end_time, exceptions)
                )
            except RecurrenceRuleParseError:
                logger.exception(
                    "Skipping calendar event %s with invalid recurrence rule %s for user %s",
                    event.id,
                    event.recurrence_rule,
                    source.user_id,
                )
                continue
            busy_slots.extend(
                TimeSlot(
                    start_time=occurrence.start_time,
                    end_time=occurrence.end_time,
                    title=occurrence.title,
                )
                for occurrence in occurrences
                if overlaps(occurrence.start_time, occurrence.end_time, start_time, end_time)
            )

        busy_slots.extend(
            TimeSlot(
                start_time=external_event.start_time,
                end_time=external_event.end_time,
                title=external_event.title,
            )
            for external_event in source.external_events
        )
        busy_slots.sort(key=lambda slot: (slot.start_time, slot.end_time))
        return busy_slots
