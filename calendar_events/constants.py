from django.db.models import TextChoices


class ParticipationType(TextChoices):
    INVOLVED = "involved", "Involved"
    AWARE = "aware", "Aware"


class RecurrenceEditScope(TextChoices):
    THIS_OCCURRENCE = "this_occurrence", "This occurrence"
    THIS_AND_FUTURE = "this_and_future", "This and future occurrences"
    ENTIRE_SERIES = "entire_series", "Entire series"


class ExternalCalendarSyncStatus(TextChoices):
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"
    NOT_STARTED = "not_started", "Not Started"


REMINDER_TITLE_PREFIX = "Upcoming"
