from collections.abc import Iterable

from users.models import User


UNKNOWN_USER_DISPLAY_NAME = "Unknown"


class UserDirectoryService:
    """Resolves household members to the names shown next to their calendars."""

    def get_display_names(self, user_ids: Iterable[int]) -> dict[int, str]:
        """
        Get display names for the given user ids.
        :param user_ids: ids of the users to resolve.
        :return: a dict mapping every requested id to its display name,
            unknown ids are mapped to "Unknown".
        """
        user_ids = list(dict.fromkeys(user_ids))
        users = User.objects.filter(id__in=user_ids).select_related("profile")
        display_names = {user.id: user.display_name for user in users}
        return {
            user_id: display_names.get(user_id, UNKNOWN_USER_DISPLAY_NAME) for user_id in user_ids
        }

    def get_display_name(self, user_id: int) -> str:
        return self.get_display_names([user_id])[user_id]
