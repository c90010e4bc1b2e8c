from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models
from django.utils.translation import gettext_lazy as _

from common.models import BaseModel

from .managers import UserManager


class User(AbstractBaseUser, PermissionsMixin, BaseModel):
    """A household member. Logs in with the email address."""

    email = models.EmailField(max_length=255, unique=True)
    phone_number = models.CharField(max_length=20, blank=True)

    is_staff = models.BooleanField(
        default=False,
        help_text=_("Designates whether the user can log into this admin site."),
    )
    is_active = models.BooleanField(
        default=True,
        help_text=_(
            "Designates whether this user should be treated as "
            "active. Unselect this instead of deleting accounts."
        ),
    )

    objects: UserManager = UserManager()
    profile: "Profile"

    USERNAME_FIELD = "email"

    @property
    def display_name(self) -> str:
        """Full name from the profile, or the email when the member has no name."""
        profile = getattr(self, "profile", None)
        if profile is None:
            return self.email
        return profile.full_name or self.email

    def get_full_name(self):
        return self.display_name

    def get_short_name(self):
        profile = getattr(self, "profile", None)
        return (profile.first_name if profile else "") or self.email

    def __str__(self):
        return f"{self.display_name} <{self.email}>"


class Profile(BaseModel):
    user = models.OneToOneField(
        User, on_delete=models.CASCADE, related_name="profile", primary_key=True
    )
    first_name = models.CharField(max_length=255, blank=True)
    last_name = models.CharField(max_length=255, blank=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self):
        return self.full_name
