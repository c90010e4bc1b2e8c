from django.db import models
from django.utils.translation import gettext_lazy as _

from model_utils.fields import AutoCreatedField, AutoLastModifiedField


class BaseModel(models.Model):
    """
    Base of every household model: indexed creation and modification
    timestamps, plus a free-form ``meta`` JSON field for data that has no
    column yet (e.g. properties of imported external events).
    """

    created = AutoCreatedField(_("created"), db_index=True)
    modified = AutoLastModifiedField(_("modified"), db_index=True)
    meta = models.JSONField(_("meta"), default=dict, blank=True)

    class Meta:
        abstract = True
