from typing import TypedDict

from rest_framework.viewsets import ViewSetMixin


class RouteDict(TypedDict):
    """
    A viewset registration for the API router: the URL prefix, the viewset
    and the basename used by `reverse("api:<basename>-<action>")`.
    """

    regex: str
    viewset: type[ViewSetMixin]
    basename: str
