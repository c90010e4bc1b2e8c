from django.shortcuts import get_object_or_404

from rest_framework import mixins, status
from rest_framework.response import Response
from rest_framework.viewsets import ModelViewSet


class RefetchReturnInstanceAfterWriteMixin:
    def get_return_queryset(self):
        """
        Queryset used to re-fetch instances after writes.
        Defaults to `get_queryset()`, override it to add prefetches or annotations.
        """
        return self.get_queryset()

    def get_return_object(self, instance):
        queryset = self.get_return_queryset()
        obj = get_object_or_404(queryset, pk=instance.pk)

        # May raise a permission denied
        self.check_object_permissions(self.request, obj)

        return obj


class CreateModelMixin(RefetchReturnInstanceAfterWriteMixin, mixins.CreateModelMixin):
    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self.perform_create(serializer)

        # re-fetches the instance so we get prefetches and selects
        return_serializer = self.get_serializer(self.get_return_object(serializer.instance))
        headers = self.get_success_headers(return_serializer.data)
        return Response(return_serializer.data, status=status.HTTP_201_CREATED, headers=headers)


class UpdateModelMixin(RefetchReturnInstanceAfterWriteMixin, mixins.UpdateModelMixin):
    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        instance = self.get_object()
        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        self.perform_update(serializer)

        # the written instance may differ from the requested one, e.g. a new series
        return_serializer = self.get_serializer(self.get_return_object(serializer.instance))
        return Response(return_serializer.data)


class FilterOnlyOnListMixin:
    def filter_queryset(self, queryset):
        if self.action != "list":
            return queryset
        return super().filter_queryset(queryset)


class HomeManagementModelViewSet(
    CreateModelMixin,
    UpdateModelMixin,
    FilterOnlyOnListMixin,
    ModelViewSet,
):
    """
    A viewset that provides default `create()`, `retrieve()`, `update()`,
    `partial_update()`, `destroy()` and `list()` actions for home management models.
    It refetches the instance after write operations to ensure the latest data is returned.
    """

    pass
