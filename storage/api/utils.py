"""Utility functions for storage API views."""

from typing import Any

from rest_framework import status
from rest_framework.response import Response

from core.exceptions import InvalidArgument


def parse_params(serializer_class, data) -> dict[str, Any]:
    """Validate request parameters, raising InvalidArgument on the first error."""
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        field, errors = next(iter(serializer.errors.items()))
        raise InvalidArgument(f"{field}: {errors[0]}")
    return serializer.validated_data


def task_accepted_response(result) -> Response:
    """202 response for an enqueued background job."""
    return Response(
        {"task_id": str(result.id), "status": str(result.status)},
        status=status.HTTP_202_ACCEPTED,
    )
