"""Base views for Cirrus API."""

import logging

from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import CirrusException

logger = logging.getLogger(__name__)


def error_response(code: str, message: str, status_code: int) -> Response:
    """Build the error envelope shared by every endpoint."""
    return Response(
        {"error": {"code": code, "message": message}},
        status=status_code,
    )


class CirrusBaseAPIView(APIView):
    """
    Base API view for all Cirrus endpoints.

    Provides:
    - Authentication required by default
    - Common serializer context
    - Domain exceptions rendered as the error envelope
    """
    permission_classes = [IsAuthenticated]

    def get_serializer_context(self):
        """Return context dict for serializers."""
        return {"request": self.request}

    def handle_exception(self, exc):
        if isinstance(exc, CirrusException):
            if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
                logger.error(f"{exc.code} in {self.__class__.__name__}: {exc}", exc_info=True)
            return error_response(exc.code, str(exc), exc.status_code)
        return super().handle_exception(exc)
