"""Gateway middleware: request ids, payload size limit, acting user.

- ``RequestIdMiddleware`` reuses the incoming ``X-Request-ID`` header or
  generates a UUIDv4, stores it on the request and in ``REQUEST_ID_CTX`` so
  log records can be correlated, and echoes it on the response.
- ``ApiSizeLimitMiddleware`` rejects ``/api/`` bodies larger than
  ``settings.API_MAX_BYTES`` with HTTP 413.
- ``ActingUserMiddleware`` exposes the user id resolved by the upstream
  auth gateway (``X-User-Id`` header) as ``request.acting_user_id``.
  Authentication itself happens upstream; a missing or malformed header
  leaves the attribute as None and views that need a user answer 401.
"""

import contextvars
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")


class RequestIdMiddleware(MiddlewareMixin):
    HEADER = "HTTP_X_REQUEST_ID"       # incoming header as found in request.META
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        response[self.RESPONSE_HEADER] = getattr(request, "request_id", REQUEST_ID_CTX.get())
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    def process_request(self, request):
        if not request.path.startswith("/api/"):
            return None
        clen = request.META.get("CONTENT_LENGTH")
        if clen and clen.isdigit() and int(clen) > settings.API_MAX_BYTES:
            return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)
        return None


class ActingUserMiddleware(MiddlewareMixin):
    HEADER = "HTTP_X_USER_ID"

    def process_request(self, request):
        raw = request.META.get(self.HEADER)
        try:
            request.acting_user_id = uuid.UUID(raw) if raw else None
        except ValueError:
            request.acting_user_id = None
