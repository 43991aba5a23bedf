"""HTTP views for the checkout app.

Views are small: they read the acting user set by
``gateway.middleware.ActingUserMiddleware``, validate payloads with
Pydantic, delegate to the services obtained from ``providers`` and map
domain errors to HTTP responses.

Idempotency: when an ``Idempotency-Key`` header is sent with a checkout,
the first request is processed and its response stored; retries with the
same payload return the stored response with an ``Idempotent-Replay``
header, and the same key with a different payload returns HTTP 409.
"""

import logging

from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import idempotency, providers
from .errors import DomainError, ErrorCode
from .schemas import CreateOrderDTO, PayTransactionDTO, dump_listed, dump_placed, dump_status

log = logging.getLogger(__name__)

STATUS_BY_CODE = {
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.PRODUCT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.COURIER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.VALIDATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INSUFFICIENT_STOCK: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.VOUCHER_INVALID: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.VOUCHER_THRESHOLD_NOT_MET: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INSUFFICIENT_CREDIT: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCode.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_IN_TARGET_STATE: status.HTTP_409_CONFLICT,
    ErrorCode.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorCode.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

UNAUTHENTICATED = {"detail": "UNAUTHENTICATED", "message": "Missing or invalid X-User-Id header."}
INTERNAL = {"detail": ErrorCode.INTERNAL.value, "message": "Server error"}


def error_response(err: DomainError) -> Response:
    body = {"detail": err.code.value, "message": err.message}
    if err.context:
        body["context"] = err.context
    log.info("request rejected", extra={"code": err.code.value, "context": err.context})
    return Response(body, status=STATUS_BY_CODE.get(err.code, status.HTTP_400_BAD_REQUEST))


def validation_response(exc: ValidationError) -> Response:
    return Response(
        {"detail": ErrorCode.VALIDATION_FAILED.value, "message": str(exc)},
        status=status.HTTP_400_BAD_REQUEST,
    )


class ThrottledView(APIView):
    throttle_classes = [ScopedRateThrottle]


class OrdersPingView(APIView):
    """Health-check endpoint for the checkout module."""

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(ThrottledView):
    """Create a multi-shop checkout (POST) or list the buyer's transactions (GET)."""

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_read" if self.request.method == "GET" else "orders_create"
        return super().get_throttles()

    def get(self, request):
        """List the acting buyer's transactions and their statuses.

        Returns:
            Response: 200 with ``{"transactions": [...], "statuses": [...]}``,
            401 without a valid ``X-User-Id`` or 500 ``INTERNAL`` on an
            unexpected failure. Each transaction carries its ``courier``,
            ``voucher`` and ``payment`` references.
        """
        buyer_id = request.acting_user_id
        if buyer_id is None:
            return Response(UNAUTHENTICATED, status=status.HTTP_401_UNAUTHORIZED)

        try:
            placed = providers.get_order_service().list_for_buyer(buyer_id)
            rendered = [dump_listed(p) for p in placed]
        except DomainError as e:
            return error_response(e)
        except Exception:
            log.exception("buyer listing failed", extra={"buyer_id": str(buyer_id)})
            return Response(INTERNAL, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        return Response(
            {
                "transactions": [r["transaction"] for r in rendered],
                "statuses": [r["status"] for r in rendered],
            }
        )

    def post(self, request):
        """Create one transaction per shop group of the checkout.

        Returns:
            Response: One of the following responses.
            - 201 with ``{"transactions": [{"transaction", "status"}]}``.
            - 200/4xx replayed from storage for a retried ``Idempotency-Key``.
            - 409 ``IDEMPOTENCY_CONFLICT`` when a key is reused with another payload.
            - 400 for payload validation errors.
            - 401 without a valid ``X-User-Id``.
            - 404/422 for domain errors (see ``STATUS_BY_CODE``).
        """
        buyer_id = request.acting_user_id
        if buyer_id is None:
            return Response(UNAUTHENTICATED, status=status.HTTP_401_UNAUTHORIZED)

        try:
            dto = CreateOrderDTO.model_validate(request.data)
        except ValidationError as e:
            return validation_response(e)

        idem_key = request.headers.get("Idempotency-Key")
        rec = None
        if idem_key:
            try:
                existing, rec = idempotency.claim(
                    idem_key, {"buyer_id": str(buyer_id), "body": request.data}
                )
            except idempotency.IdempotencyConflict:
                return Response({"detail": "IDEMPOTENCY_CONFLICT"}, status=status.HTTP_409_CONFLICT)
            if existing:
                if not rec.response_status:
                    return Response(
                        {"detail": "IDEMPOTENCY_IN_PROGRESS"}, status=status.HTTP_409_CONFLICT
                    )
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        try:
            placed = providers.get_order_service().create_order(dto.to_domain(buyer_id))
        except DomainError as e:
            resp = error_response(e)
            if rec:
                idempotency.finalize(rec, resp.status_code, resp.data)
            return resp
        except Exception:
            log.exception("checkout failed", extra={"buyer_id": str(buyer_id)})
            if rec:
                # nothing was committed, so let the client retry with the same key
                rec.delete()
            return Response(INTERNAL, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        body = {"transactions": [dump_placed(p) for p in placed]}
        if rec:
            idempotency.finalize(rec, status.HTTP_201_CREATED, body)
        return Response(body, status=status.HTTP_201_CREATED)


class SellerTransactionsView(ThrottledView):
    """List transactions of the shops owned by the acting user."""

    throttle_scope = "orders_read"

    def get(self, request):
        """List every transaction of the acting user's shops, newest first.

        Returns:
            Response: One of the following responses.
            - 200 with ``{"transactions": [{"transaction", "status"}]}``.
            - 401 without a valid ``X-User-Id``.
            - 403 ``UNAUTHORIZED`` when the user owns no shop.
            - 500 ``INTERNAL`` on an unexpected failure.
        """
        user_id = request.acting_user_id
        if user_id is None:
            return Response(UNAUTHENTICATED, status=status.HTTP_401_UNAUTHORIZED)
        try:
            placed = providers.get_order_service().list_for_seller(user_id)
            rendered = [dump_listed(p) for p in placed]
        except DomainError as e:
            return error_response(e)
        except Exception:
            log.exception("seller listing failed", extra={"user_id": str(user_id)})
            return Response(INTERNAL, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response({"transactions": rendered})


class LifecycleView(ThrottledView):
    """Base view for a single lifecycle transition on ``tid``."""

    throttle_scope = "orders_lifecycle"

    def transition(self, request, tid):
        """Run the transition and return a status record or a ready ``Response``."""
        raise NotImplementedError

    def post(self, request, tid):
        """Apply the transition to transaction ``tid``.

        Returns:
            Response: 200 with ``{"status": {...}}``, 400 for payload errors,
            the mapped status for domain errors (see ``STATUS_BY_CODE``) or
            500 ``INTERNAL`` on an unexpected failure.
        """
        try:
            result = self.transition(request, tid)
        except ValidationError as e:
            return validation_response(e)
        except DomainError as e:
            return error_response(e)
        except Exception:
            log.exception("transition failed", extra={"transaction_id": str(tid)})
            return Response(INTERNAL, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        if isinstance(result, Response):
            return result
        return Response({"status": dump_status(result)})


class PayTransactionView(LifecycleView):
    """Debit the buyer's payment method and mark the transaction Paid."""

    def transition(self, request, tid):
        dto = PayTransactionDTO.model_validate(request.data)
        return providers.get_lifecycle_service().pay(tid, dto.payment_id)


class ProcessTransactionView(LifecycleView):
    """Mark a Paid transaction Processed; only the shop owner may do this."""

    def transition(self, request, tid):
        user_id = request.acting_user_id
        if user_id is None:
            return Response(UNAUTHENTICATED, status=status.HTTP_401_UNAUTHORIZED)
        return providers.get_lifecycle_service().process(tid, user_id)


class CompleteTransactionView(LifecycleView):
    """Mark a Processed transaction Completed."""

    def transition(self, request, tid):
        return providers.get_lifecycle_service().complete(tid)
