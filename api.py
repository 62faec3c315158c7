"""
HTTP API for resource availability and booking operations.

Deployed behind an authentication gateway that asserts the caller through
the X-User-Id, X-User-Role and X-User-Department headers.

- Typed booking errors become {"status": "error", "error": kind, "message": ...}
- Request validation (size limit, JSON object bodies, pydantic models)
- Security headers
- Metrics tracking
"""

import json
import time
from typing import Any, Dict, Optional

from aiohttp import web
from aiohttp.web import Request, Response
from pydantic import ValidationError

from booking.admission import BookingAdmissionController, create_controller
from booking.availability import AvailabilityService, create_availability_service
from config import settings
from models.booking import BookingCreate, BookingUpdate, CancelRequest, FeedbackCreate
from models.requester import Requester
from utils.constants import MAX_REQUEST_BODY_SIZE
from utils.datetime_utils import parse_iso_date
from utils.exceptions import BookingError, InvalidInputError, UnauthorizedError
from utils.logging_config import setup_logging

logger = setup_logging(name=__name__, log_file="api.log", log_dir="logs")

CONTROLLER_KEY = web.AppKey("controller", BookingAdmissionController)
AVAILABILITY_KEY = web.AppKey("availability", AvailabilityService)

# Health metrics
_health_metrics = {
    "total_requests": 0,
    "successful_requests": 0,
    "rejected_requests": 0,
    "validation_failures": 0,
    "failed_requests": 0,
    "start_time": time.time(),
}

# Rejection kind tracking (bounded by the number of error kinds)
_rejection_counts: Dict[str, int] = {}


def _error_response(kind: str, message: str, status: int) -> Response:
    return web.json_response(
        {"status": "error", "error": kind, "message": message}, status=status
    )


def _validation_message(error: ValidationError) -> str:
    """Flatten pydantic errors into one readable line."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}" if location else item.get("msg"))
    return "; ".join(parts) or "Invalid input"


@web.middleware
async def security_headers_middleware(request: Request, handler):
    """
    Add security headers to all responses.

    - Prevents MIME type sniffing
    - Prevents clickjacking
    - Enforces HTTPS in production
    """
    response = await handler(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Strict-Transport-Security"] = (
        "max-age=31536000; includeSubDomains"
    )
    response.headers["Cache-Control"] = "no-store"

    return response


@web.middleware
async def error_middleware(request: Request, handler):
    """Map exceptions raised by handlers onto JSON error responses."""
    if not request.path.startswith("/api/"):
        return await handler(request)

    _health_metrics["total_requests"] += 1
    try:
        response = await handler(request)
        _health_metrics["successful_requests"] += 1
        return response

    except BookingError as e:
        logger.info(f"{request.method} {request.path} rejected: {e.kind}: {e.message}")
        _health_metrics["rejected_requests"] += 1
        _rejection_counts[e.kind] = _rejection_counts.get(e.kind, 0) + 1
        return _error_response(e.kind, e.message, e.http_status)

    except ValidationError as e:
        message = _validation_message(e)
        logger.warning(f"{request.method} {request.path} invalid input: {message}")
        _health_metrics["validation_failures"] += 1
        return _error_response(InvalidInputError.kind, message, 400)

    except web.HTTPException:
        raise

    except Exception as e:
        logger.error(
            f"Unexpected error handling {request.method} {request.path}: {e}",
            exc_info=True,
        )
        _health_metrics["failed_requests"] += 1
        return _error_response(
            "processing_failed", "Internal server error while processing request", 500
        )


def _requester(request: Request) -> Requester:
    """Caller identity from the gateway headers."""
    user_id = (request.headers.get("X-User-Id") or "").strip()
    if not user_id:
        raise UnauthorizedError("Missing X-User-Id header")

    return Requester(
        user_id=user_id,
        role=(request.headers.get("X-User-Role") or "").strip() or None,
        department=(request.headers.get("X-User-Department") or "").strip() or None,
    )


async def _read_json(request: Request, required: bool = True) -> Dict[str, Any]:
    """
    Read a JSON object body within the size limit.

    Raises:
        InvalidInputError: If the body is too large, missing or not an object
    """
    content_length = request.content_length
    if content_length is not None and content_length > MAX_REQUEST_BODY_SIZE:
        raise InvalidInputError(
            f"Request body exceeds maximum size of {MAX_REQUEST_BODY_SIZE} bytes"
        )

    raw_body = await request.read()
    if len(raw_body) > MAX_REQUEST_BODY_SIZE:
        raise InvalidInputError(
            f"Request body exceeds maximum size of {MAX_REQUEST_BODY_SIZE} bytes"
        )

    if not raw_body.strip():
        if required:
            raise InvalidInputError("Empty payload")
        return {}

    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidInputError(f"Invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise InvalidInputError("Request body must be a JSON object")
    return payload


def _booking_response(booking, status: int = 200) -> Response:
    return web.json_response(
        {"status": "success", "booking": booking.model_dump(mode="json")},
        status=status,
    )


# ========== Handlers ==========


async def get_availability(request: Request) -> Response:
    """GET /api/resources/{resource_id}/availability?date=YYYY-MM-DD"""
    resource_id = request.match_info["resource_id"]

    day = None
    date_param = request.query.get("date")
    if date_param:
        try:
            day = parse_iso_date(date_param)
        except ValueError as e:
            raise InvalidInputError(str(e)) from e

    availability = await request.app[AVAILABILITY_KEY].get_availability(
        resource_id, day
    )
    return web.json_response(
        {"status": "success", "availability": availability.model_dump(mode="json")}
    )


async def create_booking(request: Request) -> Response:
    """POST /api/bookings"""
    requester = _requester(request)
    data = BookingCreate.model_validate(await _read_json(request))
    booking = await request.app[CONTROLLER_KEY].admit_create(requester, data)
    return _booking_response(booking, status=201)


async def get_booking(request: Request) -> Response:
    """GET /api/bookings/{booking_id}"""
    requester = _requester(request)
    booking = await request.app[CONTROLLER_KEY].get_booking(
        requester, request.match_info["booking_id"]
    )
    return _booking_response(booking)


async def update_booking(request: Request) -> Response:
    """PUT /api/bookings/{booking_id}"""
    requester = _requester(request)
    patch = BookingUpdate.model_validate(await _read_json(request))
    booking = await request.app[CONTROLLER_KEY].admit_reschedule(
        requester, request.match_info["booking_id"], patch
    )
    return _booking_response(booking)


async def cancel_booking(request: Request) -> Response:
    """DELETE /api/bookings/{booking_id}; optional {"reason": ...} body."""
    requester = _requester(request)
    body = CancelRequest.model_validate(await _read_json(request, required=False))
    booking = await request.app[CONTROLLER_KEY].cancel(
        requester, request.match_info["booking_id"], body.reason
    )
    return _booking_response(booking)


async def check_in(request: Request) -> Response:
    """PUT /api/bookings/{booking_id}/checkin"""
    requester = _requester(request)
    booking = await request.app[CONTROLLER_KEY].check_in(
        requester, request.match_info["booking_id"]
    )
    return _booking_response(booking)


async def check_out(request: Request) -> Response:
    """PUT /api/bookings/{booking_id}/checkout"""
    requester = _requester(request)
    booking = await request.app[CONTROLLER_KEY].check_out(
        requester, request.match_info["booking_id"]
    )
    return _booking_response(booking)


async def submit_feedback(request: Request) -> Response:
    """PUT /api/bookings/{booking_id}/feedback"""
    requester = _requester(request)
    body = FeedbackCreate.model_validate(await _read_json(request))
    booking = await request.app[CONTROLLER_KEY].submit_feedback(
        requester, request.match_info["booking_id"], body.rating, body.comment
    )
    return _booking_response(booking)


async def health_check(request: Request) -> Response:
    """
    Health check endpoint with service metrics.

    Returns:
        JSON response with service status, metrics, and configuration info
    """
    uptime_seconds = time.time() - _health_metrics["start_time"]

    total = _health_metrics["total_requests"]
    success_rate = (
        (_health_metrics["successful_requests"] / total * 100) if total > 0 else 0.0
    )

    return web.json_response(
        {
            "status": "ok",
            "service": "campus-resource-booking",
            "timestamp": time.time(),
            "uptime_hours": round(uptime_seconds / 3600, 2),
            "metrics": {
                "total_requests": total,
                "successful_requests": _health_metrics["successful_requests"],
                "rejected_requests": _health_metrics["rejected_requests"],
                "validation_failures": _health_metrics["validation_failures"],
                "failed_requests": _health_metrics["failed_requests"],
                "success_rate_percent": round(success_rate, 2),
                "rejections_by_kind": dict(_rejection_counts),
            },
            "configuration": {
                "storage_backend": settings.storage_backend,
                "default_timezone": settings.default_timezone,
                "scheduler_enabled": settings.scheduler_enabled,
                "max_request_size_bytes": MAX_REQUEST_BODY_SIZE,
            },
        }
    )


# ========== Application ==========


async def _start_scheduler(app: web.Application) -> None:
    from scheduler import setup_scheduler

    controller = app[CONTROLLER_KEY]
    setup_scheduler(controller, controller.bookings)


async def _stop_scheduler(app: web.Application) -> None:
    from scheduler import shutdown_scheduler

    shutdown_scheduler()


def create_app(
    controller: Optional[BookingAdmissionController] = None,
    availability: Optional[AvailabilityService] = None,
    start_scheduler: bool = False,
) -> web.Application:
    """
    Create aiohttp application with middleware and routes.

    Args:
        controller: Booking controller; built from settings if omitted
        availability: Availability query; built from settings if omitted
        start_scheduler: Run the reminder and no-show sweeps with the app

    Returns:
        Configured web application
    """
    app = web.Application(
        middlewares=[security_headers_middleware, error_middleware],
        client_max_size=MAX_REQUEST_BODY_SIZE,
    )
    app[CONTROLLER_KEY] = controller or create_controller()
    app[AVAILABILITY_KEY] = availability or create_availability_service()

    app.router.add_get(
        "/api/resources/{resource_id}/availability", get_availability
    )
    app.router.add_post("/api/bookings", create_booking)
    app.router.add_get("/api/bookings/{booking_id}", get_booking)
    app.router.add_put("/api/bookings/{booking_id}", update_booking)
    app.router.add_delete("/api/bookings/{booking_id}", cancel_booking)
    app.router.add_put("/api/bookings/{booking_id}/checkin", check_in)
    app.router.add_put("/api/bookings/{booking_id}/checkout", check_out)
    app.router.add_put("/api/bookings/{booking_id}/feedback", submit_feedback)
    app.router.add_get("/health", health_check)

    if start_scheduler:
        app.on_startup.append(_start_scheduler)
        app.on_cleanup.append(_stop_scheduler)

    return app


if __name__ == "__main__":
    """
    Run the API server.

    Note: For production, run behind the authentication gateway with proper
    process management (systemd, supervisor, etc.).
    """
    settings.validate_all_required()
    logger.info(f"Starting booking API on {settings.host}:{settings.port}")
    app = create_app(start_scheduler=settings.scheduler_enabled)
    web.run_app(app, host=settings.host, port=settings.port)
