"""
Ticket Queue Service - walk-in order queue for a snack bar.
Supports both Mock notifications (development) and Real APIs (production).

Endpoints:
    - GET  /api/queue/check-reset: Start a new ticket series on a new day
    - GET  /api/queue: Current queue state
    - POST /api/queue/sync: Merge a point-of-sale snapshot
    - POST /api/queue/add-and-notify: Queue one order and notify
    - POST /api/queue/update-status: Change an order's status and notify
    - POST /api/email/notify: New-order email only, order not queued
    - GET|POST /api/webhook/whatsapp: WhatsApp webhook verification and inbound messages
    - /api/admin/...: Notification recipients
    - GET  /health: System health check

Author: Khalil Bannouri
Version: 3.0.0
"""

import asyncio
import sys
import logging
from datetime import datetime
from typing import Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Depends, Query, Request, Header
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.middleware.cors import CORSMiddleware
import redis

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Internal imports
from ticket_queue.core.config import Settings, get_settings, setup_logging
from ticket_queue.core.exceptions import (
    OrderNotFoundError,
    QueuePersistenceError,
    QueueValidationError,
)
from ticket_queue.models import QueueOrder, QueueState
from ticket_queue.schemas import (
    AddAndNotifyRequest,
    AddAndNotifyResponse,
    CheckResetResponse,
    EmailNotifyRequest,
    EmailRecipientRequest,
    EmailRecipientsResponse,
    ErrorResponse,
    HealthResponse,
    MessageResponse,
    QueueSyncRequest,
    QueueSyncResponse,
    UpdateStatusRequest,
    UpdateStatusResponse,
    WhatsAppRecipientRequest,
    WhatsAppRecipientsResponse,
)
from ticket_queue.services.notifications import (
    BaseNotificationService,
    RecipientStore,
    get_notification_service,
    get_recipient_store,
)
from ticket_queue.services.notifications.messages import inbound_whatsapp_messages, new_order_email
from ticket_queue.services.queue import QueueService, get_queue_service

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Log the configuration on startup and warn about missing provider settings.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 {settings.app_name} starting")
    logger.info(f"   version={settings.app_version} env={settings.env_mode.value}")
    logger.info(f"   timezone={settings.business_timezone} debug={settings.debug}")
    logger.info("=" * 60)

    settings.data_path.mkdir(parents=True, exist_ok=True)
    logger.info(f"✅ Data directory: {settings.data_path.resolve()}")

    notification_service = get_notification_service()
    logger.info(f"✅ Notification Service: {notification_service.provider_name}")

    queue_service = get_queue_service()
    state = await queue_service.get_queue()
    logger.info(
        f"✅ Queue loaded: {len(state.orders)} orders, next ticket "
        f"{state.current_prefix}{state.current_number} (day {state.last_reset_date})"
    )

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Provider settings missing: {', '.join(missing)}")

    logger.info("=" * 60)
    logger.info("✅ Accepting orders")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Stopping")
    logger.info("✅ Stopped")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Walk-in ticket queue with daily numbering, point-of-sale sync "
        "and WhatsApp/email notifications."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

async def require_admin(
    x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key"),
    config: Settings = Depends(get_settings),
) -> None:
    """Guard admin routes when ADMIN_API_KEY is configured."""
    if config.admin_api_key and x_admin_key != config.admin_api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing admin key")


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Service name, version and where to look next."""
    return {
        "message": f"🎟️ Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "queue": "/api/queue",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="Component health",
)
async def health_check(
    queue: QueueService = Depends(get_queue_service),
    notification_service: BaseNotificationService = Depends(get_notification_service),
) -> HealthResponse:
    """Probe the queue store, Redis and the notification transport."""

    # Check queue store
    store_status = "healthy" if await asyncio.to_thread(queue.store.is_readable) else "unhealthy"

    # Check Redis
    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except Exception as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis unreachable: {e}")

    # Check notification provider
    notification_status = "healthy" if await notification_service.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [store_status, redis_status, notification_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        queue_store=store_status,
        redis=redis_status,
        notification_service=notification_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# QUEUE ENDPOINTS
# =============================================================================

@app.get(
    "/api/queue/check-reset",
    response_model=CheckResetResponse,
    tags=["Queue"],
    summary="Daily Reset Check",
)
async def check_reset(
    queue: QueueService = Depends(get_queue_service),
) -> CheckResetResponse:
    """Start today's ticket series if the business day changed."""
    return CheckResetResponse(reset=await queue.check_reset())


@app.get(
    "/api/queue",
    response_model=QueueState,
    tags=["Queue"],
    summary="Fetch Queue",
)
async def get_queue(
    queue: QueueService = Depends(get_queue_service),
) -> QueueState:
    """Committed queue state: orders, next ticket and last reset day."""
    return await queue.get_queue()


@app.post(
    "/api/queue/sync",
    response_model=QueueSyncResponse,
    responses={422: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Queue"],
    summary="Sync Point-of-Sale Snapshot",
)
async def sync_queue(
    request: QueueSyncRequest,
    queue: QueueService = Depends(get_queue_service),
) -> QueueSyncResponse:
    """
    Merge the client's orders into the server queue.

    Orders the server already holds are left as they are; unknown ids are
    appended and announced. The server never drops orders on sync.
    """
    result = await queue.sync(request.orders, request.current_prefix, request.current_number)

    return QueueSyncResponse(
        success=True,
        message=f"Queue synced, {len(result.new_orders)} new orders",
        order_count=result.order_count,
        new_order_count=len(result.new_orders),
        timestamp=result.timestamp,
    )


@app.post(
    "/api/queue/add-and-notify",
    status_code=201,
    response_model=AddAndNotifyResponse,
    responses={422: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Queue"],
    summary="Add Order and Notify",
)
async def add_and_notify(
    request: AddAndNotifyRequest,
    queue: QueueService = Depends(get_queue_service),
) -> AddAndNotifyResponse:
    """
    Queue one order and send the new-order notifications.

    The response reflects the committed order only. Notification outcomes
    are logged by the queue service and never reach the caller.
    """
    result = await queue.add_order(request.order, request.customer_phone)
    message = "Order queued" if result.created else "Order already queued"

    return AddAndNotifyResponse(
        success=True,
        message=message,
        order_id=result.order.id,
        ticket=result.order.ticket,
    )


@app.post(
    "/api/queue/update-status",
    response_model=UpdateStatusResponse,
    responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Queue"],
    summary="Update Order Status",
)
async def update_status(
    request: UpdateStatusRequest,
    queue: QueueService = Depends(get_queue_service),
) -> UpdateStatusResponse:
    """Change an order's status; the customer is told when a phone is given."""
    result = await queue.update_status(request.order_id, request.status, request.customer_phone)

    return UpdateStatusResponse(
        success=True,
        message=f"Status updated from {result.previous_status.value} to {result.order.status.value}",
        order_id=result.order.id,
        status=result.order.status,
    )


# =============================================================================
# NOTIFICATION ENDPOINTS
# =============================================================================

@app.post(
    "/api/email/notify",
    response_model=MessageResponse,
    responses={422: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    tags=["Notifications"],
    summary="Email a New Order",
)
async def email_notify(
    request: EmailNotifyRequest,
    queue: QueueService = Depends(get_queue_service),
    recipients: RecipientStore = Depends(get_recipient_store),
) -> MessageResponse:
    """
    Send the new-order email for an order without queueing it.

    No recipients is not an error: the call succeeds with nothing sent.
    """
    order = queue.parse_order(request.order)
    if not await asyncio.to_thread(recipients.get_emails):
        logger.warning("New-order email requested but no establishment emails are registered")
        return MessageResponse(message="No establishment emails to notify")

    outcome = await queue.email_new_order(order)
    if outcome is None or not outcome.success:
        raise HTTPException(
            status_code=502,
            detail=outcome.error if outcome is not None else "Email channel not configured",
        )
    return MessageResponse(message="New-order email sent")


@app.get(
    "/api/webhook/whatsapp",
    response_class=PlainTextResponse,
    tags=["Notifications"],
    summary="WhatsApp Webhook Verification",
)
async def verify_whatsapp_webhook(
    mode: Optional[str] = Query(None, alias="hub.mode"),
    token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: str = Query("", alias="hub.challenge"),
    config: Settings = Depends(get_settings),
) -> str:
    """Echo the challenge when the subscription presents our verify token."""
    if mode == "subscribe" and token == config.whatsapp_verify_token:
        logger.info("WhatsApp webhook verified")
        return challenge
    logger.warning(f"WhatsApp webhook verification refused (mode={mode})")
    raise HTTPException(status_code=403, detail="Verification failed")


@app.post(
    "/api/webhook/whatsapp",
    tags=["Notifications"],
    summary="WhatsApp Webhook",
)
async def whatsapp_webhook(request: Request) -> dict[str, bool]:
    """
    Receive inbound WhatsApp messages.

    Always answers 200 so the provider does not redeliver; messages are
    only logged.
    """
    try:
        payload = await request.json()
        messages = inbound_whatsapp_messages(payload)
        for message in messages:
            logger.info(f"WhatsApp from {message['from']} ({message['type']}): {message['text'][:100]!r}")
        if not messages:
            logger.debug("WhatsApp webhook carried no messages")
        return {"success": True}

    except Exception as e:
        logger.exception(f"Error processing WhatsApp webhook: {e}")
        return {"success": False}


# =============================================================================
# ADMIN ENDPOINTS
# =============================================================================

@app.get(
    "/api/admin/email/recipients",
    response_model=EmailRecipientsResponse,
    dependencies=[Depends(require_admin)],
    tags=["Admin"],
)
def list_email_recipients(
    recipients: RecipientStore = Depends(get_recipient_store),
) -> EmailRecipientsResponse:
    return EmailRecipientsResponse(emails=recipients.get_emails())


@app.post(
    "/api/admin/email/recipients",
    status_code=201,
    response_model=MessageResponse,
    dependencies=[Depends(require_admin)],
    tags=["Admin"],
)
def add_email_recipient(
    request: EmailRecipientRequest,
    recipients: RecipientStore = Depends(get_recipient_store),
) -> MessageResponse:
    if not recipients.add_email(request.email):
        raise HTTPException(status_code=409, detail=f"{request.email} is already a recipient")
    return MessageResponse(message=f"{request.email} added")


@app.delete(
    "/api/admin/email/recipients",
    response_model=MessageResponse,
    dependencies=[Depends(require_admin)],
    tags=["Admin"],
)
def remove_email_recipient(
    email: str = Query(..., min_length=3),
    recipients: RecipientStore = Depends(get_recipient_store),
) -> MessageResponse:
    if not recipients.remove_email(email):
        raise HTTPException(status_code=404, detail=f"{email} is not a recipient")
    return MessageResponse(message=f"{email} removed")


@app.post(
    "/api/admin/email/test",
    response_model=MessageResponse,
    dependencies=[Depends(require_admin)],
    tags=["Admin"],
)
async def send_test_email(
    recipients: RecipientStore = Depends(get_recipient_store),
    notification_service: BaseNotificationService = Depends(get_notification_service),
) -> MessageResponse:
    """Send a sample new-order email to every establishment address."""
    emails = await asyncio.to_thread(recipients.get_emails)
    if not emails:
        raise HTTPException(status_code=400, detail="No email recipients configured")

    sample = QueueOrder(
        id="test-order",
        ticket="A001",
        created_at=datetime.now().astimezone(),
        items=[{"name": "Sample item", "quantity": 1, "price": 0.0}],
        total=0.0,
        customer_name="Test Customer",
    )
    subject, html, text = new_order_email(sample, settings.restaurant_name)

    results = await asyncio.gather(
        *(notification_service.send_email(email, f"[TEST] {subject}", html, text) for email in emails)
    )
    sent = sum(1 for r in results if r.success)
    logger.info(f"Test email sent to {sent}/{len(emails)} recipients")

    return MessageResponse(
        success=sent == len(emails),
        message=f"Test email sent to {sent}/{len(emails)} recipients",
    )


@app.get(
    "/api/admin/whatsapp/recipients",
    response_model=WhatsAppRecipientsResponse,
    dependencies=[Depends(require_admin)],
    tags=["Admin"],
)
def list_whatsapp_recipients(
    recipients: RecipientStore = Depends(get_recipient_store),
) -> WhatsAppRecipientsResponse:
    return WhatsAppRecipientsResponse(recipients=recipients.get_whatsapp_admins())


@app.post(
    "/api/admin/whatsapp/recipients",
    response_model=MessageResponse,
    dependencies=[Depends(require_admin)],
    tags=["Admin"],
)
def add_whatsapp_recipient(
    request: WhatsAppRecipientRequest,
    recipients: RecipientStore = Depends(get_recipient_store),
) -> MessageResponse:
    added = recipients.add_whatsapp_admin(request.phone_number, request.name)
    return MessageResponse(message=f"{request.phone_number} {'added' if added else 'updated'}")


# =============================================================================
# ERROR HANDLERS
# =============================================================================

def _validation_response(errors: list[dict[str, str]]) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": "Validation Error", "errors": errors},
    )


@app.exception_handler(QueueValidationError)
async def queue_validation_handler(request: Request, exc: QueueValidationError) -> JSONResponse:
    logger.warning(f"Rejected {request.url.path}: {exc}")
    return _validation_response(exc.errors)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body") or "body",
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    logger.warning(f"Rejected {request.url.path}: {errors}")
    return _validation_response(errors)


@app.exception_handler(OrderNotFoundError)
async def order_not_found_handler(request: Request, exc: OrderNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"success": False, "error": "Not Found", "detail": str(exc)},
    )


@app.exception_handler(QueuePersistenceError)
async def persistence_error_handler(request: Request, exc: QueuePersistenceError) -> JSONResponse:
    logger.error(f"Persistence failure on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Persistence Error",
            "detail": str(exc) if settings.debug else "The queue could not be saved",
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unexpected becomes a 500 in the common error shape."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )

