from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Core
from core.config import settings
from core.config_validator import validate_config_on_startup
from core.logging_config import logger
from core.route_guard import RouteGuardMiddleware

# -------------------------------------------------
# Routers
# -------------------------------------------------
from routers.auth import router as auth_router
from routers.admin import router as admin_router
from routers.bookings import router as bookings_router
from routers.booking_lifecycle import router as booking_lifecycle_router
from routers.cars import router as cars_router
from routers.partner import router as partner_router
from routers.partner_notifications import router as partner_notifications_router
from routers.promo_codes import router as promo_codes_router
from routers.payments import router as payments_router
from routers.support_tickets import router as support_tickets_router
from routers.support_chat import router as support_chat_router
from routers.support_notifications import router as support_notifications_router
from routers.uploads import router as uploads_router
from routers.health import router as health_router
from routers.pages import router as pages_router


MISSING_ERROR_TYPES = {"missing", "string_too_short"}
LOCATION_PREFIXES = {"body", "query", "path", "form"}


def error_body(message) -> dict:
    return {"success": False, "error": message}


def validation_message(errors) -> str:
    """
    Collapse pydantic errors into one line:
    absent/empty fields first, otherwise the first invalid field.
    """
    missing = []
    invalid = []

    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in LOCATION_PREFIXES]
        field = loc[-1] if loc else "body"
        if err.get("type") in MISSING_ERROR_TYPES:
            if field not in missing:
                missing.append(field)
        else:
            invalid.append(field)

    if missing:
        return f"Missing required fields: {', '.join(missing)}"
    if invalid:
        return f"Invalid field: {invalid[0]}"
    return "Invalid request"


# -------------------------------------------------
# Create the Application
# -------------------------------------------------
def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version="1.0.0",
        description="ComparePCO API: car-rental marketplace for PCO drivers, fleet partners and support staff",
    )

    # -------------------------------------------------
    # Middleware (last added runs first: CORS wraps the gate)
    # -------------------------------------------------
    app.add_middleware(RouteGuardMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------
    # Startup
    # -------------------------------------------------
    @app.on_event("startup")
    async def on_startup():
        validate_config_on_startup()
        logger.info(f"Starting {settings.PROJECT_NAME} ({settings.ENV})")
        for route in app.routes:
            methods = ",".join(sorted(getattr(route, "methods", None) or []))
            logger.debug(f"{methods:10s} {getattr(route, 'path', '')}")

    # -------------------------------------------------
    # Error handling
    # -------------------------------------------------
    @app.exception_handler(StarletteHTTPException)
    async def handle_http(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (401, 403, 500):
            logger.warning(f"HTTP {exc.status_code} at {request.url.path}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation(request: Request, exc: RequestValidationError):
        message = validation_message(exc.errors())
        logger.info(f"Rejected request at {request.url.path}: {message}")
        return JSONResponse(status_code=400, content=error_body(message))

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.error("Unhandled error at %s", request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=error_body("Internal server error"),
        )

    # -------------------------------------------------
    # Register Routers
    # -------------------------------------------------

    # Auth
    app.include_router(auth_router)

    # Admin
    app.include_router(admin_router)

    # Marketplace
    app.include_router(cars_router)
    app.include_router(bookings_router)
    app.include_router(booking_lifecycle_router)
    app.include_router(uploads_router)

    # Partner
    app.include_router(partner_notifications_router)
    app.include_router(promo_codes_router)
    app.include_router(partner_router)
    app.include_router(payments_router)

    # Support
    app.include_router(support_tickets_router)
    app.include_router(support_chat_router)
    app.include_router(support_notifications_router)

    # Health
    app.include_router(health_router)

    # Gate-protected pages
    app.include_router(pages_router)

    # -------------------------------------------------
    # Landing page (public, exact match only)
    # -------------------------------------------------
    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": settings.PROJECT_NAME,
            "status": "ok",
            "login": settings.LOGIN_PATH,
        }

    return app


# Create the global FastAPI instance
app = create_app()
