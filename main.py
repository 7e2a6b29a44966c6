import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

import auth
from config import Settings, settings as default_settings
from contact import ContactRateLimiter, MAX_ATTEMPTS, RATE_LIMIT_WINDOW, require_contact_method, send_contact_email
from database import JsonStore
from errors import ApiError, NotFoundError, utc_now_iso
from schemas import AboutPage, ContactRequest, LoginRequest, SiteSettings, ToggleRequest, TruckCreate, TruckUpdate
from trucks import create_truck, delete_truck, filter_trucks, toggle_attribute, toggle_truck, update_truck
from uploads import UploadManager, rebase_image_urls

load_dotenv()

__version__ = "1.0.0"

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def ok(data=None, message: str = "Operation successful") -> dict:
    return {
        "success": True,
        "data": jsonable_encoder(data),
        "message": message,
        "timestamp": utc_now_iso(),
    }


# ---------- Dependencies ----------

def get_store(request: Request) -> JsonStore:
    return request.app.state.store


def get_uploads(request: Request) -> UploadManager:
    return request.app.state.uploads


def audit_log(request: Request) -> None:
    logger.info(
        "Data Operation: %s %s - User-Agent: %s",
        request.method,
        request.url.path,
        request.headers.get("user-agent", "Unknown"),
    )


def commit(store: JsonStore, document) -> None:
    store.save_document(document)
    store.verify_integrity()


admin_only = [Depends(auth.require_admin), Depends(audit_log)]


# ---------- Utility Endpoints ----------

utility_router = APIRouter(prefix="/api")


@utility_router.get("/health")
def health(request: Request):
    return ok({
        "message": "BHB Truck Sales API is running",
        "environment": request.app.state.settings.ENVIRONMENT,
        "version": __version__,
    })


@utility_router.get("")
def api_index():
    return ok({
        "message": "BHB Truck Sales API",
        "version": __version__,
        "endpoints": {
            "trucks": {
                "GET /api/trucks": "Get all trucks (optional filters)",
                "GET /api/trucks/:id": "Get single truck by ID",
                "POST /api/trucks": "Create new truck (admin only)",
                "PUT /api/trucks/:id": "Update truck (admin only)",
                "DELETE /api/trucks/:id": "Delete truck (admin only)",
                "PATCH /api/trucks/:id/toggle": "Toggle truck status (admin only)",
            },
            "utility": {
                "GET /api/health": "API health check",
                "GET /api": "API documentation",
            },
        },
        "filters": {
            "trucks": ["available=true", "featured=true", "condition=New|Used|Certified", "make=WESTERN STAR", "year=2025"],
        },
    })


# ---------- Truck Endpoints ----------

trucks_router = APIRouter(prefix="/api/trucks")


@trucks_router.get("", dependencies=[Depends(audit_log)])
def list_trucks(
    available: Optional[bool] = None,
    featured: Optional[bool] = None,
    condition: Optional[str] = None,
    make: Optional[str] = None,
    year: Optional[int] = None,
    store: JsonStore = Depends(get_store),
):
    document = store.get_document()
    trucks = filter_trucks(document.trucks, available, featured, condition, make, year)
    return ok({"trucks": trucks, "total": len(trucks), "lastUpdated": document.last_updated})


@trucks_router.get("/site-settings", dependencies=[Depends(audit_log)])
def get_site_settings(store: JsonStore = Depends(get_store)):
    return ok(store.get_site_settings())


@trucks_router.put("/site-settings", dependencies=admin_only)
def put_site_settings(payload: SiteSettings, store: JsonStore = Depends(get_store)):
    store.save_site_settings(payload)
    store.verify_integrity()
    return ok(payload, "Site settings updated successfully")


@trucks_router.get("/about-page", dependencies=[Depends(audit_log)])
def get_about_page(store: JsonStore = Depends(get_store)):
    return ok(store.get_about_page())


@trucks_router.put("/about-page", dependencies=admin_only)
def put_about_page(payload: AboutPage, store: JsonStore = Depends(get_store)):
    store.save_about_page(payload)
    store.verify_integrity()
    return ok(payload, "About page updated successfully")


@trucks_router.get("/{truck_id}", dependencies=[Depends(audit_log)])
def get_truck(truck_id: str, store: JsonStore = Depends(get_store)):
    truck = store.get_truck_by_id(truck_id)
    if truck is None or not truck.is_active:
        raise NotFoundError("Truck not found")
    return ok(truck)


@trucks_router.post("", dependencies=admin_only)
def post_truck(payload: TruckCreate, store: JsonStore = Depends(get_store)):
    document = store.get_document()
    truck = create_truck(document, payload)
    commit(store, document)
    return ok(truck, "Truck created successfully")


@trucks_router.put("/{truck_id}", dependencies=admin_only)
def put_truck(
    truck_id: str,
    payload: TruckUpdate,
    store: JsonStore = Depends(get_store),
    uploads: UploadManager = Depends(get_uploads),
):
    document = store.get_document()
    truck = update_truck(document, truck_id, payload)
    if truck.id == truck_id:
        commit(store, document)
        return ok(truck, "Truck updated successfully")

    # The image directory follows the id.
    moved = uploads.rename_truck_dir(truck_id, truck.id)
    rebase_image_urls(truck.images, truck_id, truck.id)
    try:
        commit(store, document)
    except ApiError:
        if moved:
            uploads.rename_truck_dir(truck.id, truck_id)
        raise
    return ok(truck, "Truck updated successfully")


@trucks_router.delete("/{truck_id}", dependencies=admin_only)
def remove_truck(
    truck_id: str,
    store: JsonStore = Depends(get_store),
    uploads: UploadManager = Depends(get_uploads),
):
    document = store.get_document()
    deleted = delete_truck(document, truck_id)
    commit(store, document)
    images_removed = uploads.delete_truck_images(truck_id)
    return ok({"deletedTruck": deleted, "imagesRemoved": images_removed}, "Truck deleted successfully")


@trucks_router.patch("/{truck_id}/toggle", dependencies=admin_only)
def patch_toggle(truck_id: str, payload: ToggleRequest, store: JsonStore = Depends(get_store)):
    toggle_attribute(payload.field)
    document = store.get_document()
    attribute, new_value = toggle_truck(document, truck_id, payload.field)
    commit(store, document)
    field_name = to_camel(attribute)
    return ok(
        {"id": truck_id, "field": field_name, "newValue": new_value},
        f"Truck {payload.field} status toggled successfully",
    )


# ---------- Upload Endpoints ----------

uploads_router = APIRouter(prefix="/api/uploads", dependencies=admin_only)


@uploads_router.post("/truck-images/{truck_id}")
def upload_truck_images(
    truck_id: str,
    images: Optional[List[UploadFile]] = File(None),
    captions: Optional[List[str]] = Form(None),
    primary_index: int = Form(0, alias="primaryIndex"),
    uploads: UploadManager = Depends(get_uploads),
):
    saved = uploads.save_truck_images(truck_id, images or [], captions, primary_index)
    return ok({"images": saved, "count": len(saved)}, f"Successfully uploaded {len(saved)} image(s)")


@uploads_router.get("/truck-images/{truck_id}")
def list_truck_images(truck_id: str, uploads: UploadManager = Depends(get_uploads)):
    images = uploads.list_truck_images(truck_id)
    return ok({"images": images}, f"Found {len(images)} image(s)")


@uploads_router.delete("/truck-images/{truck_id}/{filename}")
def delete_truck_image(truck_id: str, filename: str, uploads: UploadManager = Depends(get_uploads)):
    uploads.delete_truck_image(truck_id, filename)
    return ok(None, "Image deleted successfully")


@uploads_router.delete("/truck-images/{truck_id}")
def delete_truck_images(truck_id: str, uploads: UploadManager = Depends(get_uploads)):
    uploads.delete_truck_images(truck_id)
    return ok(None, "All images deleted successfully")


@uploads_router.post("/general")
def upload_general(
    images: Optional[List[UploadFile]] = File(None),
    uploads: UploadManager = Depends(get_uploads),
):
    saved = uploads.save_general_files(images or [])
    return ok({"files": saved}, f"Successfully uploaded {len(saved)} file(s)")


# ---------- Auth Endpoints ----------

auth_router = APIRouter(prefix="/api/auth")


@auth_router.post("/login")
async def post_login(payload: LoginRequest, request: Request):
    login_time = await auth.login(request, payload.password)
    return ok({"authenticated": True, "loginTime": login_time}, "Login successful")


@auth_router.post("/logout")
def post_logout(request: Request):
    auth.logout(request)
    return ok({"authenticated": False}, "Logout successful")


@auth_router.get("/verify")
def get_verify(request: Request):
    authenticated = auth.is_authenticated(request)
    login_time = request.session.get("loginTime") if authenticated else None
    return ok({"authenticated": authenticated, "loginTime": login_time})


# ---------- Contact Endpoints ----------

contact_router = APIRouter(prefix="/api/contact")


def client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def contact_rate_limit(request: Request) -> None:
    """Counts every submission, valid or not, before the body is validated."""
    request.app.state.contact_limiter.hit(client_host(request))


@contact_router.post("", dependencies=[Depends(contact_rate_limit)])
def post_contact(payload: ContactRequest, request: Request):
    client = client_host(request)
    require_contact_method(payload)

    logger.info("Contact form submission from %s (%s)", payload.email or payload.phone, client)
    message_id = send_contact_email(payload, request.app.state.settings)
    return ok(
        {"messageId": message_id},
        "Your message has been sent successfully. We'll get back to you within 24 hours.",
    )


@contact_router.get("/status")
def contact_status(request: Request):
    settings = request.app.state.settings
    return ok({
        "status": "Contact form is operational",
        "email": {"configured": bool(settings.BUSINESS_EMAIL)},
        "rateLimit": {"windowSeconds": RATE_LIMIT_WINDOW, "maxAttempts": MAX_ATTEMPTS},
    })


# ---------- Error Handlers ----------

def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def validation_error_handler(request: Request, exc: RequestValidationError):
    error = ApiError("Validation failed", code="VALIDATION_ERROR", details=jsonable_encoder(exc.errors()))
    return JSONResponse(status_code=400, content=error.to_dict())


def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        message, code = "API endpoint not found", "NOT_FOUND"
    elif exc.status_code == 405:
        message, code = "Method not allowed", "METHOD_NOT_ALLOWED"
    else:
        message, code = str(exc.detail), "HTTP_ERROR"
    error = ApiError(message, code=code, details={"path": request.url.path})
    return JSONResponse(status_code=exc.status_code, content=error.to_dict(), headers=getattr(exc, "headers", None))


def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = str(exc) if request.app.state.settings.is_development else "Internal server error"
    return JSONResponse(status_code=500, content=ApiError(message, code="INTERNAL_ERROR").to_dict())


# ---------- App ----------

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.settings
    setup_logging(settings.LOG_LEVEL)

    missing = settings.missing_required()
    if missing:
        logger.error("FAILED to start server: %s must be set", ", ".join(missing))
        raise RuntimeError(f"{', '.join(missing)} environment variable is required")

    app.state.store.ensure_document()
    app.state.uploads.ensure_directories()

    logger.info("🚛 BHB Truck Sales API started (%s)", settings.ENVIRONMENT)
    yield
    logger.info("BHB Truck Sales API shutting down")


def create_app(settings: Settings = default_settings) -> FastAPI:
    app = FastAPI(title="BHB Truck Sales API", version=__version__, lifespan=lifespan)

    app.state.settings = settings
    app.state.store = JsonStore(settings.DATA_DIR)
    app.state.uploads = UploadManager(settings.UPLOADS_DIR)
    app.state.contact_limiter = ContactRateLimiter()

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET or "",
        session_cookie="bhb_session",
        max_age=settings.SESSION_MAX_AGE,
        same_site="lax",
        https_only=not settings.is_development,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(utility_router)
    app.include_router(trucks_router)
    app.include_router(uploads_router)
    app.include_router(auth_router)
    app.include_router(contact_router)

    app.mount("/uploads", StaticFiles(directory=settings.UPLOADS_DIR, check_dir=False), name="uploads")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=default_settings.HOST, port=default_settings.PORT)
