from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from entitlements.core import config
from entitlements.core.database.engine import init_db
from entitlements.core.errors import HTTP_STATUS_BY_KIND, EntitlementError, TransientError
from entitlements.core.limiter import limiter
from entitlements.features.catalog.routes import router as catalog_router
from entitlements.features.modules.routes import router as module_router
from entitlements.features.permissions.routes import router as permission_router
from entitlements.features.organizations.routes import router as organization_router
from entitlements.features.entitlements.routes import router as entitlement_router
from entitlements.utils import get_logger


log = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Initialize database on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")
    yield


log.info("Initializing server")
app = FastAPI(
    lifespan=lifespan,
    title="Entitlements",
    description="Module entitlement and permission authorization service",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.entitlements.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.exception_handler(EntitlementError)
async def entitlement_error_handler(_request: Request, exc: EntitlementError):
    return JSONResponse(
        status_code=HTTP_STATUS_BY_KIND[exc.kind],
        content=jsonable_encoder({"success": False, "kind": exc.kind.value, "message": exc.message, "data": exc.details or None}),
    )


@app.exception_handler(TransientError)
async def transient_error_handler(request: Request, exc: TransientError):
    log.error("Transient failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"success": False, "kind": exc.kind.value, "message": "Service temporarily unavailable, retry later", "data": None},
    )


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Entitlements API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require Bearer token in Authorization header",
            "protected_endpoints": ["/modules/*", "/organizations/*", "/entitlements/*"],
            "public_endpoints": ["/", "/health"]
        },
        "features": {
            "catalog": "Modules with dependencies and subscription plans",
            "modules": "Per-organization module activation under plan limits",
            "permissions": "Role permissions gated by active modules",
            "entitlements": "Entitlement resolution, audit and repair"
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(catalog_router, prefix="/modules", tags=["catalog"])

# Organization-scoped routes
app.include_router(module_router, prefix="/organizations", tags=["modules"])
app.include_router(permission_router, prefix="/organizations", tags=["permissions"])
app.include_router(organization_router, prefix="/organizations", tags=["organizations"])

# Platform admin routes
app.include_router(entitlement_router, prefix="/entitlements", tags=["entitlements"])
