from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import IntegrityError
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from teamaccess.core import config
from teamaccess.core.database.engine import init_db
from teamaccess.core.errors import AccessControlError, ConflictError, PartialFailureError
from teamaccess.features.teams.routes import router as team_router
from teamaccess.features.orgs.routes import router as org_router
from teamaccess.features.groups.routes import router as group_router
from teamaccess.features.permissions.routes import router as permission_router
from teamaccess.features.users.dependencies import get_authorization_header
from teamaccess.utils import get_logger, setup_logging


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="Team Access",
    description="Team membership, org hierarchy and resource permissions",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
limiter = Limiter(key_func=get_authorization_header, default_limits=[config.RATE_LIMIT])
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.teamaccess.features."), timing=timing, tags=tags))


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


@app.exception_handler(AccessControlError)
async def access_control_exception_handler(request: Request, exc: AccessControlError):
    if isinstance(exc, PartialFailureError):
        log.error("%s %s interrupted at %s", request.method, request.url.path, exc.step)
    else:
        log.info("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(IntegrityError)
async def integrity_exception_handler(request: Request, exc: IntegrityError):
    # Unique keys racing past the service-level checks
    log.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    conflict = ConflictError("The record conflicts with an existing one")
    return JSONResponse(status_code=conflict.status_code, content=conflict.to_dict())


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.on_event("startup")
async def startup():
    """Configure logging and create tables on application startup."""
    setup_logging()
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Team Access API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "All endpoints except / and /health require a Bearer token in the Authorization header",
        },
        "features": {
            "teams": "Teams, members, ownership transfer and member exit",
            "orgs": "Org hierarchy with upward permission inheritance",
            "groups": "Member groups with a single group owner",
            "permissions": "Per-resource grants to members, groups and orgs",
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(team_router, prefix="/teams", tags=["teams"])
app.include_router(org_router, prefix="/orgs", tags=["orgs"])
app.include_router(group_router, prefix="/groups", tags=["groups"])
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])
