from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from erp_access.core import config
from erp_access.core.cache import Cache, create_cache
from erp_access.core.database.engine import AsyncSessionLocal, engine, init_db
from erp_access.features.access.enforcer import create_enforcer
from erp_access.features.access.errors import AccessError, IdentityNotFound
from erp_access.features.access.routes import router as access_router
from erp_access.features.access.seed import seed_defaults
from erp_access.features.access.store import PolicyStore
from erp_access.features.assign_role.routes import router as assign_role_router
from erp_access.features.assign_role.service import AssignRoleService
from erp_access.features.roles.routes import router as role_router
from erp_access.features.roles.service import RoleService
from erp_access.features.users.dependencies import get_authorization_header
from erp_access.features.users.identity import IdentityResolver
from erp_access.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="ERP Access",
    description="Policy-based access control for the ERP portals",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
limiter = Limiter(key_func=get_authorization_header)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.erp_access.features."), timing=timing, tags=tags))


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


@app.exception_handler(AccessError)
async def access_error_handler(_request: Request, exc: AccessError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, IdentityNotFound) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc), "code": exc.code},
        headers=headers,
    )


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


def init_access(target: FastAPI, bind: AsyncEngine, cache: Cache) -> None:
    """Create the shared enforcer and services and hang them on ``target.state``."""
    enforcer = create_enforcer(bind)
    identity_resolver = IdentityResolver(cache)
    role_service = RoleService(enforcer, cache)
    target.state.cache = cache
    target.state.enforcer = enforcer
    target.state.identity_resolver = identity_resolver
    target.state.role_service = role_service
    target.state.assign_role_service = AssignRoleService(enforcer, identity_resolver, role_service, cache)


@app.on_event("startup")
async def startup():
    """Initialize database, cache and enforcer on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")

    init_access(app, engine, create_cache())
    if config.SEED_DEFAULT_POLICIES:
        async with AsyncSessionLocal() as db:
            await seed_defaults(db, app.state.enforcer, PolicyStore())


@app.on_event("shutdown")
async def shutdown():
    await app.state.cache.close()


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "ERP Access API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require Bearer token in Authorization header",
            "protected_endpoints": [
                f"{config.API_PREFIX}/access/check", f"{config.API_PREFIX}/permissions",
                f"{config.API_PREFIX}/{{tech|admin}}/roles/*", f"{config.API_PREFIX}/{{tech|admin}}/assign-role/*",
            ],
        },
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Access decisions and permission catalog
app.include_router(access_router, prefix=config.API_PREFIX, tags=["access"])

# Role catalog and role assignment, per administrative portal
for portal in ("tech", "admin"):
    app.include_router(role_router, prefix=f"{config.API_PREFIX}/{portal}/roles", tags=["roles"])
    app.include_router(assign_role_router, prefix=f"{config.API_PREFIX}/{portal}/assign-role", tags=["assign-role"])
