import time
import uuid
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Path, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi import Limiter
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from calcforest_common.fastapi.metrics import add_prometheus_middleware
from calcforest_common.logging import setup_logging
from calcforest_common.metrics import record_calculation_created
from config import Settings, load_settings
from exceptions import SERVICE_NAME, register_exception_handlers
from schemas import (
    AuthResponse,
    CalculationTreeView,
    CalculationView,
    CreateCalculationRequest,
    LoginRequest,
    RegisterRequest,
    RespondRequest,
    UserView,
    render_tree,
    render_trees,
)
from service import CalculationService
from store import PostgresCalculationStore
from users import AuthService, PostgresUserStore, User

settings = load_settings()
log = setup_logging("calc-service", settings.log_level)

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])


def get_request_id(x_request_id: str | None) -> str:
    try:
        return str(uuid.UUID(x_request_id)) if x_request_id else str(uuid.uuid4())
    except ValueError:
        return str(uuid.uuid4())


# ---------- middleware ----------
class PayloadSizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Rejects bodies above max_size with HTTP 413 before they reach a route.
    """

    def __init__(self, app, max_size: int):
        super().__init__(app)
        self.max_size = max_size

    async def dispatch(self, request: Request, call_next):
        if request.url.path in ["/health", "/metrics", "/docs", "/openapi.json"]:
            return await call_next(request)

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_size:
            return JSONResponse(status_code=413, content={"detail": "Payload Too Large"})

        return await call_next(request)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        request_id = get_request_id(request.headers.get("x-request-id"))
        request.state.rid = request_id

        response = await call_next(request)

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        log.info(
            "request",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=duration_ms,
        )
        response.headers["X-Request-Id"] = request_id
        return response


# ---------- dependencies ----------
def get_calculations(request: Request) -> CalculationService:
    return request.app.state.calculations


def get_auth(request: Request) -> AuthService:
    return request.app.state.auth


def current_user(
    auth: AuthService = Depends(get_auth),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> User:
    user = auth.authenticate(x_api_key)
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


# ---------- routes ----------
router = APIRouter(prefix="/api")


@router.get("/calculations", response_model=list[CalculationTreeView])
def list_trees(calculations: CalculationService = Depends(get_calculations)):
    return Response(render_trees(calculations.get_all_trees()), media_type="application/json")


@router.get("/calculations/{calc_id}", response_model=CalculationTreeView)
def get_tree(
    calc_id: int = Path(..., ge=1),
    calculations: CalculationService = Depends(get_calculations),
):
    tree = calculations.get_tree(calc_id)
    if tree is None:
        raise HTTPException(status_code=404, detail="Calculation not found")
    return Response(render_tree(tree), media_type="application/json")


@router.post("/calculations", response_model=CalculationView, status_code=201)
@limiter.limit(settings.write_rate_limit)
def create_calculation(
    req: CreateCalculationRequest,
    request: Request,
    user: User = Depends(current_user),
    calculations: CalculationService = Depends(get_calculations),
):
    record = calculations.create_root(user.id, req.value)
    record_calculation_created(SERVICE_NAME, "root")
    return CalculationView.from_record(record)


@router.post("/calculations/{calc_id}/respond", response_model=CalculationView, status_code=201)
@limiter.limit(settings.write_rate_limit)
def respond(
    req: RespondRequest,
    request: Request,
    calc_id: int = Path(..., ge=1),
    user: User = Depends(current_user),
    calculations: CalculationService = Depends(get_calculations),
):
    record = calculations.add_operation(user.id, calc_id, req.operation, req.operand)
    record_calculation_created(SERVICE_NAME, "child")
    return CalculationView.from_record(record)


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(req: RegisterRequest, auth: AuthService = Depends(get_auth)):
    user = auth.register(req.username, req.password)
    log.info("user_registered", user_id=user.id)
    return AuthResponse.from_user(user)


@router.post("/auth/login", response_model=AuthResponse)
def login(req: LoginRequest, auth: AuthService = Depends(get_auth)):
    return AuthResponse.from_user(auth.login(req.username, req.password))


@router.get("/auth/me", response_model=UserView)
def me(user: User = Depends(current_user)):
    return UserView.from_user(user)


# ---------- FastAPI ----------
def create_app(
    app_settings: Settings | None = None,
    calculations: CalculationService | None = None,
    auth: AuthService | None = None,
) -> FastAPI:
    app_settings = app_settings or settings
    dsn = app_settings.database.dsn
    calculation_store = PostgresCalculationStore(dsn)
    calculations = calculations or CalculationService(
        calculation_store, max_depth=app_settings.max_tree_depth
    )
    auth = auth or AuthService(PostgresUserStore(dsn))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app_settings.ensure_schema:
            calculation_store.ensure_schema()
        log.info("startup", environment=app_settings.environment)
        yield

    app = FastAPI(
        title="calcforest calc-service",
        version="1.0.0",
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.calculations = calculations
    app.state.auth = auth
    app.state.limiter = limiter

    register_exception_handlers(app)

    # last added runs first: cors -> request log -> payload check -> rate limit -> prometheus
    add_prometheus_middleware(app, SERVICE_NAME)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(PayloadSizeLimitMiddleware, max_size=app_settings.max_payload_bytes)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if app_settings.is_development else app_settings.allowed_origins,
        allow_credentials=not app_settings.is_development,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-API-Key", "X-Request-Id"],
    )

    @app.get("/health")
    @limiter.exempt
    def health():
        return {"status": "ok"}

    @app.get("/metrics")
    @limiter.exempt
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)  # nosec B104
