from contextlib import asynccontextmanager
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from school_records.db.repo import init_db
from school_records.routers import classes, establishments, metrics, pages, staff, statistics, students
from school_records.services.errors import InvalidReference, RecordInUse, RecordNotFound
from school_records.utils import slog
from school_records.utils.api_cache import EntryCache
from school_records.utils.logging import configure_logging
from school_records.utils.metrics import record_endpoint, record_request


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    yield


app = FastAPI(
    title="School Records",
    description="Establishments, classes, students and staff records",
    lifespan=lifespan,
)

# One cache per process; routes reach it through routers.deps.get_api_cache
app.state.api_cache = EntryCache()


@app.exception_handler(RecordNotFound)
async def _not_found(request: Request, exc: RecordNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidReference)
@app.exception_handler(RecordInUse)
async def _bad_request(request: Request, exc: Exception):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.middleware("http")
async def _logging_middleware(request, call_next):
    start = time.perf_counter()
    req_id = slog.new_request_id()
    client_ip = request.client.host if request.client else None
    try:
        response = await call_next(request)
    except Exception as e:
        latency_ms = int((time.perf_counter() - start) * 1000)
        ctx = getattr(request.state, "log_context", {})
        slog.log_event(
            "request.error",
            request_id=req_id,
            path=str(request.url.path),
            method=request.method,
            latency_ms=latency_ms,
            client_ip=client_ip,
            error=str(e),
            **(ctx or {}),
        )
        raise
    latency_ms = int((time.perf_counter() - start) * 1000)
    ctx = getattr(request.state, "log_context", {}) or {}
    # route template keeps the per-endpoint table bounded (/api/classes/{class_id}, not one row per id)
    route_path = getattr(request.scope.get("route"), "path", str(request.url.path))
    slog.finalize_request_log(
        request_id=req_id,
        method=request.method,
        path=str(request.url.path),
        status=response.status_code,
        latency_ms=latency_ms,
        client_ip=client_ip,
        route=route_path,
        ctx=ctx,
    )
    record_request(latency_ms=latency_ms)
    record_endpoint(method=request.method, path=route_path, latency_ms=latency_ms)
    response.headers["X-Request-ID"] = req_id
    return response


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(pages.router)
app.include_router(establishments.router)
app.include_router(classes.router)
app.include_router(students.router)
app.include_router(staff.router)
app.include_router(statistics.router)
app.include_router(metrics.router)
