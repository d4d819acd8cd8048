from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request

from classbook.config import settings
from classbook.db import Base, engine, session_scope
from classbook.metrics import flush_metrics
from classbook.request_context import EndpointNameRoute
from classbook.routers import admin_schedules, settings as settings_router, student_schedules
from classbook.services.bootstrap_service import run_bootstrap

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)
request_logger = logging.getLogger('classbook.request')


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.app_env == 'local':
        Base.metadata.create_all(bind=engine)
    with session_scope() as db:
        run_bootstrap(db)
    yield
    flush_metrics()


app = FastAPI(title=settings.app_name, version='0.1.0', lifespan=lifespan)
app.router.route_class = EndpointNameRoute


@app.middleware('http')
async def slow_request_logger(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started) * 1000.0
    if duration_ms >= settings.metrics_slow_ms:
        request_logger.info(
            'request_slow path=%s method=%s status_code=%s duration_ms=%.2f',
            request.url.path,
            request.method,
            response.status_code,
            duration_ms,
        )
    return response


@app.get('/health')
def health():
    return {'status': 'ok', 'app': settings.app_name, 'env': settings.app_env}


app.include_router(admin_schedules.router)
app.include_router(student_schedules.router)
app.include_router(settings_router.router)
