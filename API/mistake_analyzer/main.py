from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mistake_analyzer.api.health import router as health_router
from mistake_analyzer.api.metrics import router as metrics_router
from mistake_analyzer.api.patterns import router as patterns_router
from mistake_analyzer.api.questions import router as questions_router
from mistake_analyzer.api.results import router as results_router
from mistake_analyzer.api.sessions import router as sessions_router
from mistake_analyzer.core.app_metrics import metrics_middleware
from mistake_analyzer.core.auth import api_key_auth_middleware
from mistake_analyzer.core.bootstrap import initialize_database
from mistake_analyzer.core.errors import install_error_handlers, request_id_middleware
from mistake_analyzer.core.logging import configure_logging
from mistake_analyzer.core.settings import settings
from mistake_analyzer.storage.database import engine

configure_logging(settings.log_level)

app = FastAPI(title="Mistake Pattern Analyzer API", version="0.1.0")
app.include_router(health_router)
app.include_router(questions_router)
app.include_router(sessions_router)
app.include_router(results_router)
app.include_router(patterns_router)
app.include_router(metrics_router)
app.middleware("http")(metrics_middleware)
app.middleware("http")(api_key_auth_middleware)
app.middleware("http")(request_id_middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_error_handlers(app)


@app.on_event("startup")
async def on_startup():
    await initialize_database(engine)


@app.on_event("shutdown")
async def on_shutdown():
    await engine.dispose()
