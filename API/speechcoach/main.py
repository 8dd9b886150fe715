from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from speechcoach.api.evaluate import router as evaluate_router
from speechcoach.api.events import router as events_router
from speechcoach.api.health import router as health_router
from speechcoach.api.pictures import router as pictures_router
from speechcoach.api.practice import router as practice_router
from speechcoach.api.sessions import router as sessions_router
from speechcoach.core.bootstrap import TherapyServices, build_services
from speechcoach.core.errors import (
    SpeechCoachError,
    http_exception_handler,
    request_id_middleware,
    speechcoach_error_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from speechcoach.core.logging import configure_logging
from speechcoach.core.settings import settings


def create_app(services: TherapyServices | None = None) -> FastAPI:
    configure_logging(settings.log_level)

    app = FastAPI(title="SpeechCoach API", version="0.1.0")
    app.state.services = services or build_services()

    app.include_router(health_router)
    app.include_router(sessions_router)
    app.include_router(evaluate_router)
    app.include_router(pictures_router)
    app.include_router(practice_router)
    app.include_router(events_router)
    app.middleware("http")(request_id_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SpeechCoachError, speechcoach_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.on_event("shutdown")
    async def on_shutdown():
        # Plan jobs are never cancelled; let in-flight ones land before the loop closes.
        await app.state.services.runner.drain()

    return app


app = create_app()
