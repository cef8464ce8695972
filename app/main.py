import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.config import settings
from app.db import SessionLocal
from app.errors import AllocationExhaustedError, InvalidPageError, InvalidTransitionError, NotFoundError
from app.routers import auth, leads, tracking
from app.security.headers import install_security_headers
from app.security.sessions import install_auth_session_middleware

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={'error': str(exc)})

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={'error': str(exc)})

    @app.exception_handler(AllocationExhaustedError)
    async def allocation_exhausted_handler(request: Request, exc: AllocationExhaustedError):
        logger.error('Tracking number allocation exhausted on %s %s: %s', request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={'error': 'Failed to create shipment'},
        )

    @app.exception_handler(InvalidPageError)
    async def invalid_page_handler(request: Request, exc: InvalidPageError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={'error': str(exc)})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception('Unhandled error on %s %s', request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={'error': 'Internal server error'},
        )


def create_app(session_factory=SessionLocal) -> FastAPI:
    app = FastAPI(title='Shipment Desk')

    install_security_headers(app)
    install_auth_session_middleware(app, session_factory)
    install_error_handlers(app)

    app.include_router(auth.router)
    app.include_router(tracking.router)
    app.include_router(leads.router)

    @app.get('/health')
    def health() -> dict:
        return {'status': 'ok'}

    return app


configure_logging()
app = create_app()
