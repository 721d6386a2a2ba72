# app/main.py
import sys
import os
import logging

# FastAPI imports
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# SQLAlchemy imports
from sqlalchemy.exc import OperationalError, ProgrammingError, SQLAlchemyError

# Database imports
from app.database import Base, engine

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = [
    "http://localhost",
    "http://localhost:3000",
    "http://127.0.0.1",
    "http://127.0.0.1:3000",
]

# Initialize FastAPI app GLOBALLY AT THE VERY BEGINNING
app = FastAPI(
    title="Client Forms API",
    description="API for law-firm form templates, client form completion, review and audit.",
    version="1.0.0",
)


def _error_response(status_code: int, message: str, error_code: str, headers=None, **extra) -> JSONResponse:
    content = {"message": message, "error_code": error_code}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content), headers=headers)


def configure_exception_handlers(fastapi_app: FastAPI):
    @fastapi_app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        # Typed form errors carry an error_code; framework/auth errors fall back to a generic one.
        error_code = getattr(exc, "error_code", None) or "HTTP_ERROR"
        return _error_response(exc.status_code, str(exc.detail), error_code, headers=getattr(exc, "headers", None))

    @fastapi_app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "The request is invalid.",
            "VALIDATION_ERROR",
            errors=exc.errors(),
        )

    @fastapi_app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred.",
            "UNEXPECTED_ERROR",
        )


# Define a function to configure the app (middleware, routers, event handlers)
def configure_app_instance(fastapi_app: FastAPI):
    # CORS Middleware for frontend communication
    cors_origins = os.getenv("CORS_ORIGINS")
    origins = [o.strip() for o in cors_origins.split(",") if o.strip()] if cors_origins else DEFAULT_CORS_ORIGINS

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    configure_exception_handlers(fastapi_app)

    # Now import API routers using absolute paths from 'app' package
    from app.api.v1.endpoints import forms, public_forms

    # --- DATABASE TABLE CREATION ---
    logger.info("Attempting to ensure database tables exist (create if not existing)...")
    try:
        logger.info(f"DIAG: Engine DSN: {engine.url.render_as_string(hide_password=True)}")

        import app.models

        if Base.metadata.tables:
            logger.info(f"DIAG: Tables expected by models: {list(Base.metadata.tables.keys())}")
            Base.metadata.create_all(bind=engine)
            logger.info("Database tables ensured (created if not existing).")
        else:
            logger.critical("FATAL ERROR: No SQLAlchemy models were registered with Base.metadata. "
                            "Please check app/models.py and its imports in app/database.py.")
            sys.exit(1)

    except OperationalError as e:
        logger.critical(f"FATAL ERROR: Database connection failed during table creation. "
                        f"Please check DATABASE_URL and ensure the database is running and accessible. Error: {e}", exc_info=True)
        sys.exit(1)
    except ProgrammingError as e:
        logger.critical(f"FATAL ERROR: Database programming error during table creation. "
                        f"This could indicate schema definition issues or insufficient user permissions. Error: {e}", exc_info=True)
        sys.exit(1)
    except SQLAlchemyError as e:
        logger.critical(f"FATAL ERROR: An SQLAlchemy error occurred during table creation: {e}", exc_info=True)
        sys.exit(1)
    # --- END DATABASE TABLE CREATION ---

    # Include API routers
    fastapi_app.include_router(forms.router, prefix="/api/v1/forms", tags=["Client Forms"])
    fastapi_app.include_router(public_forms.router, prefix="/api/v1/public/forms", tags=["Public Client Forms"])

    @fastapi_app.get("/")
    async def root():
        return {"message": "Client Forms API is running!"}

# Call the configuration function at the module level, passing the 'app' instance
configure_app_instance(app)
