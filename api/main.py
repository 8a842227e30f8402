"""
FastAPI main application for the Books API.
"""

import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

import structlog
import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.config import config
from api.database import BookDatabaseService
from api.models import (
    BookPayload, BookQueryParams, BookResponse,
    ErrorResponse, HealthResponse, MessageResponse, MissingFieldsError
)
from utilities.logger import setup_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger.info("Starting Books API", host=config.host, port=config.port)

    client = AsyncIOMotorClient(config.mongodb_url)
    try:
        database = client[config.mongodb_database]

        # Test connection
        await database.command("ping")
        logger.info("Database connection established", database=config.mongodb_database)

        db_service = BookDatabaseService(database, config.mongodb_collection)
        await db_service.ensure_indexes()

    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        client.close()
        raise

    app.state.db_service = db_service
    logger.info("Server is running", port=config.port)

    try:
        yield
    finally:
        # Shutdown
        logger.info("Shutting down Books API")
        app.state.db_service = None
        client.close()


def get_db_service(request: Request) -> BookDatabaseService:
    """Dependency returning the database service opened at startup."""
    db_service = getattr(request.app.state, "db_service", None)
    if db_service is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database service not available"
        )
    return db_service


class DatabaseOperationError(HTTPException):
    """HTTP error wrapping a failed database call; ``detail`` is the raw driver message."""

    def __init__(self, status_code: int, error: str, detail: str):
        super().__init__(status_code=status_code, detail=detail)
        self.error = error


# Create FastAPI application
app = FastAPI(
    title=config.api_title,
    description=f"""
    {config.api_description}.

    ## Features

    * **Create**: add a book with a name, image reference and summary
    * **Read**: list books, optionally filtered by exact field values, or fetch one by ID
    * **Update**: replace all three fields of an existing book
    * **Delete**: remove a book by ID
    """,
    version=config.api_version,
    license_info={
        "name": "MIT",
        "url": "https://opensource.org/licenses/MIT",
    },
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=config.cors_allow_credentials,
    allow_methods=config.cors_allow_methods,
    allow_headers=config.cors_allow_headers,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Bind request context for every log line and log the outcome."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path
    )

    start = time.perf_counter()
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-ID"] = request_id
        return response
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Request completed",
            status_code=status_code,
            duration_ms=round(duration_ms, 1)
        )


# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    if isinstance(exc, DatabaseOperationError):
        error, detail = exc.error, exc.detail
    else:
        error, detail = str(exc.detail), None

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=error,
            detail=detail,
            status_code=exc.status_code
        ).model_dump(),
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(MissingFieldsError)
async def missing_fields_handler(request: Request, exc: MissingFieldsError):
    """Handle create or update requests without all book fields."""
    logger.info("Rejected incomplete book payload", missing=exc.missing)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(
            error=str(exc),
            detail=f"Missing fields: {', '.join(exc.missing)}",
            status_code=status.HTTP_400_BAD_REQUEST
        ).model_dump()
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies as client errors."""
    detail = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(
            error="Invalid request body",
            detail=detail,
            status_code=status.HTTP_400_BAD_REQUEST
        ).model_dump()
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)

    # Runs outside log_requests, which cannot attach the header to this response
    request_id = structlog.contextvars.get_contextvars().get("request_id")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal server error",
            detail=str(exc) if config.debug else None,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        ).model_dump(),
        headers={"X-Request-ID": request_id} if request_id else None
    )


# Health check endpoint
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint."""
    db_service = getattr(request.app.state, "db_service", None)
    try:
        db_status = "unavailable"
        if db_service:
            health_info = await db_service.health_check()
            db_status = health_info.get("status", "unknown")

        return HealthResponse(
            status="healthy" if db_status == "healthy" else "degraded",
            timestamp=datetime.utcnow(),
            version=config.api_version,
            database_status=db_status
        )
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return HealthResponse(
            status="unhealthy",
            timestamp=datetime.utcnow(),
            version=config.api_version,
            database_status="unhealthy"
        )


# Books endpoints
@app.post(
    "/books",
    response_model=BookResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Books"]
)
async def create_book(
    payload: BookPayload,
    db_service: BookDatabaseService = Depends(get_db_service)
):
    """
    Create a new book.

    - **name**, **img**, **summary**: all required and non-empty
    """
    payload.require_complete()

    try:
        book = await db_service.create_book(payload)
        logger.info("Book created", book_id=book.id)
        return book

    except Exception as e:
        logger.error("Failed to create book", error=str(e))
        raise DatabaseOperationError(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="Failed to create book",
            detail=str(e)
        )


@app.get("/books", response_model=List[BookResponse], tags=["Books"])
async def get_books(
    name: Optional[str] = None,
    img: Optional[str] = None,
    summary: Optional[str] = None,
    db_service: BookDatabaseService = Depends(get_db_service)
):
    """
    Get all books, optionally filtered by exact field values.

    - **name**: Only books with this exact name
    - **img**: Only books with this exact image reference
    - **summary**: Only books with this exact summary
    """
    query_params = BookQueryParams(name=name, img=img, summary=summary)

    try:
        return await db_service.list_books(query_params)

    except Exception as e:
        logger.error("Failed to get books", error=str(e))
        raise DatabaseOperationError(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error="Failed to retrieve books",
            detail=str(e)
        )


@app.get("/books/{book_id}", response_model=BookResponse, tags=["Books"])
async def get_book(
    book_id: str,
    db_service: BookDatabaseService = Depends(get_db_service)
):
    """
    Get a single book by ID.

    - **book_id**: Book identifier (MongoDB ObjectId)
    """
    try:
        book = await db_service.get_book_by_id(book_id)

        if not book:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Book not found"
            )

        return book

    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to get book", book_id=book_id, error=str(e))
        raise DatabaseOperationError(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error="Failed to retrieve book",
            detail=str(e)
        )


@app.put("/books/{book_id}", response_model=BookResponse, tags=["Books"])
async def update_book(
    book_id: str,
    payload: BookPayload,
    db_service: BookDatabaseService = Depends(get_db_service)
):
    """
    Replace a book's name, img and summary.

    All three fields are required; this is a full replacement, not a patch.
    """
    payload.require_complete()

    try:
        book = await db_service.update_book(book_id, payload)

        if not book:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Book not found"
            )

        logger.info("Book updated", book_id=book_id)
        return book

    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to update book", book_id=book_id, error=str(e))
        raise DatabaseOperationError(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="Failed to update book",
            detail=str(e)
        )


@app.delete("/books/{book_id}", response_model=MessageResponse, tags=["Books"])
async def delete_book(
    book_id: str,
    db_service: BookDatabaseService = Depends(get_db_service)
):
    """
    Delete a book by ID.

    Succeeds whether or not the book exists.
    """
    try:
        deleted_count = await db_service.delete_book(book_id)
        logger.info("Book deleted", book_id=book_id, deleted_count=deleted_count)
        return MessageResponse(message="Deleted book")

    except Exception as e:
        logger.error("Failed to delete book", book_id=book_id, error=str(e))
        raise DatabaseOperationError(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error="Failed to delete book",
            detail=str(e)
        )


if __name__ == "__main__":
    uvicorn.run(
        "api.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower()
    )
