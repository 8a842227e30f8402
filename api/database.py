"""
Database service layer for the FastAPI application.
"""

from typing import Dict, List, Optional

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from api.models import BookPayload, BookQueryParams, BookResponse

logger = structlog.get_logger(__name__)


def parse_object_id(book_id: str) -> Optional[ObjectId]:
    """Return the ObjectId for ``book_id``, or None if it cannot be one."""
    if ObjectId.is_valid(book_id):
        return ObjectId(book_id)
    return None


class BookDatabaseService:
    """Database service for book CRUD operations."""

    def __init__(self, database: AsyncIOMotorDatabase, collection_name: str = "books"):
        self.database = database
        self.books_collection = database[collection_name]

    async def ensure_indexes(self) -> None:
        """Create indexes for the common listing filter."""
        try:
            await self.books_collection.create_index("name")
            logger.info("Successfully created MongoDB indexes")
        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    async def create_book(self, payload: BookPayload) -> BookResponse:
        """
        Insert a new book.

        Args:
            payload: Validated book fields

        Returns:
            BookResponse carrying the generated identifier
        """
        try:
            book_doc = payload.to_document()
            result = await self.books_collection.insert_one(book_doc)
            logger.debug("Successfully inserted book", book_id=str(result.inserted_id), book_name=payload.name)
            return BookResponse.from_document({**book_doc, "_id": result.inserted_id})

        except Exception as e:
            logger.error("Failed to insert book", book_name=payload.name, error=str(e))
            raise

    async def list_books(self, query_params: BookQueryParams) -> List[BookResponse]:
        """
        Get all books matching the equality filters.

        Args:
            query_params: Optional name, img and summary filters

        Returns:
            List of matching books, empty when nothing matches
        """
        try:
            filter_query = query_params.to_filter()
            cursor = self.books_collection.find(filter_query)
            books_docs = await cursor.to_list(length=None)

            logger.debug("Retrieved books", filters=filter_query, count=len(books_docs))
            return [BookResponse.from_document(book_doc) for book_doc in books_docs]

        except Exception as e:
            logger.error("Failed to get books", error=str(e), query_params=query_params.model_dump())
            raise

    async def get_book_by_id(self, book_id: str) -> Optional[BookResponse]:
        """
        Get a single book by ID.

        Args:
            book_id: Book identifier

        Returns:
            BookResponse if found, None otherwise
        """
        object_id = parse_object_id(book_id)
        if object_id is None:
            logger.debug("Book ID is not a valid ObjectId", book_id=book_id)
            return None

        try:
            book_doc = await self.books_collection.find_one({"_id": object_id})
            if book_doc:
                return BookResponse.from_document(book_doc)
            return None

        except Exception as e:
            logger.error("Failed to get book by ID", book_id=book_id, error=str(e))
            raise

    async def update_book(self, book_id: str, payload: BookPayload) -> Optional[BookResponse]:
        """
        Replace the name, img and summary of an existing book.

        Args:
            book_id: Book identifier
            payload: Validated replacement fields

        Returns:
            The updated BookResponse, or None if no book has this ID
        """
        object_id = parse_object_id(book_id)
        if object_id is None:
            logger.debug("Book ID is not a valid ObjectId", book_id=book_id)
            return None

        try:
            book_doc = await self.books_collection.find_one_and_update(
                {"_id": object_id},
                {"$set": payload.to_document()},
                return_document=ReturnDocument.AFTER,
                upsert=False
            )

            if book_doc:
                logger.debug("Successfully updated book", book_id=book_id)
                return BookResponse.from_document(book_doc)

            logger.warning("Book not found for update", book_id=book_id)
            return None

        except Exception as e:
            logger.error("Failed to update book", book_id=book_id, error=str(e))
            raise

    async def delete_book(self, book_id: str) -> int:
        """
        Delete a book by ID.

        Args:
            book_id: Book identifier

        Returns:
            Number of deleted documents (0 or 1)
        """
        object_id = parse_object_id(book_id)
        if object_id is None:
            logger.debug("Book ID is not a valid ObjectId", book_id=book_id)
            return 0

        try:
            result = await self.books_collection.delete_one({"_id": object_id})
            logger.debug("Deleted book", book_id=book_id, deleted_count=result.deleted_count)
            return result.deleted_count

        except Exception as e:
            logger.error("Failed to delete book", book_id=book_id, error=str(e))
            raise

    async def count_books(self, query_params: Optional[BookQueryParams] = None) -> int:
        """Get number of books matching the filters."""
        try:
            filter_query = query_params.to_filter() if query_params else {}
            return await self.books_collection.count_documents(filter_query)
        except Exception as e:
            logger.error("Failed to get books count", error=str(e))
            raise

    async def health_check(self) -> Dict:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            # Test basic connectivity
            await self.database.command("ping")

            books_count = await self.count_books()

            return {
                "status": "healthy",
                "books_collection": "accessible",
                "books_count": books_count
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }
