"""
Pytest configuration and shared fixtures.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from bson import ObjectId
from fastapi.testclient import TestClient

from api.database import BookDatabaseService, parse_object_id
from api.main import app, get_db_service
from api.models import BookResponse


class InMemoryBookService:
    """Dict-backed stand-in for BookDatabaseService used by route tests."""

    def __init__(self):
        self.books = {}

    async def create_book(self, payload):
        book_doc = {"_id": ObjectId(), **payload.to_document()}
        self.books[book_doc["_id"]] = book_doc
        return BookResponse.from_document(book_doc)

    async def list_books(self, query_params):
        filter_query = query_params.to_filter()
        return [
            BookResponse.from_document(book_doc)
            for book_doc in self.books.values()
            if all(book_doc.get(key) == value for key, value in filter_query.items())
        ]

    async def get_book_by_id(self, book_id):
        book_doc = self.books.get(parse_object_id(book_id))
        return BookResponse.from_document(book_doc) if book_doc else None

    async def update_book(self, book_id, payload):
        book_doc = self.books.get(parse_object_id(book_id))
        if book_doc is None:
            return None
        book_doc.update(payload.to_document())
        return BookResponse.from_document(book_doc)

    async def delete_book(self, book_id):
        return 1 if self.books.pop(parse_object_id(book_id), None) else 0

    async def count_books(self, query_params=None):
        if query_params is None:
            return len(self.books)
        return len(await self.list_books(query_params))

    async def health_check(self):
        return {"status": "healthy", "books_count": len(self.books)}


@pytest.fixture
def sample_book_payload():
    """Create a complete book request body."""
    return {
        "name": "Dune",
        "img": "dune.jpg",
        "summary": "Desert planet saga"
    }


@pytest.fixture
def sample_book_document():
    """Create a raw MongoDB book document."""
    return {
        "_id": ObjectId("64b7f0c2a1b2c3d4e5f60718"),
        "name": "Dune",
        "img": "dune.jpg",
        "summary": "Desert planet saga"
    }


@pytest.fixture
def mock_books_collection():
    """Create a mock Motor collection with async CRUD methods."""
    collection = MagicMock()
    collection.insert_one = AsyncMock()
    collection.find_one = AsyncMock(return_value=None)
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.delete_one = AsyncMock()
    collection.count_documents = AsyncMock(return_value=0)
    collection.create_index = AsyncMock(return_value="name_1")

    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=[])
    collection.find = MagicMock(return_value=cursor)
    return collection


@pytest.fixture
def mock_database(mock_books_collection):
    """Create a mock Motor database exposing the books collection."""
    database = MagicMock()
    database.__getitem__.return_value = mock_books_collection
    database.command = AsyncMock(return_value={"ok": 1.0})
    return database


@pytest.fixture
def db_service(mock_database):
    """Create a BookDatabaseService over the mocked database."""
    return BookDatabaseService(mock_database, "books")


@pytest.fixture
def in_memory_service():
    """Create an empty in-memory book service."""
    return InMemoryBookService()


@pytest.fixture
def client(in_memory_service):
    """Create a test client wired to the in-memory service."""
    app.dependency_overrides[get_db_service] = lambda: in_memory_service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def mock_db_service():
    """Create a mocked database service for failure scenarios."""
    return AsyncMock(spec=BookDatabaseService)


@pytest.fixture
def mock_client(mock_db_service):
    """Create a test client wired to the mocked database service."""
    app.dependency_overrides[get_db_service] = lambda: mock_db_service
    yield TestClient(app)
    app.dependency_overrides.clear()
