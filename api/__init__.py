"""
FastAPI RESTful API for the Books service.

This module provides a small REST API for:
- Creating, reading, updating and deleting book records
- Filtering the book catalog by exact field values
- Health reporting for the MongoDB backend
"""
