"""
API package for the kanban board backend.

Modules:
- config: environment configuration and logging setup
- db: PostgreSQL connection pooling, query helpers and transactions
- assembler: nests board rows into the board detail document
- search: card search query builder
- schemas: Pydantic request models for the REST API
- main: FastAPI application and route handlers
- server: uvicorn entry point
"""
