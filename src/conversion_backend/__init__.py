"""
Conversion Backend - REST API for file, text and data conversions

This package provides a FastAPI-based web service that runs small
conversions on behalf of authenticated callers and keeps a per-caller
history of them. It enables:

- Synchronous conversions (text, encoding, hashing, colors, units,
  currency, PDF) recorded as jobs with a forward-only lifecycle
- Job history queries, newest first, scoped to the caller
- Daily usage statistics and windowed summaries
- AI text and code operations proxied to a chat-completions gateway
- Multipart PDF tools backed by LibreOffice, Ghostscript and qpdf

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - conversion_service: Job submission and lifecycle
    - job_query: Job history listing
    - usage: Usage aggregation
    - converters: Type-specific handlers and input validation
    - database: SQLite job, usage and audit-log store
    - key_manager: API key issuing and resolution
    - client: HTTP client adapter for user interfaces
    - configuration: Config loading and merging logic

Usage:
    Run the API server with:
        uvicorn conversion_backend.main:app --reload --host 0.0.0.0 --port 8000
"""
