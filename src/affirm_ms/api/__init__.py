"""
FastAPI REST API layer.

    - routes.py: selection, session, audio, playlist and feedback endpoints
    - schemas.py: request/response Pydantic models
    - dependencies.py: settings and service providers
"""
