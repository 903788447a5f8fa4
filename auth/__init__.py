"""auth/ -- Token lifecycle and verification engine for TokenWarden.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/. api/ imports from auth/, not the other way
around -- with the single exception of auth/dependencies.py, which is part of
FastAPI's dependency injection and therefore imports fastapi.
"""
