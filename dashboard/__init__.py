"""
Dashboard Package.

HTTP surface of the risk engine.

Modules:
- main: FastAPI application factory
- routers/: Endpoint groups
- schemas: Request and response models
"""
