"""
sap_odata.api - Optional REST API Gateway
=========================================

FastAPI-based REST gateway exposing CRUD on OData entity sets.

Usage
-----
>>> from sap_odata.api import create_app
>>> app = create_app()
>>> # Run with: uvicorn sap_odata.api:app

Or run directly:
>>> python -m sap_odata.api

"""

from sap_odata.api.gateway import create_app, get_gateway, ODataGateway

# Create default app instance for uvicorn
app = create_app()

__all__ = [
    "create_app",
    "get_gateway",
    "ODataGateway",
    "app",
]
