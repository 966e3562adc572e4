"""
sap_odata.api - Run as module

Usage: python -m sap_odata.api
"""

import logging
import os

import uvicorn

from sap_odata.core.connection import load_env


def main():
    """Run the API gateway server."""
    load_env()
    host = os.environ.get("ODATA_HOST", "0.0.0.0")
    port = int(os.environ.get("ODATA_PORT", "5050"))
    reload = os.environ.get("ODATA_RELOAD", "false").lower() == "true"
    log_level = os.environ.get("ODATA_LOG_LEVEL", "info")

    logging.basicConfig(level=log_level.upper())
    logging.getLogger("sap_odata.api").info("Starting SAP OData Gateway on %s:%s", host, port)

    uvicorn.run(
        "sap_odata.api:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


if __name__ == "__main__":
    main()
