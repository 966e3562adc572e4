"""
Example: Basic OData usage with sap_odata
=========================================

Reads and writes a material on an SAP Gateway demo service. CSRF tokens
are fetched on the first write and refreshed whenever the server rejects
them.
"""

import logging
from typing import Optional

from pydantic import BaseModel

from sap_odata import ConnectionContext, ODataAuth, ODataConfig, SAPODataSession
from sap_odata import ODataService, QueryOptions, ServiceError, load_env


class Material(BaseModel):
    Material: str
    MatType: Optional[str] = None
    MatGrp: Optional[str] = None
    UOM: Optional[str] = None


def example_basic_crud():
    """CRUD with an explicit configuration."""

    cfg = ODataConfig(
        base_url="https://sapes5.sapdevcenter.com/",
        auth=ODataAuth("basic", ("USER", "PASSWORD")),
        default_sap_client="002",
    )

    with SAPODataSession(cfg) as sess:
        api = ODataService(sess, "/sap/opu/odata/sap/YGW_MM_001_SRV/")

        query = QueryOptions().top(5).select(["Material", "MatType", "UOM"])
        for mat in api.get_entity_set("MaterialMainSet", query, model=Material):
            print(mat.Material, mat.MatType)

        try:
            created = api.create_entity("MaterialMainSet", Material(Material="M-TEST", MatType="FERT"), model=Material)
            print("Created:", created)
            api.patch_entity("MaterialMainSet", "'M-TEST'", {"UOM": "PC"})
            api.delete_entity("MaterialMainSet", "'M-TEST'")
        except ServiceError as e:
            print(f"Write failed: {e.code} {e.message}")


def example_connection_context():
    """Using ConnectionContext (hana_ml style)."""

    # Reads S4_BASE_URL (or SAP_HOST), S4_USER, S4_PASS, S4_SAP_CLIENT, optionally from .env
    load_env()
    with ConnectionContext() as conn:
        service = conn.get_service("/sap/opu/odata/sap/YGW_MM_001_SRV")
        materials = service.read_all("MaterialMainSet", QueryOptions().top(100), max_pages=3)
        print(f"Found {len(materials)} materials")


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)
    # Uncomment the example you want to run
    # example_basic_crud()
    # example_connection_context()

    print("Set up your environment variables and uncomment an example to run.")
    print("Required: S4_BASE_URL, S4_USER, S4_PASS (or S4_BEARER_TOKEN)")
