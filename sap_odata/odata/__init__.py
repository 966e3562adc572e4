"""
sap_odata.odata - OData v2 service access
=========================================

- decode / decode_envelope: normalize ``d`` and ``d.results`` payloads
- QueryOptions: fluent $filter/$select/$top builder
- ODataService: typed CRUD against one service

"""

from sap_odata.odata.envelope import DecodedEnvelope, decode, decode_envelope
from sap_odata.odata.query import QueryOptions, escape_odata_literal
from sap_odata.odata.service import ODataService, key_predicate

__all__ = [
    "DecodedEnvelope",
    "decode",
    "decode_envelope",
    "QueryOptions",
    "escape_odata_literal",
    "ODataService",
    "key_predicate",
]
