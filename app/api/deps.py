"""
API Dependencies - Dependency Injection for FastAPI

Provides the request-scoped operator identity, client IP, and the
service singletons used by the v1 routers.
"""
from typing import Annotated, Optional

from fastapi import Depends, Header, Request

from app.services.csv_import_service import CsvImportService, get_csv_import_service
from app.services.import_service import ImportService, get_import_service
from app.services.search_index_service import SearchIndexService, get_search_index_service
from app.services.search_service import SearchService, get_search_service

DEFAULT_OPERATOR = "system"


# =============================================================================
# Request Context Dependencies
# =============================================================================

def get_operator(x_operator: Annotated[Optional[str], Header()] = None) -> str:
    """Operator name for audit entries (X-Operator header)."""
    if x_operator and x_operator.strip():
        return x_operator.strip()
    return DEFAULT_OPERATOR


def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client:
        return request.client.host
    return ""


Operator = Annotated[str, Depends(get_operator)]
ClientIP = Annotated[str, Depends(get_client_ip)]


# =============================================================================
# Service Dependencies
# =============================================================================

ImportServiceDep = Annotated[ImportService, Depends(get_import_service)]
CsvImportServiceDep = Annotated[CsvImportService, Depends(get_csv_import_service)]
SearchServiceDep = Annotated[SearchService, Depends(get_search_service)]
SearchIndexServiceDep = Annotated[SearchIndexService, Depends(get_search_index_service)]
