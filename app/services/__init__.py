"""Service layer for the Archive Ingestion Service."""

from app.services.import_service import ImportService, get_import_service
from app.services.csv_import_service import CsvImportService, get_csv_import_service
from app.services.search_service import SearchService, get_search_service
from app.services.search_index_service import SearchIndexService, get_search_index_service

__all__ = [
    "ImportService",
    "get_import_service",
    "CsvImportService",
    "get_csv_import_service",
    "SearchService",
    "get_search_service",
    "SearchIndexService",
    "get_search_index_service",
]
