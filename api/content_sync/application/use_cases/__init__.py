"""
Casos de uso de la aplicacion.
"""
from content_sync.application.use_cases.ingestion_use_cases import IngestionUseCases

__all__ = ["IngestionUseCases"]
