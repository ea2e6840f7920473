"""Team export, GDPR export and account deletion."""

from .service import DELETED_COVER_LETTER, DELETED_MESSAGE, ExportFile, ExportService

__all__ = ["ExportService", "ExportFile", "DELETED_MESSAGE", "DELETED_COVER_LETTER"]
