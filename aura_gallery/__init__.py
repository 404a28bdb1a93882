"""
Aura Gallery - metadata core for a personal gallery of ComfyUI generations
Author: Eric Hiss (GitHub: EricRollei)
Version: 1.0.0
"""
from .service import GalleryService
from .analytics import AnalyticsAggregator
from .importer import ImportReconciler
from .handlers.db import DatabaseHandler
from .handlers.embedded import EmbeddedMetadataHandler
from .models.metadata import GenerationParameters, ExtractionResult
from .models.records import ImageRecord, ImportSummary, CorpusSnapshot
from .utils.workflow_parser import WorkflowParser
from .utils.error_handling import (
    GalleryError, MalformedContainer, MetadataDecodeError, FilesystemFailure,
    NotFoundError, NotAuthorizedError
)

__version__ = "1.0.0"

__all__ = [
    'GalleryService', 'AnalyticsAggregator', 'ImportReconciler', 'DatabaseHandler',
    'EmbeddedMetadataHandler', 'GenerationParameters', 'ExtractionResult', 'ImageRecord',
    'ImportSummary', 'CorpusSnapshot', 'WorkflowParser', 'GalleryError', 'MalformedContainer',
    'MetadataDecodeError', 'FilesystemFailure', 'NotFoundError', 'NotAuthorizedError',
]
