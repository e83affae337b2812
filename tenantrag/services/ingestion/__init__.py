"""Document ingestion: extraction, chunking, embedding, batched vector upload."""

from tenantrag.services.ingestion.chunker import TextChunker
from tenantrag.services.ingestion.ingestion_service import IngestionService, StepTimeouts
from tenantrag.services.ingestion.text_extractor import FileFormat, TextExtractor, validate_text
from tenantrag.services.ingestion.vector_uploader import VectorUploader

__all__ = [
    "FileFormat",
    "IngestionService",
    "StepTimeouts",
    "TextChunker",
    "TextExtractor",
    "VectorUploader",
    "validate_text",
]
