from spendsmart.schemas.base import (  # noqa: F401
    Category,
    DeleteResponse,
    ExtractedItem,
    ExtractionResult,
    GenerationConfig,
    LocalUpload,
    Receipt,
    ReceiptItem,
    ReceiptValidation,
    RemoteUpload,
    ScanRequest,
    SessionMode,
    StorageSession,
    UploadOutcome,
)
