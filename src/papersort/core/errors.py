"""Custom exception types for papersort.

Error messages follow one pattern:
- What failed (specific operation or component)
- Which object it failed on (bucket id, code, image reference)
- Why it failed (the specific condition)
- How to fix it, where there is something the caller can do
"""


class PaperSortError(Exception):
    """Base exception for all papersort errors."""

    pass


class ConfigValidationError(PaperSortError):
    """Raised when config.yaml fails Pydantic validation.

    Includes specific field errors with actionable messages.
    """

    pass


class ConfigLoadError(PaperSortError):
    """Raised when config.yaml cannot be loaded (file not found, YAML parse error)."""

    pass


class RegistryError(PaperSortError):
    """Base class for bucket registry failures."""

    pass


class DuplicateCodeError(RegistryError):
    """Raised when a bucket code is already taken (case-insensitive).

    Attributes:
        code: The code that collided
        existing_id: Id of the bucket already holding the code
    """

    def __init__(self, message: str, code: str, existing_id: str | None = None):
        super().__init__(message)
        self.code = code
        self.existing_id = existing_id


class UnknownBucketError(RegistryError):
    """Raised when an operation references a bucket id not in the registry.

    Attributes:
        bucket_id: The stale or nonexistent id
    """

    def __init__(self, message: str, bucket_id: str | None = None):
        super().__init__(message)
        self.bucket_id = bucket_id


class InvalidTargetError(PaperSortError):
    """Raised when a move targets a missing bucket or the source bucket itself.

    Attributes:
        source_id: Bucket the documents would leave
        target_id: Requested destination
    """

    def __init__(self, message: str, source_id: str | None = None, target_id: str | None = None):
        super().__init__(message)
        self.source_id = source_id
        self.target_id = target_id


class RecognizerError(PaperSortError):
    """Raised when a text recognizer cannot be set up or used."""

    pass


class OcrFailure(RecognizerError):
    """Raised when OCR could not produce text for one document.

    This is a non-fatal error - the pipeline marks the document as failed
    and continues with the next one.

    Attributes:
        image_ref: Reference of the image that failed
    """

    def __init__(self, message: str, image_ref: str | None = None):
        super().__init__(message)
        self.image_ref = image_ref


class PipelineStateError(PaperSortError):
    """Raised when a pipeline operation is not allowed in the current state.

    Attributes:
        state: The state the pipeline was in
    """

    def __init__(self, message: str, state: str | None = None):
        super().__init__(message)
        self.state = state
