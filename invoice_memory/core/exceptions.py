"""Exceptions raised by the correction pipeline and memory repositories."""


class InvoiceMemoryError(Exception):
    """Base exception for the invoice correction memory."""

    pass


class StageFailure(InvoiceMemoryError):
    """A pipeline stage failed; the original error is kept as __cause__."""

    stage = "pipeline"

    def __init__(self, message: str, document_id: str = None):
        super().__init__(f"{self.stage.capitalize()} stage failed: {message}")
        self.document_id = document_id


class RecallFailure(StageFailure):
    """Raised when memory for a document cannot be loaded."""

    stage = "recall"


class ApplyFailure(StageFailure):
    """Raised when corrections cannot be proposed for a document."""

    stage = "apply"


class LearnFailure(StageFailure):
    """Raised when human feedback cannot be written to memory."""

    stage = "learn"


class MemoryNotFound(InvoiceMemoryError):
    """Raised when reinforcing or rejecting a memory id that does not exist."""

    def __init__(self, kind: str, memory_id: int):
        super().__init__(f"{kind} memory {memory_id} not found")
        self.kind = kind
        self.memory_id = memory_id
