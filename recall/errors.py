"""
Errors raised by the write paths.

Read and compute paths never raise; they degrade to defaults instead.
"""


class BulkValidationError(ValueError):
    """A referenced document failed validation; nothing was written."""

    def __init__(self, message: str, doc_id: str):
        super().__init__(message)
        self.doc_id = doc_id


class ItemNotFoundError(BulkValidationError):
    def __init__(self, doc_id: str, kind: str = "Item"):
        super().__init__(f"{kind} not found: {doc_id}", doc_id)


class UnauthorizedItemError(BulkValidationError):
    def __init__(self, doc_id: str, kind: str = "item"):
        super().__init__(f"Unauthorized access to {kind}: {doc_id}", doc_id)
