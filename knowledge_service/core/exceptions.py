"""
Custom exceptions for the knowledge service.
"""


class KnowledgeServiceError(Exception):
    """Base exception for knowledge service errors"""
    pass


class KnowledgeEntryNotFoundError(KnowledgeServiceError):
    """Raised when a knowledge entry is not found"""
    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Knowledge entry '{entry_id}' not found")


class GapNotFoundError(KnowledgeServiceError):
    """Raised when a knowledge gap is not found"""
    def __init__(self, gap_id: str):
        self.gap_id = gap_id
        super().__init__(f"Knowledge gap '{gap_id}' not found")


class QueryMatchNotFoundError(KnowledgeServiceError):
    """Raised when a query match record is not found"""
    def __init__(self, match_id: str):
        self.match_id = match_id
        super().__init__(f"Query match '{match_id}' not found")


class InvalidStatusTransitionError(KnowledgeServiceError):
    """Raised when a gap status change is not allowed by the lifecycle"""
    def __init__(self, current_status: str, new_status: str):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(
            f"Cannot change gap status from '{current_status}' to '{new_status}'"
        )


class ConfigurationError(KnowledgeServiceError):
    """Raised when a configuration value is invalid"""
    pass
