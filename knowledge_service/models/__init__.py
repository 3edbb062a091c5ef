from .knowledge_entry import KnowledgeEntry, KnowledgeVersion, ConfidenceLevel, KnowledgeCategory
from .knowledge_gap import KnowledgeGap, GapStatus
from .query_match import QueryMatch
from .job_log import JobExecutionLog

__all__ = [
    "KnowledgeEntry",
    "KnowledgeVersion",
    "ConfidenceLevel",
    "KnowledgeCategory",
    "KnowledgeGap",
    "GapStatus",
    "QueryMatch",
    "JobExecutionLog"
]
