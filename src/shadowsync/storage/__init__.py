from .models import SourceRecord, MirrorRecord, Relationship, Association, in_sync, slugify
from .crud import RecordCRUD, SourceRepository, MirrorRepository

__all__ = [
    "SourceRecord",
    "MirrorRecord",
    "Relationship",
    "Association",
    "in_sync",
    "slugify",
    "RecordCRUD",
    "SourceRepository",
    "MirrorRepository",
]
