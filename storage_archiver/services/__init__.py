from .archiver import ArchiveResult, Archiver, entry_name
from .encoder import ArchiveEncoder, EncoderState, EncoderSummary
from .pipe import ArchivePipe

__all__ = [
    "ArchiveEncoder",
    "ArchivePipe",
    "ArchiveResult",
    "Archiver",
    "EncoderState",
    "EncoderSummary",
    "entry_name",
]
