"""Project indexing: scan, parse, analyze, build indexes, persist."""

from .builder import ImportResolver, IndexBuilder
from .meta import MetaAnalyzer
from .parser import ASTParser, detect_language
from .pipeline import IndexProject, IndexProjectOptions
from .scanner import FileScanner

__all__ = [
    "ASTParser",
    "FileScanner",
    "ImportResolver",
    "IndexBuilder",
    "IndexProject",
    "IndexProjectOptions",
    "MetaAnalyzer",
    "detect_language",
]
