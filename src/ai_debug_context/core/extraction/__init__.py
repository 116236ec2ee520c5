from .result_parser import ResultParser

__all__ = ["ResultParser"]
