from .validator import FileValidator, FileCheck
from .synthetic import SyntheticSheetGenerator

__all__ = ["FileValidator", "FileCheck", "SyntheticSheetGenerator"]
