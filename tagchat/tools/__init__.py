from .registry import ToolRegistry
from .processes import BackgroundProcess, ProcessRegistry
from .file_ops import FileOps, FileOperationError
from .shell import ShellExecutor
__all__ = ["ToolRegistry", "BackgroundProcess", "ProcessRegistry",
           "FileOps", "FileOperationError", "ShellExecutor"]
