"""File operations package for sortnbackup.

This package provides the FileOperations class for writing to targets:
atomic file copies with timestamps preserved, up-to-date detection,
collision handling and log line appends.

Example:
    >>> from sortnbackup.operations import FileOperations
    >>> from sortnbackup.models import CollisionPolicy
    >>> ops = FileOperations(policy=CollisionPolicy.RENAME)
    >>> result = ops.copy_file(Path("photo.jpg"), Path("/backup/Images/photo.jpg"))
    >>> print(result.action, result.destination)
"""

from .file_operations import CopyResult, FileOperations

__all__ = ["CopyResult", "FileOperations"]
