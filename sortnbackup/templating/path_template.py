"""Destination path construction.

This module provides the PathTemplateEngine class, which renders a path
template for an entry into path segments below a target root.

Rendering rules:
    - every top-level element renders exactly one segment;
    - original_path / original_path_without_file_name render the entry's
      relative path components (possibly none);
    - merge_strings renders its children in order and concatenates them
      into one segment, however deeply merges are nested;
    - the last segment is the file name, the others are directories.

Example:
    >>> engine = PathTemplateEngine(MetadataCache())
    >>> engine.render((Literal("Images"), FileNameWithExtension()), entry)
    ['Images', 'photo.jpg']
"""

import os
from datetime import datetime
from pathlib import Path
from typing import List

from sortnbackup.exceptions import MetadataError, TemplateRenderError
from sortnbackup.models import Entry
from sortnbackup.models.path_elements import (
    DirectParentFolder,
    FileExtension,
    FileNameWithExtension,
    FileNameWithoutExtension,
    FormattedTime,
    Literal,
    Merge,
    OriginalPath,
    OriginalPathWithoutFileName,
    PathElement,
    PathTemplate,
    TimeSource,
)
from sortnbackup.scanning import MetadataCache

_SEPARATORS = {"/", os.sep}


class PathTemplateEngine:
    """Renders path templates using the shared MetadataCache.

    Rendering is deterministic for a given entry and cache content: the same
    source file always maps to the same destination, which keeps repeated
    copies idempotent.
    """

    def __init__(self, cache: MetadataCache) -> None:
        self.cache = cache

    def destination(self, root: Path, template: PathTemplate, entry: Entry) -> Path:
        """Render ``template`` and join it below ``root``.

        Raises:
            TemplateRenderError: If any element cannot be rendered.
        """
        return root.joinpath(*self.render(template, entry))

    def render(self, template: PathTemplate, entry: Entry) -> List[str]:
        """Render a template into path segments.

        Raises:
            TemplateRenderError: If an element cannot be rendered, renders an
                unsafe segment, or the template renders nothing.
        """
        segments: List[str] = []
        for element in template:
            if isinstance(element, OriginalPath):
                segments.extend(self._relative_parts(entry.relative_path.parts, entry))
            elif isinstance(element, OriginalPathWithoutFileName):
                segments.extend(self._relative_parts(entry.parent.parts, entry))
            elif isinstance(element, Merge):
                segments.append(self._checked(self._render_merge(element, entry), element, entry))
            else:
                segments.append(self._checked(self._render_text(element, entry), element, entry))

        if not segments:
            raise TemplateRenderError("path template rendered an empty path", entry)
        return segments

    def _render_merge(self, merge: Merge, entry: Entry) -> str:
        parts: List[str] = []
        pending: List[PathElement] = list(reversed(merge.children))
        while pending:
            element = pending.pop()
            if isinstance(element, Merge):
                pending.extend(reversed(element.children))
            else:
                parts.append(self._render_text(element, entry))
        return "".join(parts)

    def _render_text(self, element: PathElement, entry: Entry) -> str:
        if isinstance(element, Literal):
            return element.text
        if isinstance(element, FileNameWithExtension):
            return entry.name
        if isinstance(element, FileNameWithoutExtension):
            return entry.stem
        if isinstance(element, FileExtension):
            return entry.extension
        if isinstance(element, DirectParentFolder):
            parent = entry.parent.name
            if not parent:
                raise TemplateRenderError(
                    "direct_parent_folder: entry is directly in the source root", entry
                )
            return parent
        if isinstance(element, FormattedTime):
            return self._timestamp(element.source, entry).strftime(element.format)
        raise TemplateRenderError(f"{type(element).__name__} cannot be rendered as text", entry)

    def _timestamp(self, source: TimeSource, entry: Entry) -> datetime:
        try:
            if source is TimeSource.IMAGE_DATE_TIME:
                metadata = self.cache.image_metadata(entry)
                if metadata is None:
                    raise TemplateRenderError("missing time source img_date_time: not an image", entry)
                if metadata.date_time is None:
                    raise TemplateRenderError(
                        "missing time source img_date_time: image has no embedded date/time", entry
                    )
                return metadata.date_time

            stat_result = self.cache.stat(entry)
        except MetadataError as e:
            raise TemplateRenderError(f"missing time source {source.value}: {e}", entry) from e

        if source is TimeSource.ACCESS_TIME:
            return datetime.fromtimestamp(stat_result.st_atime)
        if source is TimeSource.MODIFIED_TIME:
            return datetime.fromtimestamp(stat_result.st_mtime)
        # st_birthtime only exists on some platforms; st_ctime is the closest fallback.
        return datetime.fromtimestamp(getattr(stat_result, "st_birthtime", stat_result.st_ctime))

    def _relative_parts(self, parts, entry: Entry) -> List[str]:
        return [self._checked(part, None, entry) for part in parts if part != "."]

    @staticmethod
    def _checked(segment: str, element, entry: Entry) -> str:
        label = type(element).__name__ if element is not None else "original path"
        if not segment:
            raise TemplateRenderError(f"{label} rendered an empty path segment", entry)
        if segment in (".", ".."):
            raise TemplateRenderError(f"{label} rendered the reserved segment '{segment}'", entry)
        if any(separator in segment for separator in _SEPARATORS):
            raise TemplateRenderError(f"{label} rendered a path separator in '{segment}'", entry)
        return segment
