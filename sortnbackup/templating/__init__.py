"""Path templating package for sortnbackup.

- PathTemplateEngine: Renders copy_to / log_file path templates into
  destination paths below a target root.
"""

from .path_template import PathTemplateEngine

__all__ = ["PathTemplateEngine"]
