"""Configuration package for sortnbackup.

- load_config / build_config: Read and validate the YAML configuration.
- parse_filter / parse_path_template / parse_rule: Parsers for the rule
  vocabulary, usable on their own (tests, tooling).
"""

from .loader import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_JOURNAL_FILE,
    build_config,
    describe_config,
    load_config,
    parse_filter,
    parse_path_template,
    parse_rule,
)

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_JOURNAL_FILE",
    "build_config",
    "describe_config",
    "load_config",
    "parse_filter",
    "parse_path_template",
    "parse_rule",
]
