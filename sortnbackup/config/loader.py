"""Configuration loading and validation.

The configuration is a YAML file with four top-level sections::

    settings:     run-wide settings (all optional)
    sources:      id -> {path, ignore_paths, disabled}
    targets:      id -> path
    file_groups:  id -> {sources, filter, rule}, evaluated in file order

Everything is validated here, before any traversal starts: unknown keys,
unknown filter / path element / rule names, invalid regular expressions,
invalid date/time formats and dangling source or target ids all raise
ConfigError naming the offending location.
"""

import logging
import re
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Tuple

import yaml

from sortnbackup.exceptions import ConfigError
from sortnbackup.models import (
    BackupConfig,
    CollisionPolicy,
    FileGroup,
    FileSizeStyle,
    Settings,
    Source,
    SourceFilter,
    Target,
)
from sortnbackup.models.filters import (
    FLAG_PREDICATES,
    AllOf,
    AnyOf,
    CatchAll,
    FilterExpr,
    Not,
    Predicate,
    PredicateKind,
    SizeBounds,
)
from sortnbackup.models.path_elements import (
    PATH_VALUED_ELEMENTS,
    SIMPLE_ELEMENTS,
    FormattedTime,
    Literal,
    Merge,
    PathElement,
    PathTemplate,
    TimeSource,
)
from sortnbackup.models.rules import CopyExact, CopyTo, Ignore, LogFile, Rule, Traverse

from .time_format import validate_time_format

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.yaml"
DEFAULT_JOURNAL_FILE = "sortnbackup.journal"

_TOP_LEVEL_KEYS = {"settings", "sources", "targets", "file_groups"}
_SETTINGS_KEYS = {"file_size_style", "collision_policy", "non_interactive_collision", "journal_path"}
_SOURCE_KEYS = {"path", "ignore_paths", "disabled"}
_GROUP_KEYS = {"sources", "filter", "rule"}


def load_config(path: Path) -> BackupConfig:
    """Read and validate a configuration file.

    Args:
        path: Path of the YAML configuration file.

    Returns:
        The validated BackupConfig.

    Raises:
        ConfigError: If the file cannot be read or is invalid.
    """
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read configuration file {path}: {e.strerror or e}")

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"cannot parse {path}: {e}")

    return build_config(data, base_dir=Path(path).resolve().parent, config_path=Path(path))


def build_config(
    data: Any,
    base_dir: Optional[Path] = None,
    config_path: Optional[Path] = None,
) -> BackupConfig:
    """Build a BackupConfig from parsed YAML data.

    Args:
        data: Result of ``yaml.safe_load``.
        base_dir: Directory relative source, target and journal paths are
            resolved against. Defaults to the current directory.
        config_path: File the data came from, kept for reporting.

    Raises:
        ConfigError: If the data is invalid.
    """
    base_dir = base_dir or Path.cwd()
    root = _require_mapping(data, "configuration")
    _reject_unknown_keys(root, _TOP_LEVEL_KEYS, None)

    settings = _build_settings(root.get("settings") or {}, base_dir)

    sources_raw = _require_mapping(root.get("sources"), "sources")
    if not sources_raw:
        raise ConfigError("at least one source is required", "sources")
    sources = {
        str(source_id): _build_source(str(source_id), raw, base_dir)
        for source_id, raw in sources_raw.items()
    }
    if not any(source.enabled for source in sources.values()):
        raise ConfigError("all sources are disabled", "sources")

    targets_raw = _require_mapping(root.get("targets"), "targets")
    targets = {
        str(target_id): _build_target(str(target_id), raw, base_dir)
        for target_id, raw in targets_raw.items()
    }

    groups_raw = _require_mapping(root.get("file_groups"), "file_groups")
    file_groups = tuple(
        _build_file_group(str(group_id), position, raw, sources, targets)
        for position, (group_id, raw) in enumerate(groups_raw.items())
    )

    _warn_on_nested_targets(sources, targets)

    return BackupConfig(
        sources=sources,
        targets=targets,
        file_groups=file_groups,
        settings=settings,
        config_path=config_path,
    )


# ---------------------------------------------------------------------------
# settings, sources, targets


def _build_settings(raw: Any, base_dir: Path) -> Settings:
    raw = _require_mapping(raw, "settings")
    _reject_unknown_keys(raw, _SETTINGS_KEYS, "settings")

    file_size_style = _enum_value(
        FileSizeStyle, raw.get("file_size_style", "binary"), "settings.file_size_style"
    )
    collision_policy = _enum_value(
        CollisionPolicy, raw.get("collision_policy", "ask"), "settings.collision_policy"
    )
    non_interactive = _enum_value(
        CollisionPolicy, raw.get("non_interactive_collision", "rename"),
        "settings.non_interactive_collision",
    )
    if non_interactive is CollisionPolicy.ASK:
        raise ConfigError("'ask' cannot be used when prompting is disabled",
                          "settings.non_interactive_collision")

    journal_path = _resolve(raw.get("journal_path", DEFAULT_JOURNAL_FILE), base_dir,
                            "settings.journal_path")

    return Settings(
        file_size_style=file_size_style,
        collision_policy=collision_policy,
        non_interactive_collision=non_interactive,
        journal_path=journal_path,
    )


def _build_source(source_id: str, raw: Any, base_dir: Path) -> Source:
    location = f"sources.{source_id}"
    raw = _require_mapping(raw, location)
    _reject_unknown_keys(raw, _SOURCE_KEYS, location)
    if "path" not in raw:
        raise ConfigError("missing required key 'path'", location)

    ignore_raw = raw.get("ignore_paths") or []
    if not isinstance(ignore_raw, list):
        raise ConfigError("must be a list of paths", f"{location}.ignore_paths")
    ignore_paths = tuple(
        _relative_folder(item, f"{location}.ignore_paths[{i}]")
        for i, item in enumerate(ignore_raw)
    )

    disabled = raw.get("disabled", False)
    if not isinstance(disabled, bool):
        raise ConfigError("must be true or false", f"{location}.disabled")

    return Source(
        id=source_id,
        path=_resolve(raw["path"], base_dir, f"{location}.path"),
        ignore_paths=ignore_paths,
        enabled=not disabled,
    )


def _build_target(target_id: str, raw: Any, base_dir: Path) -> Target:
    location = f"targets.{target_id}"
    if isinstance(raw, dict):
        _reject_unknown_keys(raw, {"path"}, location)
        raw = raw.get("path")
    return Target(id=target_id, path=_resolve(raw, base_dir, location))


def _warn_on_nested_targets(sources: Dict[str, Source], targets: Dict[str, Target]) -> None:
    for target in targets.values():
        for source in sources.values():
            if not source.enabled:
                continue
            if target.path == source.path or source.path in target.path.parents:
                logger.warning(
                    "Target '%s' (%s) lies inside source '%s'; add it to the source's "
                    "ignore_paths to avoid backing up the backup.",
                    target.id, target.path, source.id,
                )


# ---------------------------------------------------------------------------
# file groups


def _build_file_group(
    group_id: str,
    position: int,
    raw: Any,
    sources: Dict[str, Source],
    targets: Dict[str, Target],
) -> FileGroup:
    location = f"file_groups.{group_id}"
    raw = _require_mapping(raw, location)
    _reject_unknown_keys(raw, _GROUP_KEYS, location)
    if "filter" not in raw:
        raise ConfigError("missing required key 'filter'", location)

    return FileGroup(
        id=group_id,
        position=position,
        filter=parse_filter(raw["filter"], f"{location}.filter"),
        rule=parse_rule(raw.get("rule"), f"{location}.rule", targets),
        sources=_build_source_filter(raw.get("sources", "all"), f"{location}.sources", sources),
    )


def _build_source_filter(raw: Any, location: str, sources: Dict[str, Source]) -> SourceFilter:
    if raw == "all":
        return SourceFilter()
    if not isinstance(raw, dict) or len(raw) != 1:
        raise ConfigError("must be 'all', {only: [...]} or {except: [...]}", location)

    (key, ids), = raw.items()
    if key not in ("only", "except"):
        raise ConfigError(f"unknown source filter '{key}'", location)
    if isinstance(ids, str):
        ids = [ids]
    if not isinstance(ids, list):
        raise ConfigError("must be a list of source ids", f"{location}.{key}")
    for source_id in ids:
        if source_id not in sources:
            raise ConfigError(f"unknown source '{source_id}'", f"{location}.{key}")

    if key == "only":
        return SourceFilter(only=frozenset(ids))
    return SourceFilter(excluded=frozenset(ids))


def parse_filter(raw: Any, location: str = "filter") -> FilterExpr:
    """Parse a filter expression.

    A filter is either a bare string (``is_file``, ``catch_all``...) or a
    mapping with exactly one key (``all: [...]``, ``has_extension: [...]``...).

    Raises:
        ConfigError: If the expression is invalid.
    """
    if isinstance(raw, str):
        return _parse_filter_node(raw, None, location, bare=True)
    if isinstance(raw, dict) and len(raw) == 1:
        (name, value), = raw.items()
        return _parse_filter_node(str(name), value, f"{location}.{name}", bare=False)
    raise ConfigError("a filter must be a name or a mapping with exactly one key", location)


def _parse_filter_node(name: str, value: Any, location: str, bare: bool) -> FilterExpr:
    if name in ("all", "any"):
        if bare or not isinstance(value, list):
            raise ConfigError(f"'{name}' takes a list of filters", location)
        children = tuple(parse_filter(child, f"{location}[{i}]") for i, child in enumerate(value))
        return AllOf(children) if name == "all" else AnyOf(children)
    if name == "not":
        if bare or value is None:
            raise ConfigError("'not' takes a single filter", location)
        return Not(parse_filter(value, location))
    if name == "catch_all":
        return CatchAll()

    try:
        kind = PredicateKind(name)
    except ValueError:
        raise ConfigError(f"unknown filter '{name}'", location) from None

    if kind in FLAG_PREDICATES:
        if value is not None:
            raise ConfigError(f"'{name}' takes no argument", location)
        return Predicate(kind)
    if bare or value is None:
        raise ConfigError(f"'{name}' requires an argument", location)

    return Predicate(kind, _predicate_argument(kind, value, location))


def _predicate_argument(kind: PredicateKind, value: Any, location: str) -> Any:
    if kind is PredicateKind.HAS_EXTENSION:
        values = [value] if isinstance(value, str) else value
        if not isinstance(values, list) or not values:
            raise ConfigError("must be a non-empty list of extensions", location)
        extensions = frozenset(str(ext).lstrip(".").lower() for ext in values)
        if "" in extensions:
            raise ConfigError("extensions must not be empty", location)
        return extensions

    if kind is PredicateKind.FILE_NAME:
        if not isinstance(value, str) or not value:
            raise ConfigError("must be a file name", location)
        return value.lower()

    if kind in (PredicateKind.FILE_NAME_MATCHES_REGEX, PredicateKind.PATH_MATCHES_REGEX):
        if not isinstance(value, str):
            raise ConfigError("must be a regular expression string", location)
        try:
            return re.compile(value)
        except re.error as e:
            raise ConfigError(f"invalid regular expression '{value}': {e}", location) from None

    if kind in (PredicateKind.IN_FOLDER, PredicateKind.DIRECTLY_IN_FOLDER):
        return _relative_folder(value, location, allow_root=True)

    if kind is PredicateKind.IMG_SIZE:
        return _size_bounds(value, location)

    raise ConfigError(f"unsupported filter '{kind.value}'", location)


def _size_bounds(value: Any, location: str) -> SizeBounds:
    value = _require_mapping(value, location)
    _reject_unknown_keys(value, {"min", "max"}, location)
    bounds = {}
    for key in ("min", "max"):
        bound = value.get(key)
        if bound is None:
            continue
        if isinstance(bound, bool) or not isinstance(bound, int) or bound < 0:
            raise ConfigError("must be a non-negative integer", f"{location}.{key}")
        bounds[key] = bound
    if not bounds:
        raise ConfigError("requires 'min' and/or 'max'", location)
    if "min" in bounds and "max" in bounds and bounds["min"] > bounds["max"]:
        raise ConfigError("'min' must not exceed 'max'", location)
    return SizeBounds(**bounds)


# ---------------------------------------------------------------------------
# rules and path templates


def parse_rule(raw: Any, location: str, targets: Dict[str, Target]) -> Rule:
    """Parse a file group rule; a missing rule means ``traverse``.

    Raises:
        ConfigError: If the rule is invalid or names an unknown target.
    """
    if raw is None or raw == "traverse":
        return Traverse()
    if raw == "ignore":
        return Ignore()
    if isinstance(raw, str):
        raise ConfigError(f"unknown rule '{raw}'", location)
    if not isinstance(raw, dict) or len(raw) != 1:
        raise ConfigError("a rule must be a name or a mapping with exactly one key", location)

    (name, body), = raw.items()
    location = f"{location}.{name}"

    if name == "copy_exact":
        if isinstance(body, str):
            body = {"target": body}
        body = _require_mapping(body, location)
        _reject_unknown_keys(body, {"target"}, location)
        return CopyExact(target=_target_id(body, location, targets))

    if name == "copy_to":
        body = _require_mapping(body, location)
        _reject_unknown_keys(body, {"target", "path"}, location)
        return CopyTo(
            target=_target_id(body, location, targets),
            path=parse_path_template(body.get("path"), f"{location}.path"),
        )

    if name == "log_file":
        body = _require_mapping(body, location)
        _reject_unknown_keys(body, {"target", "log_file", "full_path"}, location)
        full_path = body.get("full_path", False)
        if not isinstance(full_path, bool):
            raise ConfigError("must be true or false", f"{location}.full_path")
        return LogFile(
            target=_target_id(body, location, targets),
            log_file=parse_path_template(body.get("log_file"), f"{location}.log_file"),
            full_path=full_path,
        )

    raise ConfigError(f"unknown rule '{name}'", location)


def parse_path_template(raw: Any, location: str = "path") -> PathTemplate:
    """Parse a list of path elements.

    Raises:
        ConfigError: If the list is empty or an element is invalid.
    """
    if not isinstance(raw, list) or not raw:
        raise ConfigError("must be a non-empty list of path elements", location)
    return tuple(_parse_element(item, f"{location}[{i}]", merged=False) for i, item in enumerate(raw))


def _parse_element(raw: Any, location: str, merged: bool) -> PathElement:
    if isinstance(raw, str):
        name, value, bare = raw, None, True
    elif isinstance(raw, dict) and len(raw) == 1:
        (name, value), = raw.items()
        bare = False
    else:
        raise ConfigError("a path element must be a name or a mapping with exactly one key", location)

    if name in SIMPLE_ELEMENTS:
        if value is not None:
            raise ConfigError(f"'{name}' takes no argument", location)
        element = SIMPLE_ELEMENTS[name]()
        if merged and isinstance(element, PATH_VALUED_ELEMENTS):
            raise ConfigError(
                f"'{name}' renders a path and cannot be part of merge_strings", location
            )
        return element

    if name == "file_name":
        if bare or not isinstance(value, (str, int)) or value == "":
            raise ConfigError("'file_name' takes a non-empty string", location)
        text = str(value)
        if "/" in text or "\\" in text or text in (".", ".."):
            raise ConfigError(
                f"'{text}' is not a single folder or file name; use one element per level",
                location,
            )
        return Literal(text)

    if name == "merge_strings":
        if bare or not isinstance(value, list) or not value:
            raise ConfigError("'merge_strings' takes a non-empty list of path elements", location)
        return Merge(tuple(
            _parse_element(item, f"{location}.merge_strings[{i}]", merged=True)
            for i, item in enumerate(value)
        ))

    try:
        source = TimeSource(name)
    except ValueError:
        raise ConfigError(f"unknown path element '{name}'", location) from None
    if bare or not isinstance(value, str):
        raise ConfigError(f"'{name}' takes a date/time format string", location)
    try:
        return FormattedTime(source, validate_time_format(value))
    except ValueError as e:
        raise ConfigError(str(e), location) from None


# ---------------------------------------------------------------------------
# helpers


def _require_mapping(value: Any, location: str) -> Dict[Any, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError("must be a mapping", location)
    return value


def _reject_unknown_keys(mapping: Dict[Any, Any], allowed: set, location: Optional[str]) -> None:
    unknown = sorted(str(key) for key in mapping if key not in allowed)
    if unknown:
        raise ConfigError(f"unknown key(s): {', '.join(unknown)}", location)


def _enum_value(enum_cls, value: Any, location: str):
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise ConfigError(f"'{value}' is not one of: {choices}", location) from None


def _target_id(body: Dict[str, Any], location: str, targets: Dict[str, Target]) -> str:
    target_id = body.get("target")
    if not isinstance(target_id, str):
        raise ConfigError("missing required key 'target'", location)
    if target_id not in targets:
        raise ConfigError(f"unknown target '{target_id}'", f"{location}.target")
    return target_id


def _resolve(value: Any, base_dir: Path, location: str) -> Path:
    if not isinstance(value, str) or not value:
        raise ConfigError("must be a path", location)
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path


def _relative_folder(value: Any, location: str, allow_root: bool = False) -> PurePosixPath:
    """Normalize a folder given with either separator into a relative POSIX path."""
    if not isinstance(value, str):
        raise ConfigError("must be a relative path", location)
    normalized = value.replace("\\", "/").strip("/")
    if not normalized:
        if allow_root:
            return PurePosixPath(".")
        raise ConfigError("must not be empty", location)
    path = PurePosixPath(normalized)
    if ".." in path.parts:
        raise ConfigError("must not contain '..'", location)
    return path


def describe_config(config: BackupConfig) -> List[Tuple[str, str, str]]:
    """Return (group, sources, rule) rows describing the file groups in order."""
    rows = []
    for group in config.file_groups:
        if group.sources.only is not None:
            scope = "only " + ", ".join(sorted(group.sources.only))
        elif group.sources.excluded:
            scope = "except " + ", ".join(sorted(group.sources.excluded))
        else:
            scope = "all"
        rule = group.rule
        if isinstance(rule, (CopyTo, CopyExact, LogFile)):
            rule_text = f"{_RULE_NAMES[type(rule)]} -> {rule.target}"
        else:
            rule_text = _RULE_NAMES[type(rule)]
        rows.append((group.id, scope, rule_text))
    return rows


_RULE_NAMES = {
    Ignore: "ignore",
    Traverse: "traverse",
    CopyTo: "copy_to",
    CopyExact: "copy_exact",
    LogFile: "log_file",
}
