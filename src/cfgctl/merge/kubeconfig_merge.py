"""Kubeconfig loading, merging and writing."""

import os
from fnmatch import fnmatchcase
from pathlib import Path

import yaml

from cfgctl.core.config import MergeConfig
from cfgctl.core.exceptions import ConfigurationError, MergeError
from cfgctl.synthesis.kubeconfig import Kubeconfig
from cfgctl.utils.logging import get_logger
from cfgctl.utils.paths import write_private_file

logger = get_logger(__name__)


def load_kubeconfig(path: str) -> Kubeconfig | None:
    """Load a kubeconfig file.

    Returns:
        The parsed kubeconfig, or None when the file does not exist

    Raises:
        MergeError: If the file cannot be read or is not a valid kubeconfig
    """
    if not path or not path.strip():
        raise MergeError("kubeconfig path is empty")

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        return None
    except (OSError, yaml.YAMLError) as e:
        raise MergeError(f"load kubeconfig {path}: {e}") from e

    if data is None:
        return Kubeconfig()
    if not isinstance(data, dict):
        raise MergeError(f"load kubeconfig {path}: top level must be a mapping")

    try:
        return Kubeconfig.from_dict(data)
    except ConfigurationError as e:
        raise MergeError(f"load kubeconfig {path}: {e}") from e


def merge_into(target: Kubeconfig, source: Kubeconfig) -> None:
    """Union ``source`` into ``target``; entries from ``source`` win on conflicts.

    Scalar settings are only overwritten when ``source`` sets them.
    """
    if source.kind:
        target.kind = source.kind
    if source.api_version:
        target.api_version = source.api_version
    if source.current_context:
        target.current_context = source.current_context
    if source.preferences:
        target.preferences = dict(source.preferences)

    target.clusters.update(source.clusters)
    target.users.update(source.users)
    target.contexts.update(source.contexts)


def _normalize_patterns(patterns: list[str]) -> list[str]:
    return sorted(pattern.strip() for pattern in patterns if pattern.strip())


def _matches(base: str, rel: str, patterns: list[str]) -> bool:
    return any(fnmatchcase(base, pattern) or fnmatchcase(rel, pattern) for pattern in patterns)


def resolve_merge_files(merge_config: MergeConfig) -> list[str]:
    """Find kubeconfig files to merge under the source directory.

    A file is selected when its base name or its path relative to the source
    directory matches an include pattern and no exclude pattern.

    Returns:
        Sorted absolute file paths; empty when the directory does not exist

    Raises:
        MergeError: If the source path is not a readable directory
    """
    source_dir = merge_config.source_dir.strip()
    if not source_dir:
        raise MergeError("merge source directory is empty")

    root = Path(source_dir)
    if not root.exists():
        return []
    if not root.is_dir():
        raise MergeError(f"merge source path is not a directory: {source_dir}")

    include = _normalize_patterns(merge_config.include_patterns)
    exclude = _normalize_patterns(merge_config.exclude_patterns)

    def on_error(error: OSError) -> None:
        raise MergeError(f"merge source directory cannot be read: {error}") from error

    matches = set()
    for dirpath, _dirnames, filenames in os.walk(root, onerror=on_error):
        for filename in filenames:
            path = Path(dirpath) / filename
            rel = path.relative_to(root).as_posix()
            if not _matches(filename, rel, include) or _matches(filename, rel, exclude):
                continue
            matches.add(str(path))

    return sorted(matches)


def merge_kubeconfigs(
    output_path: str, merge_config: MergeConfig | None, discovered: Kubeconfig | None
) -> tuple[Kubeconfig, list[str]]:
    """Merge the existing output, merge sources and discovered entries.

    Sources are applied in that order, so discovered entries win over merge
    sources, which win over the existing output.

    Args:
        output_path: Current kubeconfig path (may not exist)
        merge_config: Merge source settings, or None to skip merge sources
        discovered: Newly generated kubeconfig (optional)

    Returns:
        Tuple of (merged kubeconfig, merged source files)

    Raises:
        MergeError: If any existing input cannot be read
    """
    merged = Kubeconfig()

    if output_path:
        existing = load_kubeconfig(output_path)
        if existing is not None:
            merge_into(merged, existing)

    files = resolve_merge_files(merge_config) if merge_config is not None else []
    for path in files:
        if path == output_path:
            continue
        source = load_kubeconfig(path)
        if source is not None:
            merge_into(merged, source)

    if discovered is not None:
        merge_into(merged, discovered)

    logger.debug(
        "kubeconfigs_merged",
        sources=len(files),
        contexts=len(merged.contexts),
    )
    return merged, files


def dump_kubeconfig(config: Kubeconfig) -> str:
    """Serialize a kubeconfig to YAML."""
    return yaml.safe_dump(config.to_dict(), default_flow_style=False, sort_keys=False)


def write_kubeconfig(path: str, config: Kubeconfig) -> None:
    """Write a kubeconfig file readable only by the owner."""
    write_private_file(path, dump_kubeconfig(config))
