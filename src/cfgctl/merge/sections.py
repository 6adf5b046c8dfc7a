"""Section-level merge of generated AWS config into an existing file.

Hand-authored sections are preserved verbatim. A section is treated as
previously generated, and replaced, when it carries the marker key or when
its profile name is being generated again.
"""

from dataclasses import dataclass, field
from pathlib import Path

from cfgctl.core.exceptions import MergeError
from cfgctl.core.models import MergePolicy
from cfgctl.utils.logging import get_logger

logger = get_logger(__name__)

PROFILE_PREFIX = "profile "


@dataclass
class ConfigSection:
    """One ``[header]`` block with its raw text and key names."""

    header: str = ""
    name: str = ""
    keys: list[str] = field(default_factory=list)
    raw: str = ""

    def has_key(self, key: str) -> bool:
        """Case-insensitive key lookup."""
        key = key.strip().lower()
        if not key:
            return False
        return any(existing.lower() == key for existing in self.keys)

    def is_session(self, session_name: str) -> bool:
        """Return True for the ``[sso-session NAME]`` block of ``session_name``."""
        session_name = session_name.strip()
        if not session_name or not self.header:
            return False
        return self.header.lower() == f"sso-session {session_name}".lower()


def profile_name(header: str) -> str:
    """Profile name of a ``profile NAME`` header, or "" for any other section."""
    header = header.strip()
    if header.lower().startswith(PROFILE_PREFIX):
        return header[len(PROFILE_PREFIX) :].strip()
    return ""


def parse_config_sections(content: str) -> list[ConfigSection]:
    """Split INI-style content into sections.

    Text before the first header becomes an unnamed section. Each section
    keeps its raw lines, including trailing blank lines and comments.
    """
    sections: list[ConfigSection] = []
    current = ConfigSection()

    for line in content.replace("\r\n", "\n").split("\n"):
        stripped = line.strip()

        if stripped.startswith("[") and stripped.endswith("]"):
            if current.raw or current.header or current.keys:
                sections.append(current)
            header = stripped[1:-1].strip()
            current = ConfigSection(header=header, name=profile_name(header), raw=line + "\n")
            continue

        if stripped and "=" in stripped and not stripped.startswith((";", "#")):
            key = stripped.split("=", 1)[0].strip()
            if key:
                current.keys.append(key)
        current.raw += line + "\n"

    if current.raw or current.header or current.keys:
        sections.append(current)

    return sections


def join_sections(sections: list[ConfigSection]) -> str:
    """Concatenate sections, keeping a blank line between them."""
    parts = []
    for index, section in enumerate(sections):
        raw = section.raw
        if index < len(sections) - 1 and not raw.endswith("\n\n"):
            raw += "\n"
        parts.append(raw)
    return "".join(parts).rstrip("\n")


def read_config_file(path: str) -> str:
    """Read an existing config file; a missing file reads as "".

    Raises:
        MergeError: If the path is blank or the file cannot be read
    """
    if not path or not path.strip():
        raise MergeError("config path is empty")

    try:
        return Path(path).read_text()
    except FileNotFoundError:
        return ""
    except OSError as e:
        raise MergeError(f"read config file {path!r}: {e}") from e


def merge_config_content(
    existing: str,
    generated: str,
    generated_names: list[str],
    marker_key: str,
    session_name: str = "",
) -> str:
    """Merge freshly generated sections into existing content.

    Kept existing sections come first, in their original order, followed by
    every generated section. An existing section is dropped when it is the
    regenerated sso-session block, when its profile name is in
    ``generated_names``, or when it carries ``marker_key``. Sections that
    are not ``[profile ...]`` sections are otherwise always kept.

    With an empty marker key nothing is pruned and ``generated`` is
    returned unchanged.

    Args:
        existing: Current file content
        generated: Newly synthesized content
        generated_names: Profile names present in ``generated``
        marker_key: Key identifying previously generated sections
        session_name: SSO session whose block is regenerated

    Returns:
        Merged content without a trailing newline
    """
    marker_key = marker_key.strip()
    if not marker_key or not existing.strip():
        return generated

    names = {name for name in generated_names if name.strip()}
    kept = []
    pruned = 0

    for section in parse_config_sections(existing):
        if section.is_session(session_name):
            continue
        if not section.name:
            kept.append(section)
            continue
        if section.name in names or section.has_key(marker_key):
            pruned += 1
            continue
        kept.append(section)

    logger.debug("config_sections_merged", kept=len(kept), replaced=pruned)
    return join_sections(kept + parse_config_sections(generated))


def merge_with_file(path: str, generated: str, policy: MergePolicy) -> str:
    """Merge generated content into the file at ``path`` using ``policy``.

    Raises:
        MergeError: If the existing file cannot be read
    """
    if not policy.marker_key.strip():
        return generated

    return merge_config_content(
        read_config_file(path),
        generated,
        policy.generated_names,
        policy.marker_key,
        policy.session_name,
    )
