"""Naming templates for generated configuration entries."""

import re
from collections.abc import Mapping

from cfgctl.core.exceptions import TemplateError, UnknownPlaceholderError

PLACEHOLDER_PATTERN = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def render_name(template: str, fields: Mapping[str, str]) -> str:
    """Substitute ``{placeholder}`` tokens in a naming template.

    Args:
        template: Template such as ``{profile}-{cluster}``
        fields: Placeholder values

    Returns:
        Rendered name, trimmed

    Raises:
        TemplateError: If the template is blank or renders an empty name
        UnknownPlaceholderError: If the template contains a placeholder not
            in ``fields`` or an unbalanced brace
    """
    template = template.strip()
    if not template:
        raise TemplateError("naming template cannot be empty")

    leftover = PLACEHOLDER_PATTERN.sub(
        lambda match: "" if match.group(1) in fields else match.group(0), template
    )
    if "{" in leftover or "}" in leftover:
        raise UnknownPlaceholderError(
            f"naming template contains unknown placeholders: {template}"
        )

    rendered = PLACEHOLDER_PATTERN.sub(lambda match: fields[match.group(1)], template).strip()
    if not rendered:
        raise TemplateError(f"naming template {template!r} resolved to an empty name")
    return rendered
