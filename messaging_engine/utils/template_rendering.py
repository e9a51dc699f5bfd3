"""
SMS template rendering utilities.

Transactional templates use single-brace placeholders, ``{first_name}``, with
``${value}`` as the currency form of ``{value}`` and ``{custom.<name>}`` for
recipient custom fields. Marketing bodies use ``{{ tag }}`` merge tags.
Placeholders left without a value are removed and whitespace is collapsed.
"""
import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from messaging_engine.models.templates import TemplateVariables

SINGLE_SEGMENT_LIMIT = 160
MULTIPART_SEGMENT_LIMIT = 153
SHORTENED_URL_LENGTH = 35

# Placeholder name -> variables consulted in order, first non-empty wins
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "company": ("company", "client_name"),
    "client_name": ("client_name", "company"),
    "provider": ("provider", "brand"),
    "brand": ("brand", "provider"),
    "link": ("link", "code"),
}

PLACEHOLDER_PATTERN = re.compile(
    r"(?P<merge>\{\{[^}]+\}\})"
    r"|(?P<currency>\$\{value\})"
    r"|\{custom\.(?P<custom>[^}]+)\}"
    r"|\{(?P<field>\w+)\}"
    r"|\{[^}]+\}",
    re.IGNORECASE,
)
LEFTOVER_PLACEHOLDER_PATTERN = re.compile(r"\{[^}]+\}")
LEFTOVER_MERGE_TAG_PATTERN = re.compile(r"\{\{[^}]+\}\}")
WHITESPACE_PATTERN = re.compile(r"\s+")
URL_PATTERN = re.compile(r"https?://[^\s<>\"{}|\\^`\[\]]+", re.IGNORECASE)

VariablesInput = Union[TemplateVariables, Mapping[str, Any]]


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _as_dict(variables: Optional[VariablesInput]) -> Dict[str, Any]:
    if variables is None:
        return {}
    if isinstance(variables, TemplateVariables):
        return variables.model_dump()
    return dict(variables)


def _lookup_field(name: str, values: Dict[str, Any]) -> str:
    """Resolve a placeholder name through the alias table."""
    key = name.lower()
    for source in FIELD_ALIASES.get(key, (key,)):
        value = values.get(source)
        if value is not None and value != "" and not isinstance(value, dict):
            return _format_value(value)
    return ""


def _normalize(text: str) -> str:
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def _strip_placeholders(value: str) -> str:
    return LEFTOVER_PLACEHOLDER_PATTERN.sub("", value)


def render_template(
    template: str,
    variables: Optional[VariablesInput] = None,
    keep_merge_tags: bool = False,
) -> str:
    """
    Render a transactional SMS template.

    Every placeholder is replaced in a single pass, so text supplied as a
    value is never read back as a placeholder. Brace tokens inside values
    are dropped.

    Args:
        template: Template with ``{field}`` placeholders
        variables: TemplateVariables or a plain mapping of the same fields
        keep_merge_tags: Leave ``{{ tag }}`` merge tags for render_merge_tags

    Returns:
        Rendered message, whitespace-normalized
    """
    if not template:
        return ""

    values = _as_dict(variables)
    custom = values.get("custom") or {}

    def _replace(match: "re.Match[str]") -> str:
        if match.group("merge"):
            return match.group(0) if keep_merge_tags else ""
        if match.group("currency"):
            return "$" + _strip_placeholders(_lookup_field("value", values))
        if match.group("custom") is not None:
            return _strip_placeholders(_format_value(custom.get(match.group("custom"))))
        field = match.group("field")
        if field is not None:
            return _strip_placeholders(_lookup_field(field, values))
        return ""

    return _normalize(PLACEHOLDER_PATTERN.sub(_replace, template))


def render_merge_tags(template: str, merge_data: Optional[Mapping[str, Any]] = None) -> str:
    """
    Render ``{{ tag }}`` merge tags in a marketing message.

    Unmatched tags are removed; whitespace is collapsed.
    """
    if not template:
        return ""

    result = template
    for key, value in (merge_data or {}).items():
        pattern = re.compile(r"\{\{\s*" + re.escape(str(key)) + r"\s*\}\}")
        replacement = _format_value(value)
        result = pattern.sub(lambda _m: replacement, result)

    result = LEFTOVER_MERGE_TAG_PATTERN.sub("", result)
    return _normalize(result)


def validate_template(template: str, required_vars: Iterable[str] = ()) -> Dict[str, Any]:
    """
    Check that a template contains each required placeholder.

    ``value`` is satisfied by either ``{value}`` or ``${value}``.

    Returns:
        Dict with ``is_valid`` and ``missing_vars``
    """
    missing: List[str] = []
    lowered = (template or "").lower()

    for name in required_vars:
        if "{" + name.lower() + "}" not in lowered:
            missing.append(name)

    return {"is_valid": not missing, "missing_vars": missing}


def get_segment_info(char_count: int) -> Dict[str, Any]:
    """Segment count for a GSM-7 message of the given length."""
    if char_count <= SINGLE_SEGMENT_LIMIT:
        return {"segments": 1, "is_multipart": False, "char_limit": SINGLE_SEGMENT_LIMIT}

    return {
        "segments": math.ceil(char_count / MULTIPART_SEGMENT_LIMIT),
        "is_multipart": True,
        "char_limit": MULTIPART_SEGMENT_LIMIT,
    }


def estimate_shortened_length(text: str) -> Dict[str, int]:
    """
    Estimate message length after the carrier shortens embedded links.

    Every URL longer than the shortened form is counted at that length.
    """
    text = text or ""
    urls = URL_PATTERN.findall(text)
    saved = sum(len(url) - SHORTENED_URL_LENGTH for url in urls if len(url) > SHORTENED_URL_LENGTH)

    return {
        "original_length": len(text),
        "estimated_length": len(text) - saved,
        "url_count": len(urls),
        "urls_saved": saved,
    }
