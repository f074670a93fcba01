"""Rule file metadata parser.

Two mutually exclusive metadata formats are recognised:

* a ``---``-delimited frontmatter block of ``key: value`` lines at the very
  top of the file, and
* inline bullets anywhere in the text: ``- Description: ...``,
  ``- Last Updated: ...``, ``- Version: ...``.

Both are scanned line by line; this is deliberately not a YAML parser. The
leading ``-`` is mandatory for inline bullets so that prose such as
``Version: 2.0`` inside a rule body is never mistaken for metadata.
"""

from __future__ import annotations

import re

import structlog

from agentrules.models.rules import RuleContent

log = structlog.get_logger()

_FRONTMATTER_RE = re.compile(r"^---\s*\r?\n(.*?)\r?\n---\s*\r?\n(.*)$", re.DOTALL)
_QUOTES_RE = re.compile(r"^[\"']|[\"']$")

_INLINE_DESCRIPTION_RE = re.compile(r"(?:^|\r?\n)\s*-\s*Description:\s*(.+?)(?:\r?\n|$)", re.I)
_INLINE_LAST_UPDATED_RE = re.compile(r"(?:^|\r?\n)\s*-\s*Last Updated:\s*(.+?)(?:\r?\n|$)", re.I)
_INLINE_VERSION_RE = re.compile(r"(?:^|\r?\n)\s*-\s*Version:\s*(.+?)(?:\r?\n|$)", re.I)

_H1_RE = re.compile(r"^#\s+(.+?)(?:\r?\n|$)", re.MULTILINE)
_PARAGRAPH_RE = re.compile(r"(?:^|\r?\n)(?!#)([^\r\n]+(?:\r?\n(?!#)[^\r\n]+)*)", re.MULTILINE)
_SENTENCE_END_RE = re.compile(r"[.!?]")

_FRONTMATTER_KEYS = {
    "description": "description",
    "last_updated": "last_updated",
    "lastupdated": "last_updated",
    "updated": "last_updated",
    "version": "version",
}


def parse_rule_content(text: str, domain: str) -> RuleContent:
    """Turn raw rule file text into a ``RuleContent``.

    Never raises: on any internal failure the whole trimmed text is returned
    as content with a generated description.
    """
    try:
        fields: dict[str, str] = {}
        body = text

        match = _FRONTMATTER_RE.match(text)
        if match:
            fields.update(_parse_frontmatter(match.group(1)))
            body = match.group(2)
        else:
            fields.update(_parse_inline_metadata(text))

        if not fields.get("description"):
            fields["description"] = generate_description(body, domain)

        return RuleContent(domain=domain, content=body.strip(), **fields)
    except Exception:
        log.warning("rule_parse_error", domain=domain, exc_info=True)
        return RuleContent(
            domain=domain,
            content=text.strip(),
            description=generate_description(text, domain),
        )


def _parse_frontmatter(block: str) -> dict[str, str]:
    fields: dict[str, str] = {}
    for line in block.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        key, sep, value = stripped.partition(":")
        if not sep:
            continue

        field = _FRONTMATTER_KEYS.get(key.strip().lower())
        if field is not None:
            fields[field] = _QUOTES_RE.sub("", value.strip())
    return fields


def _parse_inline_metadata(text: str) -> dict[str, str]:
    fields: dict[str, str] = {}
    for field, pattern in (
        ("description", _INLINE_DESCRIPTION_RE),
        ("last_updated", _INLINE_LAST_UPDATED_RE),
        ("version", _INLINE_VERSION_RE),
    ):
        match = pattern.search(text)
        if match:
            fields[field] = match.group(1).strip()
    return fields


def generate_description(text: str, domain: str) -> str:
    """Derive a description for rule files that do not declare one.

    Order of preference: the first H1 (unless it just repeats the domain),
    the first sentence of the first non-heading paragraph, then a template.
    """
    heading = _H1_RE.search(text)
    if heading:
        title = heading.group(1).strip()
        if title.lower() != domain.lower():
            return title

    paragraph_match = _PARAGRAPH_RE.search(text)
    if paragraph_match:
        paragraph = paragraph_match.group(1).strip()
        first_sentence = _SENTENCE_END_RE.split(paragraph)[0]
        if len(first_sentence) > 10:
            ellipsis = "..." if len(first_sentence) < len(paragraph) else ""
            return first_sentence.strip() + ellipsis

    return default_description(domain)


def default_description(domain: str) -> str:
    """Templated description used when nothing better can be derived."""
    return f"Development rules and guidelines for {re.sub(r'[-_]', ' ', domain)}"
