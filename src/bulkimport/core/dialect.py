"""csv module options derived from the configured dialect.

Escape rule: inside an enclosed field the escape character only stops the
next enclosure from ending the field. Both characters stay in the value,
so "C:\\temp" and "a\\"b" read back unchanged. Text goes through
preserve_escapes() before csv.reader sees it.
"""

import re
from collections.abc import Iterable, Iterator
from typing import Any

from bulkimport.core.config import CsvDialectSettings


def reader_options(dialect: CsvDialectSettings, *, delimiter: str | None = None) -> dict[str, Any]:
    """Keyword arguments for csv.reader over preserve_escapes() output.

    Args:
        dialect: Configured delimiter/enclosure/escape rules
        delimiter: Override the field delimiter (used for sub-fields such as
            "key=value" pairs, which keep the enclosure and escape rules)
    """
    return {
        "delimiter": delimiter if delimiter is not None else dialect.delimiter,
        "quotechar": dialect.enclosure,
        "escapechar": dialect.escape,
        "doublequote": True,
        "strict": False,
    }


def writer_options(dialect: CsvDialectSettings) -> dict[str, Any]:
    """Keyword arguments for csv.writer producing files the reader accepts.

    No escapechar: the writer would double every escape character it sees.
    """
    return {
        "delimiter": dialect.delimiter,
        "quotechar": dialect.enclosure,
        "doublequote": True,
        "lineterminator": "\n",
    }


def _escape_pattern(dialect: CsvDialectSettings) -> re.Pattern[str]:
    special = re.escape(dialect.escape + dialect.enclosure)
    return re.compile(f"{re.escape(dialect.escape)}([{special}]?)")


def preserve_escapes(text: str, dialect: CsvDialectSettings) -> str:
    """Rewrite text so csv.reader keeps every escape character.

    An escape followed by the enclosure or another escape becomes two
    escaped literals; any other escape becomes one escaped literal.
    """
    escape = dialect.escape
    if escape not in text:
        return text

    def replace(match: re.Match[str]) -> str:
        follower = match.group(1)
        return escape * 3 + follower if follower else escape * 2

    return _escape_pattern(dialect).sub(replace, text)


def escaped_lines(lines: Iterable[str], dialect: CsvDialectSettings) -> Iterator[str]:
    """Apply preserve_escapes() to each line of a file lazily."""
    for line in lines:
        yield preserve_escapes(line, dialect)


def mask_line_breaks(text: str) -> tuple[str, dict[int, str]]:
    """Replace CR and LF with private-use placeholders.

    csv.reader rejects line breaks in unquoted fields of a single line.

    Returns:
        (masked text, str.translate table restoring the line breaks)
    """
    if "\r" not in text and "\n" not in text:
        return text, {}
    placeholders = (chr(cp) for cp in range(0xE000, 0xF900) if chr(cp) not in text)
    cr, lf = next(placeholders), next(placeholders)
    masked = text.translate({ord("\r"): cr, ord("\n"): lf})
    return masked, {ord(cr): "\r", ord(lf): "\n"}
