"""Host filtering by label-matcher injection into PromQL queries.

Business groups are combined with OR through a single regex matcher on the
``busigroup`` label; tags are combined with AND as exact matchers. The
matchers are injected into every series selector of the query while
functions, numeric literals, durations, strings and grouping clauses are
left untouched.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

BUSINESS_GROUP_LABEL = "busigroup"

_REGEX_SPECIAL = frozenset("\\.+*?^$()[]{}|")
_QUOTES = "\"'`"
# Identifier-shaped PromQL words that never name a series.
_KEYWORDS = frozenset({"and", "or", "unless", "bool", "offset", "atan2", "inf", "nan"})
# Modifiers that may be followed by a parenthesised list of label names.
_GROUPING = frozenset({"by", "without", "on", "ignoring", "group_left", "group_right"})
_AGGREGATIONS = frozenset(
    {
        "sum", "min", "max", "avg", "group", "stddev", "stdvar", "count", "count_values",
        "bottomk", "topk", "quantile", "limitk", "limit_ratio",
    }
)


@dataclass(frozen=True, slots=True)
class HostFilter:
    """Subset of monitored hosts a query is scoped to."""

    business_groups: Sequence[str] = ()
    tags: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "business_groups", tuple(self.business_groups or ()))
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags or {})))

    def __hash__(self) -> int:
        return hash((self.business_groups, tuple(sorted(self.tags.items()))))

    def is_empty(self) -> bool:
        return not self.business_groups and not self.tags


def escape_regex(value: str) -> str:
    """Backslash-escape regex metacharacters in ``value``."""

    return "".join(f"\\{char}" if char in _REGEX_SPECIAL else char for char in value)


def build_matchers(host_filter: HostFilter | None) -> list[str]:
    """Translate a host filter into PromQL label matchers.

    The business-group matcher comes first, followed by one exact matcher per
    tag in key order.
    """

    if host_filter is None or host_filter.is_empty():
        return []

    matchers: list[str] = []
    if host_filter.business_groups:
        groups = "|".join(escape_regex(group) for group in host_filter.business_groups)
        matchers.append(f'{BUSINESS_GROUP_LABEL}=~"{groups}"')

    for key in sorted(host_filter.tags):
        value = host_filter.tags[key].replace('"', '\\"')
        matchers.append(f'{key}="{value}"')
    return matchers


def rewrite_query(query: str, host_filter: HostFilter | None = None) -> str:
    """Scope ``query`` to the hosts selected by ``host_filter``.

    Returns ``query`` itself when there is nothing to inject.
    """

    matchers = build_matchers(host_filter)
    if not matchers:
        return query
    return inject_matchers(query, matchers)


def inject_matchers(query: str, matchers: Sequence[str]) -> str:
    """Append ``matchers`` to every series selector found in ``query``."""

    if not matchers:
        return query

    clause = ", ".join(matchers)
    out: list[str] = []
    pos = 0
    end = len(query)
    while pos < end:
        char = query[pos]
        if char in _QUOTES:
            stop = _skip_string(query, pos)
            out.append(query[pos:stop])
        elif char.isdigit() or (char == "." and query[pos + 1 : pos + 2].isdigit()):
            stop = _skip_number(query, pos)
            out.append(query[pos:stop])
        elif char == "#":
            close = query.find("\n", pos)
            stop = end if close == -1 else close + 1
            out.append(query[pos:stop])
        elif char == "[":
            close = query.find("]", pos)
            stop = end if close == -1 else close + 1
            out.append(query[pos:stop])
        elif char == "{":
            stop = _skip_selector(query, pos)
            if stop == -1:
                stop = pos + 1
                out.append(char)
            else:
                out.append(_merge_selector(query[pos + 1 : stop - 1], clause))
        elif _is_ident_start(char):
            stop = _handle_identifier(query, pos, clause, out)
        else:
            stop = pos + 1
            out.append(char)
        pos = stop
    return "".join(out)


def _handle_identifier(query: str, pos: int, clause: str, out: list[str]) -> int:
    end = len(query)
    stop = pos + 1
    while stop < end and _is_ident_char(query[stop]):
        stop += 1
    name = query[pos:stop]
    lowered = name.lower()

    lookahead = stop
    while lookahead < end and query[lookahead].isspace():
        lookahead += 1
    next_char = query[lookahead] if lookahead < end else ""

    if lowered in _KEYWORDS or (
        lowered in _AGGREGATIONS and _word_at(query, lookahead).lower() in ("by", "without")
    ):
        out.append(name)
        return stop
    if lowered in _GROUPING:
        if next_char != "(":
            out.append(name)
            return stop
        close = query.find(")", lookahead)
        group_end = end if close == -1 else close + 1
        out.append(query[pos:group_end])
        return group_end
    if next_char == "(":
        # function call; its arguments are scanned on their own
        out.append(name)
        return stop

    if next_char == "{":
        block_end = _skip_selector(query, lookahead)
        if block_end != -1:
            out.append(name + _merge_selector(query[lookahead + 1 : block_end - 1], clause))
            return block_end

    out.append(f"{name}{{{clause}}}")
    return stop


def _merge_selector(existing: str, clause: str) -> str:
    existing = existing.rstrip()
    if existing.endswith(","):
        existing = existing[:-1].rstrip()
    if not existing.strip():
        return f"{{{clause}}}"
    return f"{{{existing}, {clause}}}"


def _skip_string(query: str, pos: int) -> int:
    quote = query[pos]
    index = pos + 1
    end = len(query)
    while index < end:
        char = query[index]
        if char == "\\" and quote != "`":
            index += 2
            continue
        if char == quote:
            return index + 1
        index += 1
    return end


def _skip_number(query: str, pos: int) -> int:
    """Consume a numeric literal or duration such as ``1.5e3``, ``0x1f`` or ``1h30m``."""

    end = len(query)
    is_hex = query[pos : pos + 2].lower() == "0x"
    index = pos + 1
    while index < end:
        char = query[index]
        if char.isalnum() or char in "._":
            index += 1
        elif char in "+-" and not is_hex and query[index - 1] in "eE":
            index += 1
        else:
            break
    return index


def _skip_selector(query: str, pos: int) -> int:
    """Return the index just past the ``}`` closing the block at ``pos``, or -1."""

    index = pos + 1
    end = len(query)
    while index < end:
        char = query[index]
        if char in _QUOTES:
            index = _skip_string(query, index)
            continue
        if char == "}":
            return index + 1
        index += 1
    return -1


def _word_at(query: str, pos: int) -> str:
    stop = pos
    while stop < len(query) and _is_ident_char(query[stop]):
        stop += 1
    return query[pos:stop]


def _is_ident_start(char: str) -> bool:
    return char.isascii() and (char.isalpha() or char == "_")


def _is_ident_char(char: str) -> bool:
    return char.isascii() and (char.isalnum() or char in "_:")


__all__ = [
    "BUSINESS_GROUP_LABEL",
    "HostFilter",
    "build_matchers",
    "escape_regex",
    "inject_matchers",
    "rewrite_query",
]
