"""
Bulk caption operations.

Each operation is a small frozen dataclass describing *what* to do; ``plan()``
works out, for a given snapshot of items, every caption that would change.
Planning is pure: it validates input, compiles patterns and computes the new
captions without touching any store, so an invalid pattern aborts before
anything is written. EngineState commits a plan.

Two families of operations:

- Tag operations (DeleteTag, RenameTag) work on the token list and rejoin
  with ``", "``.
- Free-text operations (SearchReplace, InsertAtMatch, DeleteText,
  AppendCaption) edit the raw caption and then tidy it.

RenameTag and InsertAtMatch act on the first match per item only; DeleteTag,
SearchReplace and DeleteText act on every match.
"""

import re
from dataclasses import dataclass, field
from typing import ClassVar, Iterable, Optional, Union

from .captions import join, tidy, tokenize
from .errors import MissingInputError, PatternError
from .types import Item


@dataclass(frozen=True)
class DeleteTag:
    """Remove every exact occurrence of a tag from all captions."""
    kind: ClassVar[str] = "delete-tag"
    tag: str

    def describe(self) -> str:
        return f'delete "{self.tag}" from'


@dataclass(frozen=True)
class RenameTag:
    """Replace the first exact occurrence of a tag in each caption."""
    kind: ClassVar[str] = "rename-tag"
    old: str
    new: str

    def describe(self) -> str:
        return f'rename "{self.old}" to "{self.new}" in'


@dataclass(frozen=True)
class SearchReplace:
    """Replace all matches of a literal or regex pattern.

    The replacement uses dollar tokens: ``$1``..``$99`` and ``$<name>`` for
    groups, ``$&`` for the whole match, ``$` `` and ``$'`` for the text
    before and after it, ``$$`` for a dollar sign. Backslashes are literal.
    A numbered group the pattern lacks is kept as written.
    """
    kind: ClassVar[str] = "replace"
    pattern: str
    replacement: str
    use_regex: bool = False
    case_sensitive: bool = False

    def describe(self) -> str:
        return f'replace "{self.pattern}" with "{self.replacement}" in'


@dataclass(frozen=True)
class InsertAtMatch:
    """Insert text before (prepend) or after the first match in each caption.

    Literal targets are matched case-sensitively, regex targets
    case-insensitively. With ``only_if_absent`` an item is left alone when
    the text already sits right next to the match.
    """
    kind: ClassVar[str] = "insert"
    target: str
    text: str
    use_regex: bool = False
    prepend: bool = True
    only_if_absent: bool = False

    def describe(self) -> str:
        where = "before" if self.prepend else "after"
        return f'insert "{self.text}" {where} "{self.target}" in'


@dataclass(frozen=True)
class DeleteText:
    """Delete all matches of a literal (whole-word) or regex target."""
    kind: ClassVar[str] = "delete-text"
    target: str
    use_regex: bool = False

    def describe(self) -> str:
        return f'delete "{self.target}" from'


@dataclass(frozen=True)
class AppendCaption:
    """Append the same text to every caption."""
    kind: ClassVar[str] = "append"
    text: str

    def describe(self) -> str:
        return f'append "{self.text}" to'


Operation = Union[DeleteTag, RenameTag, SearchReplace, InsertAtMatch, DeleteText, AppendCaption]


@dataclass(frozen=True)
class CaptionChange:
    """One item's caption before and after an operation."""
    id: str
    before: str
    after: str
    occurrences: int = 1


@dataclass
class BulkPlan:
    """Every caption an operation would change, computed up front.

    ``matched`` counts eligible items (those where the target was found);
    it can be larger than ``len(changes)`` when a match produced no change.
    """
    operation: Operation
    matched: int = 0
    occurrences: int = 0
    changes: list[CaptionChange] = field(default_factory=list)

    @property
    def nothing_found(self) -> bool:
        return self.matched == 0


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def compile_pattern(
    pattern: str,
    *,
    use_regex: bool,
    case_sensitive: bool = False,
    whole_word: bool = False,
) -> re.Pattern:
    """Compile a user pattern, escaping it first unless ``use_regex``.

    Raises:
        PatternError: with the ``re.error`` message if compilation fails
    """
    source = pattern if use_regex else re.escape(pattern)
    if whole_word:
        source = rf"\b{source}\b"
    flags = 0 if case_sensitive else re.IGNORECASE
    try:
        return re.compile(source, flags)
    except re.error as e:
        raise PatternError(pattern, str(e)) from e


_DOLLAR_TOKEN_RE = re.compile(r"\$(?:([$&`'])|(\d\d?)|<([^>]*)>)")


def expand_replacement(template: str, match: re.Match) -> str:
    """Expand the dollar tokens of a replacement template for one match.

    Unmatched groups expand to the empty string. ``$n`` prefers a two-digit
    group number when the pattern has that many groups.
    """
    def token(m: re.Match) -> str:
        symbol, digits, name = m.groups()
        if symbol == "$":
            return "$"
        if symbol == "&":
            return match.group(0)
        if symbol == "`":
            return match.string[:match.start()]
        if symbol == "'":
            return match.string[match.end():]
        if digits is not None:
            groups = match.re.groups
            if len(digits) == 2 and 1 <= int(digits) <= groups:
                return match.group(int(digits)) or ""
            if 1 <= int(digits[0]) <= groups:
                return (match.group(int(digits[0])) or "") + digits[1:]
            return m.group(0)
        if match.re.groupindex:
            return match.groupdict().get(name) or ""
        return m.group(0)

    return _DOLLAR_TOKEN_RE.sub(token, template)


def _require(value: Optional[str], label: str, *, strip: bool = True) -> str:
    text = (value.strip() if strip else value) if value is not None else ""
    if not text:
        raise MissingInputError(f"{label} is required")
    return text


def _caption(item: Item) -> str:
    return item.caption or ""


# -----------------------------------------------------------------------------
# Planners
# -----------------------------------------------------------------------------

def _plan_delete_tag(op: DeleteTag, items: Iterable[Item]) -> BulkPlan:
    tag = _require(op.tag, "Tag")
    result = BulkPlan(op)
    for item in items:
        tokens = tokenize(item.caption)
        kept = [t for t in tokens if t != tag]
        if len(kept) == len(tokens):
            continue
        removed = len(tokens) - len(kept)
        result.matched += 1
        result.occurrences += removed
        result.changes.append(CaptionChange(item.id, _caption(item), join(kept), occurrences=removed))
    return result


def _plan_rename_tag(op: RenameTag, items: Iterable[Item]) -> BulkPlan:
    old = _require(op.old, "Tag")
    new = _require(op.new, "New tag")
    result = BulkPlan(op)
    for item in items:
        tokens = tokenize(item.caption)
        try:
            position = tokens.index(old)
        except ValueError:
            continue
        tokens[position] = new
        result.matched += 1
        result.occurrences += 1
        result.changes.append(CaptionChange(item.id, _caption(item), join(tokens)))
    return result


def _plan_search_replace(op: SearchReplace, items: Iterable[Item]) -> BulkPlan:
    pattern = _require(op.pattern, "Search pattern", strip=False)
    regex = compile_pattern(pattern, use_regex=op.use_regex, case_sensitive=op.case_sensitive)
    result = BulkPlan(op)
    for item in items:
        before = _caption(item)
        hits = len(regex.findall(before))
        if not hits:
            continue
        result.matched += 1
        result.occurrences += hits
        after = tidy(regex.sub(lambda m: expand_replacement(op.replacement, m), before))
        if after != before:
            result.changes.append(CaptionChange(item.id, before, after, occurrences=hits))
    return result


def _already_adjacent(caption: str, start: int, end: int, text: str, prepend: bool) -> bool:
    if prepend:
        return caption[:start].rstrip().endswith(text)
    return caption[end:].lstrip().startswith(text)


def _plan_insert(op: InsertAtMatch, items: Iterable[Item]) -> BulkPlan:
    target = _require(op.target, "Target text", strip=False)
    text = _require(op.text, "Text to insert")
    regex = compile_pattern(target, use_regex=True) if op.use_regex else None
    result = BulkPlan(op)
    for item in items:
        before = _caption(item)
        if regex is not None:
            match = regex.search(before)
            if match is None:
                continue
            start, end = match.span()
        else:
            start = before.find(target)
            if start == -1:
                continue
            end = start + len(target)
        result.matched += 1
        result.occurrences += 1
        if op.only_if_absent and _already_adjacent(before, start, end, text, op.prepend):
            continue
        if op.prepend:
            after = before[:start] + text + " " + before[start:]
        else:
            after = before[:end] + " " + text + before[end:]
        after = tidy(after)
        if after != before:
            result.changes.append(CaptionChange(item.id, before, after))
    return result


def _plan_delete_text(op: DeleteText, items: Iterable[Item]) -> BulkPlan:
    target = _require(op.target, "Target text", strip=False)
    # Literal deletes match whole words only, so "cat" leaves "category" alone
    regex = compile_pattern(target, use_regex=op.use_regex, whole_word=not op.use_regex)
    result = BulkPlan(op)
    for item in items:
        before = _caption(item)
        hits = len(regex.findall(before))
        if not hits:
            continue
        result.matched += 1
        result.occurrences += hits
        after = tidy(regex.sub("", before))
        if after != before:
            result.changes.append(CaptionChange(item.id, before, after, occurrences=hits))
    return result


def _plan_append(op: AppendCaption, items: Iterable[Item]) -> BulkPlan:
    text = _require(op.text, "Caption text")
    result = BulkPlan(op)
    for item in items:
        before = _caption(item)
        existing = before.strip()
        if not existing:
            separator = ""
        elif existing.endswith(","):
            separator = " "
        else:
            separator = ", "
        result.matched += 1
        result.occurrences += 1
        result.changes.append(CaptionChange(item.id, before, existing + separator + text))
    return result


_PLANNERS = {
    DeleteTag: _plan_delete_tag,
    RenameTag: _plan_rename_tag,
    SearchReplace: _plan_search_replace,
    InsertAtMatch: _plan_insert,
    DeleteText: _plan_delete_text,
    AppendCaption: _plan_append,
}


def plan(operation: Operation, items: Iterable[Item]) -> BulkPlan:
    """
    Compute every caption change ``operation`` would make to ``items``.

    Raises:
        MissingInputError: if a required text input is empty
        PatternError: if a pattern is invalid
        TypeError: for an unknown operation type
    """
    planner = _PLANNERS.get(type(operation))
    if planner is None:
        raise TypeError(f"Unknown operation: {operation!r}")
    return planner(operation, list(items))


def count_matching(operation: Operation, items: Iterable[Item]) -> int:
    """Dry run: number of items the operation would touch."""
    return plan(operation, items).matched
