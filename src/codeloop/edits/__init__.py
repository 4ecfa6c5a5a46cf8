"""Code-edit protocol engine for codeloop.

Parses fenced edit commands out of model responses, groups them into
index-adjusted per-file edits, applies them and produces reviewable diffs.
"""

from .applier import (
    FileEdit,
    adjust_edit_indices,
    apply_append,
    apply_find_replace,
    apply_replacement,
)
from .diff import Diff, DiffLine, collapse_runs_of_sames, unified_diff
from .errors import (
    EditError,
    EditFileReadError,
    EditParseError,
    FindReplaceMatchError,
    InvalidLineRangeError,
    OverlappingEditsError,
)
from .models import (
    AppendEdit,
    CodeEdit,
    EditPart,
    FindReplaceEdit,
    ParseIssue,
    ParseResult,
    Part,
    ReplaceEdit,
    TextPart,
    WriteEdit,
)
from .parser import contains_edits_or_malformed_edits, parse, parse_edits_only

__all__ = [
    "AppendEdit",
    "CodeEdit",
    "Diff",
    "DiffLine",
    "EditError",
    "EditFileReadError",
    "EditParseError",
    "EditPart",
    "FileEdit",
    "FindReplaceEdit",
    "FindReplaceMatchError",
    "InvalidLineRangeError",
    "OverlappingEditsError",
    "ParseIssue",
    "ParseResult",
    "Part",
    "ReplaceEdit",
    "TextPart",
    "WriteEdit",
    "adjust_edit_indices",
    "apply_append",
    "apply_find_replace",
    "apply_replacement",
    "collapse_runs_of_sames",
    "contains_edits_or_malformed_edits",
    "parse",
    "parse_edits_only",
    "unified_diff",
]
