"""Errors raised while parsing and applying code edits.

None of these are fatal to an agent run: the file editor tool reports
them back to the model as text so it can correct its edits.
"""

from .models import ParseIssue


class EditError(Exception):
    """Base class for code edit errors."""


class EditParseError(EditError):
    """The edit grammar was malformed."""

    def __init__(self, issues: list[ParseIssue]):
        self.issues = issues
        super().__init__("; ".join(str(issue) for issue in issues))


class InvalidLineRangeError(EditError):
    """A replace range falls outside the current file."""

    def __init__(self, start: int, length: int, line_count: int):
        self.start = start
        self.length = length
        self.line_count = line_count
        super().__init__(
            f"Invalid line range: start {start}, length {length} "
            f"for file with {line_count} lines"
        )


class FindReplaceMatchError(EditError):
    """The find block matched zero times or more than once."""

    def __init__(self, find: list[str], match_count: int):
        self.find = find
        self.match_count = match_count
        find_text = "\n".join(find)
        if match_count == 0:
            message = (
                "When applying FindReplace, you asked to replace this string, but it was not "
                f"found VERBATIM in the latest copy of the file:\n{find_text}\n\n"
                "If you're having trouble, consider using `Write` to replace the whole file."
            )
        else:
            message = (
                "When applying FindReplace, you asked to replace this string, but it was found "
                f"more than once in the file ({match_count} matches):\n{find_text}\n\n"
                "The `find` string should ONLY exist EXACTLY once verbatim in the file. "
                "If you're having trouble, consider using `Write` to replace the whole file."
            )
        super().__init__(message)


class OverlappingEditsError(EditError):
    """Two line-range edits to the same file overlap."""

    def __init__(self, path: str, first: str, second: str):
        self.path = path
        super().__init__(
            f"Edits to {path} overlap: '{first}' and '{second}'. "
            "Line ranges must refer to distinct lines of the original file; "
            "combine them into one edit."
        )


class EditFileReadError(EditError):
    """The file an edit depends on could not be read."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Unable to read {path}: {reason}")
