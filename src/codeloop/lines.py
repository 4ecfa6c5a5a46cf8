"""Line splitting shared by snippets, edits and diffs.

Content is treated as a list of lines joined by "\\n", so splitting and
joining round-trip exactly (a trailing newline yields a final empty line).
"""


def split_lines(content: str) -> list[str]:
    if not content:
        return []
    return content.split("\n")


def join_lines(lines: list[str]) -> str:
    return "\n".join(lines)


def truncate_tail(line: str, max_chars: int) -> str:
    if len(line) <= max_chars:
        return line
    return line[:max_chars] + "…"
