"""Prompt compaction applied before messages are sent to the model.

Both helpers return new message lists and leave their input untouched.
"""

from ..config import KEEP_FIRST_N, KEEP_LAST_N, OLD_MESSAGES_OMITTED, OMITTED, ROUND_TO, SUPERSEDED_SNIPPET
from .models import ContextItem, FileSnippet, TaggedMessage, TextItem


def omit_old_messages(
    messages: list[TaggedMessage],
    keep_first_n: int = KEEP_FIRST_N,
    keep_last_n: int = KEEP_LAST_N,
    round_to: int = ROUND_TO
) -> list[TaggedMessage]:
    """Collapse the middle of a long conversation into an omission marker.

    Keeps the first `keep_first_n` messages and everything from a cutoff
    that is rounded down to a multiple of `round_to`, so the kept tail
    only moves in steps and the prompt prefix stays cacheable between
    iterations.

    Function calls on the last kept head message and function responses
    on the first message after the marker are dropped, since their
    counterparts were cut.
    """
    if len(messages) <= keep_first_n + keep_last_n:
        return list(messages)

    cutoff = max(keep_first_n, ((len(messages) - keep_last_n) // round_to) * round_to)
    marker = TaggedMessage.from_text("system", OLD_MESSAGES_OMITTED)
    remaining = (
        [m.model_copy(deep=True) for m in messages[:keep_first_n]]
        + [marker]
        + [m.model_copy(deep=True) for m in messages[cutoff:]]
    )

    if keep_first_n > 0:
        remaining[keep_first_n - 1].function_calls = []

    if keep_first_n + 1 < len(remaining):
        first_after_cut = remaining[keep_first_n + 1]
        first_after_cut.function_responses = []
        if not first_after_cut.content:
            first_after_cut.content = [TextItem(text=OMITTED)]

    return remaining


def _snippets(message: TaggedMessage) -> list[FileSnippet]:
    found = [item for item in message.content if isinstance(item, FileSnippet)]
    for resp in message.function_responses:
        found.extend(item for item in resp.content if isinstance(item, FileSnippet))
    return found


def _elide(items: list[ContextItem], superseded: set[int]) -> list[ContextItem]:
    return [
        TextItem(text=SUPERSEDED_SNIPPET.format(path=item.project_relative_path))
        if isinstance(item, FileSnippet) and id(item) in superseded
        else item
        for item in items
    ]


def elide_redundant_context(messages: list[TaggedMessage]) -> list[TaggedMessage]:
    """Replace file snippets that a later snippet of the same file fully covers.

    Message order and function call/response pairing are unchanged; only
    the superseded snippet items become short placeholder texts.
    """
    ordered = [snippet for message in messages for snippet in _snippets(message)]
    superseded = {
        id(snippet)
        for index, snippet in enumerate(ordered)
        if any(later.covers(snippet) for later in ordered[index + 1:])
    }
    if not superseded:
        return list(messages)

    result = []
    for message in messages:
        if not any(id(s) in superseded for s in _snippets(message)):
            result.append(message)
            continue
        result.append(message.model_copy(update={
            "content": _elide(message.content, superseded),
            "function_responses": [
                resp.model_copy(update={"content": _elide(resp.content, superseded)})
                for resp in message.function_responses
            ],
        }))
    return result
