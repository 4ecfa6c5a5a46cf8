"""XML fake-function convention for models without native tool calling.

A call is embedded in plain assistant text as::

    <function>tool_name({"arg1": "value1", "arg2": 42})</function>

and any number of calls may appear in one response. Responses travel back
to the model inside a user message as
``<function_response name="tool_name">...</function_response>`` blocks.
"""

import json
from html import escape

from .models import ChatMessage, FunctionCall, FunctionResponse, LLMFunction

FUNCTION_OPEN = "<function>"
FUNCTION_CLOSE = "</function>"


def tools_to_system_prompt(functions: list[LLMFunction]) -> str:
    """Describe the available functions and the XML calling syntax."""
    descriptions = "\n\n".join(
        f"{fn.name}: {fn.description}\nParameters: {json.dumps(fn.parameters)}"
        for fn in functions
    )
    return (
        "In this environment you have access to a set of tools to help you complete tasks. "
        "To use these tools, write function calls using XML syntax like this:\n"
        '<function>tool_name({"arg1": "value1", "arg2": 42})</function>\n'
        "\n"
        "You can make multiple function calls in a single response. "
        "After making function calls, wait for the response before proceeding.\n"
        "\n"
        "Available tools:\n"
        f"{descriptions}"
    )


def parse_fake_functions(response: str) -> tuple[str, list[FunctionCall]]:
    """Extract XML function calls from a response.

    Returns the response with every complete ``<function>...</function>``
    span removed (surrounding text is kept and stripped) and the parsed
    calls in order of appearance. A span without a closing tag is dropped
    together with everything after it; a span without an opening
    parenthesis is removed from the text but yields no call.
    """
    parts = response.split(FUNCTION_OPEN)
    cleaned = parts[0]
    calls: list[FunctionCall] = []

    for part in parts[1:]:
        sub_parts = part.split(FUNCTION_CLOSE)
        if len(sub_parts) < 2:
            continue

        body = sub_parts[0]
        cleaned += sub_parts[1]

        paren = body.find("(")
        if paren == -1:
            continue
        name = body[:paren].strip()
        # drop the closing paren
        arguments = body[paren + 1:-1] if body.endswith(")") else body[paren + 1:]
        calls.append(FunctionCall(id=f"fake_{len(calls)}", name=name, arguments=arguments))

    return cleaned.strip(), calls


def encode_call(call: FunctionCall) -> str:
    return f"{FUNCTION_OPEN}{call.name}({call.arguments or '{}'}){FUNCTION_CLOSE}"


def encode_response(response: FunctionResponse) -> str:
    return (
        f'<function_response name="{escape(response.name, quote=True)}">\n'
        f"{response.text}\n"
        "</function_response>"
    )


def extract_from_partial(message: ChatMessage) -> ChatMessage:
    """Turn XML calls inside a (possibly partial) assistant message into structured calls."""
    if message.role != "assistant" or FUNCTION_OPEN not in message.content:
        return message
    cleaned, calls = parse_fake_functions(message.content)
    return message.model_copy(update={
        "content": cleaned,
        "function_calls": tuple(message.function_calls) + tuple(calls),
    })


def to_fake_function_messages(messages: list[ChatMessage]) -> list[ChatMessage]:
    """Re-serialize structured calls and responses into the XML convention.

    Assistant calls are appended to the message text; function-role
    messages collapse into user messages holding response blocks.
    """
    converted: list[ChatMessage] = []
    for msg in messages:
        if msg.role == "assistant" and msg.function_calls:
            lines = [msg.content] if msg.content else []
            lines.extend(encode_call(call) for call in msg.function_calls)
            text = "\n".join(lines)
            converted.append(ChatMessage(role="assistant", content=text, images=msg.images))
        elif msg.role == "function":
            blocks = [encode_response(resp) for resp in msg.function_responses]
            if msg.content:
                blocks.append(msg.content)
            converted.append(ChatMessage(role="user", content="\n\n".join(blocks), images=msg.images))
        else:
            converted.append(msg)
    return converted
