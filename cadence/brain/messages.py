"""
Internal message representation for prompt construction.

Prompts are assembled as a messages[] list and flattened into a single
chat-template string for the text generator. Both generator backends receive
the same flattened prompt.

Usage:
    from cadence.brain.messages import MessageBuilder, render_chat_template

    messages = (
        MessageBuilder()
        .system("You are a command assistant...")
        .user("Turn on the flashlight")
        .build()
    )
    prompt = render_chat_template(messages)
"""
from typing import List, Literal, TypedDict


Role = Literal["system", "user", "assistant"]

# Chat-template markers. END_MARKER also terminates generation.
ROLE_TAGS = {
    "system": "<|system|>",
    "user": "<|user|>",
    "assistant": "<|assistant|>",
}
END_MARKER = "<|end|>"


class Message(TypedDict):
    """
    A single message in the internal conversation representation.

    Attributes:
        role: One of "system", "user", or "assistant"
        content: The text content of the message
    """
    role: Role
    content: str


def msg_system(content: str) -> Message:
    return {"role": "system", "content": content}


def msg_user(content: str) -> Message:
    return {"role": "user", "content": content}


def msg_assistant(content: str) -> Message:
    return {"role": "assistant", "content": content}


def render_chat_template(messages: List[Message]) -> str:
    """
    Render messages in the <|role|> ... <|end|> chat template.

    The result always ends with an open assistant tag so the model continues
    as the assistant.

    Example:
        >>> render_chat_template([msg_system("S"), msg_user("Hi")])
        "<|system|>\\nS<|end|>\\n<|user|>\\nHi<|end|>\\n<|assistant|>\\n"
    """
    parts = []
    for msg in messages:
        tag = ROLE_TAGS.get(msg.get("role", ""))
        if tag is None:
            continue
        parts.append(f"{tag}\n{msg.get('content', '')}{END_MARKER}\n")
    parts.append(f"{ROLE_TAGS['assistant']}\n")
    return "".join(parts)


class MessageBuilder:
    """
    Convenience class for building message lists incrementally.

    Empty or whitespace-only content is dropped.
    """

    def __init__(self):
        self._messages: List[Message] = []

    def system(self, content: str) -> "MessageBuilder":
        if content and content.strip():
            self._messages.append(msg_system(content))
        return self

    def user(self, content: str) -> "MessageBuilder":
        if content and content.strip():
            self._messages.append(msg_user(content))
        return self

    def assistant(self, content: str) -> "MessageBuilder":
        if content and content.strip():
            self._messages.append(msg_assistant(content))
        return self

    def build(self) -> List[Message]:
        return self._messages.copy()

    def __len__(self) -> int:
        return len(self._messages)

    def __bool__(self) -> bool:
        return bool(self._messages)
