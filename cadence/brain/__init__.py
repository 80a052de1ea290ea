"""
Brain module for Cadence.
Prompt construction and the interchangeable text generator backends.
"""
from cadence.brain.generator import CancellationToken, TextGenerator
from cadence.brain.messages import (
    Message,
    MessageBuilder,
    msg_assistant,
    msg_system,
    msg_user,
    render_chat_template,
)
from cadence.brain.prompt import GenerationRequest, build_request
from cadence.brain.rule_generator import RuleBasedGenerator

__all__ = [
    "CancellationToken",
    "TextGenerator",
    "GenerationRequest",
    "build_request",
    "RuleBasedGenerator",
    "Message",
    "MessageBuilder",
    "msg_system",
    "msg_user",
    "msg_assistant",
    "render_chat_template",
]
