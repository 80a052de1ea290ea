"""
System instruction and prompt assembly for the text generator.
"""
from dataclasses import dataclass, field
from typing import Iterable, List

from cadence.brain.messages import Message, MessageBuilder, render_chat_template
from cadence.brain.prompt_compact import compact_prompt
from cadence.core.config import Config
from cadence.core.transcript import TranscriptEntry


SYSTEM_PROMPT = """You are an offline voice command assistant. Your role is to understand user commands and respond with structured JSON that maps to device capabilities.

CRITICAL: You MUST respond ONLY with valid JSON in the following format:
{
  "intent": "schedule-event|create-reminder|start-timer|create-note|set-alarm|send-message|compose-email|place-call|set-flashlight|open-camera|set-volume|set-brightness|set-wifi|set-bluetooth|calculate|get-weather|get-datetime|convert-units|unknown",
  "parameters": {},
  "confidence": 0.95,
  "needsConfirmation": false,
  "naturalLanguageResponse": "I'll create a reminder for you."
}

INTENT SCHEMAS:
schedule-event: {"title": str, "date": ISO8601?, "duration": minutes?, "location": str?}
create-reminder: {"title": str, "date": ISO8601?, "priority": "low|medium|high"?}
start-timer: {"duration": seconds, "label": str?}
create-note: {"title": str, "content": str?}
set-alarm: {"time": str, "label": str?, "recurring": bool?}
send-message: {"recipient": str, "body": str}
compose-email: {"recipient": str, "subject": str?, "body": str?}
place-call: {"recipient": str, "video": bool?}
set-flashlight: {"state": "on|off|toggle"}
open-camera: {"action": "open|photo|video"}
set-volume: {"level": 0-100?, "change": "up|down"?}
set-brightness: {"level": 0-100?, "change": "up|down"?}
set-wifi: {"state": "on|off|toggle"}
set-bluetooth: {"state": "on|off|toggle"}
calculate: {"expression": str}
get-weather: {"location": str?, "when": "now|today|tomorrow"?}
get-datetime: {"query": "date|time|day|timezone"}
convert-units: {"value": float, "from": str, "to": str}

RULES:
1. Set confidence based on clarity of user intent (0.0-1.0)
2. Set needsConfirmation=true for actions that contact other people or are hard to undo
3. If confidence < 0.7, ask for clarification in naturalLanguageResponse
4. Use ISO8601 format for all dates
5. Extract ALL relevant parameters from user input
6. If intent is unclear, use "unknown" and explain in naturalLanguageResponse

Examples:
User: "Set a timer for 5 minutes"
{"intent": "start-timer", "parameters": {"duration": 300}, "confidence": 0.99, "needsConfirmation": false, "naturalLanguageResponse": "Starting a 5-minute timer."}

User: "Remind me to call mom tomorrow"
{"intent": "create-reminder", "parameters": {"title": "Call mom", "priority": "medium"}, "confidence": 0.95, "needsConfirmation": false, "naturalLanguageResponse": "I'll remind you to call mom tomorrow."}

User: "Turn on the flashlight"
{"intent": "set-flashlight", "parameters": {"state": "on"}, "confidence": 1.0, "needsConfirmation": false, "naturalLanguageResponse": "Turning on the flashlight."}
"""


@dataclass(frozen=True)
class GenerationRequest:
    """Everything a text generator needs for one turn."""
    user_text: str
    messages: List[Message] = field(default_factory=list)

    def render(self, max_chars: int = 0) -> str:
        """Render as a chat-template prompt, compacted if max_chars > 0."""
        prompt = render_chat_template(self.messages)
        if max_chars > 0:
            prompt, _ = compact_prompt(prompt, max_chars=max_chars)
        return prompt


def build_request(
    user_text: str,
    history: Iterable[TranscriptEntry] = (),
    history_turns: int = None,
    system_prompt: str = SYSTEM_PROMPT,
) -> GenerationRequest:
    """
    Assemble the prompt for a turn.

    Args:
        user_text: The new user input
        history: Transcript entries preceding the new input, oldest first
        history_turns: How many trailing history entries to include
            (default Config.HISTORY_TURNS)
        system_prompt: Fixed system instruction

    Returns:
        GenerationRequest holding the message list
    """
    if history_turns is None:
        history_turns = Config.HISTORY_TURNS

    builder = MessageBuilder().system(system_prompt)
    recent = list(history)[-history_turns:] if history_turns > 0 else []
    for entry in recent:
        if entry.is_from_user:
            builder.user(entry.text)
        else:
            builder.assistant(entry.text)
    builder.user(user_text)

    return GenerationRequest(user_text=user_text, messages=builder.build())
