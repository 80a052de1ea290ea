"""
Deterministic pattern-matching stand-in for the model backend.

Maps substrings of the user's input to canned JSON outputs in exactly the
shape the model is instructed to produce, so the rest of the pipeline cannot
tell the two backends apart. Used when no model server is available or when
fast, repeatable behaviour is wanted (tests, demos).

This module is intentionally conservative: anything it does not recognise
becomes ``unknown`` with low confidence.
"""
import asyncio
import json
import re
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from cadence.brain.generator import CancellationToken, TextGenerator
from cadence.brain.prompt import GenerationRequest


_NUMBER_WORDS = {
    "a": 1, "an": 1, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10, "fifteen": 15,
    "twenty": 20, "thirty": 30, "forty": 40, "forty-five": 45, "sixty": 60,
}

_OPERATOR_WORDS = [
    (r"\bplus\b", "+"),
    (r"\bminus\b", "-"),
    (r"\btimes\b|\bmultiplied by\b", "*"),
    (r"\bdivided by\b|\bover\b", "/"),
    (r"\bto the power of\b", "**"),
]


def _has(text: str, *words: str) -> bool:
    """True if any of the words/phrases appears on word boundaries."""
    return any(re.search(rf"\b{re.escape(w)}\b", text) for w in words)


def _extract_number(text: str) -> Optional[float]:
    m = re.search(r"(-?\d+(?:\.\d+)?)", text)
    if m:
        return float(m.group(1))
    for word in re.findall(r"[a-z\-]+", text):
        if word in _NUMBER_WORDS and word not in ("a", "an"):
            return float(_NUMBER_WORDS[word])
    return None


def _int_or_float(value: float) -> Any:
    return int(value) if float(value).is_integer() else value


def _on_off_toggle(text: str) -> str:
    if _has(text, "off", "disable", "deactivate"):
        return "off"
    if _has(text, "on", "enable", "activate"):
        return "on"
    if _has(text, "toggle", "switch"):
        return "toggle"
    return "on"


def _up_down(text: str) -> Optional[str]:
    if _has(text, "increase", "up", "raise", "louder", "brighter", "higher"):
        return "up"
    if _has(text, "decrease", "down", "lower", "quieter", "dimmer", "dim"):
        return "down"
    return None


def _strip_trailing_punct(text: str) -> str:
    return (text or "").strip().rstrip(".?!,;:\"'")


def _decision(
    intent: str,
    parameters: Dict[str, Any],
    confidence: float,
    reply: str,
    needs_confirmation: bool = False,
) -> Dict[str, Any]:
    return {
        "intent": intent,
        "parameters": parameters,
        "confidence": confidence,
        "needsConfirmation": needs_confirmation,
        "naturalLanguageResponse": reply,
    }


# ============================================================================
# RULES
# ============================================================================
# Each rule returns a decision dict or None. Order matters: "timer" must be
# tried before "time", "timezone" before "time".

def _rule_timer(tl: str) -> Optional[Dict[str, Any]]:
    if not _has(tl, "timer", "countdown"):
        return None
    amount = _extract_number(tl)
    if amount is None:
        amount = 1 if re.search(r"\b(?:a|an)\s+(?:minute|hour|second)\b", tl) else 5
    if _has(tl, "hour", "hours"):
        seconds, unit = amount * 3600, "hour"
    elif _has(tl, "second", "seconds"):
        seconds, unit = amount, "second"
    else:
        seconds, unit = amount * 60, "minute"
    label = _int_or_float(amount)
    return _decision(
        "start-timer",
        {"duration": int(seconds)},
        0.95,
        f"Starting a {label}-{unit} timer.",
    )


def _rule_flashlight(tl: str) -> Optional[Dict[str, Any]]:
    if not _has(tl, "flashlight", "flash", "torch"):
        return None
    state = _on_off_toggle(tl)
    reply = "Toggling the flashlight." if state == "toggle" else f"Turning {state} the flashlight."
    return _decision("set-flashlight", {"state": state}, 0.99, reply)


def _rule_alarm(tl: str) -> Optional[Dict[str, Any]]:
    if not _has(tl, "alarm"):
        return None
    m = re.search(r"\b(\d{1,2}(?::\d{2})?\s*(?:am|pm)?)\b", tl)
    if not m:
        return _decision("set-alarm", {}, 0.5, "What time should I set the alarm for?")
    when = m.group(1).replace(" ", "")
    params: Dict[str, Any] = {"time": when}
    if _has(tl, "every day", "daily", "weekdays", "every morning"):
        params["recurring"] = True
    return _decision("set-alarm", params, 0.9, f"Setting an alarm for {when}.")


def _rule_datetime(tl: str) -> Optional[Dict[str, Any]]:
    if _has(tl, "timezone", "time zone"):
        return _decision("get-datetime", {"query": "timezone"}, 0.95, "Let me check your timezone.")
    if re.search(r"\bwhat\s+day\b|\bwhich\s+day\b|\bday\s+is\s+it\b", tl):
        return _decision("get-datetime", {"query": "day"}, 0.95, "Let me tell you what day it is.")
    if _has(tl, "time"):
        return _decision("get-datetime", {"query": "time"}, 0.95, "Let me tell you the current time.")
    if _has(tl, "date"):
        return _decision("get-datetime", {"query": "date"}, 0.95, "Let me tell you today's date.")
    return None


def _rule_reminder(tl: str) -> Optional[Dict[str, Any]]:
    if not _has(tl, "remind", "reminder"):
        return None
    m = re.search(r"\bremind\s+me\s+(?:to\s+)?(.+)$", tl)
    title = _strip_trailing_punct(m.group(1)).capitalize() if m else "Task"
    priority = "high" if _has(tl, "urgent", "important") else "medium"
    return _decision(
        "create-reminder",
        {"title": title, "priority": priority},
        0.85,
        "I'll create a reminder for you.",
    )


def _rule_note(tl: str) -> Optional[Dict[str, Any]]:
    if not _has(tl, "note", "jot down", "write down"):
        return None
    m = re.search(r"\b(?:note|jot down|write down)\s*(?:that|saying|:)?\s*(.+)$", tl)
    content = _strip_trailing_punct(m.group(1)) if m else ""
    params: Dict[str, Any] = {"title": (content[:40].capitalize() if content else "Note")}
    if content:
        params["content"] = content
    return _decision("create-note", params, 0.85, "I'll save that note.")


def _rule_event(tl: str) -> Optional[Dict[str, Any]]:
    if not _has(tl, "calendar", "event", "meeting", "schedule", "appointment"):
        return None
    m = re.search(r"\b(?:meeting|event|appointment)\s+(?:with|about|for)\s+(.+?)(?:\s+(?:at|on|tomorrow|today)\b|$)", tl)
    title = _strip_trailing_punct(m.group(0)).capitalize() if m else "Event"
    return _decision(
        "schedule-event",
        {"title": title, "duration": 60},
        0.85,
        "I'll create a calendar event.",
    )


def _rule_message(tl: str) -> Optional[Dict[str, Any]]:
    if not _has(tl, "message", "text", "sms"):
        return None
    m = re.search(r"\b(?:message|text)\s+(?:to\s+)?(\w+)(?:\s+(?:saying|that)\s+(.+))?$", tl)
    recipient = m.group(1) if m else "contact"
    body = _strip_trailing_punct(m.group(2)) if m and m.group(2) else "message text"
    return _decision(
        "send-message",
        {"recipient": recipient, "body": body},
        0.85,
        f"I'll send that message to {recipient}.",
        needs_confirmation=True,
    )


def _rule_email(tl: str) -> Optional[Dict[str, Any]]:
    if not _has(tl, "email", "e-mail", "mail"):
        return None
    m = re.search(r"\b(?:e-?mail|mail)\s+(?:to\s+)?(\w+)(?:\s+about\s+(.+))?$", tl)
    recipient = m.group(1) if m else "contact"
    params: Dict[str, Any] = {"recipient": recipient}
    if m and m.group(2):
        params["subject"] = _strip_trailing_punct(m.group(2)).capitalize()
    return _decision(
        "compose-email",
        params,
        0.85,
        f"I'll compose an email to {recipient}.",
        needs_confirmation=True,
    )


def _rule_call(tl: str) -> Optional[Dict[str, Any]]:
    if not _has(tl, "call", "dial", "phone", "facetime"):
        return None
    m = re.search(r"\b(?:call|dial|phone|facetime)\s+(\w+)", tl)
    recipient = m.group(1) if m else "contact"
    video = _has(tl, "video", "facetime")
    return _decision(
        "place-call",
        {"recipient": recipient, "video": video},
        0.9,
        f"I'll call {recipient}.",
        needs_confirmation=True,
    )


def _rule_camera(tl: str) -> Optional[Dict[str, Any]]:
    if not _has(tl, "camera", "photo", "picture", "selfie", "record a video", "take a video"):
        return None
    if _has(tl, "video", "record"):
        action = "video"
    elif _has(tl, "photo", "picture", "selfie"):
        action = "photo"
    else:
        action = "open"
    return _decision("open-camera", {"action": action}, 0.95, "Opening the camera.")


def _rule_level(tl: str, keyword: str, intent: str, noun: str) -> Optional[Dict[str, Any]]:
    if not _has(tl, keyword):
        return None
    params: Dict[str, Any] = {}
    m = re.search(r"\b(\d{1,3})\s*(?:%|percent)?", tl)
    if m and 0 <= int(m.group(1)) <= 100:
        params["level"] = int(m.group(1))
        reply = f"Setting {noun} to {params['level']}%."
    else:
        params["change"] = _up_down(tl) or "up"
        reply = f"Adjusting {noun}."
    return _decision(intent, params, 0.9, reply)


def _rule_volume(tl: str) -> Optional[Dict[str, Any]]:
    return _rule_level(tl, "volume", "set-volume", "volume")


def _rule_brightness(tl: str) -> Optional[Dict[str, Any]]:
    return _rule_level(tl, "brightness", "set-brightness", "brightness")


def _rule_wifi(tl: str) -> Optional[Dict[str, Any]]:
    if not _has(tl, "wifi", "wi-fi"):
        return None
    state = _on_off_toggle(tl)
    return _decision("set-wifi", {"state": state}, 0.9, f"Turning Wi-Fi {state}.")


def _rule_bluetooth(tl: str) -> Optional[Dict[str, Any]]:
    if not _has(tl, "bluetooth"):
        return None
    state = _on_off_toggle(tl)
    return _decision("set-bluetooth", {"state": state}, 0.9, f"Turning Bluetooth {state}.")


def _rule_convert(tl: str) -> Optional[Dict[str, Any]]:
    if not _has(tl, "convert", "in kilometers", "in miles", "in celsius", "in fahrenheit"):
        return None
    m = re.search(r"(-?\d+(?:\.\d+)?)\s*([a-z]+)\s+(?:to|in|into)\s+([a-z]+)", tl)
    if not m:
        return _decision("convert-units", {}, 0.5, "What would you like me to convert?")
    value = float(m.group(1))
    return _decision(
        "convert-units",
        {"value": value, "from": m.group(2), "to": m.group(3)},
        0.9,
        "Converting units.",
    )


def _rule_calculate(tl: str) -> Optional[Dict[str, Any]]:
    if not (
        _has(tl, "calculate", "compute", "plus", "minus", "times", "divided")
        or re.search(r"\d\s*[-+*/x×÷]\s*\d", tl)
    ):
        return None
    expr = re.sub(r"^.*?\b(?:calculate|compute|what\s+is|what's)\b", "", tl).strip()
    for pattern, op in _OPERATOR_WORDS:
        expr = re.sub(pattern, op, expr)
    expr = _strip_trailing_punct(expr)
    if not re.search(r"\d", expr):
        return _decision("calculate", {}, 0.5, "What would you like me to calculate?")
    return _decision("calculate", {"expression": expr}, 0.9, "Let me calculate that.")


def _rule_weather(tl: str) -> Optional[Dict[str, Any]]:
    if not _has(tl, "weather", "forecast", "temperature outside"):
        return None
    m = re.search(r"\bin\s+([a-z][a-z\s]+?)(?:\s+(?:today|tomorrow|now))?$", _strip_trailing_punct(tl))
    location = m.group(1).title() if m else None
    when = "tomorrow" if _has(tl, "tomorrow") else ("today" if _has(tl, "today") else "now")
    return _decision(
        "get-weather",
        {"location": location, "when": when},
        0.9,
        "Let me check the weather.",
    )


RULES: List[Callable[[str], Optional[Dict[str, Any]]]] = [
    _rule_timer,
    _rule_flashlight,
    _rule_alarm,
    _rule_reminder,
    _rule_event,
    _rule_note,
    _rule_convert,
    _rule_weather,
    _rule_datetime,
    _rule_email,
    _rule_message,
    _rule_call,
    _rule_camera,
    _rule_brightness,
    _rule_volume,
    _rule_wifi,
    _rule_bluetooth,
    _rule_calculate,
]

UNKNOWN_REPLY = "I'm not sure how to help with that. Could you rephrase?"


def route(text: str) -> Dict[str, Any]:
    """
    Map user text to a decision dict in the generator output schema.

    Args:
        text: Raw user input

    Returns:
        Dict with intent, parameters, confidence, needsConfirmation,
        naturalLanguageResponse
    """
    tl = re.sub(r"\s+", " ", (text or "").strip().lower())
    if tl:
        for rule in RULES:
            decision = rule(tl)
            if decision is not None:
                return decision
    return _decision("unknown", {}, 0.4, UNKNOWN_REPLY)


def _tokenize(text: str) -> List[str]:
    """Split text into whitespace-preserving fragments, like model tokens."""
    return re.findall(r"\s*\S+", text)


class RuleBasedGenerator(TextGenerator):
    """Deterministic stand-in generator.

    Args:
        fragment_delay: Seconds to wait between fragments. 0 still yields to
            the event loop between fragments, so cancellation is observable.
    """

    name = "rules"

    def __init__(self, fragment_delay: float = 0.0):
        self.fragment_delay = fragment_delay

    def respond(self, user_text: str) -> str:
        """Full JSON text for an input, without streaming."""
        return json.dumps(route(user_text))

    async def stream(
        self,
        request: GenerationRequest,
        cancel: CancellationToken,
    ) -> AsyncIterator[str]:
        for fragment in _tokenize(self.respond(request.user_text)):
            if cancel.cancelled:
                return
            await asyncio.sleep(self.fragment_delay)
            yield fragment
