"""
Prompt compaction for over-long generator prompts.
Keeps the head (system instruction) and the tail (latest turns) and elides
the middle.
"""
from cadence.core.logger import get_logger

OMISSION_MARKER = "\n...[omitted for length]...\n"


def compact_prompt(
    prompt: str,
    max_chars: int = 8000,
    prefix_size: int = 3000,
    suffix_size: int = 2000,
) -> tuple[str, bool]:
    """
    Compact a prompt by keeping its first and last parts.

    Args:
        prompt: Full prompt text
        max_chars: Maximum character limit
        prefix_size: Characters kept from the start when they fit
        suffix_size: Characters kept from the end when they fit

    Returns:
        Tuple of (compacted_prompt, was_compacted)
    """
    if len(prompt) <= max_chars:
        return prompt, False

    prefix = prompt[:prefix_size]
    suffix = prompt[-suffix_size:] if suffix_size > 0 else ""
    compacted = prefix + OMISSION_MARKER + suffix

    if len(compacted) > max_chars:
        available = max(0, max_chars - len(OMISSION_MARKER))
        prefix_chars = available // 2
        suffix_chars = available - prefix_chars
        prefix = prompt[:prefix_chars]
        suffix = prompt[-suffix_chars:] if suffix_chars > 0 else ""
        compacted = prefix + OMISSION_MARKER + suffix

    get_logger().debug(f"Prompt compacted: {len(prompt)} -> {len(compacted)} chars")
    return compacted, True
