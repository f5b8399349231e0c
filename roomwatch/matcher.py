"""Trigger matching: is this message new, our own echo, or a wake-up call?"""

import re

from .models import Message, TriggerDecision, Watermark

TRIGGER_PHRASE = "check room"


def mention_token(handle: str) -> str:
    """Explicit mention of a handle, e.g. '@bot'."""
    return f"@{handle}"


def is_newer(message: Message, watermark: Watermark) -> bool:
    """Check whether message differs from (and is not older than) the watermark."""
    if watermark.is_empty:
        return True
    if message.id == watermark.last_seen_id:
        return False
    if watermark.last_seen_at and message.created_at:
        return message.created_at >= watermark.last_seen_at
    return True


def is_self_authored(body: str, handle: str, case_sensitive: bool = True) -> bool:
    """Our own outbound messages carry our handle; never trigger on them.

    An occurrence inside an explicit mention ("@bot") is someone else
    addressing us and doesn't count.
    """
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.search(rf"(?<!@){re.escape(handle)}", body, flags) is not None


def is_mentioned(body: str, handle: str, case_sensitive: bool = True) -> bool:
    token = mention_token(handle)
    if case_sensitive:
        return token in body
    return token.lower() in body.lower()


def is_trigger(body: str, handle: str, case_sensitive: bool = True) -> bool:
    """Generic broadcast phrase (any casing) or an explicit @mention."""
    return TRIGGER_PHRASE in body.lower() or is_mentioned(body, handle, case_sensitive)


def decide(
    message: Message,
    watermark: Watermark,
    handle: str,
    case_sensitive: bool = True,
) -> TriggerDecision:
    """
    Decide what to do with the latest message in the room.

    Rules, in order:
    1. Same id as the watermark (or older than it): not new, nothing to do.
    2. Empty watermark: new, so the watermark gets set, but never a
       trigger. Avoids replaying whatever happened to be last in the room.
    3. Body contains our handle outside an @mention: self-authored,
       new but suppressed.
    4. Otherwise trigger on "check room" or "@<handle>".

    Args:
        message: Latest message fetched from the room
        watermark: Currently stored watermark for the handle
        handle: Our handle, without the '@'
        case_sensitive: Whether the self-authorship check respects case

    Returns:
        TriggerDecision
    """
    if not is_newer(message, watermark):
        return TriggerDecision(is_new=False)

    if watermark.is_empty:
        return TriggerDecision(is_new=True, is_first_observation=True)

    body = message.body or ""
    if is_self_authored(body, handle, case_sensitive):
        return TriggerDecision(is_new=True, is_self_authored=True)

    return TriggerDecision(
        is_new=True,
        is_trigger_match=is_trigger(body, handle, case_sensitive),
    )
