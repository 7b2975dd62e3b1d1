"""
Recipient routing for signaling events.

Shared by the HTTP event relay and the Redis transport so both deliver the same
event to the same parties.
"""

from typing import Any, List, Mapping, Tuple

from .types import CallEventTypes


def route_event(
    sender_id: str, event_type: str, data: Any
) -> List[Tuple[str, str]]:
    """
    Return ``(recipient_id, event_type)`` pairs for an event sent by ``sender_id``.

    Call setup goes to the callee as ``incoming-call``; responses and hang-ups go
    to both participants. The sender never receives its own event.
    """
    if not isinstance(data, Mapping):
        return []

    if event_type in (CallEventTypes.INITIATE_CALL, CallEventTypes.INCOMING_CALL):
        callee_id = data.get("calleeId")
        if callee_id and callee_id != sender_id:
            return [(callee_id, CallEventTypes.INCOMING_CALL)]
        return []

    if event_type in (CallEventTypes.CALL_RESPONSE, CallEventTypes.CALL_ENDED):
        recipients = []
        for key in ("callerId", "calleeId"):
            target = data.get(key)
            if target and target != sender_id and (target, event_type) not in recipients:
                recipients.append((target, event_type))
        return recipients

    return []


# Outcome events a service-side observer needs to keep its call records current,
# even though it is neither party to the call.
OBSERVED_EVENTS = (CallEventTypes.CALL_RESPONSE, CallEventTypes.CALL_ENDED)
