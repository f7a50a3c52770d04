"""
Command Dispatcher — operator chat/commands to one or all bots.
"""

from __future__ import annotations
from typing import List, Union, TYPE_CHECKING
from fleet.errors import ValidationError
import logging

if TYPE_CHECKING:
    from fleet.event_log import EventLog
    from fleet.registry import FleetRegistry

logger = logging.getLogger(__name__)

ALL = "all"


class CommandDispatcher:

    def __init__(self, registry: "FleetRegistry", event_log: "EventLog"):
        self.registry = registry
        self.event_log = event_log

    def send_command(self, text: str, target: Union[str, int] = ALL) -> List[int]:
        """
        Deliver text to every eligible slot ("all") or to one slot id.
        Eligible: online, not stopped, with a live session.
        Returns the ids it was delivered to; an empty list is not an error.
        """
        if text is None or not str(text).strip():
            raise ValidationError("No command provided", field_name="command")
        text = str(text).strip()

        if isinstance(target, str) and target.strip().lower() == ALL:
            sent_to = []
            for slot in self.registry.eligible():
                slot.session.chat(text)
                sent_to.append(slot.id)
            self.event_log.add(f"[WEB] Command to all bots: {text}")
            return sent_to

        try:
            slot_id = int(target)
        except (TypeError, ValueError):
            logger.warning(f"[COMMAND] Unknown target {target!r}, nothing sent")
            return []

        slot = self.registry.get(slot_id)
        if slot is None or not slot.is_eligible:
            return []
        slot.session.chat(text)
        self.event_log.add(f"[WEB] Command to bot {slot_id}: {text}")
        return [slot_id]
