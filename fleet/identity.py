"""
Identity Registry — slot id to (display name, unique id).
Identities are created lazily and replaced wholesale on rotation.
"""

from __future__ import annotations
import random
import uuid
from typing import Dict, List, Optional, Union
from game.models import Identity
from fleet.errors import ValidationError
import logging

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 4
NAME_PREFIX = "Player_"


def validate_name(name: Optional[str]) -> str:
    """Operator-supplied display name. Raises ValidationError."""
    if name is None or not name.strip():
        raise ValidationError("Bot name is required", field_name="name")
    name = name.strip()
    if len(name) < MIN_NAME_LENGTH:
        raise ValidationError(
            f"Bot name must be at least {MIN_NAME_LENGTH} characters: {name}",
            field_name="name",
        )
    return name


def parse_unique_id(value: Union[str, uuid.UUID, None]) -> Optional[uuid.UUID]:
    """Accept only the canonical 8-4-4-4-12 form. Empty means "generate one"."""
    if value is None or isinstance(value, uuid.UUID):
        return value
    value = value.strip()
    if not value:
        return None
    try:
        parsed = uuid.UUID(value)
    except ValueError:
        parsed = None
    if parsed is None or str(parsed) != value.lower():
        raise ValidationError(
            "Invalid UUID format! Should be: xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx",
            field_name="uuid",
        )
    return parsed


def random_identity() -> Identity:
    return Identity(
        display_name=f"{NAME_PREFIX}{random.randint(100000, 999999)}",
        unique_id=uuid.uuid4(),
    )


class IdentityRegistry:

    def __init__(self):
        self._identities: Dict[int, Identity] = {}

    def identity_for(self, slot_id: int) -> Identity:
        """Existing identity, or a new random one stored for the slot."""
        identity = self._identities.get(slot_id)
        if identity is None:
            identity = random_identity()
            self._identities[slot_id] = identity
            logger.info(f"[IDENTITY] Bot {slot_id}: new identity {identity.display_name}")
        return identity

    def rotate_identity(
        self,
        slot_id: int,
        name: Optional[str] = None,
        unique_id: Union[str, uuid.UUID, None] = None,
    ) -> Identity:
        """Replace the slot's identity. Missing fields are randomized."""
        if name is not None:
            name = validate_name(name)
        parsed_id = parse_unique_id(unique_id)

        generated = random_identity()
        identity = Identity(
            display_name=name or generated.display_name,
            unique_id=parsed_id or generated.unique_id,
        )
        self._identities[slot_id] = identity
        logger.info(f"[IDENTITY] Bot {slot_id}: new identity {identity.display_name}")
        return identity

    def has(self, slot_id: int) -> bool:
        return slot_id in self._identities

    def get(self, slot_id: int) -> Optional[Identity]:
        return self._identities.get(slot_id)

    def forget(self, slot_id: int):
        self._identities.pop(slot_id, None)

    def slot_ids(self) -> List[int]:
        return list(self._identities.keys())
