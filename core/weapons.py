"""
Weapon damage table and combat chat lines.
"""

from __future__ import annotations
import random
from typing import Iterable, Optional
from game.models import Item

WEAPON_DAMAGE = {
    "netherite_sword": 8, "diamond_sword": 7, "iron_sword": 6,
    "stone_sword": 5, "golden_sword": 4, "wooden_sword": 4,
    "netherite_axe": 10, "diamond_axe": 9, "iron_axe": 9,
    "stone_axe": 9, "golden_axe": 7, "wooden_axe": 7,
}

MOCKING_MESSAGES = [
    "You are finished {name}!",
    "That's what you get {name}!",
    "{name} messed with the wrong bot!",
    "Game over {name}!",
    "Better luck next time {name}!",
    "{name} thought they could win?",
    "That was too easy {name}!",
    "{name} should have stayed away!",
    "Bot 1, {name} 0!",
    "You picked the wrong fight {name}!",
]


def weapon_damage(item_name: str) -> int:
    return WEAPON_DAMAGE.get(item_name, 1)


def is_melee_weapon(item: Item) -> bool:
    return "sword" in item.name or "axe" in item.name


def best_weapon(items: Iterable[Item]) -> Optional[Item]:
    """Highest-damage melee weapon. Ties keep the first one seen."""
    best: Optional[Item] = None
    best_damage = 0
    for item in items:
        if not is_melee_weapon(item):
            continue
        damage = weapon_damage(item.name)
        if damage > best_damage:
            best, best_damage = item, damage
    return best


def mocking_message(target_name: str, rng=random) -> str:
    return rng.choice(MOCKING_MESSAGES).format(name=target_name)


def elimination_message(target_name: str) -> str:
    return f"{target_name} has been dealt with!"
