"""Payload validation for room configurations, chat messages and ruleset configs."""

from __future__ import annotations

from typing import Any, List

RULESET_MATCH_TYPES = ("exact", "at_least", "any_of")


def validate_room_config(room_config: Any) -> List[str]:
    """Return a list of problems with a room configuration (empty when valid)."""

    if not isinstance(room_config, dict):
        return ["room_data must be an object"]

    errors: List[str] = []
    name = room_config.get("name")
    if not isinstance(name, str) or not name.strip():
        errors.append("room_data.name is required")

    playlist = room_config.get("playlist")
    if not isinstance(playlist, list) or not playlist:
        errors.append("room_data.playlist must be a non-empty array")
    return errors


def validate_chat_messages(messages: Any) -> List[str]:
    if messages is None:
        return []
    if not isinstance(messages, list):
        return ["chat_messages must be an array"]
    return [
        f"chat_messages[{index}] must be a string"
        for index, message in enumerate(messages)
        if not isinstance(message, str)
    ]


def validate_ruleset_config(ruleset_config: Any) -> List[str]:
    """Validate an optional mod-challenge ruleset.

    ``required_mods`` must be a non-empty list of ``{"acronym": str,
    "settings": object?}`` entries and ``ruleset_match_type`` (when present)
    one of :data:`RULESET_MATCH_TYPES`.
    """

    if not ruleset_config:
        return []
    if not isinstance(ruleset_config, dict):
        return ["ruleset_config must be an object"]

    errors: List[str] = []
    match_type = ruleset_config.get("ruleset_match_type")
    if match_type and match_type not in RULESET_MATCH_TYPES:
        errors.append(
            f"Invalid ruleset_match_type. Must be one of: {', '.join(RULESET_MATCH_TYPES)}"
        )

    required_mods = ruleset_config.get("required_mods")
    if required_mods is None:
        errors.append("required_mods is required when ruleset_config is provided")
    elif not isinstance(required_mods, list):
        errors.append("required_mods must be an array")
    elif not required_mods:
        errors.append("required_mods cannot be empty if ruleset_config is provided")
    else:
        for index, mod in enumerate(required_mods):
            if not isinstance(mod, dict):
                errors.append(f"Mod at index {index} must be an object")
                continue
            acronym = mod.get("acronym")
            if not acronym or not isinstance(acronym, str):
                errors.append(f"Mod at index {index} must have a valid acronym")
            if "settings" in mod and not isinstance(mod.get("settings"), dict):
                errors.append(f"Mod {acronym or index}: settings must be an object")

    return errors


__all__ = [
    "RULESET_MATCH_TYPES",
    "validate_chat_messages",
    "validate_room_config",
    "validate_ruleset_config",
]
