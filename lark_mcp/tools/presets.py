"""Named tool presets and the expander that flattens them into tool names."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Sequence

PRESET_PREFIX = "preset."
DEFAULT_PRESET = "preset.default"

PRESET_TOOLS: Dict[str, List[str]] = {
    "preset.light": [
        "im.v1.chat.search",
        "im.v1.message.create",
        "im.v1.message.list",
        "docx.builtin.search",
        "docx.v1.document.rawContent",
        "wiki.v1.node.search",
        "task.v2.task.create",
        "contact.v3.user.batchGetId",
    ],
    "preset.default": [
        "im.v1.chat.create",
        "im.v1.chat.list",
        "im.v1.chatMembers.get",
        "im.v1.message.create",
        "im.v1.message.list",
        "bitable.v1.app.create",
        "bitable.v1.appTable.create",
        "bitable.v1.appTable.list",
        "bitable.v1.appTableField.list",
        "bitable.v1.appTableRecord.search",
        "bitable.v1.appTableRecord.create",
        "bitable.v1.appTableRecord.update",
        "docx.v1.document.rawContent",
        "docx.builtin.import",
        "docx.builtin.search",
        "drive.v1.permissionMember.create",
        "wiki.v2.space.getNode",
        "wiki.v1.node.search",
        "contact.v3.user.batchGetId",
    ],
    "preset.im.default": [
        "im.v1.chat.create",
        "im.v1.chat.list",
        "im.v1.chat.search",
        "im.v1.chatMembers.get",
        "im.v1.message.create",
        "im.v1.message.list",
    ],
    "preset.base.default": [
        "bitable.v1.app.create",
        "bitable.v1.appTable.create",
        "bitable.v1.appTable.list",
        "bitable.v1.appTableField.list",
        "bitable.v1.appTableRecord.search",
        "bitable.v1.appTableRecord.create",
        "bitable.v1.appTableRecord.update",
    ],
    "preset.doc.default": [
        "docx.v1.document.rawContent",
        "docx.builtin.import",
        "docx.builtin.search",
        "drive.v1.permissionMember.create",
        "wiki.v2.space.getNode",
        "wiki.v1.node.search",
    ],
    "preset.calendar.default": [
        "calendar.v4.calendarEvent.create",
        "calendar.v4.calendarEvent.list",
        "calendar.v4.freebusy.list",
        "contact.v3.user.batchGetId",
    ],
    "preset.task.default": [
        "task.v2.task.create",
        "task.v2.task.patch",
        "contact.v3.user.batchGetId",
    ],
    "preset.mail.default": [
        "mail.v1.userMailboxMessage.list",
        "mail.v1.userMailboxMessage.get",
        "mail.v1.userMailboxMessage.send",
    ],
}


def is_preset(token: str) -> bool:
    return token.startswith(PRESET_PREFIX)


def expand_presets(
    tokens: Sequence[str],
    presets: Mapping[str, Sequence[str]] = PRESET_TOOLS,
    default: str = DEFAULT_PRESET,
) -> List[str]:
    """
    Flatten a mix of tool names and preset identifiers into tool names.

    Presets are replaced in place by their members; duplicates keep their
    first position. Unknown presets are passed through unchanged so that the
    filter drops them like any other unknown name. An empty ``tokens``
    selects the ``default`` preset.
    """
    if not tokens:
        tokens = [default]

    expanded: List[str] = []
    seen = set()
    for token in tokens:
        members: Iterable[str] = presets[token] if is_preset(token) and token in presets else [token]
        for name in members:
            if name not in seen:
                seen.add(name)
                expanded.append(name)
    return expanded
