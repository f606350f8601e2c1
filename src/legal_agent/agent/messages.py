"""Conversion between the HTTP turn format and LangChain messages."""

from __future__ import annotations

from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

_ASSISTANT_ROLES = frozenset({"model", "assistant", "bot"})


def build_user_message(text: str, files: list[dict[str, str]] | None = None) -> HumanMessage:
    """Build the user turn from text plus inline base64 attachments."""
    if not files:
        return HumanMessage(content=text)

    content: list[str | dict[str, Any]] = []
    if text:
        content.append({"type": "text", "text": text})
    for item in files:
        mime_type = item["mimeType"]
        if mime_type.startswith("image/"):
            content.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{mime_type};base64,{item['data']}"},
                }
            )
        else:
            content.append(
                {
                    "type": "file",
                    "source_type": "base64",
                    "mime_type": mime_type,
                    "data": item["data"],
                }
            )
    return HumanMessage(content=content)


def history_to_messages(history: list[dict[str, Any]] | None) -> list[BaseMessage]:
    """Convert prior `{role, parts: [{text}]}` turns into chat messages.

    Only text parts are carried over; turns without text (earlier tool calls
    and tool results) are dropped because their call ids are not replayable.
    """

    messages: list[BaseMessage] = []
    for turn in history or []:
        texts = [
            str(part["text"])
            for part in turn.get("parts", [])
            if isinstance(part, dict) and part.get("text")
        ]
        if not texts:
            continue
        text = "\n".join(texts)
        role = str(turn.get("role", "")).lower()
        if role in _ASSISTANT_ROLES:
            messages.append(AIMessage(content=text))
        elif role == "user":
            messages.append(HumanMessage(content=text))
    return messages


def message_text(message: BaseMessage) -> str:
    """Concatenate the text blocks of a model message."""
    content = message.content
    if isinstance(content, str):
        return content.strip()
    parts: list[str] = []
    for item in content:
        if isinstance(item, str):
            parts.append(item)
        elif isinstance(item, dict) and item.get("type") == "text" and "text" in item:
            parts.append(str(item["text"]))
    return "".join(parts).strip()
