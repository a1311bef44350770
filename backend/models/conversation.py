"""Conversation data models."""
from dataclasses import dataclass
from typing import Dict

USER = "user"
ASSISTANT = "assistant"
SYSTEM = "system"

ROLES = (USER, ASSISTANT)


@dataclass(frozen=True)
class ConversationTurn:
    """A single caller-supplied turn in a conversation."""
    role: str
    content: str

    def to_message(self) -> Dict[str, str]:
        """Render the turn in chat-completion message format."""
        return {"role": self.role, "content": self.content}
