from dataclasses import dataclass
from enum import Enum


class TurnRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationTurn:
    role: TurnRole
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationTurn":
        return cls(role=TurnRole(data["role"]), content=str(data.get("content") or ""))
