from pydantic import BaseModel, Field, SerializeAsAny

from skein.message import Message


class Session(BaseModel):
    """Conversation transcript shared by every turn of a task."""

    session_id: str
    transcript: list[SerializeAsAny[Message]] = Field(default_factory=list)

    def last(self) -> Message | None:
        return self.transcript[-1] if self.transcript else None
