from pydantic import BaseModel

from pkmrag.rag.modes import ChatMode, InputType


class AskRequest(BaseModel):
    mode: ChatMode = "explore"
    text: str
    concepts: list[str] | None = None
    input_type: InputType = "idea"
    tags: list[str] = []


class ReindexRequest(BaseModel):
    force: bool = False


class NoteEvent(BaseModel):
    location: str


class RenameEvent(BaseModel):
    old_location: str
    new_location: str
