from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RecordingStatus(str, Enum):
    OFF = "off"
    ON = "on"
    PAUSED = "paused"


class ActionKind(str, Enum):
    CLICK = "click"
    DBLCLICK = "dblclick"
    KEYDOWN = "keydown"
    CHANGE = "change"
    SUBMIT = "submit"


CAPTURED_ACTIONS = {kind.value for kind in ActionKind}


class CommandAction(str, Enum):
    START = "start"
    RESUME = "resume"
    PAUSE = "pause"
    RESET = "reset"


class ParsedEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    selector: str = ""
    action: str
    tag: str = ""
    value: str = ""
    href: Optional[str] = None
    id: Optional[str] = None
    input_type: Optional[str] = Field(default=None, alias="inputType")
    key: Optional[str] = None

    @model_validator(mode="after")
    def validate_action_fields(self) -> "ParsedEvent":
        """Captured actions need a selector; only keydown carries a key."""
        if self.action in CAPTURED_ACTIONS and not self.selector.strip():
            raise ValueError(f"{self.action} event requires a non-empty selector")
        if self.key is not None and self.action != ActionKind.KEYDOWN.value:
            raise ValueError(f"key is only valid for keydown events, not {self.action}")
        return self


class CodeBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    prompt: str = ""


class CommandMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str
    tab_id: Optional[int] = Field(default=None, alias="tabId")


class EventMessage(BaseModel):
    event: ParsedEvent


class MoveRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source: int = Field(alias="from")
    target: int = Field(alias="to")


class SessionSnapshot(BaseModel):
    status: RecordingStatus
    blocks: List[CodeBlock]
    origin_host: Optional[str] = None
    last_visited_url: str = ""
    degraded: bool = False


class ConnectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    sender_url: str = Field(default="", alias="senderUrl")


class NavigationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    signal: str
    url: str
    tab_id: int = Field(default=0, alias="tabId")
    frame_id: int = Field(default=0, alias="frameId")
    transition_qualifiers: List[str] = Field(default_factory=list, alias="transitionQualifiers")
