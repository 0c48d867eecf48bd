from typing import Literal, Union
from pydantic import BaseModel, ConfigDict, Field


class ChunkEvent(BaseModel):
    """One generated fragment"""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["chunk"] = "chunk"
    content: str
    message_id: str = Field(..., alias="messageId")


class CompleteEvent(BaseModel):
    """Terminal event carrying the full assembled reply"""
    type: Literal["complete"] = "complete"
    content: str


class ErrorEvent(BaseModel):
    """Terminal event for a failed generation"""
    type: Literal["error"] = "error"
    error: str


StreamEvent = Union[ChunkEvent, CompleteEvent, ErrorEvent]
