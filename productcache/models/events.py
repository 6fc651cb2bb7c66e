from uuid import uuid4

from pydantic import BaseModel, Field

from productcache.models.enums import EventKind


class EventRecord(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    kind: EventKind
    key: str
    label: str
    timestamp: float
