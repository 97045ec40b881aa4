"""Request bodies shared by more than one router.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CitationIn(CamelModel):
    transcript_id: str
    minutes: list[int] = Field(default_factory=list)

    def as_dict(self) -> dict:
        return self.model_dump(by_alias=True)


def citations_payload(citations: Optional[list[CitationIn]]) -> Optional[list[dict]]:
    if citations is None:
        return None
    return [c.as_dict() for c in citations]
