"""Shared pydantic base for everything that crosses the wire.

Learn: Python code uses snake_case, the browser client speaks camelCase
(`displayName`, `likeCount`). The alias generator bridges the two:
responses serialise by alias, requests accept either spelling.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def wire(self) -> dict:
        """JSON-ready dict with camelCase keys (what clients receive)."""
        return self.model_dump(mode="json", by_alias=True)


class MessageResponse(CamelModel):
    message: str
