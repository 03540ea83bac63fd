"""Shared base model for stored documents and API payloads."""
from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class LedgerModel(BaseModel):
    """Model whose wire/document field names are camelCase.

    Python code uses snake_case attributes; documents and JSON bodies use the
    camelCase names the stored collections were written with.
    """

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    def to_document(self) -> dict:
        """Serialize for persistence (camelCase keys, ISO timestamps, no nulls)."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)
