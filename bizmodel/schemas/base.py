# bizmodel/schemas/base.py
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Base for request/response bodies.

    Attributes are snake_case in Python and camelCase on the wire
    (quiz_data <-> "quizData"); both spellings are accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class RequestModel(CamelModel):
    """Request bodies reject unknown fields."""

    model_config = ConfigDict(extra="forbid")


class Message(CamelModel):
    message: str
