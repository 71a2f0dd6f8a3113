import typing as t

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    TypeAdapter,
    field_validator,
    model_validator,
)


class BatchResponseItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    status: int
    headers: dict[str, t.Any] = Field(default_factory=dict)
    body: t.Any = None

    _envelope: dict[str, t.Any] | None = PrivateAttr(default=None)

    @model_validator(mode="wrap")
    @classmethod
    def keep_envelope(cls, value: t.Any, handler: t.Any) -> "BatchResponseItem":
        item = handler(value)
        if isinstance(value, dict):
            item._envelope = value
        return item

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: t.Any) -> t.Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("headers", mode="before")
    @classmethod
    def default_headers(cls, value: t.Any) -> t.Any:
        return {} if value is None else value

    @property
    def envelope(self) -> dict[str, t.Any]:
        """The response item as the service sent it."""
        if self._envelope is not None:
            return self._envelope
        return self.model_dump(exclude_unset=True)

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return str(value)
        return None

    @property
    def error_code(self) -> str | None:
        if isinstance(self.body, dict):
            error = self.body.get("error")
            if isinstance(error, dict):
                return error.get("code")
        return None


batch_response_list_adapter = TypeAdapter(list[BatchResponseItem])


class CorrelatedResult(BaseModel):
    id: int | None
    argument: t.Any = None
    success: bool
    result: t.Any = None
    status: int | None = None
