"""Request and response descriptors.

These are the opaque values the control plane moves around: middleware may
rewrite them, request executors consume RequestConfig and produce Response.

Example:
    >>> config = RequestConfig(url="https://api.example.com/users", method="post", json={"name": "ada"})
    >>> config.method
    'POST'
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, computed_field, field_validator

from fluxguard.runtime.concurrency import CancellationSignal

DEFAULT_METHOD = "GET"


class RequestConfig(BaseModel):
    """Description of one logical request.

    Mutable so request middleware can rewrite it in place; every pipeline run
    works on its own ``fork()`` so rewrites never leak into the caller's copy.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,  # For CancellationSignal
        validate_assignment=True,
        populate_by_name=True,
        extra="forbid",
    )

    url: Annotated[str, Field(min_length=1)]
    method: str = DEFAULT_METHOD
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, Any] = Field(default_factory=dict)
    json_body: Any = Field(default=None, alias="json")
    content: str | bytes | None = Field(default=None, repr=False)
    timeout: PositiveFloat | None = None
    signal: CancellationSignal | None = Field(default=None, exclude=True, repr=False)

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v: str | None) -> str:
        return (v or DEFAULT_METHOD).upper()

    def fork(self, **changes: Any) -> RequestConfig:
        """Shallow copy with private header and param dicts.

        The cancellation signal is shared with the original.
        """
        update = {"headers": dict(self.headers), "params": dict(self.params), **changes}
        return self.model_copy(update=update)


class Response(BaseModel):
    """Result of one successful attempt."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    status: Annotated[int, Field(ge=100, le=599)]
    headers: dict[str, str] = Field(default_factory=dict)
    data: Any = None
    url: str = ""
    elapsed: float = 0.0
    config: RequestConfig | None = Field(default=None, repr=False)

    @computed_field
    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300
