from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PaginationLink(BaseModel):
    url: str | None = None
    label: str
    active: bool = False


class TablePagination(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_page: int
    per_page: int
    total: int
    last_page: int
    from_: int | None = Field(default=None, alias="from")
    to: int | None = None
    links: list[PaginationLink] = Field(default_factory=list)


class TableResultResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    config: dict[str, Any]
    data: list[dict[str, Any]]
    pagination: TablePagination
    sort: dict[str, str] = Field(default_factory=dict)
    search: str | None = None
    filters: dict[str, Any] = Field(default_factory=dict)
    name: str | None = None
    actions: list[dict[str, Any]] = Field(default_factory=list)
    bulk_actions: list[dict[str, Any]] = Field(default_factory=list, alias="bulkActions")
    header_actions: list[dict[str, Any]] = Field(default_factory=list, alias="headerActions")
    primary_key: str | None = Field(default=None, alias="primaryKey")


class ActionInvocationRequest(BaseModel):
    """Body of an action callback POST.

    Fields beyond the declared ones are passed to the execution body.
    """

    model_config = ConfigDict(extra="allow")

    table: str = Field(min_length=1)
    name: str = Field(min_length=1)
    action: str = Field(min_length=1)
    records: list[str | int] | None = None

    @property
    def params(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class ActionResponse(BaseModel):
    success: bool
    redirect_url: str | None = None
    message: str | None = None
