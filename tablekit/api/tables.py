from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from tablekit.api.deps import get_db, get_dispatcher
from tablekit.config import settings
from tablekit.schemas.tables import ActionInvocationRequest, TableResultResponse
from tablekit.services.tables.dispatcher import (
    ActionDispatcher,
    ActionInvocation,
    build_action_response,
    previous_location,
    wants_structured_response,
)
from tablekit.services.tables.registry import TableRegistry
from tablekit.services.tables.request_params import parse_table_params

router = APIRouter(prefix="/tables", tags=["tables"])
action_router = APIRouter(tags=["tables"])


@action_router.post(settings.action_path)
def invoke_table_action(
    payload: ActionInvocationRequest,
    request: Request,
    db: Session = Depends(get_db),
    dispatcher: ActionDispatcher = Depends(get_dispatcher),
) -> Response:
    invocation = ActionInvocation(
        table=payload.table,
        name=payload.name,
        action=payload.action,
        signature=request.query_params.get("signature"),
        record=request.query_params.get("record"),
        records=payload.records,
        params=payload.params,
    )
    outcome = dispatcher.dispatch(db, invocation)
    return build_action_response(
        outcome,
        structured=wants_structured_response(request),
        back_url=previous_location(request),
    )


@router.get("/{table_key}", response_model=TableResultResponse)
def get_table(
    table_key: str,
    request: Request,
    db: Session = Depends(get_db),
):
    if not TableRegistry.exists(table_key):
        raise HTTPException(status_code=404, detail="Unregistered tableKey")

    table = TableRegistry.get(table_key)
    params = parse_table_params(request.query_params).with_per_page_cap(settings.max_per_page)
    result = table.build(db, params, base_url=request.url.path)
    return result.to_dict()
