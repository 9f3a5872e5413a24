"""Account routes: CRUD, account notes, and note ordering."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ...accounts import (
    UPDATABLE_FIELDS,
    create_account,
    delete_account,
    get_account,
    list_accounts,
    update_account,
)
from ...notes import list_account_notes, reorder_notes
from ..dependencies import INVALID_JSON, error, json_body, not_found, pick

router = APIRouter()


@router.get("/accounts")
def accounts_list():
    return list_accounts()


@router.post("/accounts")
async def accounts_create(request: Request):
    body = await json_body(request)
    if body is None:
        return error(INVALID_JSON)
    try:
        account = create_account(
            body.get("name"),
            account_owner=body.get("account_owner") or "",
            budget=body.get("budget"),
            est_engineers=body.get("est_engineers"),
        )
    except ValueError as exc:
        return error(str(exc))
    return JSONResponse(account, status_code=201)


@router.get("/accounts/{account_id}")
def accounts_detail(account_id: str):
    account = get_account(account_id)
    if not account:
        return not_found("Account")
    return account


@router.put("/accounts/{account_id}")
async def accounts_update(request: Request, account_id: str):
    body = await json_body(request)
    if body is None:
        return error(INVALID_JSON)
    try:
        account = update_account(account_id, **pick(body, UPDATABLE_FIELDS))
    except ValueError as exc:
        return error(str(exc))
    if not account:
        return not_found("Account")
    return account


@router.delete("/accounts/{account_id}")
def accounts_delete(account_id: str):
    if not delete_account(account_id):
        return not_found("Account")
    return {"message": "Account deleted"}


@router.get("/accounts/{account_id}/notes")
def accounts_notes(account_id: str):
    notes = list_account_notes(account_id)
    if notes is None:
        return not_found("Account")
    return notes


@router.post("/accounts/{account_id}/notes/reorder")
async def accounts_reorder_notes(request: Request, account_id: str):
    body = await json_body(request)
    if body is None:
        return error(INVALID_JSON)
    if not get_account(account_id):
        return not_found("Account")
    try:
        updated = reorder_notes(account_id, body.get("note_ids"))
    except ValueError as exc:
        return error(str(exc))
    return {"message": "Notes reordered", "updated": updated}
