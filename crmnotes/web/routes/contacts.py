"""Contact routes: CRUD, suggestions, bulk actions and domain grouping."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from ...contacts import (
    DuplicateContactError,
    bulk_update,
    confirm_suggestion,
    create_contact,
    delete_contact,
    get_contact,
    get_contact_notes,
    get_contact_stats,
    link_contact_to_account,
    list_contacts,
    update_contact,
)
from ...domain_resolver import (
    create_account_from_domain,
    get_domain_groups,
    link_domain_to_account,
)
from ..dependencies import INVALID_JSON, error, json_body, not_found

router = APIRouter()


# ---------------------------------------------------------------------------
# Collections (registered before /contacts/{contact_id})
# ---------------------------------------------------------------------------

@router.get("/contacts")
def contacts_list(
    contact_filter: str | None = Query(None, alias="filter"),
    account_id: str | None = None,
):
    try:
        contacts = list_contacts(contact_filter, account_id=account_id)
    except ValueError as exc:
        return error(str(exc))
    return [asdict(c) for c in contacts]


@router.get("/contacts/stats")
def contacts_stats():
    return asdict(get_contact_stats())


@router.get("/contacts/domain-groups")
def contacts_domain_groups(
    group_filter: str = Query("unlinked", alias="filter"),
    include_contacts: bool = False,
):
    try:
        groups = get_domain_groups(group_filter, include_contacts=include_contacts)
    except ValueError as exc:
        return error(str(exc))
    return [asdict(g) for g in groups]


@router.post("/contacts")
async def contacts_create(request: Request):
    body = await json_body(request)
    if body is None:
        return error(INVALID_JSON)
    try:
        contact = create_contact(
            body.get("email"),
            name=body.get("name") or "",
            company=body.get("company") or "",
            source=body.get("source") or "manual",
        )
    except DuplicateContactError as exc:
        return error(str(exc), 409)
    except ValueError as exc:
        return error(str(exc))
    return JSONResponse({"id": contact.id, "email": contact.email}, status_code=201)


@router.post("/contacts/bulk")
async def contacts_bulk(request: Request):
    body = await json_body(request)
    if body is None:
        return error(INVALID_JSON)
    try:
        affected = bulk_update(body.get("contact_ids"), body.get("action"), body.get("value"))
    except ValueError as exc:
        return error(str(exc))
    return {"message": "Bulk update applied", "affected": affected}


# ---------------------------------------------------------------------------
# Domain linking
# ---------------------------------------------------------------------------

@router.post("/contacts/domain/{domain}/link/{account_id}")
def contacts_link_domain(domain: str, account_id: str):
    try:
        result = link_domain_to_account(domain, account_id)
    except ValueError as exc:
        return error(str(exc))
    if result is None:
        return not_found("Account")
    return asdict(result)


@router.post("/contacts/domain/{domain}/create-account")
async def contacts_create_account_from_domain(request: Request, domain: str):
    # The body is optional here; it only carries a custom account name.
    body = await json_body(request) or {}
    name = body.get("account_name")
    if name is not None and not isinstance(name, str):
        return error("account_name must be a string")
    try:
        result = create_account_from_domain(domain, name)
    except ValueError as exc:
        return error(str(exc))
    return JSONResponse(asdict(result), status_code=201)


# ---------------------------------------------------------------------------
# Single contact
# ---------------------------------------------------------------------------

@router.get("/contacts/{contact_id}")
def contacts_detail(contact_id: str):
    contact = get_contact(contact_id)
    if not contact:
        return not_found("Contact")
    return asdict(contact)


@router.put("/contacts/{contact_id}")
async def contacts_update(request: Request, contact_id: str):
    body = await json_body(request)
    if body is None:
        return error(INVALID_JSON)
    try:
        contact = update_contact(
            contact_id,
            name=body.get("name"),
            company=body.get("company"),
            account_id=body.get("account_id"),
        )
    except ValueError as exc:
        return error(str(exc))
    if not contact:
        return not_found("Contact")
    return asdict(contact)


@router.delete("/contacts/{contact_id}")
def contacts_delete(contact_id: str):
    if not delete_contact(contact_id):
        return not_found("Contact")
    return {"message": "Contact deleted"}


@router.post("/contacts/{contact_id}/confirm-suggestion")
async def contacts_confirm_suggestion(request: Request, contact_id: str):
    body = await json_body(request)
    if body is None:
        return error(INVALID_JSON)
    confirm = body.get("confirm")
    if not isinstance(confirm, bool):
        return error("confirm must be true or false")
    try:
        found = confirm_suggestion(contact_id, confirm)
    except ValueError as exc:
        return error(str(exc))
    if not found:
        return not_found("Contact")
    return {"message": "Suggestion confirmed" if confirm else "Suggestion rejected"}


@router.post("/contacts/{contact_id}/link/{account_id}")
def contacts_link(contact_id: str, account_id: str):
    try:
        contact = link_contact_to_account(contact_id, account_id)
    except ValueError as exc:
        return error(str(exc))
    if not contact:
        return not_found("Contact")
    return asdict(contact)


@router.get("/contacts/{contact_id}/notes")
def contacts_notes(contact_id: str):
    notes = get_contact_notes(contact_id)
    if notes is None:
        return not_found("Contact")
    return notes
