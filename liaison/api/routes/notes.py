"""Internal note endpoints.

Notes are visible to every operator but only their author may edit or
delete them.
"""

from uuid import UUID

from fastapi import APIRouter, Response

from liaison.api.dependencies import LifecycleDep, OperatorIdDep, SessionStoreDep
from liaison.api.models.session import NoteCreate, NoteListResponse, NoteUpdate
from liaison.conversation.models import InternalNote
from liaison.errors import OperatorNotFoundError

router = APIRouter(prefix="/operator/sessions/{session_id}/notes")


@router.get("", response_model=NoteListResponse)
async def list_notes(
    session_id: UUID,
    lifecycle: LifecycleDep,
    _operator_id: OperatorIdDep,
) -> NoteListResponse:
    notes = await lifecycle.mutations.list_notes(session_id)
    return NoteListResponse(notes=notes)


@router.post("", response_model=InternalNote, status_code=201)
async def add_note(
    session_id: UUID,
    request: NoteCreate,
    lifecycle: LifecycleDep,
    store: SessionStoreDep,
    operator_id: OperatorIdDep,
) -> InternalNote:
    operator = await store.get_operator(operator_id)
    if operator is None:
        raise OperatorNotFoundError(operator_id)
    return await lifecycle.mutations.add_note(
        session_id,
        author_id=operator.operator_id,
        author_name=operator.name,
        content=request.content,
    )


@router.put("/{note_id}", response_model=InternalNote)
async def update_note(
    session_id: UUID,
    note_id: UUID,
    request: NoteUpdate,
    lifecycle: LifecycleDep,
    operator_id: OperatorIdDep,
) -> InternalNote:
    return await lifecycle.mutations.update_note(
        session_id, note_id, operator_id=operator_id, content=request.content
    )


@router.delete("/{note_id}", status_code=204)
async def delete_note(
    session_id: UUID,
    note_id: UUID,
    lifecycle: LifecycleDep,
    operator_id: OperatorIdDep,
) -> Response:
    await lifecycle.mutations.delete_note(session_id, note_id, operator_id=operator_id)
    return Response(status_code=204)
