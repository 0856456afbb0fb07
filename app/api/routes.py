"""API routes for the meeting request workflow."""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse, JSONResponse
from sqlalchemy.orm import Session

from app.auth import Identity, get_current_identity, require_capability
from app.config import get_settings
from app.database import get_db
from app.models.enums import Capability
from app.services.attachments import AttachmentService, AttachmentStore, get_attachment_store
from app.services.audit_recorder import AuditRecorder
from app.services.query_service import ListFilters, QueryService
from app.services.request_service import RequestService
from app.services.state_machine import LifecycleEngine
from app.api.schemas import (
    AttachmentResponse,
    AuditEntryResponse,
    CancelBody,
    CreateResponse,
    DetailResponse,
    ErrorResponse,
    IdResponse,
    MeetingRequestCreate,
    MeetingRequestBody,
    MeetingRequestResponse,
    MeetingRequestSummary,
    MeetingRequestUpdate,
    MessageResponse,
    PageResponse,
    UpdateResponse,
    parse_flexible_date,
)

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation failure or illegal status change"},
    404: {"model": ErrorResponse, "description": "Meeting request not found"},
}


def _query_date(value: Optional[str], name: str):
    try:
        return parse_flexible_date(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"kind": "validation_error", "message": f"Invalid {name}: {value}"}
        )


# MeetingRequest endpoints
@router.post("/meetingrequests", response_model=CreateResponse, response_model_exclude_none=True,
             status_code=status.HTTP_201_CREATED, responses=ERROR_RESPONSES)
def create_meeting_request(body: MeetingRequestCreate, db: Session = Depends(get_db),
                           identity: Identity = Depends(get_current_identity)):
    """
    Submit a new request (status Pending, reference number assigned).

    If a submitted request with the same title, date and category exists, its
    id is returned with duplicate=true and nothing is created.
    """
    service = RequestService(db)
    data = body.model_dump(exclude={"confirm_duplicate"})
    meeting_request, duplicate = service.create(data, identity, confirm_duplicate=body.confirm_duplicate)
    if duplicate:
        return JSONResponse(status_code=status.HTTP_200_OK, content={"id": meeting_request.id, "duplicate": True})
    return CreateResponse(id=meeting_request.id)


@router.post("/meetingrequests/draft", response_model=IdResponse)
def save_draft(body: MeetingRequestBody, db: Session = Depends(get_db),
               identity: Identity = Depends(get_current_identity)):
    """Save a draft. No required fields."""
    meeting_request = RequestService(db).save_draft(body.model_dump(), identity)
    return IdResponse(id=meeting_request.id)


@router.get("/meetingrequests", response_model=PageResponse)
def list_meeting_requests(
    classification: Optional[str] = None,
    category: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    page: Optional[int] = None,
    page_size: Optional[int] = Query(None, alias="pageSize"),
    requestor_email: Optional[str] = Query(None, alias="requestorEmail"),
    db: Session = Depends(get_db)
):
    """
    List requests, newest first.

    requestorEmail matches the stored email or, for older records, the
    requestor name. Free-text search is not applied here.
    """
    filters = ListFilters(
        classification=classification,
        category=category,
        status=status_filter,
        start_date=_query_date(start_date, "startDate"),
        end_date=_query_date(end_date, "endDate"),
        requestor_identity=requestor_email
    )
    result = QueryService(db).list(filters, page=page, page_size=page_size)
    return PageResponse(
        items=[MeetingRequestSummary.model_validate(item) for item in result.items],
        page=result.page,
        page_size=result.page_size,
        total_count=result.total_count,
        total_pages=result.total_pages,
        has_more=result.has_more
    )


@router.get("/meetingrequests/{request_id}", response_model=DetailResponse, responses=ERROR_RESPONSES)
def get_meeting_request(request_id: int, db: Session = Depends(get_db)):
    """Get a request with its full change history."""
    meeting_request = RequestService(db).get(request_id)
    recorder = AuditRecorder(db)
    return DetailResponse(
        id=meeting_request.id,
        meeting_request=MeetingRequestResponse.model_validate(meeting_request),
        audit_logs=[AuditEntryResponse.model_validate(e) for e in recorder.list_for_request(request_id)],
        status_history=[AuditEntryResponse.model_validate(e) for e in recorder.status_changes(request_id)]
    )


@router.put("/meetingrequests/{request_id}", response_model=UpdateResponse, responses=ERROR_RESPONSES)
def update_meeting_request(request_id: int, body: MeetingRequestUpdate, db: Session = Depends(get_db),
                           identity: Identity = Depends(get_current_identity)):
    """
    Partial update: fields present overwrite, absent fields are kept.
    Only fields whose value actually changed are audited.
    """
    _, written = RequestService(db).update(request_id, body.model_dump(exclude_unset=True), identity)
    message = "Meeting request updated" if written else "No changes"
    return UpdateResponse(id=request_id, message=message)


@router.delete("/meetingrequests/{request_id}", response_model=MessageResponse, responses=ERROR_RESPONSES)
def delete_meeting_request(request_id: int, db: Session = Depends(get_db),
                           store: AttachmentStore = Depends(get_attachment_store),
                           identity: Identity = Depends(get_current_identity)):
    """Delete a draft with its attachments and history. Refused for submitted requests."""
    LifecycleEngine(db, store).delete(request_id, identity.user_id)
    return MessageResponse(message="Draft deleted")


# Transition endpoints
@router.post("/meetingrequests/{request_id}/approve", response_model=MessageResponse, responses=ERROR_RESPONSES)
def approve_meeting_request(request_id: int, db: Session = Depends(get_db),
                            identity: Identity = Depends(require_capability(Capability.APPROVE))):
    LifecycleEngine(db).approve(request_id, identity.user_id)
    return MessageResponse(message="Meeting request approved")


@router.post("/meetingrequests/{request_id}/confirm", response_model=MessageResponse, responses=ERROR_RESPONSES)
def confirm_meeting_request(request_id: int, db: Session = Depends(get_db),
                            identity: Identity = Depends(require_capability(Capability.CONFIRM))):
    LifecycleEngine(db).confirm(request_id, identity.user_id)
    return MessageResponse(message="Meeting request confirmed")


@router.post("/meetingrequests/{request_id}/announce", response_model=MessageResponse, responses=ERROR_RESPONSES)
def announce_meeting_request(request_id: int, db: Session = Depends(get_db),
                             identity: Identity = Depends(require_capability(Capability.ANNOUNCE))):
    """Announce a Confirmed request."""
    LifecycleEngine(db).announce(request_id, identity.user_id)
    return MessageResponse(message="Meeting request announced")


@router.post("/meetingrequests/{request_id}/cancel", response_model=MessageResponse, responses=ERROR_RESPONSES)
def cancel_meeting_request(request_id: int, body: CancelBody, db: Session = Depends(get_db),
                           identity: Identity = Depends(require_capability(Capability.CANCEL))):
    """Cancel with a reason. The reason is kept in the audit log."""
    LifecycleEngine(db).cancel(request_id, body.reason, identity.user_id)
    return MessageResponse(message="Meeting request cancelled")


# Attachment endpoints
@router.get("/meetingrequests/{request_id}/attachments", response_model=List[AttachmentResponse],
            responses=ERROR_RESPONSES)
def list_attachments(request_id: int, db: Session = Depends(get_db),
                     store: AttachmentStore = Depends(get_attachment_store)):
    return AttachmentService(db, store).list(request_id)


@router.post("/meetingrequests/{request_id}/attachments", response_model=AttachmentResponse,
             status_code=status.HTTP_201_CREATED, responses=ERROR_RESPONSES)
def upload_attachment(request_id: int, file: UploadFile = File(...), db: Session = Depends(get_db),
                      store: AttachmentStore = Depends(get_attachment_store),
                      identity: Identity = Depends(get_current_identity)):
    """Upload a file. At most five per request."""
    # One byte past the limit is enough to reject an oversized upload
    data = file.file.read(get_settings().MAX_ATTACHMENT_BYTES + 1)
    return AttachmentService(db, store).save(
        request_id,
        file_name=file.filename,
        content_type=file.content_type,
        data=data,
        actor=identity.user_id
    )


@router.get("/meetingrequests/{request_id}/attachments/{attachment_id}", responses=ERROR_RESPONSES)
def download_attachment(request_id: int, attachment_id: int, db: Session = Depends(get_db),
                        store: AttachmentStore = Depends(get_attachment_store)):
    attachment, path = AttachmentService(db, store).open(request_id, attachment_id)
    return FileResponse(
        path,
        media_type=attachment.content_type or "application/octet-stream",
        filename=attachment.file_name
    )


@router.delete("/meetingrequests/{request_id}/attachments/{attachment_id}", response_model=MessageResponse,
               responses=ERROR_RESPONSES)
def delete_attachment(request_id: int, attachment_id: int, db: Session = Depends(get_db),
                      store: AttachmentStore = Depends(get_attachment_store),
                      identity: Identity = Depends(get_current_identity)):
    """Delete an attachment. Only allowed while the request is a draft."""
    AttachmentService(db, store).delete(request_id, attachment_id, identity.user_id)
    return MessageResponse(message="Attachment deleted")
