"""
Locked request loading and workflow-edge lookup shared by the services
that transition requests (lifecycle engine, gate verifier, return handler).
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from custody_kernel.domain.lifecycle import REQUEST_WORKFLOW, RequestStatus, Transition
from custody_kernel.exceptions import InvalidStateError, RequestNotFoundError
from custody_kernel.models.request import CustodyRequest


def load_request(session: Session, request_id: str) -> CustodyRequest:
    """Load a request with a row lock (``FOR UPDATE`` where supported)."""
    request = session.execute(
        select(CustodyRequest)
        .where(CustodyRequest.id == request_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if request is None:
        raise RequestNotFoundError(request_id)
    return request


def transition_for(request: CustodyRequest, action: str) -> Transition:
    """The workflow edge for ``action`` from the request's current status."""
    status = RequestStatus(request.status)
    transition = REQUEST_WORKFLOW.transition_for(action, status)
    if transition is None:
        raise InvalidStateError(request.id, status.value, action)
    return transition
