"""
Wire shapes for acknowledgement responses.

Response format for the list endpoint:

    {
      "meta": {"count": 1},
      "links": {},
      "data": [
        {
          "rule": "ccx_rules_ocp.external.rules.nodes_kubelet_version_check|NODE_KUBELET_VERSION",
          "justification": "not relevant for this cluster fleet",
          "created_by": "jdoe",
          "created_at": "2021-09-04T17:11:35.130Z",
          "updated_at": "2021-09-04T17:11:35.130Z"
        }
      ]
    }

Pagination is not supported, so ``links`` stays empty.
"""

from typing import Any, Dict, Optional

from fastapi import Response
from fastapi.responses import JSONResponse

from shared.errors import ErrorResponse

from service_gateway.app.domain.models import (
    AckOutcome,
    AckStatus,
    AcknowledgementList,
    AcknowledgementRecord,
    format_timestamp,
)

_SUCCESS_STATUS_CODES = {
    AckStatus.LISTED: 200,
    AckStatus.FOUND: 200,
    AckStatus.ALREADY_ACKED: 200,
    AckStatus.UPDATED: 200,
    AckStatus.CREATED: 201,
}

_ERROR_RESPONSES = {
    AckStatus.NOT_FOUND: (404, "ACK_NOT_FOUND", "Rule acknowledgement not found"),
    AckStatus.REREAD_FAILED: (502, "ACK_STATE_UNCONFIRMED", "Unable to confirm rule acknowledgement state"),
    AckStatus.INTERRUPTED: (504, "ACK_STATE_UNCONFIRMED", "Request deadline expired before confirming rule acknowledgement state"),
}


def render_record(record: AcknowledgementRecord) -> Dict[str, Any]:
    """Single acknowledgement, fields in fixed order."""
    return {
        "rule": record.rule,
        "justification": record.justification,
        "created_by": record.created_by,
        "created_at": format_timestamp(record.created_at),
        "updated_at": format_timestamp(record.updated_at),
    }


def render_list(listing: AcknowledgementList) -> Dict[str, Any]:
    """List envelope with meta, (empty) links and data."""
    return {
        "meta": {"count": listing.count},
        "links": {},
        "data": [render_record(record) for record in listing.items],
    }


def status_code_for(outcome: AckOutcome) -> int:
    """HTTP status for an orchestrator outcome."""
    if outcome.status == AckStatus.DELETED:
        return 204
    if outcome.status in _SUCCESS_STATUS_CODES:
        return _SUCCESS_STATUS_CODES[outcome.status]
    return _ERROR_RESPONSES[outcome.status][0]


def error_code_for(outcome: AckOutcome) -> Optional[str]:
    """Error code of a failed outcome, ``None`` for successes."""
    entry = _ERROR_RESPONSES.get(outcome.status)
    return entry[1] if entry else None


def render_outcome(outcome: AckOutcome) -> Response:
    """Turn an orchestrator outcome into the HTTP response sent to the client."""
    status_code = status_code_for(outcome)

    if outcome.status == AckStatus.DELETED:
        return Response(status_code=status_code)

    if outcome.status == AckStatus.LISTED:
        return JSONResponse(status_code=status_code, content=render_list(outcome.listing or AcknowledgementList()))

    if outcome.status in _SUCCESS_STATUS_CODES:
        return JSONResponse(status_code=status_code, content=render_record(outcome.record))

    _, code, message = _ERROR_RESPONSES[outcome.status]
    details: Dict[str, Any] = {"mutated": outcome.mutated}
    if outcome.detail:
        details["hint"] = outcome.detail
    error = ErrorResponse(code=code, message=message, details=details)
    return JSONResponse(status_code=status_code, content=error.model_dump())
