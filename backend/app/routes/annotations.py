"""
Point Cloud Annotator Backend: Annotation Route Handlers (Handler Role)
=========================================================================

What:  CRUD endpoints under /api/v1/annotations.
How:   Each handler makes exactly one AnnotationService call and wraps the
       result in the {"data": ...} envelope. Failures are raised as
       AnnotatorError subclasses and rendered by the handlers in main.py.
Who:   Reached through the gateway's proxy, or directly in development.

Endpoints:
    POST   /api/v1/annotations        201 {data: record}
    GET    /api/v1/annotations        200 {data: [record, ...]}
    GET    /api/v1/annotations/{id}   200 {data: record}
    PUT    /api/v1/annotations/{id}   200 {data: record}
    PATCH  /api/v1/annotations/{id}   200 {data: record}  (same semantics as PUT)
    DELETE /api/v1/annotations/{id}   204, empty body
"""

import logging

from fastapi import APIRouter, Response, status

from app.dependencies import AnnotationServiceDep
from app.schemas.annotation import (
    AnnotationCreate,
    AnnotationListResponse,
    AnnotationResponse,
    AnnotationUpdate,
    ErrorResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Annotations"])

_BAD_REQUEST = {400: {"description": "Invalid request", "model": ErrorResponse}}
_NOT_FOUND = {404: {"description": "Annotation not found", "model": ErrorResponse}}
_SERVER_ERROR = {500: {"description": "Server error", "model": ErrorResponse}}


@router.post(
    "/annotations",
    status_code=status.HTTP_201_CREATED,
    response_model=AnnotationResponse,
    responses={**_BAD_REQUEST, **_SERVER_ERROR},
    summary="Create an annotation",
)
async def create_annotation(
    body: AnnotationCreate,
    service: AnnotationServiceDep,
) -> AnnotationResponse:
    annotation = await service.create(body)
    return AnnotationResponse(data=annotation)


@router.get(
    "/annotations",
    response_model=AnnotationListResponse,
    responses=_SERVER_ERROR,
    summary="List every annotation, newest first",
)
async def list_annotations(service: AnnotationServiceDep) -> AnnotationListResponse:
    annotations = await service.get_all()
    return AnnotationListResponse(data=annotations)


@router.get(
    "/annotations/{annotation_id}",
    response_model=AnnotationResponse,
    responses={**_NOT_FOUND, **_SERVER_ERROR},
    summary="Get one annotation",
)
async def get_annotation(
    annotation_id: str,
    service: AnnotationServiceDep,
) -> AnnotationResponse:
    annotation = await service.get_by_id(annotation_id)
    return AnnotationResponse(data=annotation)


@router.api_route(
    "/annotations/{annotation_id}",
    methods=["PUT", "PATCH"],
    response_model=AnnotationResponse,
    responses={**_BAD_REQUEST, **_NOT_FOUND, **_SERVER_ERROR},
    summary="Update an annotation",
    description=(
        "Partial update: fields absent from the body keep their stored value. "
        "PUT and PATCH behave identically."
    ),
)
async def update_annotation(
    annotation_id: str,
    body: AnnotationUpdate,
    service: AnnotationServiceDep,
) -> AnnotationResponse:
    annotation = await service.update(annotation_id, body)
    return AnnotationResponse(data=annotation)


@router.delete(
    "/annotations/{annotation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses={**_NOT_FOUND, **_SERVER_ERROR},
    summary="Delete an annotation",
)
async def delete_annotation(
    annotation_id: str,
    service: AnnotationServiceDep,
) -> Response:
    await service.delete(annotation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
