from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from application.dtos.object_dtos import PutObjectResponse
from application.ports.blob_store import ObjectStream
from application.use_cases.object_use_cases import GetObjectUseCase, PutObjectUseCase
from interfaces.api.middleware import handle_use_case_errors
from interfaces.api.routes.helpers import extract_object_key
from interfaces.dependencies import AppContainer

router = APIRouter(prefix="/v1/objects", tags=["objects"])


def _stream_response(stream: ObjectStream) -> StreamingResponse:
    return StreamingResponse(
        stream.chunks,
        media_type="application/octet-stream",
        headers={"Content-Length": str(stream.size_bytes)},
    )


@router.put("/{key:path}", status_code=status.HTTP_201_CREATED)
@handle_use_case_errors
async def put_object(
    key: str,
    request: Request,
    container: AppContainer,
) -> PutObjectResponse:
    """Store the raw request body under ``key``, once.

    Returns:
        201 Created: Blob durably stored
        400 Bad Request: Invalid object key, or the client disconnected mid-body
        409 Conflict: A blob already exists under the key
        500 Internal Server Error: Filesystem failure (the key stays absent)

    """
    object_key = extract_object_key(key)
    use_case = container[PutObjectUseCase]
    return await use_case.execute(key=object_key, chunks=request.stream())


@router.get("/{key:path}", status_code=status.HTTP_200_OK, response_class=StreamingResponse)
@handle_use_case_errors
async def get_object(
    key: str,
    container: AppContainer,
) -> StreamingResponse:
    """Stream the blob stored under ``key``.

    Errors are reported cleanly only before the first byte is sent; a read
    failure mid-stream aborts the response.
    """
    object_key = extract_object_key(key)
    use_case = container[GetObjectUseCase]
    result = await use_case.execute(key=object_key)
    return result.map(_stream_response)


@router.api_route(
    "/{key:path}",
    methods=["POST", "PATCH", "DELETE", "HEAD", "OPTIONS"],
    include_in_schema=False,
)
async def object_method_not_allowed(key: str) -> None:
    extract_object_key(key)
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="method not allowed",
        headers={"Allow": "GET, PUT"},
    )
