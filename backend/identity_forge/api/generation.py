"""Generation API router: direct access to the provider dispatcher."""
import logging

from fastapi import APIRouter, Depends, HTTPException

from identity_forge.api.dependencies import get_dispatcher, http_error
from identity_forge.core.data_uri import parse_data_uri
from identity_forge.core.errors import ForgeError
from identity_forge.models.forge import DescribeRequest, DescribeResponse
from identity_forge.models.generation import GenerationRequest, GenerationResult
from identity_forge.services.dispatcher import ProviderDispatcher, is_unsupported

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/generation", tags=["generation"])


@router.post("", response_model=GenerationResult)
async def generate(
    body: GenerationRequest,
    dispatcher: ProviderDispatcher = Depends(get_dispatcher),
) -> GenerationResult:
    """Generate or edit one image with the requested (or default) provider.

    Raises:
        HTTPException 422: Invalid request or content blocked by safety filters.
        HTTPException 502/503: Provider, parse or transport failure.
    """
    try:
        return await dispatcher.generate(body)
    except ForgeError as exc:
        logger.error(
            "generate failed",
            extra={"operation": "generate", "error_type": type(exc).__name__},
        )
        raise http_error(exc) from exc


@router.post("/describe", response_model=DescribeResponse)
async def describe(
    body: DescribeRequest,
    dispatcher: ProviderDispatcher = Depends(get_dispatcher),
) -> DescribeResponse:
    """Reverse-engineer a prompt from an image.

    Providers without an implementation answer ``supported: false`` rather than
    an error.
    """
    try:
        parse_data_uri(body.image)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    try:
        text = await dispatcher.describe_image(body.image, provider=body.provider)
    except ForgeError as exc:
        logger.error(
            "describe failed",
            extra={"operation": "describe_image", "error_type": type(exc).__name__},
        )
        raise http_error(exc) from exc
    return DescribeResponse(text=text, supported=not is_unsupported(text))
