from fastapi import APIRouter, HTTPException

from src.api.v1.schemas import ErrorResponse, SuggestRequest, SuggestResponse
from src.core.name_suggester import NameSuggester
from src.utils.exceptions import SuggestionError

router = APIRouter()

# Injected at startup
name_suggester: NameSuggester = None  # type: ignore


@router.post(
    "/names/suggest",
    response_model=SuggestResponse,
    summary="Suggest pet names from a caption",
    description=(
        "Sends the caption produced by the worker's `complete` event, together "
        "with the preferred language, to the text-generation service and "
        "returns a markdown list of name suggestions. Failures are reported "
        "as-is; the request is not retried."
    ),
    response_description="Markdown list of suggested names",
    responses={
        502: {
            "description": "Text-generation service failed or returned an unexpected response",
            "model": ErrorResponse,
        },
    },
)
async def suggest_names(request: SuggestRequest):
    try:
        suggestions = await name_suggester.suggest(
            request.caption, request.language, seed=request.seed
        )
    except SuggestionError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return SuggestResponse(language=request.language, suggestions=suggestions)
