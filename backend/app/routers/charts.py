import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.dependencies import get_ai_service, get_pipeline
from app.errors import ERROR_STATUS_MAP, ErrorType
from app.exceptions import AppException
from app.schemas.chart import AnalyzeRequest, ChartRequest, ChartResponse, ParseResponse, TextRequest
from app.schemas.generation import GenerationOptions, GenerationRequest, GenerationResponse
from app.schemas.series import FormatDetection
from app.services.ai_service import AIService
from app.services.chart_pipeline import ChartPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["v1"])


@router.post("/detect", response_model=FormatDetection)
async def detect(request: TextRequest, pipeline: ChartPipeline = Depends(get_pipeline)):
    return pipeline.detect_format(request.text)


@router.post("/parse", response_model=ParseResponse)
async def parse(request: TextRequest, pipeline: ChartPipeline = Depends(get_pipeline)):
    return ParseResponse(**pipeline.quick_parse(request.text))


@router.post("/charts", response_model=ChartResponse)
async def create_chart(request: ChartRequest, pipeline: ChartPipeline = Depends(get_pipeline)):
    logger.info(f"Chart request: {len(request.input)} chars, type={request.chart_type}")

    result = await pipeline.process(
        request.input,
        chart_type=request.chart_type,
        skip_ai=request.skip_ai,
    )

    # Placeholder sample data is not a chart of the user's input
    if not result.success or (result.parsed_data and not result.parsed_data.success):
        message = result.error or (result.parsed_data.warning if result.parsed_data else None)
        raise AppException(ErrorType.UNPARSABLE_INPUT, message or "Could not parse input data")

    return ChartResponse(
        success=True,
        chart_type=result.chart_type,
        config=result.config,
        parsed_data=result.parsed_data,
        suggestion=result.suggestion,
        used_ai=result.used_ai,
        warning=result.warning,
    )


@router.post("/analyze", response_model=GenerationResponse)
async def analyze(request: AnalyzeRequest, ai_service: AIService = Depends(get_ai_service)):
    if not request.prompt.strip() and not request.template_id:
        raise AppException(ErrorType.TEMPLATE_ERROR, "Either prompt or template_id is required")

    response = await ai_service.analyze_data(GenerationRequest(
        prompt=request.prompt,
        template_id=request.template_id,
        template_params=request.template_params,
        options=GenerationOptions(enable_cache=request.enable_cache),
    ))

    if not response.success:
        error_type = ErrorType(response.error.code)
        return JSONResponse(
            status_code=ERROR_STATUS_MAP.get(error_type, 500),
            content=response.model_dump(mode="json"),
        )
    return response


@router.get("/templates")
async def list_templates(category: str | None = None, ai_service: AIService = Depends(get_ai_service)):
    return [
        {
            "id": t.id,
            "name": t.name,
            "description": t.description,
            "category": t.category,
            "parameters": [
                {"name": p.name, "type": p.type, "required": p.required, "description": p.description}
                for p in t.parameters
            ],
        }
        for t in ai_service.templates.list_templates(category)
    ]


@router.get("/metrics")
async def metrics(ai_service: AIService = Depends(get_ai_service)):
    return ai_service.get_metrics()
