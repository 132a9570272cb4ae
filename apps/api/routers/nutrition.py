"""
Nutrition API Endpoints

Food photo -> estimated macros and a health score via Gemini.
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile

from core.config import settings
from routers.attempts import read_upload
from schemas import FoodAnalysisResponse
from services.analysis_client import GeminiAnalysisClient, get_analysis_client
from services.food_analysis import FoodAnalysisService

router = APIRouter(prefix="/api/food", tags=["nutrition"])


def get_food_analysis_service(
    analysis_client: GeminiAnalysisClient = Depends(get_analysis_client),
) -> FoodAnalysisService:
    return FoodAnalysisService(analysis_client, max_image_bytes=settings.MAX_FOOD_IMAGE_BYTES)


@router.post("/analyze", response_model=FoodAnalysisResponse)
def analyze_food(
    foodImage: Optional[UploadFile] = File(None),
    service: FoodAnalysisService = Depends(get_food_analysis_service),
):
    image = read_upload(foodImage, settings.MAX_FOOD_IMAGE_BYTES)
    content_type = foodImage.content_type if foodImage else None
    return FoodAnalysisResponse(analysis=service.analyze(image, content_type))
