"""
Food photo analysis.

Same Gemini seam as video scoring: one inline-image call, JSON pulled out of
the reply, numeric fields coerced with defaults.
"""
import logging
from typing import Any, Dict, Optional

from core.exceptions import APIException, AnalysisFailed, PayloadTooLarge, ValidationError
from schemas import FoodAnalysis
from services.analysis_client import GeminiAnalysisClient
from services.metrics_mapper import coerce_number, coerce_strings
from services.mime_sniffer import detect_image_mime

logger = logging.getLogger(__name__)


FOOD_PROMPT = """Analyze this food image and provide detailed nutritional information.

Identify the food items and estimate:
- Food name/description
- Calories per serving
- Protein (grams)
- Carbohydrates (grams)
- Fat (grams)
- Fiber (grams)
- Sugar (grams)
- Sodium (milligrams)
- Health score (0-100, where 100 is very healthy)
- 3 specific health recommendations

Return ONLY valid JSON:
{
  "foodName": "food description",
  "calories": number,
  "protein": number,
  "carbs": number,
  "fat": number,
  "fiber": number,
  "sugar": number,
  "sodium": number,
  "healthScore": number,
  "recommendations": ["tip1", "tip2", "tip3"]
}"""

_NUMERIC_FIELDS = ("calories", "protein", "carbs", "fat", "fiber", "sugar", "sodium")


def map_food_analysis(parsed: Dict[str, Any]) -> FoodAnalysis:
    values = {name: coerce_number(parsed.get(name)) for name in _NUMERIC_FIELDS}
    health_score = coerce_number(parsed.get("healthScore"))
    recommendations = coerce_strings(parsed.get("recommendations"))
    food_name = parsed.get("foodName")
    return FoodAnalysis(
        food_name=str(food_name) if food_name else "Unknown food",
        health_score=max(0.0, min(100.0, health_score)) if health_score else 50,
        recommendations=recommendations or ["Eat in moderation"],
        **values,
    )


class FoodAnalysisService:

    def __init__(self, analysis_client: GeminiAnalysisClient, max_image_bytes: int = 10 * 1024 * 1024):
        self.analysis_client = analysis_client
        self.max_image_bytes = max_image_bytes

    def analyze(self, image: Optional[bytes], content_type: Optional[str] = None) -> FoodAnalysis:
        if not image:
            raise ValidationError("No image file provided", field="foodImage")
        if content_type and not content_type.startswith("image/"):
            raise ValidationError("Only image files allowed", field="foodImage")
        if len(image) > self.max_image_bytes:
            raise PayloadTooLarge(len(image), self.max_image_bytes)

        try:
            parsed = self.analysis_client.generate_json(
                FOOD_PROMPT, media=image, mime_type=detect_image_mime(image)
            )
        except APIException:
            raise
        except Exception as e:
            logger.error(f"Food analysis failed: {e}", exc_info=True)
            raise AnalysisFailed("Food analysis failed") from e

        analysis = map_food_analysis(parsed)
        logger.info(f"Food analysis completed: {analysis.food_name}")
        return analysis
