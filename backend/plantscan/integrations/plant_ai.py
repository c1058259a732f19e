"""
Together AI vision model integration

Sends the plant photo to a vision-capable chat model and parses the JSON
answer (plant name, health condition, care recommendations).

When the primary model answers with something that holds no JSON object,
the request is retried once with a fallback model at temperature 0.

Supports a mock mode for local development without API calls.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from plantscan.api.errors import AppError
from plantscan.core.config import settings

logger = logging.getLogger(__name__)

_CHAT_COMPLETIONS_PATH = "/chat/completions"

SYSTEM_PROMPT = """Верни ТОЛЬКО валидный JSON.
Никакого текста, markdown, комментариев.

Если растение не распознано или растений в кадре много что мешает распознаванию какого-то определённого, верни plantFound: false, в reason верни строку с причиной ошибки распознавания.

Формат СТРОГО:
{
  "plantFound": boolean,
  "plantName": string | null,
  "healthCondition": string | null,
  "recommendations": string[],
  "reason": string | null
}

Язык: русский."""

USER_PROMPT = (
    "Определи растение, его состояние здоровья и дай краткие, "
    "но полезные рекомендации по уходу."
)

UNPARSABLE_ANSWER_MESSAGE = "Не удалось распознать ответ модели"


@dataclass(frozen=True)
class PlantAnalysis:
    """
    Parsed model answer

    ``result`` is the normalized JSON object stored on the scan.
    """
    plant_found: bool
    result: dict[str, Any] = field(default_factory=dict)
    model: str | None = None


def extract_json_object(text: str) -> dict[str, Any] | None:
    """
    Return the first JSON object embedded in ``text``

    Models sometimes wrap the answer in prose or a code fence; everything
    around the object is ignored.
    """
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except ValueError:
            start = text.find("{", start + 1)
            continue
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None


def normalize_result(parsed: dict[str, Any]) -> dict[str, Any]:
    """Coerce the answer into the stored shape"""
    result = dict(parsed)
    recommendations = result.get("recommendations")
    if not isinstance(recommendations, list):
        recommendations = []
    result["recommendations"] = [str(item) for item in recommendations if item is not None]
    result["plantFound"] = bool(result.get("plantFound"))
    for key in ("plantName", "healthCondition", "reason"):
        result.setdefault(key, None)
    return result


class PlantAIClient:
    """Together AI chat-completions client for plant identification"""

    def __init__(self) -> None:
        self._mock = settings.PLANT_AI_MOCK
        self._base_url = settings.TOGETHER_BASE_URL.rstrip("/")
        self._api_key = settings.TOGETHER_API_KEY
        self._timeout = settings.PLANT_AI_TIMEOUT_SECONDS

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise AppError(code=500102, message="Together API ключ не настроен", status_code=500)
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _complete(self, *, model: str, image_data_url: str, temperature: float) -> str:
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": USER_PROMPT},
                        {"type": "image_url", "image_url": {"url": image_data_url}},
                    ],
                },
            ],
            "temperature": temperature,
            "max_tokens": 600,
        }
        url = f"{self._base_url}{_CHAT_COMPLETIONS_PATH}"
        try:
            with httpx.Client(timeout=self._timeout) as client:
                r = client.post(url, json=payload, headers=self._headers())
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPError as e:
            logger.error("Together AI request failed: model=%s error=%s", model, e)
            raise AppError(code=502301, message="Сервис распознавания недоступен", status_code=502)
        except ValueError:
            raise AppError(code=502302, message=UNPARSABLE_ANSWER_MESSAGE, status_code=502)

        try:
            return str(data["choices"][0]["message"]["content"] or "")
        except (KeyError, IndexError, TypeError):
            return ""

    def analyze(self, *, image_data_url: str) -> PlantAnalysis:
        """
        Identify the plant on a photo

        Args:
            image_data_url: the photo as a ``data:<mime>;base64,...`` URL

        Returns:
            PlantAnalysis: normalized answer

        Raises:
            AppError: 500 when neither model returned a JSON object,
                502 when the API could not be reached
        """
        if self._mock:
            return PlantAnalysis(
                plant_found=True,
                result=normalize_result(
                    {
                        "plantFound": True,
                        "plantName": "Монстера деликатесная",
                        "healthCondition": "Здорова",
                        "recommendations": [
                            "Поливайте после просыхания верхнего слоя почвы",
                            "Держите в ярком рассеянном свете",
                        ],
                        "reason": None,
                    }
                ),
                model="mock",
            )

        model = settings.PLANT_AI_MODEL
        text = self._complete(model=model, image_data_url=image_data_url, temperature=0.2)
        parsed = extract_json_object(text)
        if parsed is None:
            logger.warning("Model %s returned no JSON object, retrying with fallback", model)
            model = settings.PLANT_AI_FALLBACK_MODEL
            text = self._complete(model=model, image_data_url=image_data_url, temperature=0)
            parsed = extract_json_object(text)
        if parsed is None:
            logger.warning("Unparsable model answer after retry: %r", text[:500])
            raise AppError(code=500301, message=UNPARSABLE_ANSWER_MESSAGE, status_code=500)

        result = normalize_result(parsed)
        return PlantAnalysis(plant_found=result["plantFound"], result=result, model=model)


plant_ai_client = PlantAIClient()


def get_plant_ai_client() -> PlantAIClient:
    return plant_ai_client
