"""
Freepik image and video generation.

Freepik jobs are asynchronous: a POST creates a task and the result is
polled from ``{endpoint}/{task_id}`` until it completes or fails.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import httpx

from madison.config.logger import app_logger
from madison.config.settings import settings
from madison.services.ai_providers import ImageResult, VideoResult, invalid_response, post_json
from madison.utils.errors import ProviderConfigError, ProviderError


DEFAULT_IMAGE_MODEL = "mystic"
DEFAULT_VIDEO_MODEL = "seedance-pro"
DEFAULT_RESOLUTION = "2k"
DEFAULT_VIDEO_RESOLUTION = "720p"
DEFAULT_VIDEO_DURATION = "5"

IMAGE_ENDPOINTS = {
    "mystic": "/mystic",
    "seedream-4-4k": "/text-to-image/seedream-4-4k",
    "seedream": "/text-to-image/seedream",
    "flux": "/text-to-image/flux",
    "flux-dev": "/text-to-image/flux-dev",
    "flux-pro-v1-1": "/text-to-image/flux-pro-v1-1",
    "z-image": "/text-to-image/z-image",
    "google": "/text-to-image/google",
    "ideogram-3": "/text-to-image/ideogram-3",
    "gpt": "/text-to-image/gpt",
    "runway": "/text-to-image/runway",
}

# Models that accept a ``resolution`` body field
RESOLUTION_MODELS = ("mystic", "seedream-4-4k")

ASPECT_RATIOS = {
    "1:1": "square_1_1",
    "16:9": "widescreen_16_9",
    "9:16": "social_story_9_16",
    "2:3": "portrait_2_3",
    "3:4": "traditional_3_4",
    "1:2": "vertical_1_2",
    "2:1": "horizontal_2_1",
    "4:5": "social_post_4_5",
    "3:2": "standard_3_2",
    "4:3": "classic_4_3",
    "21:9": "film_horizontal_21_9",
    "9:21": "film_vertical_9_21",
}

COMPLETED = "COMPLETED"
FAILED = "FAILED"


def map_aspect_ratio(aspect_ratio: Optional[str], default: str = "square_1_1") -> str:
    return ASPECT_RATIOS.get((aspect_ratio or "").strip(), default)


def image_endpoint(model: Optional[str]) -> str:
    return IMAGE_ENDPOINTS.get(model or DEFAULT_IMAGE_MODEL, IMAGE_ENDPOINTS[DEFAULT_IMAGE_MODEL])


def video_endpoint(resolution: Optional[str]) -> str:
    return f"/image-to-video/seedance-pro-{resolution or DEFAULT_VIDEO_RESOLUTION}"


def build_video_prompt(prompt: str, camera_fixed: bool = False) -> str:
    """Add motion, lighting and focus guidance the user did not mention."""
    result = (prompt or "").strip()
    lowered = result.lower()
    if "camera" not in lowered and not camera_fixed:
        result += ". Smooth, cinematic camera movement with gentle zoom."
    if "lighting" not in lowered:
        result += " Professional studio lighting with soft shadows."
    if "product" not in lowered and "bottle" not in lowered:
        result += " Keep the product as the main focus throughout."
    return result


def extract_result_url(data: Dict[str, Any]) -> Optional[str]:
    """Result URL from a completed task, whichever shape the endpoint returns."""
    generated = data.get("generated") or []
    if isinstance(generated, list) and generated:
        first = generated[0]
        if isinstance(first, str) and first:
            return first
        if isinstance(first, dict) and first.get("url"):
            return first["url"]
    for key in ("result", "video"):
        nested = data.get(key)
        if isinstance(nested, dict) and isinstance(nested.get("url"), str):
            return nested["url"]
    return None


class FreepikProvider:
    name = "freepik"

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        poll_attempts: Optional[int] = None,
        poll_interval: Optional[float] = None,
        video_poll_attempts: Optional[int] = None,
        video_poll_interval: Optional[float] = None,
    ):
        self.api_key = settings.FREEPIK_API_KEY if api_key is None else api_key
        self.base_url = settings.FREEPIK_API_BASE.rstrip("/")
        self.client = client
        self.poll_attempts = settings.FREEPIK_POLL_ATTEMPTS if poll_attempts is None else poll_attempts
        self.poll_interval = settings.FREEPIK_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.video_poll_attempts = (
            settings.FREEPIK_VIDEO_POLL_ATTEMPTS if video_poll_attempts is None else video_poll_attempts
        )
        self.video_poll_interval = (
            settings.FREEPIK_VIDEO_POLL_INTERVAL_SECONDS if video_poll_interval is None else video_poll_interval
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @property
    def image_timeout(self) -> float:
        """Budget for one image call including polling."""
        return self.poll_attempts * self.poll_interval + settings.AI_REQUEST_TIMEOUT_SECONDS

    @property
    def video_timeout(self) -> float:
        return self.video_poll_attempts * self.video_poll_interval + settings.AI_REQUEST_TIMEOUT_SECONDS

    def _headers(self) -> Dict[str, str]:
        return {
            "x-freepik-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(self, endpoint: str, body: Optional[Dict[str, Any]] = None, method: str = "POST") -> Dict[str, Any]:
        if not self.configured:
            raise ProviderConfigError("FREEPIK_API_KEY is not configured")
        return await post_json(
            self.name,
            f"{self.base_url}{endpoint}",
            body or {},
            headers=self._headers(),
            client=self.client,
            method=method,
        )

    def _task_data(self, response: Dict[str, Any]) -> Dict[str, Any]:
        data = response.get("data") or {}
        if not isinstance(data, dict):
            raise invalid_response(self.name, f"task data is {type(data).__name__}")
        return data

    async def _create_task(self, endpoint: str, body: Dict[str, Any]) -> str:
        response = await self._request(endpoint, body)
        task_id = self._task_data(response).get("task_id")
        if not task_id:
            raise ProviderError(self.name, "task was not created", kind=ProviderError.INVALID)
        app_logger.info(f"Freepik task created: {task_id} ({endpoint})")
        return task_id

    async def poll_for_completion(self, endpoint: str, task_id: str, attempts: int, interval: float) -> Dict[str, Any]:
        """Poll a task until it completes.

        Raises:
            ProviderError: ``invalid`` when the task fails, ``timeout`` when
                it is still running after ``attempts`` polls
        """
        for attempt in range(1, attempts + 1):
            response = await self._request(f"{endpoint}/{task_id}", method="GET")
            data = self._task_data(response)
            status = data.get("status")
            app_logger.debug(f"Freepik poll {attempt}/{attempts} for {task_id}: {status}")
            if status == COMPLETED:
                return data
            if status == FAILED:
                raise ProviderError(self.name, f"task {task_id} failed", kind=ProviderError.INVALID)
            if attempt < attempts:
                await asyncio.sleep(interval)
        raise ProviderError(self.name, f"task {task_id} did not complete in time", kind=ProviderError.TIMEOUT)

    async def generate_image(
        self,
        prompt: str,
        model: Optional[str] = None,
        aspect_ratio: Optional[str] = None,
        resolution: Optional[str] = None,
        seed: Optional[int] = None,
        negative_prompt: Optional[str] = None,
    ) -> ImageResult:
        model = model if model in IMAGE_ENDPOINTS else DEFAULT_IMAGE_MODEL
        endpoint = image_endpoint(model)
        body: Dict[str, Any] = {
            "prompt": prompt,
            "aspect_ratio": map_aspect_ratio(aspect_ratio),
        }
        if model in RESOLUTION_MODELS:
            body["resolution"] = resolution or DEFAULT_RESOLUTION
        if seed is not None and seed >= 0:
            body["seed"] = seed
        if negative_prompt:
            body["negative_prompt"] = negative_prompt

        task_id = await self._create_task(endpoint, body)
        data = await self.poll_for_completion(endpoint, task_id, self.poll_attempts, self.poll_interval)
        image_url = extract_result_url(data)
        if not image_url:
            raise ProviderError(self.name, f"no image URL in {model} response", kind=ProviderError.INVALID)
        return ImageResult(provider=self.name, model=model, image_url=image_url, task_id=task_id)

    async def generate_video(
        self,
        image_url: str,
        prompt: str,
        aspect_ratio: Optional[str] = None,
        resolution: Optional[str] = None,
        duration: Optional[str] = None,
        camera_fixed: bool = False,
        seed: Optional[int] = None,
    ) -> VideoResult:
        endpoint = video_endpoint(resolution)
        body: Dict[str, Any] = {
            "image": image_url,
            "prompt": build_video_prompt(prompt, camera_fixed),
            "duration": str(duration or DEFAULT_VIDEO_DURATION),
            "aspect_ratio": map_aspect_ratio(aspect_ratio, default="widescreen_16_9"),
            "camera_fixed": camera_fixed,
        }
        if seed is not None and seed >= 0:
            body["seed"] = seed

        task_id = await self._create_task(endpoint, body)
        data = await self.poll_for_completion(endpoint, task_id, self.video_poll_attempts, self.video_poll_interval)
        video_url = extract_result_url(data)
        if not video_url:
            raise ProviderError(self.name, "no video URL in response", kind=ProviderError.INVALID)
        return VideoResult(provider=self.name, model=DEFAULT_VIDEO_MODEL, video_url=video_url, task_id=task_id)
