"""AI routes: chat proxy, command parsing and execution, orchestration, images."""

import json
import time
from typing import Any, Optional
import openai
from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from openai import AsyncOpenAI
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from moodboard.ai.client import get_openai, get_openai_optional
from moodboard.ai.usage import (
    QuotaExceeded,
    daily_image_limit,
    release_image_slot,
    reserve_image_slot,
    utc_today,
)
from moodboard.auth.middleware import AuthUser, get_current_user, get_current_user_optional
from moodboard.auth.profiles import ensure_profile
from moodboard.canvas.executor import CommandExecutor
from moodboard.canvas.parser import parse_canvas_command, should_use_local_parser
from moodboard.canvas.prompts import (
    CANVAS_ONLY_SYSTEM_PROMPT,
    DASHBOARD_TOOLS_MODE,
    build_system_prompt,
    canvas_state_summary,
)
from moodboard.canvas.validators import CanvasLimitError, validate_commands
from moodboard.config import settings
from moodboard.data_tables.service import UserTableLoader
from moodboard.db import get_db
from moodboard.logging_config import logger
from moodboard.metrics import (
    ai_commands_executed_total,
    ai_requests_total,
    images_generated_total,
    openai_latency_seconds,
)
from moodboard.orchestration import DashboardBuilder
from moodboard.ratelimit import limiter

router = APIRouter()

IMAGE_SIZES = ("1024x1024", "1792x1024", "1024x1792")


class ChatRequest(BaseModel):
    """Chat completion request."""

    messages: list[dict[str, Any]] = Field(default_factory=list)
    mode: Optional[str] = None
    context: Optional[dict[str, Any]] = None


class ParseRequest(BaseModel):
    """Natural-language canvas instruction."""

    text: str = Field(..., min_length=1)
    context: Optional[dict[str, Any]] = None
    strict: bool = Field(False, description="Canvas-only generation; off-topic requests are refused")


class ImageRequest(BaseModel):
    """Image generation request."""

    prompt: Optional[str] = None
    size: str = "1024x1024"


async def _complete(client: AsyncOpenAI, messages: list[dict], operation: str) -> str:
    started = time.perf_counter()
    try:
        completion = await client.chat.completions.create(
            model=settings.openai_chat_model,
            messages=messages,
            temperature=settings.openai_chat_temperature,
            max_tokens=settings.openai_chat_max_tokens,
        )
    finally:
        openai_latency_seconds.labels(operation=operation).observe(time.perf_counter() - started)
    return completion.choices[0].message.content or ""


@router.post("/chat")
async def chat(
    request: ChatRequest,
    client: AsyncOpenAI = Depends(get_openai),
):
    """Proxy a conversation to the chat model with a mode-specific system prompt."""
    system_message = build_system_prompt(request.mode, request.context)
    try:
        content = await _complete(
            client,
            [{"role": "system", "content": system_message}, *request.messages],
            operation="chat",
        )
    except openai.OpenAIError as e:
        ai_requests_total.labels(endpoint="chat", status="error").inc()
        logger.error("OpenAI chat request failed", error=str(e), mode=request.mode)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process chat request",
        )

    ai_requests_total.labels(endpoint="chat", status="success").inc()
    return {"message": content}


@router.post("/parse")
async def parse_command(
    request: ParseRequest,
    client: Optional[AsyncOpenAI] = Depends(get_openai_optional),
):
    """Turn an instruction into canvas commands.

    Simple instructions are handled by the local parser; everything else
    goes to the model in planner mode and its JSON output is validated.
    """
    if should_use_local_parser(request.text):
        parsed = parse_canvas_command(request.text)
        if parsed is not None:
            ai_requests_total.labels(endpoint="parse", status="local").inc()
            return {"commands": parsed["commands"], "source": "local"}

    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="OpenAI API key not configured. Please set OPENAI_API_KEY environment variable.",
        )

    if request.strict:
        messages = [
            {"role": "system", "content": CANVAS_ONLY_SYSTEM_PROMPT},
            {"role": "system", "content": canvas_state_summary(request.context)},
        ]
    else:
        messages = [{"role": "system", "content": build_system_prompt(DASHBOARD_TOOLS_MODE, request.context)}]
    messages.append({"role": "user", "content": request.text})

    try:
        content = await _complete(client, messages, operation="parse")
    except openai.OpenAIError as e:
        ai_requests_total.labels(endpoint="parse", status="error").inc()
        logger.error("OpenAI parse request failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to parse command",
        )

    try:
        payload = json.loads(content.strip().removeprefix("```json").removesuffix("```").strip())
    except json.JSONDecodeError:
        logger.warning("Model returned non-JSON commands", content=content[:200])
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Model returned invalid commands",
        )

    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Model returned invalid commands")
    if payload.get("error"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(payload["error"]))

    commands = payload.get("commands")
    if not isinstance(commands, list):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Model returned invalid commands")

    invalid = validate_commands(commands)
    if invalid:
        logger.warning("Model commands failed validation", error=invalid)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=invalid)

    ai_requests_total.labels(endpoint="parse", status="model").inc()
    return {"commands": commands, "source": "model"}


@router.post("/execute")
@limiter.limit(settings.ai_execute_rate_limit)
async def execute_commands(
    request: Request,
    payload: dict[str, Any] = Body(...),
    current_user: Optional[AuthUser] = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db),
):
    """Apply validated commands to ``context.currentState`` and return the new state."""
    commands = payload.get("commands")
    if not isinstance(commands, list):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="commands[] required")

    context = payload.get("context") if isinstance(payload.get("context"), dict) else {}
    if not isinstance(context.get("currentState"), dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="context.currentState required")

    invalid = validate_commands(commands)
    if invalid:
        logger.warning("Invalid canvas commands", error=invalid, count=len(commands))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=invalid)

    loader = UserTableLoader(db, current_user.user_id) if current_user else None
    executor = CommandExecutor(context, dataset_loader=loader)
    try:
        state = await executor.execute(commands)
    except CanvasLimitError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    for command in commands:
        ai_commands_executed_total.labels(action=str(command["action"]).lower()).inc()

    logger.info(
        "Canvas commands executed",
        user_id=str(current_user.user_id) if current_user else None,
        count=len(commands),
        items=len(state.get("canvasItems") or []),
    )
    return {"state": state}


@router.post("/orchestrate")
async def orchestrate(payload: dict[str, Any] = Body(...)):
    """Build a complete dashboard state from a description."""
    command = payload.get("command")
    if not command or not isinstance(command, str):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="command is required")

    context = payload.get("context") if isinstance(payload.get("context"), dict) else {}
    state = DashboardBuilder().build_from_description(command, context)
    logger.info("Dashboard orchestrated", items=len(state.get("canvasItems") or []))
    return {"state": state}


@router.post("/generate-image")
async def generate_image(
    request: ImageRequest,
    current_user: AuthUser = Depends(get_current_user),
    client: AsyncOpenAI = Depends(get_openai),
    db: AsyncSession = Depends(get_db),
):
    """Generate an image, counted against the user's daily quota.

    Raises:
        HTTPException: 400 without prompt, 429 over quota, 402 when the
            OpenAI account hit its billing limit, 500 on other failures
    """
    if not request.prompt or not request.prompt.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Prompt is required")
    if request.size not in IMAGE_SIZES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unsupported image size: {request.size}")

    profile = await ensure_profile(db, current_user)
    await db.commit()
    limit = daily_image_limit(profile)
    day = utc_today()

    try:
        used = await reserve_image_slot(db, current_user.user_id, limit, day)
    except QuotaExceeded as e:
        images_generated_total.labels(status="quota_exceeded").inc()
        logger.info("Image quota exceeded", user_id=str(current_user.user_id), limit=e.limit)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"error": "Daily image generation limit reached", "limit": e.limit, "used": e.used},
        )

    started = time.perf_counter()
    try:
        response = await client.images.generate(
            model=settings.openai_image_model,
            prompt=request.prompt,
            n=1,
            size=request.size,
            quality="standard",
            style="vivid",
        )
    except openai.OpenAIError as e:
        await release_image_slot(db, current_user.user_id, day)
        images_generated_total.labels(status="failed").inc()
        logger.error("Image generation failed", user_id=str(current_user.user_id), error=str(e))
        if getattr(e, "code", None) == "billing_hard_limit_reached":
            raise HTTPException(
                status_code=status.HTTP_402_PAYMENT_REQUIRED,
                detail="OpenAI API billing limit reached. Please check your account.",
            )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate image. Please try again.",
        )
    finally:
        openai_latency_seconds.labels(operation="image").observe(time.perf_counter() - started)

    image = response.data[0] if response.data else None
    images_generated_total.labels(status="success").inc()
    logger.info("Image generated", user_id=str(current_user.user_id), used=used, limit=limit)
    return {
        "imageUrl": image.url if image else None,
        "revised_prompt": image.revised_prompt if image else None,
        "usage": {"used": used, "limit": limit},
    }
