"""Read-only prompt catalog endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Request

from .catalog import PromptCatalog, prompt_display_name

logger = logging.getLogger(__name__)

router = APIRouter()


def _catalog(request: Request) -> PromptCatalog:
    return request.app.state.prompts


@router.get("")
@router.get("/")
async def list_prompts(request: Request):
    return _catalog(request).style_prompts()


@router.get("/themes")
async def list_theme_groups(request: Request):
    catalog = _catalog(request)
    return {
        "groups": catalog.theme_groups(),
        "defaultState": catalog.default_theme_group_state(),
    }


@router.get("/edit")
async def list_edit_prompts(request: Request):
    return _catalog(request).edit_prompts()


@router.get("/random")
async def random_prompts(request: Request, mode: str = "random", count: int = 1):
    if count < 1 or count > 64:
        raise HTTPException(status_code=400, detail="count must be between 1 and 64")
    catalog = _catalog(request)
    if mode == "random":
        key = catalog.random_style()
        return {"promptKey": key, "prompt": catalog.prompts.get(key, "")}
    if mode == "randomMix":
        return {"prompt": catalog.random_mix_prompts(count)}
    if mode == "oneOfEach":
        return {"prompt": catalog.one_of_each(catalog.default_theme_group_state(), count)}
    raise HTTPException(status_code=400, detail="mode must be random, randomMix or oneOfEach")


@router.get("/{prompt_key}")
async def get_prompt(request: Request, prompt_key: str):
    text = _catalog(request).prompts.get(prompt_key)
    if text is None:
        raise HTTPException(status_code=404, detail="Prompt not found")
    return {"promptKey": prompt_key, "displayName": prompt_display_name(prompt_key), "prompt": text}
