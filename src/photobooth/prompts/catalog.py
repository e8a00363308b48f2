"""Style prompt catalog grouped by theme.

prompts.json maps theme group IDs to `{"name": ..., "prompts": {key: text}}`.
The flattened key -> text mapping is what generation requests use.
"""

import json
import logging
import random
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_PROMPTS_PATH = Path(__file__).parent / "prompts.json"

IMAGE_EDIT_PROMPTS_CATEGORY = "image-edit-prompts"
RANDOM_SINGLE_STYLE = "RANDOM_SINGLE_STYLE"
FALLBACK_MIX_PROMPT = "A creative portrait style"

# Keys that select a mode rather than a style
WORKFLOW_KEYS = ("custom", "random", "randomMix", "oneOfEach", "copyImageStyle")
DISABLED_BY_DEFAULT = ("favorites", "horror")

COPY_IMAGE_STYLE_PROMPT = (
    "STYLE TRANSFER: Re-render subject in Image 1 with the exact same subject identity while matching "
    "Image 2's visual style/medium; transfer Image 2's palette, contrast/tonemap, lighting quality and "
    "direction, texture (grain/canvas/brushwork/ink), edge rendering/sharpness, and material response; "
    "keep content strictly from Image 1 and use Image 2 strictly as an appearance reference; exclude "
    "importing any specific background elements from Image 2."
)
EDIT_MODEL_TRANSFORMATION_PREFIX = (
    "Transform the person while keeping facial features and identity intact into this style: "
)
EDIT_MODEL_NEGATIVE_PROMPT_PREFIX = "black bars, "


def prompt_display_name(key: str) -> str:
    """animeKawaii -> Anime Kawaii"""
    spaced = re.sub(r"([A-Z])", r" \1", key).strip()
    return spaced[:1].upper() + spaced[1:]


def strip_transformation_prefix(prompt: str) -> str:
    if prompt and prompt.startswith(EDIT_MODEL_TRANSFORMATION_PREFIX):
        return prompt[len(EDIT_MODEL_TRANSFORMATION_PREFIX):]
    return prompt


def _pipe_join(prompts: Iterable[str]) -> str:
    return "{" + "|".join(prompts) + "}"


class PromptCatalog:
    """Themed style prompts loaded from JSON."""

    def __init__(self, groups: Dict[str, dict], rng: Optional[random.Random] = None):
        self.groups = groups
        self.rng = rng or random.Random()
        self.prompts: Dict[str, str] = {}
        for group in groups.values():
            self.prompts.update(group.get("prompts", {}))

    @classmethod
    def load(cls, path: Optional[Path] = None, rng: Optional[random.Random] = None) -> "PromptCatalog":
        path = Path(path) if path else DEFAULT_PROMPTS_PATH
        with open(path, "r", encoding="utf-8") as f:
            groups = json.load(f)
        catalog = cls(groups, rng)
        logger.info(f"Loaded {len(catalog.prompts)} prompts in {len(groups)} theme groups from {path}")
        return catalog

    def style_prompts(self) -> Dict[str, str]:
        """`custom` first, styles alphabetically, `random` last."""
        if not self.prompts:
            return {"custom": ""}
        styles = {"custom": ""}
        for key in sorted(self.prompts):
            styles[key] = self.prompts[key]
        styles["random"] = RANDOM_SINGLE_STYLE
        return styles

    def theme_groups(self) -> Dict[str, dict]:
        return {
            group_id: {"name": group["name"], "prompts": list(group.get("prompts", {}))}
            for group_id, group in self.groups.items()
        }

    def default_theme_group_state(self) -> Dict[str, bool]:
        return {group_id: group_id not in DISABLED_BY_DEFAULT for group_id in self.groups}

    def _enabled_groups(
        self,
        state: Dict[str, bool],
        favorites: Iterable[str],
        blocked: Iterable[str],
    ) -> List[List[str]]:
        blocked = set(blocked)
        groups = []
        for group_id, group in self.groups.items():
            if not state.get(group_id):
                continue
            keys = list(favorites) if group_id == "favorites" else list(group.get("prompts", {}))
            keys = [k for k in keys if k not in blocked]
            if keys:
                groups.append(keys)
        return groups

    def enabled_prompts(
        self,
        state: Dict[str, bool],
        favorites: Iterable[str] = (),
        blocked: Iterable[str] = (),
    ) -> Dict[str, str]:
        """
        Filter the style prompts down to the checked theme groups.

        `custom` and `random` are always kept. Favorites are prompt keys
        chosen by the user rather than a fixed group.
        """
        enabled = {key for keys in self._enabled_groups(state, favorites, blocked) for key in keys}
        return {
            key: value
            for key, value in self.style_prompts().items()
            if key in ("custom", "random") or key in enabled
        }

    def one_of_each(
        self,
        state: Dict[str, bool],
        count: int,
        favorites: Iterable[str] = (),
        blocked: Iterable[str] = (),
    ) -> str:
        """Round-robin one prompt per enabled group; alphabetical when none are enabled."""
        favorites = list(favorites)
        blocked = list(blocked)
        groups = self._enabled_groups(state, favorites, blocked)

        selected: List[str] = []
        if not groups:
            keys = sorted(k for k in self.prompts if k not in WORKFLOW_KEYS and k not in blocked)
            selected = [self.prompts[k] for k in keys[:count]]
        else:
            for i in range(count):
                group = groups[i % len(groups)]
                key = group[(i // len(groups)) % len(group)]
                if key in self.prompts:
                    selected.append(self.prompts[key])
                else:
                    logger.warning(f"Prompt key '{key}' not found in catalog")

        return _pipe_join(selected) if selected else ""

    def _selectable_keys(self) -> List[str]:
        return [key for key in self.style_prompts() if key not in WORKFLOW_KEYS]

    def random_style(self) -> str:
        keys = self._selectable_keys()
        if not keys:
            logger.warning("No styles available for random selection")
            return "custom"
        return self.rng.choice(keys)

    def random_mix_prompts(self, count: int) -> str:
        """Pick `count` prompts cycling through a shuffled style list."""
        keys = self._selectable_keys()
        if not keys:
            return FALLBACK_MIX_PROMPT
        self.rng.shuffle(keys)
        selected = []
        for i in range(count):
            text = self.prompts.get(keys[i % len(keys)])
            if text:
                selected.append(text)
        return _pipe_join(selected) if selected else FALLBACK_MIX_PROMPT

    def generate_random_prompts(self, count: int) -> str:
        """Up to `count` distinct prompts; randomMix and oneOfEach are not excluded here."""
        entries = [
            value for key, value in self.style_prompts().items()
            if key not in ("custom", "random", "copyImageStyle")
        ]
        self.rng.shuffle(entries)
        return _pipe_join(entries[:count])

    def edit_prompts(self) -> Dict[str, str]:
        return dict(self.groups.get(IMAGE_EDIT_PROMPTS_CATEGORY, {}).get("prompts", {}))

    def edit_prompt_keys(self) -> List[str]:
        return list(self.edit_prompts())

    def is_edit_prompt(self, key: str) -> bool:
        return key in self.edit_prompts()

    def prompt_for_edit_model(self, key: str) -> Optional[str]:
        """Non-edit styles get the identity-preserving prefix on edit models."""
        if key == "copyImageStyle":
            return COPY_IMAGE_STYLE_PROMPT
        text = self.prompts.get(key)
        if text is None or self.is_edit_prompt(key):
            return text
        return EDIT_MODEL_TRANSFORMATION_PREFIX + text

    def key_for_prompt(self, prompt: str) -> Optional[str]:
        text = strip_transformation_prefix(prompt)
        for key, value in self.prompts.items():
            if value == text:
                return key
        return None
