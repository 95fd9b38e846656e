"""Caption and hashtag generation for published screenshots."""

from __future__ import annotations

import base64
import json
import logging
import random
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Type

import requests

from .models import CandidateItem, QualityTier

logger = logging.getLogger("shotpipe")

GEMINI_ENDPOINT = (
    "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
)
MAX_CAPTION_CHARS = 200
OPENAI_ENDPOINT = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_ENDPOINT = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
SYSTEM_PROMPT = (
    "You are a social media expert specializing in gaming content. Create engaging, "
    "enthusiastic Instagram captions that drive engagement."
)
SIGNATURE = "\n\n📸 Captured by Steam Community\n🎯 Follow for daily gaming screenshots"

GAME_HASHTAGS: Dict[str, List[str]] = {
    "cyberpunk": ["#cyberpunk2077", "#nightcity", "#cyberpunkgame", "#cdprojektred", "#futuristic", "#neon", "#dystopian"],
    "witcher": ["#thewitcher3", "#geralt", "#witcher", "#cdprojektred", "#fantasy", "#monster", "#magic"],
    "gta": ["#gtav", "#grandtheftauto", "#gtaonline", "#rockstargames", "#crime", "#openworld", "#cars"],
    "skyrim": ["#skyrim", "#elderscrolls", "#dragonborn", "#bethesda", "#fantasy", "#dragons", "#adventure"],
    "fallout": ["#fallout4", "#fallout", "#wasteland", "#bethesda", "#postapocalyptic", "#nuclear", "#survival"],
    "destiny": ["#destiny2", "#guardian", "#bungie", "#scifi", "#space", "#loot", "#fps"],
    "minecraft": ["#minecraft", "#minecraftbuilds", "#pixelart", "#mojang", "#creative", "#building", "#blocky"],
    "rdr2": ["#reddeadredemption2", "#rdr2", "#rockstargames", "#western", "#horses", "#outlaw"],
    "valorant": ["#valorant", "#riotgames", "#fps", "#tactical", "#esports", "#competitive"],
    "csgo": ["#csgo", "#counterstrike", "#valve", "#fps", "#tactical", "#esports"],
    "apex": ["#apexlegends", "#ea", "#battleroyale", "#fps", "#legends", "#champion"],
    "overwatch": ["#overwatch", "#blizzard", "#fps", "#heroes", "#teamwork", "#competitive"],
    "cod": ["#callofduty", "#warzone", "#fps", "#military", "#warfare", "#action"],
    "fortnite": ["#fortnite", "#battleroyale", "#epicgames", "#building", "#victory", "#emotes"],
    "wow": ["#worldofwarcraft", "#blizzard", "#mmorpg", "#fantasy", "#guild", "#raid"],
    "lol": ["#leagueoflegends", "#riot", "#moba", "#champions", "#esports", "#rift"],
    "dota": ["#dota2", "#valve", "#moba", "#heroes", "#ancient", "#competitive"],
    "assassin": ["#assassinscreed", "#ubisoft", "#historical"],
    "horizon": ["#horizonzerodawn", "#guerrillagames", "#playstation"],
    "god of war": ["#godofwar", "#playstation", "#kratos"],
    "spider": ["#spiderman", "#playstation", "#marvel"],
    "halo": ["#halo", "#xbox", "#microsoft"],
    "gears": ["#gearsofwar", "#xbox", "#microsoft"],
    "far cry": ["#farcry", "#ubisoft", "#openworld"],
    "watch dogs": ["#watchdogs", "#ubisoft", "#hacking"],
    "tomb raider": ["#tombraider", "#laracroft", "#squareenix"],
    "final fantasy": ["#finalfantasy", "#squareenix", "#jrpg"],
    "dark souls": ["#darksouls", "#fromsoftware", "#souls"],
    "elden ring": ["#eldenring", "#fromsoftware", "#souls"],
    "sekiro": ["#sekiro", "#fromsoftware", "#samurai"],
    "bloodborne": ["#bloodborne", "#fromsoftware", "#gothic"],
}
DEFAULT_HASHTAGS = ["#steam", "#gaming", "#pcgaming", "#screenshot", "#gamer", "#videogames", "#pc"]
BASE_HASHTAGS = ["#steam", "#gaming", "#pcgaming", "#screenshot", "#gamer"]
POPULAR_GAME_KEYWORDS: Tuple[str, ...] = tuple(GAME_HASHTAGS)

TIER_HASHTAGS: Dict[QualityTier, List[str]] = {
    QualityTier.ULTRA: ["#4k", "#ultrahd", "#maxsettings"],
    QualityTier.VERY_HIGH: ["#highres", "#crisp"],
    QualityTier.HIGH: ["#hd", "#quality"],
}
VARIETY_HASHTAGS = [
    "#steamcommunity", "#pcmasterrace", "#videogames", "#gamedev",
    "#indiegaming", "#gameart", "#photomode", "#gamephotography",
    "#visualart", "#digitalart", "#gamescreen", "#epicshot",
    "#gamingmoments", "#virtualphotography", "#gameaesthetics",
]

# Keyed by datetime.weekday(), Monday == 0.
DAILY_THEMES: Dict[int, Tuple[str, List[str]]] = {
    0: ("Modded Monday", ["#moddedmonday", "#gamemod", "#community", "#custom"]),
    1: ("Texture Tuesday", ["#texturetuesday", "#graphics", "#visualfeast", "#details"]),
    2: ("Wildlife Wednesday", ["#wildlifewednesday", "#naturegaming", "#exploration", "#animals"]),
    3: ("Throwback Thursday", ["#throwbackthursday", "#retrogaming", "#nostalgia", "#classic"]),
    4: ("Featured Friday", ["#featuredfriday", "#community", "#highlight", "#awesome"]),
    5: ("Screenshot Saturday", ["#screenshotsaturday", "#photomode", "#art", "#creative"]),
    6: ("Sunday Showcase", ["#sundayshowcase", "#bestshots", "#weekendvibes", "#chill"]),
}

BASE_TEMPLATES = [
    "🎮 {theme} featuring this stunning {game} moment! The detail is incredible ✨",
    "When {game} delivers visuals like this... pure art! 🎨 What's your favorite screenshot?",
    "📸 Caught this perfect {game} scene! The atmosphere is absolutely captivating 🌟",
    "This {game} screenshot speaks volumes about modern gaming graphics 🔥",
    "✨ {theme} brings you this breathtaking {game} vista! The composition is *chef's kiss*",
    "🌅 Sometimes you just have to stop and appreciate the artistry in {game}",
    "The lighting in this {game} shot is absolutely phenomenal! 💫 Screenshot goals!",
    "🎯 {theme} highlight: When {game} creates moments this beautiful, you screenshot it!",
    "This {game} scene perfectly captures why I love gaming photography 📷✨",
]
ATMOSPHERIC_TEMPLATES = [
    "The mood in this {game} screenshot hits different... 🌙 Pure atmosphere!",
    "This {game} environment tells a story without saying a word 📖✨",
    "Getting lost in the ambiance of {game} - screenshot says it all 🌊",
    "The vibe in this {game} shot is absolutely immaculate 🎭",
    "When {game} creates atmospheres this rich, you know you're experiencing art 🎨",
]
ACTION_TEMPLATES = [
    "⚡ Epic {game} moment captured at just the right second! The timing is everything!",
    "🔥 This {game} action shot got my heart racing! Anyone else love intense moments like this?",
    "💥 Peak {game} excitement right here! These are the moments we game for!",
    "🎯 Perfect {game} screenshot timing! This is why I always have capture ready!",
    "⭐ {theme} action highlight: {game} delivering the adrenaline rush!",
]
TECHNICAL_TEMPLATES = [
    "🖥️ The technical mastery in this {game} shot is mind-blowing! Graphics have come so far",
    "💻 {game}'s visual fidelity on full display - screenshot perfection achieved!",
    "🔧 The rendering quality in this {game} scene is absolutely next-level!",
    "📈 This {game} screenshot showcases why PC gaming visuals are unmatched!",
    "⚙️ When {game} flexes its graphical muscle like this... screenshot worthy!",
]

_STOP_WORDS = re.compile(r"\b(this|that|the|a|an|and|or|but|in|on|at|to|for|of|with|by)\b")
_NON_WORD = re.compile(r"[^\w\s]")
_HASHTAG = re.compile(r"#\w+")
_OVERUSE_LIMIT = 2


class CaptionError(Exception):
    """Raised when no caption could be produced."""


def daily_theme(when: Optional[datetime] = None) -> Tuple[str, List[str]]:
    when = when or datetime.now()
    return DAILY_THEMES[when.weekday()]


def caption_pattern(caption: str) -> str:
    """Reduce a caption to its first three significant words."""
    cleaned = _NON_WORD.sub(" ", caption.lower())
    cleaned = _STOP_WORDS.sub("", cleaned)
    words = [word for word in cleaned.split() if len(word) > 2]
    return " ".join(words[:3])


class CaptionHistory:
    """Usage counts of caption patterns, persisted between runs."""

    def __init__(self, counts: Optional[Dict[str, int]] = None) -> None:
        self.counts: Dict[str, int] = dict(counts or {})

    @classmethod
    def load(cls, path: Path) -> "CaptionHistory":
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.info("Starting fresh caption history")
            return cls()
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read caption history %s: %s", path, exc)
            return cls()
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed caption history in %s", path)
            return cls()
        logger.info("Loaded %d caption patterns", len(data))
        return cls({str(key): int(value) for key, value in data.items()})

    def save(self, path: Path) -> None:
        try:
            Path(path).write_text(json.dumps(self.counts, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not save caption history: %s", exc)

    def uses(self, pattern: str) -> int:
        return self.counts.get(pattern, 0)

    def record(self, caption: str) -> str:
        pattern = caption_pattern(caption)
        self.counts[pattern] = self.counts.get(pattern, 0) + 1
        return pattern

    def most_used(self, limit: int = 10) -> List[str]:
        ranked = sorted(self.counts.items(), key=lambda kv: kv[1], reverse=True)
        return [pattern for pattern, _ in ranked[:limit]]

    def reset(self) -> None:
        self.counts.clear()

    def __len__(self) -> int:
        return len(self.counts)


def templates_for(variety: str) -> List[str]:
    templates = list(BASE_TEMPLATES)
    if variety == "high":
        templates += ATMOSPHERIC_TEMPLATES + ACTION_TEMPLATES + TECHNICAL_TEMPLATES
    elif variety == "medium":
        templates += ATMOSPHERIC_TEMPLATES
    return templates


class StaticCaptionWriter:
    """Template captions that steer away from overused openings."""

    def __init__(
        self,
        history: CaptionHistory,
        variety: str = "high",
        rng: Optional[random.Random] = None,
    ) -> None:
        self.history = history
        self.variety = variety
        self.rng = rng or random.Random()

    def write(self, item: CandidateItem, when: Optional[datetime] = None) -> str:
        theme_name, _ = daily_theme(when)
        templates = templates_for(self.variety)
        selected = self.rng.choice(templates)
        if self.history.uses(caption_pattern(selected)) > _OVERUSE_LIMIT:
            fresh = [
                template
                for template in templates
                if self.history.uses(caption_pattern(template)) < _OVERUSE_LIMIT
            ]
            if fresh:
                selected = self.rng.choice(fresh)

        caption = (
            selected.replace("{game}", item.category or "this game")
            .replace("{quality}", item.quality_tier.value)
            .replace("{theme}", theme_name)
            .replace("{title}", item.title or "")
        )
        self.history.record(caption)
        return caption + SIGNATURE


def build_hashtags(
    item: CandidateItem,
    max_hashtags: int = 30,
    when: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> List[str]:
    """Ordered, de-duplicated hashtags for a candidate."""
    rng = rng or random.Random()
    tags: Dict[str, None] = dict.fromkeys(BASE_HASHTAGS)

    matched = False
    if item.category:
        category = item.category.lower()
        for keyword, game_tags in GAME_HASHTAGS.items():
            if keyword in category:
                tags.update(dict.fromkeys(game_tags[:5]))
                matched = True
                break
    if not matched:
        tags.update(dict.fromkeys(DEFAULT_HASHTAGS))

    _, theme_tags = daily_theme(when)
    tags.update(dict.fromkeys(theme_tags))
    tags.update(dict.fromkeys(TIER_HASHTAGS.get(item.quality_tier, [])))

    variety = list(VARIETY_HASHTAGS)
    rng.shuffle(variety)
    for tag in variety:
        if len(tags) >= max_hashtags:
            break
        tags[tag] = None
    return list(tags)[:max_hashtags]


def _vision_prompt(item: CandidateItem, theme_name: str, avoid: Sequence[str]) -> str:
    avoid_line = f"\n\nAVOID these overused patterns: {', '.join(avoid)}" if avoid else ""
    return (
        "Analyze this gaming screenshot and create a unique, engaging Instagram caption.\n\n"
        "CONTEXT:\n"
        f"- Game: {item.category or 'Unknown'}\n"
        f"- Quality: {item.quality_tier.value}\n"
        f"- Daily Theme: {theme_name}\n"
        f"- Original Title: {item.title or 'No title'}\n\n"
        "CAPTION REQUIREMENTS:\n"
        "1. Write 1-3 engaging sentences (150-200 characters max)\n"
        "2. Be specific about what you SEE in the image\n"
        f"3. Match the {theme_name} theme\n"
        "4. Add 2-3 appropriate emojis\n"
        "5. End with a call-to-action or question\n"
        "6. DO NOT include hashtags (added separately)"
        f"{avoid_line}\n\n"
        "Create a caption that captures what makes THIS specific image special:"
    )


def _text_prompt(item: CandidateItem, theme_name: str) -> str:
    game = item.category or "Unknown Game"
    return (
        "Create an engaging Instagram caption for a gaming screenshot with these details:\n\n"
        f"Game: {game}\n"
        f"Screenshot Title: {item.title or 'No specific title'}\n"
        f"Image Quality: {item.quality_tier.value}\n"
        f"Daily Theme: {theme_name}\n\n"
        "Requirements:\n"
        "- Write 2-4 engaging sentences\n"
        "- Add appropriate emojis\n"
        "- End with a call-to-action\n"
        "- Keep it under 150 characters for the main text\n"
        "- DON'T include hashtags (they'll be added separately)\n\n"
        "Generate an engaging caption now:"
    )


def clean_generated_caption(text: str) -> str:
    caption = _HASHTAG.sub("", text.strip()).strip()
    if len(caption) > MAX_CAPTION_CHARS:
        caption = caption[: MAX_CAPTION_CHARS - 3] + "..."
    return caption


class AICaptionWriter:
    """Captions from a hosted language model, falling back to templates."""

    provider = "ai"
    default_model = ""

    def __init__(
        self,
        api_key: Optional[str],
        history: CaptionHistory,
        fallback: Optional[StaticCaptionWriter] = None,
        model: Optional[str] = None,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.history = history
        self.fallback = fallback
        self.model = model or self.default_model
        self.timeout = timeout
        self._session = session or requests.Session()

    def _generate(self, item: CandidateItem, when: Optional[datetime]) -> str:
        raise NotImplementedError

    def _post_json(
        self,
        url: str,
        payload: Dict,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict:
        resp = self._session.post(
            url, json=payload, headers=headers, params=params, timeout=self.timeout
        )
        if not resp.ok:
            raise CaptionError(
                f"{self.provider} API error {resp.status_code}: {resp.text[:200]}"
            )
        return resp.json()

    def write(self, item: CandidateItem, when: Optional[datetime] = None) -> str:
        try:
            if not self.api_key:
                raise CaptionError(f"{self.provider} API key is not configured")
            caption = clean_generated_caption(self._generate(item, when) or "")
            if not caption:
                raise CaptionError(f"{self.provider} returned an empty caption")
        except (CaptionError, requests.RequestException) as exc:
            if self.fallback is None:
                raise CaptionError(str(exc)) from exc
            logger.warning("Caption generation failed (%s); using a template", exc)
            return self.fallback.write(item, when)
        self.history.record(caption)
        return caption

    def close(self) -> None:
        self._session.close()


class GeminiCaptionWriter(AICaptionWriter):
    """Gemini ``generateContent``, optionally with the image inlined."""

    provider = "gemini"
    default_model = "gemini-2.5-flash"

    def __init__(self, *args, use_vision: bool = True, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.use_vision = use_vision

    def _image_part(self, media_url: str) -> Dict[str, Dict[str, str]]:
        resp = self._session.get(media_url, timeout=self.timeout)
        resp.raise_for_status()
        mime_type = resp.headers.get("Content-Type", "image/jpeg").split(";")[0]
        return {
            "inline_data": {
                "mime_type": mime_type,
                "data": base64.b64encode(resp.content).decode("ascii"),
            }
        }

    def _generate(self, item: CandidateItem, when: Optional[datetime]) -> str:
        theme_name, _ = daily_theme(when)
        parts: List[Dict] = []
        if self.use_vision:
            parts.append({"text": _vision_prompt(item, theme_name, self.history.most_used())})
            parts.append(self._image_part(item.media_url))
        else:
            parts.append({"text": _text_prompt(item, theme_name)})

        data = self._post_json(
            GEMINI_ENDPOINT.format(model=self.model),
            {
                "contents": [{"parts": parts}],
                "generationConfig": {
                    "temperature": 0.9,
                    "topK": 40,
                    "topP": 0.95,
                    "maxOutputTokens": 300,
                },
            },
            params={"key": self.api_key},
        )
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise CaptionError("gemini returned an unexpected payload") from exc


class OpenAICaptionWriter(AICaptionWriter):
    """OpenAI chat completions, text prompt only."""

    provider = "openai"
    default_model = "gpt-3.5-turbo"

    def _generate(self, item: CandidateItem, when: Optional[datetime]) -> str:
        theme_name, _ = daily_theme(when)
        data = self._post_json(
            OPENAI_ENDPOINT,
            {
                "model": self.model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": _text_prompt(item, theme_name)},
                ],
                "max_tokens": 200,
                "temperature": 0.8,
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise CaptionError("openai returned an unexpected payload") from exc


class AnthropicCaptionWriter(AICaptionWriter):
    """Anthropic messages API, text prompt only."""

    provider = "anthropic"
    default_model = "claude-3-haiku-20240307"

    def _generate(self, item: CandidateItem, when: Optional[datetime]) -> str:
        theme_name, _ = daily_theme(when)
        data = self._post_json(
            ANTHROPIC_ENDPOINT,
            {
                "model": self.model,
                "max_tokens": 200,
                "messages": [{"role": "user", "content": _text_prompt(item, theme_name)}],
            },
            headers={"x-api-key": self.api_key or "", "anthropic-version": ANTHROPIC_VERSION},
        )
        try:
            return data["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise CaptionError("anthropic returned an unexpected payload") from exc


CAPTION_PROVIDERS: Dict[str, Type[AICaptionWriter]] = {
    "gemini": GeminiCaptionWriter,
    "openai": OpenAICaptionWriter,
    "anthropic": AnthropicCaptionWriter,
}
