from __future__ import annotations

import json
import logging
import os
import re
from typing import Final, Iterable, Mapping, Optional

from openai import APIStatusError, AsyncOpenAI

from config_utils import read_int_env


class TagTranslationService:
    BATCH_SIZE: Final[int] = 40
    _LOCALE_NAMES: Final[dict[str, str]] = {
        "en": "English",
        "es": "Spanish",
        "pt": "Portuguese (Brazil)",
        "pt-br": "Portuguese (Brazil)",
        "zh": "Mandarin Chinese (Simplified)",
        "zh-cn": "Mandarin Chinese (Simplified)",
        "ko": "Korean",
        "ja": "Japanese",
    }
    _FENCE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^```(?:json)?\s*|\s*```$")

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        if client is None:
            key = api_key or os.getenv("OPENAI_API_KEY")
            if not key:
                raise RuntimeError("OPENAI_API_KEY is required for tag translation.")
            client = AsyncOpenAI(api_key=key)
        self._client = client
        primary_model = os.getenv("TAG_TRANSLATION_MODEL", model).strip() or model
        fallback_model = os.getenv("TAG_TRANSLATION_FALLBACK_MODEL", "gpt-4.1-mini").strip()
        self._models = [primary_model]
        if fallback_model and fallback_model not in self._models:
            self._models.append(fallback_model)
        self._active_model_index = 0
        self._max_completion_tokens = read_int_env("TAG_TRANSLATION_MAX_TOKENS", 600)
        self._cache: dict[str, dict[str, str]] = {}
        self.last_error: Optional[str] = None

    @property
    def active_model(self) -> Optional[str]:
        if self._active_model_index >= len(self._models):
            return None
        return self._models[self._active_model_index]

    def cached(self, locale: str) -> Mapping[str, str]:
        return dict(self._cache.get(locale, {}))

    async def get_translations(self, keys: Iterable[str], locale: str) -> Mapping[str, str]:
        self.last_error = None
        wanted = [key for key in dict.fromkeys(k.strip() for k in keys) if key]
        cache = self._cache.setdefault(locale, {})
        missing = [key for key in wanted if key not in cache]
        for start in range(0, len(missing), self.BATCH_SIZE):
            batch = missing[start : start + self.BATCH_SIZE]
            try:
                translated = await self._translate_batch(batch, locale)
            except Exception as exc:  # noqa: BLE001 - graceful fallback
                self.last_error = f"tag_translation_failed: {exc}"
                logging.warning("tag_translation_failed locale=%s keys=%d error=%r", locale, len(batch), exc)
                break
            for key in batch:
                # Remember untranslatable tags too so they are not requested again.
                cache[key] = translated.get(key) or ""
        return {key: cache[key] for key in wanted if cache.get(key)}

    async def _translate_batch(self, tags: list[str], locale: str) -> dict[str, str]:
        language = self._locale_name(locale)
        system_prompt = (
            "You translate illustration tags from an image-sharing site.\n"
            f"Translate each tag into {language}.\n"
            "Rules:\n"
            "1) Keep character names, series titles and proper nouns in their common romanized form.\n"
            f"2) If a tag is already {language}, repeat it unchanged.\n"
            "3) Keep translations short, like a tag, never a sentence.\n"
            "4) Return only a JSON object mapping every input tag to its translation."
        )
        user_prompt = "Tags:\n" + json.dumps(tags, ensure_ascii=False)
        content = await self._chat(user_prompt, system_prompt)
        return self._parse_mapping(content, tags)

    @classmethod
    def _locale_name(cls, locale: str) -> str:
        raw = (locale or "").strip()
        if not raw:
            return "English"
        return cls._LOCALE_NAMES.get(raw.lower(), raw)

    @classmethod
    def _parse_mapping(cls, content: str, tags: list[str]) -> dict[str, str]:
        cleaned = cls._FENCE_PATTERN.sub("", (content or "").strip())
        if not cleaned:
            return {}
        payload = json.loads(cleaned)
        if not isinstance(payload, dict):
            raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
        requested = set(tags)
        result: dict[str, str] = {}
        for key, value in payload.items():
            if key not in requested or not isinstance(value, str):
                continue
            label = value.strip()
            if label:
                result[key] = label
        return result

    async def _chat(self, user_prompt: str, system_prompt: str) -> str:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        last_exc: Optional[Exception] = None
        while self._active_model_index < len(self._models):
            model_name = self._models[self._active_model_index]
            try:
                response = await self._client.chat.completions.create(
                    model=model_name,
                    temperature=0.0,
                    messages=messages,
                    max_tokens=self._max_completion_tokens,
                )
                return (response.choices[0].message.content or "").strip()
            except APIStatusError as exc:
                last_exc = exc
                # An unavailable model is skipped for the rest of the session.
                if exc.status_code in (400, 404):
                    logging.warning("tag_translation_model_unavailable model=%s status=%s", model_name, exc.status_code)
                    self._active_model_index += 1
                    continue
                raise
        raise RuntimeError(f"Tag translation failed with all configured models: {last_exc}") from last_exc
