from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

OR_OPERATOR = "or"


@dataclass(frozen=True)
class SearchWord:
    tag: str
    label: str
    is_operator: bool = False


def split_search_tags(search: str) -> list[str]:
    return [word for word in (search or "").split() if word]


def split_tag_prefix(tag: str) -> tuple[str, str]:
    base = tag.lstrip("-")
    return tag[: len(tag) - len(base)], base


def referenced_tags(searches: Iterable[str], *, skip_operators: bool = False) -> list[str]:
    seen: dict[str, None] = {}
    for search in searches:
        for word in split_search_tags(search):
            tag = split_tag_prefix(word)[1]
            if not tag:
                continue
            if skip_operators and tag.lower() == OR_OPERATOR:
                continue
            seen.setdefault(tag, None)
    return list(seen)


def describe_search(search: str, translations: Mapping[str, str]) -> tuple[SearchWord, ...]:
    words: list[SearchWord] = []
    for word in split_search_tags(search):
        if word.lower() == OR_OPERATOR:
            words.append(SearchWord(tag=OR_OPERATOR, label=OR_OPERATOR, is_operator=True))
            continue
        prefix, tag = split_tag_prefix(word)
        translated = translations.get(tag)
        label = f"{prefix}{translated}" if translated else word
        words.append(SearchWord(tag=word, label=label))
    return tuple(words)


def search_label(search: str, words: Iterable[SearchWord], translations: Mapping[str, str]) -> str:
    whole = translations.get(search)
    if whole:
        return whole
    return " ".join(word.label for word in words) or search


def toggle_search_tag(search: str, tag: str) -> str:
    tags = split_search_tags(search)
    if tag in tags:
        tags.remove(tag)
    else:
        tags.append(tag)
    return " ".join(tags)
