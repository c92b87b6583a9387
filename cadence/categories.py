"""Two-level category tree and the read-only lookup index built from it."""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping

from cadence.models import DEFAULT_CATEGORY_ID, Category, Subcategory


def _cat(cat_id: str, name: str, color: str, subs: list[tuple[str, str, str]]) -> Category:
    return Category(
        id=cat_id,
        name=name,
        color=color,
        subcategories=[Subcategory(id=s, name=n, icon=i, parent_id=cat_id) for s, n, i in subs],
    )


def default_categories() -> list[Category]:
    """Fresh copy of the pre-populated category tree."""
    return [
        _cat("cat-default", "Default", "#3b82f6", [
            (DEFAULT_CATEGORY_ID, "General", "🔵"),
        ]),
        _cat("cat-daily-essentials", "Daily essentials", "#000000", [
            ("sub-sleep", "Sleep/rest", "🛏️"),
            ("sub-work", "Work", "💼"),
            ("sub-hygiene", "Grooming", "💄"),
            ("sub-eating", "Meals", "🍽️"),
            ("sub-chores", "Chores", "🧹"),
            ("sub-commute", "Commute", "🚗"),
            ("sub-family", "Family", "👨‍👩‍👧‍👦"),
            ("sub-medical", "Medical", "💊"),
            ("sub-other", "Errands", "🛠️"),
        ]),
        _cat("cat-side-business", "Side business", "#eab308", [
            ("sub-side-prep", "Side project", "🚀"),
            ("sub-job-change", "Job change", "🔄"),
            ("sub-finance", "Finance", "💲"),
            ("sub-volunteer", "Volunteering", "❤️"),
        ]),
        _cat("cat-growth", "Interests/growth", "#10b981", [
            ("sub-fitness", "Fitness", "💪"),
            ("sub-social", "Social", "🔑"),
            ("sub-reading", "Reading", "📚"),
            ("sub-learning", "Study", "🎓"),
            ("sub-planning", "Planning", "📋"),
            ("sub-art", "Art/hobbies", "🎨"),
            ("sub-language", "Languages", "🌍"),
        ]),
        _cat("cat-leisure", "Leisure", "#ef4444", [
            ("sub-entertainment", "Entertainment", "🎤"),
            ("sub-gathering", "Gatherings", "🥂"),
            ("sub-travel", "Travel", "✈️"),
        ]),
        _cat("cat-kids", "Kids", "#f97316", [
            ("sub-childcare", "Childcare", "👶"),
            ("sub-education", "Education", "🏆"),
            ("sub-parenting", "Parenting", "🧩"),
        ]),
    ]


class CategoryIndex:
    """Immutable subcategory lookup, built once and passed explicitly."""

    def __init__(self, categories: Iterable[Category]):
        categories = list(categories)
        subs: dict[str, Subcategory] = {}
        for cat in categories:
            for sub in cat.subcategories:
                subs[sub.id] = sub
        self._categories: Mapping[str, Category] = MappingProxyType({c.id: c for c in categories})
        self._subcategories: Mapping[str, Subcategory] = MappingProxyType(subs)

    def is_subcategory(self, category_id: str) -> bool:
        return category_id in self._subcategories

    def subcategory(self, category_id: str) -> Subcategory | None:
        return self._subcategories.get(category_id)

    def parent(self, category_id: str) -> Category | None:
        sub = self._subcategories.get(category_id)
        return self._categories.get(sub.parent_id) if sub else None

    def color_for(self, category_id: str) -> str:
        parent = self.parent(category_id)
        return parent.color if parent else ""

    def __len__(self) -> int:
        return len(self._subcategories)
