"""Pydantic models for API payloads."""

from pydantic import BaseModel, Field

from meal_assist.domain.suggestions import SuggestionJob, SuggestionMode


class SuggestRequest(BaseModel):
    """Body of a suggestion job submission."""

    meal_id: int | None = None
    target_calories: float | None = None
    mode: SuggestionMode = SuggestionMode.MEAL
    preferences: str | None = None
    date: str | None = None
    allow_new_foods: bool = False
    exclude_food_ids: list[int | str] = Field(default_factory=list)

    def to_job(self) -> SuggestionJob:
        """Convert the payload to a job description."""
        return SuggestionJob(
            meal_id=self.meal_id or 0,
            target_calories=self.target_calories or 0,
            mode=self.mode,
            preferences=(self.preferences or "").strip() or None,
            day=self.date,
            allow_new_foods=self.allow_new_foods,
            exclude_food_ids=list(self.exclude_food_ids),
        )

