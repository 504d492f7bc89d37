"""Staged menu generation: draft, review, repair and feedback-driven improvement."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol
from uuid import uuid4

from menu_planner.domain.errors import (
    JobNotFoundError,
    MalformedOutputError,
    SlotGenerationError,
)
from menu_planner.domain.menus import (
    CORE_MEAL_TYPES,
    GeneratedMeal,
    GenerationJob,
    NutritionFeedback,
    ResolvedMeal,
    TargetSlot,
    UserProfile,
    WeeklyReviewIssue,
)
from menu_planner.domain.nutrients import NutrientVector
from menu_planner.services.allergens import (
    detect_allergen_hits,
    meal_texts,
    summarize_allergen_hits,
)
from menu_planner.services.feedback import (
    FALLBACK_PRAISE,
    issues_from_advice,
    needs_improvement,
)
from menu_planner.services.generation import GenerationService
from menu_planner.services.nutrition import DishNutritionService, floor_violations
from menu_planner.services.step_utils import (
    DEFAULT_DAY_BATCH_SIZE,
    DEFAULT_FEEDBACK_DAY_BATCH_SIZE,
    DEFAULT_FIXES_PER_RUN,
    DEFAULT_FIXES_PER_WEEK,
    DEFAULT_IMPROVE_DAY_BATCH_SIZE,
    DEFAULT_MAX_FIXES_CAP,
    DEFAULT_SAVE_BATCH_SIZE,
    compute_max_fixes_for_range,
    compute_next_cursor,
    count_generated_slots,
    normalize_target_slots,
    slots_for_date,
    sort_target_slots,
    unique_dates,
)

_logger = logging.getLogger(__name__)

STEP_GENERATE = 1
STEP_REVIEW = 2
STEP_SAVE = 3
STEP_FEEDBACK = 4
STEP_IMPROVE = 5
STEP_FINAL_SAVE = 6
CANCELLED_MESSAGE = "cancelled by request"
_SEVERITY_RANK = {"high": 0, "medium": 1, "low": 2}


class JobRepository(Protocol):
    """Persistence interface for generation jobs."""

    def create_job(self, job: GenerationJob) -> None:
        """Store a new job."""

    def get_job(self, job_id: str) -> GenerationJob | None:
        """Return a job by id."""

    def save_job(self, job: GenerationJob) -> None:
        """Persist the mutable state of a job."""


class MealRepository(Protocol):
    """Persistence interface for accepted meals."""

    def find_meal_id(self, user_id: str, date: str, meal_type: str) -> str | None:
        """Return the id of an existing meal in a slot."""

    def insert_meal(self, user_id: str, meal: dict[str, object]) -> str:
        """Create a meal and return its id."""

    def update_meal(self, meal_id: str, meal: dict[str, object]) -> None:
        """Overwrite an existing meal."""


class ProfileRepository(Protocol):
    """Read access to user context used in prompts."""

    def get_profile(self, user_id: str) -> UserProfile:
        """Return the user's profile, or defaults when none is stored."""


@dataclass(frozen=True)
class OrchestratorConfig:
    """Batch sizes and fix budget of the staged pipeline."""

    day_batch_size: int = DEFAULT_DAY_BATCH_SIZE
    fixes_per_run: int = DEFAULT_FIXES_PER_RUN
    fixes_per_week: int = DEFAULT_FIXES_PER_WEEK
    max_fixes_cap: int = DEFAULT_MAX_FIXES_CAP
    save_batch_size: int = DEFAULT_SAVE_BATCH_SIZE
    feedback_batch_size: int = DEFAULT_FEEDBACK_DAY_BATCH_SIZE
    improve_batch_size: int = DEFAULT_IMPROVE_DAY_BATCH_SIZE
    max_concurrency: int | None = None
    avoid_history: int = 30


@dataclass
class _DayOutcome:
    meals: dict[str, dict[str, object]] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    flagged: list[dict[str, object]] = field(default_factory=list)


@dataclass
class MenuOrchestrator:
    """Runs generation jobs one resumable step at a time."""

    jobs: JobRepository
    meals: MealRepository
    profiles: ProfileRepository
    generation: GenerationService
    nutrition: DishNutritionService
    config: OrchestratorConfig = field(default_factory=OrchestratorConfig)

    def submit(
        self,
        *,
        user_id: str,
        start_date: str,
        target_slots: object,
        prompt: str = "",
        constraints: dict[str, object] | None = None,
        ultimate_mode: bool = False,
    ) -> GenerationJob:
        """Create a queued job for the given slots.

        With ``ultimate_mode`` the reviewed meals get per-day nutrition feedback
        and days with substantial advice are regenerated before saving.
        """
        slots = sort_target_slots(normalize_target_slots(target_slots))
        if not slots:
            raise ValueError("at least one valid target slot is required")
        job = GenerationJob(
            id=str(uuid4()),
            user_id=user_id,
            start_date=start_date,
            target_slots=slots,
            prompt=prompt,
            constraints=dict(constraints or {}),
            ultimate_mode=ultimate_mode,
        )
        job.progress = _progress(job, "queued")
        self.jobs.create_job(job)
        _logger.info("Menu job %s queued with %s slots", job.id, len(slots))
        return job

    def status(self, job_id: str) -> dict[str, object]:
        """Return the pollable state of a job."""
        job = self._load(job_id)
        return {
            "id": job.id,
            "status": job.status,
            "current_step": job.current_step,
            "total_steps": job.total_steps,
            "ultimate_mode": job.ultimate_mode,
            "cursor": job.cursor,
            "total_dates": len(unique_dates(job.target_slots)),
            "progress": job.progress,
            "error": job.error_message,
        }

    def result(self, job_id: str) -> dict[str, object] | None:
        """Return generated meals and stats once the job is completed."""
        job = self._load(job_id)
        if job.status != "completed":
            return None
        result: dict[str, object] = {
            "generated_meals": job.generated_meals,
            "stats": job_stats(job),
        }
        if job.ultimate_mode:
            result["feedback"] = job.feedback
        return result

    def cancel(self, job_id: str) -> GenerationJob:
        """Stop a job before its next batch is picked up."""
        job = self._load(job_id)
        if job.is_terminal:
            return job
        job.status = "failed"
        job.error_message = CANCELLED_MESSAGE
        job.progress = _progress(job, CANCELLED_MESSAGE)
        self.jobs.save_job(job)
        _logger.info("Menu job %s cancelled", job.id)
        return job

    async def run_to_completion(
        self, job_id: str, max_steps: int = 10_000
    ) -> GenerationJob:
        """Run steps until the job is terminal."""
        job = self._load(job_id)
        for _ in range(max_steps):
            if job.is_terminal:
                break
            job = await self.run_step(job_id)
        return job

    async def run_step(self, job_id: str) -> GenerationJob:
        """Run one batch of whichever stage the job is in."""
        job = self._load(job_id)
        if job.is_terminal:
            return job
        if job.status == "queued":
            job.status = "processing"
        try:
            if job.current_step == STEP_GENERATE:
                await self._run_generation_batch(job)
            elif job.current_step == STEP_REVIEW:
                await self._run_review_batch(job)
            elif job.current_step == STEP_SAVE and job.ultimate_mode:
                self._run_nutrition_batch(job)
            elif job.current_step == STEP_FEEDBACK:
                await self._run_feedback_batch(job)
            elif job.current_step == STEP_IMPROVE:
                await self._run_improve_batch(job)
            else:
                self._run_save_batch(job)
        except Exception as exc:
            _logger.exception("Menu job %s failed in step %s", job.id, job.current_step)
            job.status = "failed"
            job.error_message = str(exc) or exc.__class__.__name__
            job.progress = _progress(job, f"failed: {job.error_message}")
        return self._commit(job)

    async def _run_generation_batch(self, job: GenerationJob) -> None:
        dates = unique_dates(job.target_slots)
        if job.cursor >= len(dates):
            job.current_step = STEP_REVIEW
            job.progress = _progress(job, "reviewing generated meals")
            return
        end = compute_next_cursor(job.cursor, self.config.day_batch_size, len(dates))
        batch = dates[job.cursor : end]
        profile = self.profiles.get_profile(job.user_id)
        semaphore = asyncio.Semaphore(
            self.config.max_concurrency or max(1, self.config.day_batch_size)
        )
        avoid = _recent_dish_names(job.generated_meals, self.config.avoid_history)

        async def run_day(date: str) -> _DayOutcome:
            async with semaphore:
                return await self._generate_date(job, profile, date, avoid)

        outcomes = await asyncio.gather(
            *(run_day(date) for date in batch), return_exceptions=True
        )
        failure: BaseException | None = None
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                failure = failure or outcome
                continue
            job.generated_meals.update(outcome.meals)
            job.slot_errors.update(outcome.errors)
            job.flagged_issues.extend(outcome.flagged)
        if failure is not None:
            raise failure
        job.cursor = end
        job.progress = _progress(job, f"generated {end}/{len(dates)} days")
        _logger.info("Menu job %s generated days %s", job.id, ", ".join(batch))

    async def _generate_date(
        self,
        job: GenerationJob,
        profile: UserProfile,
        date: str,
        avoid: list[str],
    ) -> _DayOutcome:
        outcome = _DayOutcome()
        pending = [
            slot
            for slot in slots_for_date(job.target_slots, date)
            if slot.key not in job.generated_meals
        ]
        drafts: list[tuple[TargetSlot, GeneratedMeal]] = []
        core = [slot for slot in pending if slot.meal_type in CORE_MEAL_TYPES]
        if core:
            try:
                day = await self.generation.generate_day(
                    profile=profile,
                    date=date,
                    meal_types=[slot.meal_type for slot in core],
                    prompt=job.prompt,
                    constraints=job.constraints,
                    avoid_dishes=avoid,
                )
                by_type = {meal.meal_type: meal for meal in day.meals}
                drafts.extend((slot, by_type[slot.meal_type]) for slot in core)
            except MalformedOutputError as exc:
                for slot in core:
                    outcome.errors[slot.key] = str(exc)
        for slot in pending:
            if slot.meal_type in CORE_MEAL_TYPES:
                continue
            try:
                meal = await self.generation.generate_meal(
                    profile=profile,
                    slot=slot,
                    prompt=job.prompt,
                    constraints=job.constraints,
                    avoid_dishes=avoid,
                )
                drafts.append((slot, meal))
            except MalformedOutputError as exc:
                outcome.errors[slot.key] = str(exc)

        resolved = await self.nutrition.resolve_meals(drafts)
        for (slot, draft), meal in zip(drafts, resolved, strict=True):
            try:
                accepted, floor_issue = await self._accept(
                    job, profile, slot, draft, meal
                )
            except (SlotGenerationError, MalformedOutputError) as exc:
                _logger.warning(
                    "Menu job %s slot %s rejected: %s", job.id, slot.key, exc
                )
                outcome.errors[slot.key] = str(exc)
                continue
            outcome.meals[slot.key] = accepted.to_dict()
            if floor_issue is not None:
                outcome.flagged.append(floor_issue.model_dump())
        return outcome

    async def _accept(  # noqa: PLR0913
        self,
        job: GenerationJob,
        profile: UserProfile,
        slot: TargetSlot,
        draft: GeneratedMeal,
        meal: ResolvedMeal,
    ) -> tuple[ResolvedMeal, WeeklyReviewIssue | None]:
        """Gate a draft, regenerating once when it is unsafe or implausible."""
        allergens = _declared_allergens(profile, job.constraints)
        problem = _gate_problem(allergens, draft, meal)
        if problem is None:
            return meal, None
        _logger.info("Menu job %s regenerating %s: %s", job.id, slot.key, problem)
        retry_draft = await self.generation.generate_meal(
            profile=profile,
            slot=slot,
            prompt=job.prompt,
            constraints=job.constraints,
            reason=problem,
        )
        retry_meal = await self.nutrition.resolve_meal(slot, retry_draft)
        hits = detect_allergen_hits(allergens, meal_texts(retry_draft))
        if hits:
            raise SlotGenerationError(
                slot.key, f"allergen: {summarize_allergen_hits(hits)}"
            )
        violations = floor_violations(retry_meal)
        if not violations:
            return retry_meal, None
        issue = WeeklyReviewIssue(
            date=slot.date,
            meal_type=slot.meal_type,
            category="nutrient_floor",
            severity="medium",
            issue=f"below calorie floor: {', '.join(violations)}",
            suggestion="use realistic portions for each dish role",
        )
        return retry_meal, issue

    async def _run_review_batch(self, job: GenerationJob) -> None:
        if job.review is None:
            await self._review(job)
            return
        issues = [
            WeeklyReviewIssue.model_validate(item) for item in job.review["issues"]
        ]
        if job.fix_cursor >= len(issues):
            job.current_step = STEP_SAVE
            message = "calculating nutrition" if job.ultimate_mode else "saving meals"
            job.progress = _progress(job, message)
            return
        end = compute_next_cursor(
            job.fix_cursor, self.config.fixes_per_run, len(issues)
        )
        profile = self.profiles.get_profile(job.user_id)
        slots = {slot.key: slot for slot in job.target_slots}
        outcomes: list[dict[str, object]] = list(job.review.get("fix_results", []))
        for issue in issues[job.fix_cursor : end]:
            slot = slots[f"{issue.date}:{issue.meal_type}"]
            outcomes.append(await self._fix(job, profile, slot, issue))
        job.review["fix_results"] = outcomes
        job.fix_cursor = end
        job.progress = _progress(job, f"fixed {end}/{len(issues)} issues")

    async def _review(self, job: GenerationJob) -> None:
        profile = self.profiles.get_profile(job.user_id)
        targets = {slot.key for slot in job.target_slots}
        summary = _plan_summary(job)
        swaps_applied = 0
        review_issues: list[WeeklyReviewIssue] = []
        has_issues = False
        if summary:
            review = await self.generation.review_range(
                profile=profile, summary=summary
            )
            has_issues = review.has_issues
            review_issues = list(review.issues)
            for swap in review.swaps:
                first = f"{swap.date1}:{swap.meal_type1}"
                second = f"{swap.date2}:{swap.meal_type2}"
                if swap.date1 != swap.date2 or first == second:
                    continue
                if not {first, second} <= targets:
                    continue
                if (
                    first not in job.generated_meals
                    or second not in job.generated_meals
                ):
                    continue
                _swap_meals(job, first, second)
                swaps_applied += 1

        flagged = [
            WeeklyReviewIssue.model_validate(item) for item in job.flagged_issues
        ]
        candidates = [
            issue
            for issue in review_issues + flagged
            if f"{issue.date}:{issue.meal_type}" in targets
            and f"{issue.date}:{issue.meal_type}" in job.generated_meals
        ]
        issues = _prioritize(candidates)
        max_fixes = compute_max_fixes_for_range(
            len(unique_dates(job.target_slots)),
            len(issues),
            fixes_per_week=self.config.fixes_per_week,
            cap=self.config.max_fixes_cap,
        )
        job.review = {
            "has_issues": has_issues or bool(issues),
            "issue_count": len(issues),
            "max_fixes": max_fixes,
            "issues": [issue.model_dump() for issue in issues[:max_fixes]],
            "swaps_applied": swaps_applied,
            "fix_results": [],
        }
        job.fix_cursor = 0
        job.progress = _progress(
            job, f"review found {len(issues)} issues, fixing {max_fixes}"
        )
        _logger.info(
            "Menu job %s review: issues=%s max_fixes=%s swaps=%s",
            job.id,
            len(issues),
            max_fixes,
            swaps_applied,
        )

    async def _fix(
        self,
        job: GenerationJob,
        profile: UserProfile,
        slot: TargetSlot,
        issue: WeeklyReviewIssue,
    ) -> dict[str, object]:
        avoid = _recent_dish_names(job.generated_meals, self.config.avoid_history)
        try:
            draft = await self.generation.regenerate_meal(
                profile=profile,
                slot=slot,
                issue=issue,
                avoid_dishes=avoid,
                constraints=job.constraints,
            )
        except MalformedOutputError as exc:
            return {"slot": slot.key, "applied": False, "reason": str(exc)}
        meal = await self.nutrition.resolve_meal(slot, draft)
        hits = detect_allergen_hits(
            _declared_allergens(profile, job.constraints), meal_texts(draft)
        )
        if hits:
            return {
                "slot": slot.key,
                "applied": False,
                "reason": f"allergen: {summarize_allergen_hits(hits)}",
            }
        violations = floor_violations(meal)
        if violations:
            return {
                "slot": slot.key,
                "applied": False,
                "reason": f"below calorie floor: {', '.join(violations)}",
            }
        job.generated_meals[slot.key] = meal.to_dict()
        return {"slot": slot.key, "applied": True, "reason": issue.issue}

    def _run_nutrition_batch(self, job: GenerationJob) -> None:
        """Total reviewed meals per day without saving them."""
        slots = sort_target_slots(job.target_slots)
        end = compute_next_cursor(
            job.save_cursor, self.config.save_batch_size, len(slots)
        )
        for slot in slots[job.save_cursor : end]:
            meal = job.generated_meals.get(slot.key)
            if meal is None:
                continue
            totals = NutrientVector.from_row(job.day_nutrition.get(slot.date, {}))
            totals.add_scaled(NutrientVector.from_row(meal.get("nutrition") or {}), 1.0)
            job.day_nutrition[slot.date] = totals.to_dict()
        job.save_cursor = end
        if end < len(slots):
            job.progress = _progress(
                job, f"calculated nutrition {end}/{len(slots)} slots"
            )
            return
        job.current_step = STEP_FEEDBACK
        job.save_cursor = 0
        job.progress = _progress(job, "analyzing nutrition balance")

    async def _run_feedback_batch(self, job: GenerationJob) -> None:
        dates = unique_dates(job.target_slots)
        if job.feedback_cursor >= len(dates):
            job.current_step = STEP_IMPROVE
            job.progress = _progress(
                job,
                f"{len(job.days_needing_improvement)} days need improvement",
            )
            return
        end = compute_next_cursor(
            job.feedback_cursor, self.config.feedback_batch_size, len(dates)
        )
        profile = self.profiles.get_profile(job.user_id)
        summary = _plan_summary(job)
        for date in dates[job.feedback_cursor : end]:
            meal_count = len(summary.get(date, {}))
            if meal_count == 0:
                continue
            try:
                feedback = await self.generation.nutrition_feedback(
                    profile=profile,
                    date=date,
                    nutrition=job.day_nutrition.get(date, {}),
                    meal_count=meal_count,
                    summary=summary,
                )
            except MalformedOutputError as exc:
                _logger.warning(
                    "Menu job %s feedback for %s failed: %s", job.id, date, exc
                )
                feedback = NutritionFeedback(praise_comment=FALLBACK_PRAISE)
            job.feedback[date] = {
                **feedback.model_dump(),
                "issues_found": issues_from_advice(feedback.advice),
            }
            if needs_improvement(feedback) and date not in job.days_needing_improvement:
                job.days_needing_improvement.append(date)
        job.feedback_cursor = end
        job.progress = _progress(job, f"analyzed {end}/{len(dates)} days")

    async def _run_improve_batch(self, job: GenerationJob) -> None:
        days = job.days_needing_improvement
        if job.improve_cursor >= len(days):
            job.current_step = STEP_FINAL_SAVE
            job.progress = _progress(job, "saving meals")
            return
        end = compute_next_cursor(
            job.improve_cursor, self.config.improve_batch_size, len(days)
        )
        profile = self.profiles.get_profile(job.user_id)
        for date in days[job.improve_cursor : end]:
            await self._improve_date(job, profile, date)
            job.improved_dates.append(date)
        job.improve_cursor = end
        job.progress = _progress(job, f"improved {end}/{len(days)} days")

    async def _improve_date(
        self, job: GenerationJob, profile: UserProfile, date: str
    ) -> None:
        """Regenerate a day's core meals with its advice, keeping unsafe results out."""
        advice = str(job.feedback.get(date, {}).get("advice") or "")
        core = [
            slot
            for slot in slots_for_date(job.target_slots, date)
            if slot.meal_type in CORE_MEAL_TYPES
        ]
        if not advice or not core:
            return
        try:
            day = await self.generation.generate_day(
                profile=profile,
                date=date,
                meal_types=[slot.meal_type for slot in core],
                prompt=_with_advice(job.prompt, advice),
                constraints=job.constraints,
                avoid_dishes=_recent_dish_names(
                    job.generated_meals, self.config.avoid_history
                ),
            )
        except MalformedOutputError as exc:
            _logger.warning("Menu job %s kept meals of %s: %s", job.id, date, exc)
            return
        by_type = {meal.meal_type: meal for meal in day.meals}
        drafts = [(slot, by_type[slot.meal_type]) for slot in core]
        resolved = await self.nutrition.resolve_meals(drafts)
        allergens = _declared_allergens(profile, job.constraints)
        for (slot, draft), meal in zip(drafts, resolved, strict=True):
            problem = _gate_problem(allergens, draft, meal)
            if problem is not None:
                _logger.info("Menu job %s kept %s: %s", job.id, slot.key, problem)
                continue
            job.generated_meals[slot.key] = meal.to_dict()
            job.slot_errors.pop(slot.key, None)

    def _run_save_batch(self, job: GenerationJob) -> None:
        slots = sort_target_slots(job.target_slots)
        if job.save_cursor >= len(slots):
            self._finish(job)
            return
        end = compute_next_cursor(
            job.save_cursor, self.config.save_batch_size, len(slots)
        )
        for slot in slots[job.save_cursor : end]:
            meal = job.generated_meals.get(slot.key)
            if meal is None:
                continue
            if slot.planned_meal_id:
                self.meals.update_meal(slot.planned_meal_id, meal)
            else:
                existing = self.meals.find_meal_id(
                    job.user_id, slot.date, slot.meal_type
                )
                if existing is not None:
                    job.protected_slots.append(slot.key)
                    continue
                meal["planned_meal_id"] = self.meals.insert_meal(job.user_id, meal)
            job.saved_count += 1
        job.save_cursor = end
        if end >= len(slots):
            self._finish(job)
        else:
            job.progress = _progress(job, f"saved {end}/{len(slots)} slots")

    def _finish(self, job: GenerationJob) -> None:
        if job.saved_count == 0 and job.slot_errors:
            job.status = "failed"
            job.error_message = "no meals could be generated: " + "; ".join(
                f"{key}: {error}" for key, error in sorted(job.slot_errors.items())
            )
            job.progress = _progress(job, "failed")
            return
        job.status = "completed"
        praise = _first_praise(job)
        message = f"completed: {praise}" if praise else "completed"
        job.progress = _progress(job, message)
        _logger.info(
            "Menu job %s completed: saved=%s errors=%s",
            job.id,
            job.saved_count,
            len(job.slot_errors),
        )

    def _load(self, job_id: str) -> GenerationJob:
        job = self.jobs.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def _commit(self, job: GenerationJob) -> GenerationJob:
        latest = self.jobs.get_job(job.id)
        if latest is not None and latest.is_terminal and not job.is_terminal:
            # Cancelled while the batch ran: keep its output, not its status.
            latest.generated_meals = job.generated_meals
            latest.slot_errors = job.slot_errors
            latest.cursor = job.cursor
            self.jobs.save_job(latest)
            return latest
        self.jobs.save_job(job)
        return job


def job_stats(job: GenerationJob) -> dict[str, object]:
    """Return summary counters for a job."""
    rates = [
        float(meal.get("mapping_rate", 1.0)) for meal in job.generated_meals.values()
    ]
    fix_results = (job.review or {}).get("fix_results", [])
    return {
        "total_slots": len(job.target_slots),
        "generated_slots": count_generated_slots(job.target_slots, job.generated_meals),
        "saved_slots": job.saved_count,
        "failed_slots": len(job.slot_errors),
        "protected_slots": len(job.protected_slots),
        "issues_found": (job.review or {}).get("issue_count", 0),
        "fixes_applied": sum(1 for result in fix_results if result.get("applied")),
        "average_mapping_rate": round(sum(rates) / len(rates), 4) if rates else None,
    }


def _progress(job: GenerationJob, message: str) -> dict[str, object]:
    return {
        "current_step": job.current_step,
        "total_steps": job.total_steps,
        "message": message,
        "completed_slots": count_generated_slots(job.target_slots, job.generated_meals),
        "total_slots": len(job.target_slots),
    }


def _declared_allergens(
    profile: UserProfile, constraints: dict[str, object]
) -> list[str]:
    allergens = list(profile.allergies)
    extra = constraints.get("allergies")
    if isinstance(extra, list):
        allergens.extend(str(item) for item in extra)
    elif isinstance(extra, str) and extra:
        allergens.append(extra)
    return allergens


def _gate_problem(
    allergens: Sequence[str], draft: GeneratedMeal, meal: ResolvedMeal
) -> str | None:
    hits = detect_allergen_hits(allergens, meal_texts(draft))
    if hits:
        return f"contains declared allergen {summarize_allergen_hits(hits)}"
    violations = floor_violations(meal)
    if violations:
        return f"dishes below calorie floor: {', '.join(violations)}"
    return None


def _prioritize(issues: list[WeeklyReviewIssue]) -> list[WeeklyReviewIssue]:
    """Keep the most severe issue per slot, most severe first."""
    ranked = sorted(issues, key=lambda issue: _SEVERITY_RANK.get(issue.severity, 1))
    seen: set[str] = set()
    unique: list[WeeklyReviewIssue] = []
    for issue in ranked:
        key = f"{issue.date}:{issue.meal_type}"
        if key in seen:
            continue
        seen.add(key)
        unique.append(issue)
    return unique


def _dish_names(meal: dict[str, object]) -> list[str]:
    dishes = meal.get("dishes") or []
    return [str(dish.get("name", "")) for dish in dishes if isinstance(dish, dict)]


def _recent_dish_names(meals: dict[str, dict[str, object]], limit: int) -> list[str]:
    names: list[str] = []
    for key in sorted(meals):
        for name in _dish_names(meals[key]):
            if name and name not in names:
                names.append(name)
    return names[-limit:] if limit > 0 else []


def _swap_meals(job: GenerationJob, first: str, second: str) -> None:
    a = job.generated_meals[first]
    b = job.generated_meals[second]
    job.generated_meals[first] = {
        **b,
        "date": a["date"],
        "meal_type": a["meal_type"],
        "planned_meal_id": a.get("planned_meal_id"),
    }
    job.generated_meals[second] = {
        **a,
        "date": b["date"],
        "meal_type": b["meal_type"],
        "planned_meal_id": b.get("planned_meal_id"),
    }


def _plan_summary(job: GenerationJob) -> dict[str, dict[str, list[str]]]:
    summary: dict[str, dict[str, list[str]]] = {}
    for slot in job.target_slots:
        meal = job.generated_meals.get(slot.key)
        if meal is not None:
            summary.setdefault(slot.date, {})[slot.meal_type] = _dish_names(meal)
    return summary


def _with_advice(prompt: str, advice: str) -> str:
    note = (
        f"Dietitian advice to reflect: {advice} Cover the missing nutrients with "
        "the ingredients you choose and keep each meal balanced."
    )
    return f"{prompt}\n{note}" if prompt else note


def _first_praise(job: GenerationJob) -> str:
    for date in sorted(job.feedback):
        praise = str(job.feedback[date].get("praise_comment") or "")
        if praise:
            return praise
    return ""
