"""Supabase repository for menu generation jobs."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from menu_planner.domain.menus import GenerationJob
from menu_planner.services.orchestrator import JobRepository
from menu_planner.services.step_utils import normalize_target_slots

_TABLE = "weekly_menu_requests"


@dataclass
class SupabaseJobRepository(JobRepository):
    """Stores job state in ``weekly_menu_requests``."""

    client: Client

    def create_job(self, job: GenerationJob) -> None:
        """Insert a new job row."""
        response = self.client.table(_TABLE).insert(_serialize(job)).execute()
        if not response.data:
            raise RuntimeError("Failed to create menu request")

    def get_job(self, job_id: str) -> GenerationJob | None:
        """Return a job by id."""
        response = (
            self.client.table(_TABLE)
            .select(
                "id, user_id, start_date, prompt, constraints, target_slots, "
                "generated_data, current_step, status, progress, error_message"
            )
            .eq("id", job_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_job(response.data[0])

    def save_job(self, job: GenerationJob) -> None:
        """Update the mutable columns of a job."""
        payload = _serialize(job)
        for column in ("id", "user_id", "start_date", "prompt", "target_slots"):
            payload.pop(column, None)
        self.client.table(_TABLE).update(payload).eq("id", job.id).execute()


def _serialize(job: GenerationJob) -> dict[str, object]:
    return {
        "id": job.id,
        "user_id": job.user_id,
        "start_date": job.start_date,
        "prompt": job.prompt,
        "constraints": job.constraints,
        "target_slots": [slot.to_dict() for slot in job.target_slots],
        "generated_data": {
            "meals": job.generated_meals,
            "slot_errors": job.slot_errors,
            "flagged_issues": job.flagged_issues,
            "review": job.review,
            "protected_slots": job.protected_slots,
            "saved_count": job.saved_count,
            "ultimate_mode": job.ultimate_mode,
            "day_nutrition": job.day_nutrition,
            "feedback": job.feedback,
            "days_needing_improvement": job.days_needing_improvement,
            "improved_dates": job.improved_dates,
            "cursors": {
                "day": job.cursor,
                "fix": job.fix_cursor,
                "save": job.save_cursor,
                "feedback": job.feedback_cursor,
                "improve": job.improve_cursor,
            },
        },
        "current_step": job.current_step,
        "status": job.status,
        "progress": job.progress,
        "error_message": job.error_message,
        "updated_at": datetime.now(tz=UTC).isoformat(),
    }


def _parse_job(row: dict[str, object]) -> GenerationJob:
    data = row.get("generated_data") or {}
    cursors = data.get("cursors") or {}
    return GenerationJob(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        start_date=str(row.get("start_date") or ""),
        target_slots=normalize_target_slots(row.get("target_slots") or []),
        status=str(row.get("status") or "queued"),
        current_step=int(row.get("current_step") or 1),
        cursor=int(cursors.get("day", 0)),
        fix_cursor=int(cursors.get("fix", 0)),
        save_cursor=int(cursors.get("save", 0)),
        prompt=str(row.get("prompt") or ""),
        constraints=dict(row.get("constraints") or {}),
        generated_meals=dict(data.get("meals") or {}),
        slot_errors=dict(data.get("slot_errors") or {}),
        flagged_issues=list(data.get("flagged_issues") or []),
        review=data.get("review"),
        progress=dict(row.get("progress") or {}),
        saved_count=int(data.get("saved_count", 0)),
        protected_slots=list(data.get("protected_slots") or []),
        error_message=row.get("error_message"),
        ultimate_mode=bool(data.get("ultimate_mode", False)),
        feedback_cursor=int(cursors.get("feedback", 0)),
        improve_cursor=int(cursors.get("improve", 0)),
        day_nutrition=dict(data.get("day_nutrition") or {}),
        feedback=dict(data.get("feedback") or {}),
        days_needing_improvement=list(data.get("days_needing_improvement") or []),
        improved_dates=list(data.get("improved_dates") or []),
    )
