from __future__ import annotations

from datetime import date

from habitmap.api.schemas.habit import Habit, Task, TaskStep
from habitmap.api.schemas.schedule import ScheduleDefinition
from habitmap.services.calendar_service import CalendarAggregator, task_items_for_day, visible_dates
from habitmap.services.combine import ViewType, combine_for_view
from habitmap.services.engine import build_engine
from habitmap.services.mapping_cache import MappingCache
from habitmap.services.schedule_store import InMemoryNoteStore, InMemoryScheduleStore


def _daily_habit(habit_id: str, step: str, **extra) -> Habit:
    return Habit(
        id=habit_id,
        name=extra.pop("name", step),
        start_date=date(2024, 1, 1),
        schedule=ScheduleDefinition.model_validate({"days_indexed": [{"index": 1, "steps": [{"text": step}]}]}),
        **extra,
    )


def _task(**extra) -> Task:
    data = {
        "id": "t1",
        "name": "Write report",
        "description": "Quarterly numbers",
        "deadline": date(2024, 1, 10),
        "steps": [
            TaskStep(index=1, title="Outline", completed=True),
            TaskStep(index=2, title="Draft", scheduled_date=date(2024, 1, 5)),
            TaskStep(index=3, title="Polish"),
        ],
    }
    data.update(extra)
    return Task(**data)


def test_visible_dates_per_view() -> None:
    assert len(visible_dates(ViewType.MONTHLY, date(2024, 2, 10))) == 29
    assert visible_dates("weekly", date(2024, 1, 3)) == [date(2024, 1, day) for day in range(1, 8)]
    assert visible_dates("weekly", date(2024, 1, 3), first_weekday=6)[0] == date(2023, 12, 31)
    assert visible_dates("daily", date(2024, 1, 3)) == [date(2024, 1, 3)]


def test_daily_build_counts_completed_habits() -> None:
    engine = build_engine()
    engine.habits.upsert(_daily_habit("h1", "Meditate", completions=[date(2024, 1, 2)]))
    engine.habits.upsert(_daily_habit("h2", "Floss"))
    engine.notes.set(date(2024, 1, 2), "Felt great")

    [day] = engine.aggregator.build("daily", date(2024, 1, 2), today=date(2024, 1, 2))

    assert day.total_habits == 2
    assert day.habits_completed == 1
    assert day.note == "Felt great"
    assert {item.habit_name for item in day.habit_items} == {"Meditate", "Floss"}
    assert day.habit_items[0].occurrence.title == "Meditate"


def test_store_updates_invalidate_cached_mappings() -> None:
    engine = build_engine()
    engine.habits.upsert(_daily_habit("h1", "Meditate"))
    engine.aggregator.build("daily", date(2024, 1, 2), today=date(2024, 1, 2))

    engine.habits.upsert(_daily_habit("h1", "Journal"))
    [day] = engine.aggregator.build("daily", date(2024, 1, 2), today=date(2024, 1, 2))
    assert [step.text for step in day.habit_items[0].occurrence.steps] == ["Journal"]

    engine.habits.remove("h1")
    [day] = engine.aggregator.build("daily", date(2024, 1, 2), today=date(2024, 1, 2))
    assert day.habit_items == []


def test_weekly_view_hides_day_only_habits() -> None:
    engine = build_engine()
    engine.habits.upsert(_daily_habit("h1", "Meditate"))

    days = engine.aggregator.build(ViewType.WEEKLY, date(2024, 1, 3), today=date(2024, 1, 3))

    assert [day.date for day in days] == [date(2024, 1, day) for day in range(1, 8)]
    assert all(day.total_habits == 0 for day in days)


def test_task_items_for_week() -> None:
    engine = build_engine()
    engine.tasks.upsert(_task())

    days = {day.date: day for day in engine.aggregator.build("weekly", date(2024, 1, 3), today=date(2024, 1, 3))}

    [current] = days[date(2024, 1, 3)].task_items
    assert current.item_type == "current_step"
    assert current.description == "Draft"
    [scheduled] = days[date(2024, 1, 5)].task_items
    assert scheduled.item_type == "scheduled_step"
    assert scheduled.scheduled_date == date(2024, 1, 5)


def test_deadline_item_reports_days_remaining() -> None:
    task = _task()

    [deadline] = task_items_for_day(task, date(2024, 1, 10), today=date(2024, 1, 3))
    assert deadline.item_type == "deadline"
    assert deadline.days_remaining == 7

    [overdue] = task_items_for_day(task, date(2024, 1, 10), today=date(2024, 1, 20))
    assert overdue.days_remaining == 0


def test_completed_tasks_are_skipped() -> None:
    assert task_items_for_day(_task(completed=True), date(2024, 1, 10), today=date(2024, 1, 10)) == []


def test_scheduled_task_content_uses_engine() -> None:
    schedule = ScheduleDefinition.model_validate(
        {"span": "week", "weeks_indexed": [{"index": 1, "steps": [{"text": "Sync", "weekday": "friday"}]}]}
    )
    engine = build_engine()
    engine.tasks.upsert(_task(steps=[], deadline=None, start_date=date(2024, 1, 1), schedule=schedule))

    days = {day.date: day for day in engine.aggregator.build("weekly", date(2024, 1, 3), today=date(2024, 1, 1))}

    [content] = days[date(2024, 1, 5)].task_items
    assert content.item_type == "scheduled_content"
    assert content.description == "Write report"
    assert content.occurrence.steps[0].text == "Sync"


def test_one_broken_habit_does_not_fail_the_calendar(caplog) -> None:
    def flaky_combine(schedule, start, view_type, now=None, *, owner_name=None):
        if owner_name == "Broken":
            raise RuntimeError("bad schedule")
        return combine_for_view(schedule, start, view_type, now, owner_name=owner_name)

    habits: InMemoryScheduleStore[Habit] = InMemoryScheduleStore("habits")
    tasks: InMemoryScheduleStore[Task] = InMemoryScheduleStore("tasks")
    aggregator = CalendarAggregator(
        habits,
        tasks,
        InMemoryNoteStore(),
        {ViewType.DAILY: MappingCache(ViewType.DAILY, combine=flaky_combine)},
    )
    habits.upsert(_daily_habit("bad", "Oops", name="Broken"))
    habits.upsert(_daily_habit("good", "Walk"))

    [day] = aggregator.build("daily", date(2024, 1, 2), today=date(2024, 1, 2))

    assert [item.habit_id for item in day.habit_items] == ["good"]
    assert "Failed to map habit bad" in caplog.text


def test_closed_aggregator_stops_invalidating() -> None:
    engine = build_engine()
    engine.habits.upsert(_daily_habit("h1", "Meditate"))
    engine.aggregator.build("daily", date(2024, 1, 2), today=date(2024, 1, 2))

    engine.close()
    engine.habits.upsert(_daily_habit("h1", "Journal"))

    assert engine.caches[ViewType.DAILY].peek("habit:h1") is not None


def test_far_future_anchor_keeps_habits(caplog) -> None:
    engine = build_engine()
    engine.habits.upsert(_daily_habit("h1", "Meditate"))

    [day] = engine.aggregator.build("daily", date(2600, 1, 1), today=date(2600, 1, 1))

    assert [item.habit_name for item in day.habit_items] == ["Meditate"]
    assert "Failed to map" not in caplog.text


def test_last_representable_week_is_truncated() -> None:
    engine = build_engine()
    habit = _daily_habit("h1", "Meditate")
    engine.habits.upsert(habit.model_copy(update={"start_date": date(9999, 1, 1)}))

    assert visible_dates("weekly", date(9999, 12, 30)) == [date(9999, 12, day) for day in range(27, 32)]
    [day] = engine.aggregator.build("daily", date(9999, 12, 31), today=date(9999, 12, 31))
    assert [item.habit_name for item in day.habit_items] == ["Meditate"]
