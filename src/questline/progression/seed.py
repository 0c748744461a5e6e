"""Default achievement catalog and XP rules for activity kinds."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from questline.db.models import AchievementDefinitionRow
from questline.progression.achievements import AchievementCatalog

logger = logging.getLogger(__name__)


class Metric:
    """Counter names achievements can watch."""

    ACTIONS = "actions"
    ACTIVE_DAYS = "active_days"
    LOGINS = "logins"
    LEVEL = "level"
    HABITS_COMPLETED = "habits_completed"
    HABIT_STREAK = "habit_streak"
    ALL_DAILY_HABITS_DONE = "all_daily_habits_done"
    EXPENSES_LOGGED = "expenses_logged"
    MONTHS_UNDER_BUDGET = "months_under_budget"
    DEADLINES_MET = "deadlines_met"
    DEADLINES_EARLY = "deadlines_early"
    DEADLINES_CREATED = "deadlines_created"
    SUBSCRIPTIONS_ADDED = "subscriptions_added"
    APPLICATIONS_SENT = "applications_sent"
    INTERVIEWS = "interviews"
    JOB_OFFERS = "job_offers"
    NOTES_CREATED = "notes_created"
    MEDIA_COMPLETED = "media_completed"
    GOALS_COMPLETED = "goals_completed"


# Base XP per activity kind and the counters the kind increments.
# Every event also increments Metric.ACTIONS.
XP_ACTIONS: dict[str, int] = {
    "habit_logged": 10,
    "expense_logged": 5,
    "deadline_met": 20,
    "application_sent": 15,
    "application_response": 25,
    "application_interview": 50,
    "media_completed": 10,
    "note_created": 5,
    "goal_completed": 100,
    "daily_login": 10,
    "subscription_added": 10,
    "deadline_created": 5,
    "custom": 0,
}

KIND_METRICS: dict[str, tuple[str, ...]] = {
    "habit_logged": (Metric.HABITS_COMPLETED,),
    "expense_logged": (Metric.EXPENSES_LOGGED,),
    "deadline_met": (Metric.DEADLINES_MET,),
    "application_sent": (Metric.APPLICATIONS_SENT,),
    "application_response": (),
    "application_interview": (Metric.INTERVIEWS,),
    "media_completed": (Metric.MEDIA_COMPLETED,),
    "note_created": (Metric.NOTES_CREATED,),
    "goal_completed": (Metric.GOALS_COMPLETED,),
    "daily_login": (Metric.LOGINS,),
    "subscription_added": (Metric.SUBSCRIPTIONS_ADDED,),
    "deadline_created": (Metric.DEADLINES_CREATED,),
    "custom": (),
}


def _entry(key, name, description, icon, category, metric, xp_reward, requirement, kind="one_time", tier=1, hidden=False):
    return {
        "key": key,
        "name": name,
        "description": description,
        "icon": icon,
        "category": category,
        "metric": metric,
        "xp_reward": xp_reward,
        "requirement": requirement,
        "type": kind,
        "tier": tier,
        "is_hidden": hidden,
    }


DEFAULT_ACHIEVEMENTS: list[dict] = [
    # General
    _entry("first_login", "Welcome!", "First sign-in", "door", "general", Metric.LOGINS, 10, 1),
    _entry("daily_login", "Here Today", "Signed in today", "sun", "general", Metric.LOGINS, 5, 1, "daily"),
    _entry("weekly_warrior", "Weekly Warrior", "Active every day this week", "calendar-week", "general",
           Metric.ACTIVE_DAYS, 50, 7, "weekly", 2),
    _entry("monthly_master", "Monthly Master", "Active on 30 days this month", "calendar-month", "general",
           Metric.ACTIVE_DAYS, 250, 30, "monthly", 4),
    _entry("power_user_week", "Power User Week", "100 actions this week", "bolt", "general",
           Metric.ACTIONS, 100, 100, "weekly", 3),
    _entry("extreme_week", "Extreme Week", "500 actions this week", "flame", "general",
           Metric.ACTIONS, 500, 500, "weekly", 5),
    _entry("level_5", "Level 5", "Reached level 5", "star", "general", Metric.LEVEL, 50, 5, tier=2),
    _entry("level_10", "Level 10", "Reached level 10", "stars", "general", Metric.LEVEL, 150, 10, tier=3),
    _entry("level_15", "Top of the Curve", "Reached the highest level", "crown", "legendary",
           Metric.LEVEL, 500, 15, tier=5, hidden=True),
    _entry("ultimate_organizer", "Ultimate Organizer", "10,000 actions in total", "infinity", "legendary",
           Metric.ACTIONS, 10000, 10000, tier=5, hidden=True),
    # Habits
    _entry("first_habit", "First Step", "Completed a habit for the first time", "check", "habits",
           Metric.HABITS_COMPLETED, 15, 1),
    _entry("habits_10", "Getting Going", "10 habit completions", "checks", "habits", Metric.HABITS_COMPLETED, 50, 10),
    _entry("habits_50", "Routine Builder", "50 habit completions", "checks", "habits",
           Metric.HABITS_COMPLETED, 100, 50, tier=2),
    _entry("habits_100", "Creature of Habit", "100 habit completions", "checks", "habits",
           Metric.HABITS_COMPLETED, 200, 100, tier=2),
    _entry("habits_500", "Habit Machine", "500 habit completions", "checks", "habits",
           Metric.HABITS_COMPLETED, 500, 500, tier=3),
    _entry("habits_1000", "Habit Master", "1,000 habit completions", "checks", "habits",
           Metric.HABITS_COMPLETED, 1000, 1000, tier=4),
    _entry("habits_5000", "Unstoppable", "5,000 habit completions", "rocket", "habits",
           Metric.HABITS_COMPLETED, 3000, 5000, tier=5, hidden=True),
    _entry("daily_grind", "Daily Grind", "All of today's habits done", "sun", "habits",
           Metric.ALL_DAILY_HABITS_DONE, 15, 1, "daily"),
    _entry("habit_centurion", "Centurion", "Every 100 habit completions", "repeat", "habits",
           Metric.HABITS_COMPLETED, 100, 100, "repeatable", 3),
    # Streaks
    _entry("streak_3", "Sticking With It", "3 day streak", "flame", "streaks", Metric.HABIT_STREAK, 25, 3),
    _entry("streak_7", "Week Strong", "7 day streak", "flame", "streaks", Metric.HABIT_STREAK, 50, 7, tier=2),
    _entry("streak_14", "Two Weeks Strong", "14 day streak", "flame", "streaks", Metric.HABIT_STREAK, 100, 14, tier=2),
    _entry("streak_30", "Month of Momentum", "30 day streak", "flame", "streaks",
           Metric.HABIT_STREAK, 200, 30, tier=3),
    _entry("streak_60", "Two Months Strong", "60 day streak", "fire", "streaks",
           Metric.HABIT_STREAK, 400, 60, tier=3),
    _entry("streak_100", "Hundred Days", "100 day streak", "crown", "streaks",
           Metric.HABIT_STREAK, 750, 100, tier=4, hidden=True),
    _entry("streak_365", "Year Legend", "365 day streak", "trophy", "legendary",
           Metric.HABIT_STREAK, 5000, 365, tier=5, hidden=True),
    # Expenses
    _entry("first_expense", "Penny Counter", "First expense tracked", "coin", "expenses", Metric.EXPENSES_LOGGED, 10, 1),
    _entry("expenses_10", "Bookkeeper", "10 expenses tracked", "coins", "expenses", Metric.EXPENSES_LOGGED, 30, 10),
    _entry("expenses_100", "Ledger Keeper", "100 expenses tracked", "coins", "expenses",
           Metric.EXPENSES_LOGGED, 150, 100, tier=2),
    _entry("expenses_1000", "Accountant", "1,000 expenses tracked", "calculator", "expenses",
           Metric.EXPENSES_LOGGED, 800, 1000, tier=4),
    _entry("budget_keeper", "Budget Keeper", "Stayed under budget for a month", "piggy-bank", "expenses",
           Metric.MONTHS_UNDER_BUDGET, 100, 1, "repeatable", 3),
    _entry("budget_keeper_12", "Frugal Year", "12 months under budget", "piggy-bank", "expenses",
           Metric.MONTHS_UNDER_BUDGET, 1500, 12, tier=5, hidden=True),
    # Deadlines
    _entry("deadline_met", "On Time", "Met a deadline", "clock", "deadlines", Metric.DEADLINES_MET, 20, 1),
    _entry("deadlines_10", "Reliable", "10 deadlines met", "clock", "deadlines", Metric.DEADLINES_MET, 75, 10, tier=2),
    _entry("deadlines_100", "Clockwork", "100 deadlines met", "clock", "deadlines",
           Metric.DEADLINES_MET, 400, 100, tier=4),
    _entry("early_bird", "Early Bird", "Finished a deadline a week early", "sunrise", "deadlines",
           Metric.DEADLINES_EARLY, 30, 1, "repeatable", 2),
    # Applications
    _entry("first_application", "Out There", "First application sent", "send", "applications",
           Metric.APPLICATIONS_SENT, 20, 1),
    _entry("applications_10", "Persistent", "10 applications sent", "send", "applications",
           Metric.APPLICATIONS_SENT, 75, 10, tier=2),
    _entry("first_interview", "In the Room", "First interview", "users", "applications", Metric.INTERVIEWS, 50, 1, tier=2),
    _entry("job_offer", "Dream Job!", "Received a job offer", "star", "applications",
           Metric.JOB_OFFERS, 200, 1, "repeatable", 3),
    # Notes
    _entry("first_note", "Scribe", "First note written", "note", "notes", Metric.NOTES_CREATED, 10, 1),
    _entry("notes_100", "Archivist", "100 notes written", "notes", "notes", Metric.NOTES_CREATED, 150, 100, tier=3),
    _entry("daily_journal", "Journal Week", "7 notes in one week", "diary", "notes",
           Metric.NOTES_CREATED, 50, 7, "weekly", 2),
    # Media and goals
    _entry("weekly_watcher", "Weekly Treat", "Finished a book, film or show this week", "calendar-event", "media",
           Metric.MEDIA_COMPLETED, 20, 1, "weekly"),
    _entry("goal_getter", "Goal Getter", "Completed a goal", "flag", "projects",
           Metric.GOALS_COMPLETED, 100, 1, "repeatable", 2),
]


def build_default_catalog() -> AchievementCatalog:
    """Validated default catalog; raises InvalidInput on malformed seed data."""
    return AchievementCatalog.from_records(DEFAULT_ACHIEVEMENTS)


async def seed_achievements(db: AsyncSession, records: list[dict] | None = None) -> int:
    """Insert missing catalog rows. Existing keys are left untouched.

    Returns the number of rows inserted.
    """
    records = DEFAULT_ACHIEVEMENTS if records is None else records
    # Validate the whole batch before touching the table.
    AchievementCatalog.from_records(records)

    result = await db.execute(select(AchievementDefinitionRow.key))
    existing = set(result.scalars())

    inserted = 0
    for sort_order, record in enumerate(records):
        if record["key"] in existing:
            continue
        db.add(AchievementDefinitionRow(
            key=record["key"],
            name=record.get("name", record["key"]),
            description=record.get("description", ""),
            icon=record.get("icon", ""),
            category=record.get("category", "general"),
            metric=record["metric"],
            xp_reward=record.get("xp_reward", 0),
            requirement=record.get("requirement", 1),
            type=record.get("type", "one_time"),
            reset_period=record.get("reset_period"),
            is_hidden=record.get("is_hidden", False),
            tier=record.get("tier", 1),
            sort_order=sort_order,
        ))
        inserted += 1

    await db.flush()
    logger.info("Seeded %d achievement definitions (%d already present)", inserted, len(existing))
    return inserted
