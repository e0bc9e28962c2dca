"""Leaderboards and dashboard statistics computed from profiles, tests and results."""
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Sequence

from engine import ROLE_ADMIN
from examportal.engine import Result


def _round(value: Decimal, places: str = "1") -> Decimal:
    return value.quantize(Decimal(places), rounding=ROUND_HALF_UP)


def _parse_time(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat((value or "").replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def rank_users(users: Iterable[Dict], results: Iterable[Result]) -> List[Dict]:
    """
    Public leaderboard.

    Non-admin users with at least one result are listed unless they opted out (`show_in_rank` is False),
    ordered by average percentage (2 decimals), best first.
    """
    totals = defaultdict(lambda: {"percentage": 0, "count": 0, "passed": 0})
    for result in results:
        entry = totals[result.user_id]
        entry["percentage"] += result.percentage
        entry["count"] += 1
        entry["passed"] += 1 if result.passed else 0

    ranking = []
    for user in users:
        if user.get("role") == ROLE_ADMIN or user.get("show_in_rank") is False:
            continue
        entry = totals.get(user.get("id"))
        if not entry or entry["count"] == 0:
            continue
        average = _round(Decimal(entry["percentage"]) / entry["count"], "0.01")
        ranking.append({
            "user_id": user["id"],
            "first_name": user.get("first_name") or "",
            "last_name": user.get("last_name") or "",
            "email": user.get("email") or "",
            "profile_image": user.get("profile_image"),
            "average_score": float(average),
            "tests_count": entry["count"],
            "passed_count": entry["passed"],
        })

    ranking.sort(key=lambda r: r["average_score"], reverse=True)
    for i, row in enumerate(ranking, 1):
        row["rank"] = i
    return ranking


def admin_ranking(users: Iterable[Dict], results: Iterable[Result]) -> List[Dict]:
    """Every user with results, by total score (highest first). Missing profiles show as "Unknown User"."""
    profiles = {u.get("id"): u for u in users}
    totals = defaultdict(lambda: {"score": Decimal("0"), "count": 0})
    for result in results:
        totals[result.user_id]["score"] += Decimal(str(result.score))
        totals[result.user_id]["count"] += 1

    ranking = []
    for user_id, entry in totals.items():
        profile = profiles.get(user_id, {})
        ranking.append({
            "user_id": user_id,
            "first_name": profile.get("first_name") or "Unknown",
            "last_name": profile.get("last_name") or "User",
            "email": profile.get("email") or "",
            "total_score": float(entry["score"]),
            "tests_completed": entry["count"],
            "average_score": float(entry["score"] / entry["count"]) if entry["count"] else 0.0,
        })
    ranking.sort(key=lambda r: r["total_score"], reverse=True)
    return ranking


def latest_results_by_test(user_id: str, results: Iterable[Result]) -> Dict[str, Result]:
    latest: Dict[str, Result] = {}
    for result in results:
        if result.user_id != user_id:
            continue
        current = latest.get(result.test_id)
        if current is None or _parse_time(result.completed_at) > _parse_time(current.completed_at):
            latest[result.test_id] = result
    return latest


def user_dashboard_stats(user_id: str, results: Iterable[Result], total_tests: int) -> Dict:
    """Counts the latest attempt of each test only."""
    latest = latest_results_by_test(user_id, results)
    completed = len(latest)
    passed = sum(1 for r in latest.values() if r.passed)
    total = sum(r.percentage for r in latest.values())
    average = int(_round(Decimal(total) / completed)) if completed else 0
    return {
        "total_tests": total_tests,
        "completed_tests": completed,
        "passed_tests": passed,
        "average_score": average,
        "latest": latest,
    }


def admin_dashboard_stats(users: Iterable[Dict], tests: Sequence, results: Sequence[Result]) -> Dict:
    passed = sum(1 for r in results if r.passed)
    return {
        "total_users": sum(1 for u in users if u.get("role") != ROLE_ADMIN),
        "total_tests": len(tests),
        "total_results": len(results),
        "pass_rate": int(_round(Decimal(passed * 100) / len(results))) if results else 0,
    }


def _field(row, name: str) -> str:
    value = row.get(name) if isinstance(row, dict) else getattr(row, name, "")
    return str(value or "")


def filter_by_query(rows: Iterable, query: str, fields: Sequence[str]) -> List:
    """Case-insensitive substring search over the named fields (dict keys or attributes)."""
    needle = (query or "").strip().lower()
    rows = list(rows)
    if not needle:
        return rows

    matched = []
    for row in rows:
        values = [_field(row, f) for f in fields]
        if "first_name" in fields and "last_name" in fields:
            values.append(f"{_field(row, 'first_name')} {_field(row, 'last_name')}")
        if any(needle in v.lower() for v in values):
            matched.append(row)
    return matched
