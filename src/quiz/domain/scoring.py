"""
Pure scoring rules: percentages, experience points and levels.

The account and per-area level scales use different denominators
(GameConfig.ACCOUNT_XP_PER_LEVEL vs GameConfig.AREA_XP_PER_LEVEL) and are
kept as two separate functions.
"""

from src.config import GameConfig
from src.quiz.domain.models import LevelInfo, SessionScore


def percentage(part: int, whole: int) -> int:
    """
    round(part / whole * 100) with round-half-up, in exact integer
    arithmetic (1/8 -> 12.5 -> 13). Returns 0 when whole is 0.
    """
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def calculate_xp(score: SessionScore) -> int:
    xp = score.correct_answers * GameConfig.XP_PER_CORRECT

    for threshold, bonus in GameConfig.XP_SCORE_BONUSES:
        if score.percentage >= threshold:
            xp += bonus
            break

    if score.total_questions > 0:
        avg_time_per_question = score.time_spent / score.total_questions
        if avg_time_per_question < GameConfig.XP_SPEED_THRESHOLD_SECONDS:
            xp += GameConfig.XP_SPEED_BONUS

    return xp


def account_level(total_xp: int) -> int:
    return max(total_xp, 0) // GameConfig.ACCOUNT_XP_PER_LEVEL + 1


def area_level(area_xp: int) -> int:
    return max(area_xp, 0) // GameConfig.AREA_XP_PER_LEVEL + 1


def level_info(total_xp: int) -> LevelInfo:
    level = account_level(total_xp)
    step = GameConfig.ACCOUNT_XP_PER_LEVEL
    floor_xp = (level - 1) * step
    next_xp = level * step

    return LevelInfo(
        level_name=GameConfig.level_name(level),
        current_level=level,
        current_xp=total_xp,
        xp_for_current_level=floor_xp,
        xp_for_next_level=next_xp,
        xp_to_next_level=max(0, next_xp - total_xp),
        progress_percentage=min(100, max(0, percentage(total_xp - floor_xp, step))),
    )
