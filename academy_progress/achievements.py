"""
Academy Progress - Achievement & Gamification System
Medical-themed achievement catalog and the checker that awards it
"""

import logging
from typing import Optional, List, Dict, Any, Iterable, Tuple

from .clock import Clock, SystemClock
from .models import (
    Achievement,
    AchievementCategory,
    AchievementProgress,
    AchievementRarity,
    CourseStructure,
    ProgressRecord,
    Requirement,
    RequirementType,
    UnlockedAchievement,
)
from .xp_calculator import calculate_level

logger = logging.getLogger(__name__)


# ============================================
# ACHIEVEMENT DEFINITIONS
# ============================================

ACHIEVEMENT_DEFINITIONS = {
    # Progress achievements
    "primeiro-corte": {
        "title": "Primeiro Corte",
        "description": "Completou sua primeira aula prática",
        "icon": "🔪",
        "category": "progress",
        "requirement": {"type": "lessons_completed", "target": 1},
        "rarity": "common",
        "points": 50
    },
    "anatomista": {
        "title": "Anatomista",
        "description": "Dominou os fundamentos anatômicos",
        "icon": "🦴",
        "category": "progress",
        "requirement": {"type": "lessons_completed", "target": 5},
        "rarity": "common",
        "points": 150
    },
    "cirurgiao-junior": {
        "title": "Cirurgião Júnior",
        "description": "Completou 10 aulas práticas",
        "icon": "👨‍⚕️",
        "category": "progress",
        "requirement": {"type": "lessons_completed", "target": 10},
        "rarity": "rare",
        "points": 300
    },
    "especialista": {
        "title": "Especialista",
        "description": "Completou um módulo inteiro",
        "icon": "🏆",
        "category": "progress",
        "requirement": {"type": "module_complete", "target": 1},
        "rarity": "epic",
        "points": 500
    },
    "mestre-cirurgiao": {
        "title": "Mestre Cirurgião",
        "description": "Completou o curso completo",
        "icon": "👑",
        "category": "progress",
        "requirement": {"type": "course_complete", "target": 1},
        "rarity": "legendary",
        "points": 2000
    },
    # Engagement achievements
    "dedicado": {
        "title": "Dedicado",
        "description": "3 dias de estudo seguidos",
        "icon": "🔥",
        "category": "engagement",
        "requirement": {"type": "streak_days", "target": 3},
        "rarity": "common",
        "points": 100
    },
    "persistente": {
        "title": "Persistente",
        "description": "7 dias de estudo seguidos",
        "icon": "💪",
        "category": "engagement",
        "requirement": {"type": "streak_days", "target": 7},
        "rarity": "rare",
        "points": 250
    },
    "incansavel": {
        "title": "Incansável",
        "description": "30 dias de estudo seguidos",
        "icon": "🌟",
        "category": "engagement",
        "requirement": {"type": "streak_days", "target": 30},
        "rarity": "legendary",
        "points": 1000
    },
    "maratonista": {
        "title": "Maratonista",
        "description": "4 horas de estudo contínuo",
        "icon": "🏃‍♂️",
        "category": "time",
        "requirement": {"type": "continuous_study", "target": 240},
        "rarity": "rare",
        "points": 400
    },
    # Special time achievements
    "noturno": {
        "title": "Cirurgião Noturno",
        "description": "Estudou após 22h",
        "icon": "🌙",
        "category": "special",
        "requirement": {"type": "late_study", "target": 1},
        "rarity": "rare",
        "points": 200
    },
    "matutino": {
        "title": "Cirurgião Matutino",
        "description": "Estudou antes das 7h",
        "icon": "🌅",
        "category": "special",
        "requirement": {"type": "early_study", "target": 1},
        "rarity": "rare",
        "points": 200
    },
    "velocista": {
        "title": "Velocista",
        "description": "Aprendeu em velocidade 2x",
        "icon": "⚡",
        "category": "quality",
        "requirement": {"type": "speed_learning", "target": 1},
        "rarity": "common",
        "points": 100
    },
    "detalhista": {
        "title": "Detalhista",
        "description": "Fez anotações em 10 aulas",
        "icon": "📝",
        "category": "quality",
        "requirement": {"type": "notes_taken", "target": 10},
        "rarity": "rare",
        "points": 300
    },
    "semana-perfeita": {
        "title": "Semana Perfeita",
        "description": "Cumpriu meta diária por 7 dias",
        "icon": "💎",
        "category": "engagement",
        "requirement": {"type": "perfect_week", "target": 1},
        "rarity": "epic",
        "points": 750
    }
}

LATE_STUDY_ACHIEVEMENT = "noturno"
EARLY_STUDY_ACHIEVEMENT = "matutino"
SPEED_ACHIEVEMENT = "velocista"
PERFECT_WEEK_ACHIEVEMENT = "semana-perfeita"

# Set only by the dedicated trigger operations; they depend on event context
# (wall-clock hour, playback speed) that the record does not hold.
SPECIAL_REQUIREMENTS = frozenset({
    RequirementType.LATE_STUDY,
    RequirementType.EARLY_STUDY,
    RequirementType.SPEED_LEARNING,
    RequirementType.PERFECT_WEEK,
})

RARITY_ORDER = {
    AchievementRarity.COMMON: 1,
    AchievementRarity.RARE: 2,
    AchievementRarity.EPIC: 3,
    AchievementRarity.LEGENDARY: 4,
}


def build_catalog(definitions: Dict[str, Dict[str, Any]]) -> Tuple[Achievement, ...]:
    """Turn raw definitions into immutable Achievement objects."""
    return tuple(
        Achievement(
            id=code,
            title=data["title"],
            description=data["description"],
            icon=data["icon"],
            category=AchievementCategory(data["category"]),
            rarity=AchievementRarity(data["rarity"]),
            points=data["points"],
            requirement=Requirement(**data["requirement"]),
        )
        for code, data in definitions.items()
    )


MEDICAL_ACHIEVEMENTS: Tuple[Achievement, ...] = build_catalog(ACHIEVEMENT_DEFINITIONS)


def get_achievement(achievement_id: str,
                    catalog: Iterable[Achievement] = MEDICAL_ACHIEVEMENTS) -> Optional[Achievement]:
    for achievement in catalog:
        if achievement.id == achievement_id:
            return achievement
    return None


# ============================================
# ACHIEVEMENT CHECKER
# ============================================

class AchievementChecker:
    """Checks and awards achievements against a progress record.

    Awarding mutates the record passed in (achievement id, XP, level); the
    catalog itself is never touched.
    """

    def __init__(self, catalog: Iterable[Achievement] = MEDICAL_ACHIEVEMENTS,
                 clock: Optional[Clock] = None):
        self.catalog = tuple(catalog)
        self.clock = clock or SystemClock()

    def current_value(
        self,
        record: ProgressRecord,
        achievement: Achievement,
        course: Optional[CourseStructure] = None
    ) -> Optional[float]:
        """Current progress toward a requirement, or None when it can't be evaluated."""
        req_type = achievement.requirement.type

        if req_type == RequirementType.LESSONS_COMPLETED:
            return len(set(record.lessons_completed))
        if req_type == RequirementType.STREAK_DAYS:
            return record.streak
        if req_type == RequirementType.NOTES_TAKEN:
            return record.notes_count
        if req_type == RequirementType.CONTINUOUS_STUDY:
            return record.average_session_duration
        if req_type == RequirementType.MODULE_COMPLETE:
            return len(set(record.modules_completed))
        if req_type == RequirementType.COURSE_COMPLETE:
            if course is None:
                return None
            lesson_ids = set(course.lesson_ids())
            # An empty curriculum is never "complete"
            if lesson_ids and lesson_ids.issubset(record.lessons_completed):
                return 1
            return 0

        # Special and unsupported requirement types
        return None

    def check_all(
        self,
        record: ProgressRecord,
        course: Optional[CourseStructure] = None
    ) -> List[UnlockedAchievement]:
        """Award every catalog achievement the record now qualifies for."""
        earned = []

        for achievement in self.catalog:
            if achievement.id in record.achievements:
                continue
            if achievement.requirement.type in SPECIAL_REQUIREMENTS:
                continue

            current = self.current_value(record, achievement, course)
            if current is None:
                continue

            if current >= achievement.requirement.target:
                result = self.award(record, achievement)
                if result:
                    earned.append(result)

        return earned

    def award(self, record: ProgressRecord, achievement: Achievement) -> Optional[UnlockedAchievement]:
        """Award an achievement if not already earned."""
        if achievement.id in record.achievements:
            return None

        record.achievements.append(achievement.id)
        record.total_xp += achievement.points
        record.level = calculate_level(record.total_xp)

        now = self.clock.now()
        logger.info(
            f"Achievement unlocked user={record.user_id}, course={record.course_id}, "
            f"achievement={achievement.id}, points={achievement.points}"
        )
        return UnlockedAchievement(achievement=achievement, unlocked_at=now)

    def award_by_id(self, record: ProgressRecord, achievement_id: str) -> Optional[UnlockedAchievement]:
        achievement = get_achievement(achievement_id, self.catalog)
        if achievement is None:
            logger.warning(f"Achievement {achievement_id} not in catalog")
            return None
        return self.award(record, achievement)

    # ============================================
    # PROGRESS VIEWS
    # ============================================

    def get_achievement_progress(
        self,
        record: ProgressRecord,
        course: Optional[CourseStructure] = None
    ) -> List[AchievementProgress]:
        """Fresh per-call progress toward every catalog achievement."""
        progress = []

        for achievement in self.catalog:
            is_unlocked = achievement.id in record.achievements
            target = achievement.requirement.target
            current = self.current_value(record, achievement, course)

            if current is None:
                current = target if is_unlocked else 0
            if is_unlocked:
                percentage = 100.0
            elif target > 0:
                percentage = round(min(current / target, 1.0) * 100, 1)
            else:
                percentage = 0.0

            progress.append(AchievementProgress(
                achievement=achievement,
                current=current,
                target=target,
                percentage=percentage,
                is_unlocked=is_unlocked,
            ))

        progress.sort(key=lambda p: (
            not p.is_unlocked,
            RARITY_ORDER[p.achievement.rarity],
            p.achievement.category.value,
        ))
        return progress

    def get_achievement_summary(self, record: ProgressRecord) -> Dict[str, Any]:
        """Summary statistics for a record's achievements."""
        by_category: Dict[str, Dict[str, int]] = {}
        by_rarity: Dict[str, Dict[str, int]] = {}
        points = 0
        earned = 0

        for achievement in self.catalog:
            is_earned = achievement.id in record.achievements
            category = by_category.setdefault(achievement.category.value, {"total": 0, "earned": 0})
            rarity = by_rarity.setdefault(achievement.rarity.value, {"total": 0, "earned": 0})
            category["total"] += 1
            rarity["total"] += 1
            if is_earned:
                category["earned"] += 1
                rarity["earned"] += 1
                points += achievement.points
                earned += 1

        total = len(self.catalog)
        return {
            "total_achievements": total,
            "earned_achievements": earned,
            "completion_percent": round(earned / total * 100, 1) if total > 0 else 0,
            "total_points": points,
            "by_category": by_category,
            "by_rarity": by_rarity,
        }
