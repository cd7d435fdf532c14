"""Answer grading and level assignment. Pure functions, no I/O."""
import json
from dataclasses import dataclass
from typing import Optional, Sequence

from ..config import DEFAULT_LEVEL_TABLE, LevelRule
from ..models import SkillLevel, Test, TestResult

POINTS_PER_QUESTION = 10


@dataclass(frozen=True)
class Classification:
    level: SkillLevel
    passed: bool
    reward_milli: int


def classify(score: int, table: Sequence[LevelRule] = DEFAULT_LEVEL_TABLE) -> Classification:
    """Map a score onto the level table, highest threshold first."""
    for rule in sorted(table, key=lambda r: r.threshold, reverse=True):
        if score >= rule.threshold:
            return Classification(level=rule.level, passed=True, reward_milli=rule.reward_milli)
    return Classification(level=SkillLevel.failed, passed=False, reward_milli=0)


def count_correct(questions: list[dict], answers: Sequence[Optional[int]]) -> int:
    correct = 0
    for i, q in enumerate(questions):
        if i >= len(answers):
            break
        submitted = answers[i]
        # bool is an int subclass; True must not match index 1
        if isinstance(submitted, int) and not isinstance(submitted, bool) \
                and submitted == q["correct_answer"]:
            correct += 1
    return correct


def grade(
    test: Test,
    wallet_address: str,
    answers: Sequence[Optional[int]],
    table: Sequence[LevelRule] = DEFAULT_LEVEL_TABLE,
    points_per_question: int = POINTS_PER_QUESTION,
) -> TestResult:
    """Grade a submission. Returns an unsaved TestResult."""
    questions = json.loads(test.questions)
    correct = count_correct(questions, answers)
    score = correct * points_per_question
    c = classify(score, table)
    return TestResult(
        test_id=test.id,
        wallet_address=wallet_address,
        topic=test.topic,
        score=score,
        level=c.level,
        correct_answers=correct,
        total_questions=len(questions),
        total_points=len(questions) * points_per_question,
        sol_reward_milli=c.reward_milli,
        passed=c.passed,
    )


def weighted_skill_score(skills: Sequence[dict]) -> int:
    """Sum of score x level multiplier (Senior 3, Middle 2, Junior 1)."""
    multipliers = {SkillLevel.senior: 3, SkillLevel.middle: 2, SkillLevel.junior: 1}
    total = 0
    for s in skills:
        total += s["score"] * multipliers.get(SkillLevel(s["level"]), 0)
    return total
