"""
Scoring Service
Pure scoring of submitted answers against question answer keys.

Answers use option indices: a single int for multiple-choice and true/false
questions, a list of ints for multiple-select questions. A malformed or
missing answer is simply wrong; scoring never raises.
"""
from decimal import Decimal, ROUND_HALF_UP


def round_half_up(value):
    """Round to the nearest int with .5 going up (Python's round() uses banker's rounding)."""
    return int(Decimal(str(value)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def percentage(part, whole):
    """Whole-number percentage, 0 when there is nothing to measure against."""
    if not whole:
        return 0
    return round_half_up(Decimal(part) * 100 / Decimal(whole))


def _is_index(value):
    return isinstance(value, int) and not isinstance(value, bool)


def _valid_index(value, option_count):
    return _is_index(value) and 0 <= value < option_count


def is_answer_correct(question, submitted_answer):
    option_count = len(question.options or [])

    if question.type == 'multiple-select':
        if not isinstance(submitted_answer, (list, tuple)):
            return False
        if not all(_valid_index(i, option_count) for i in submitted_answer):
            return False
        expected = question.correct_answer if isinstance(question.correct_answer, list) else []
        return set(submitted_answer) == set(expected)

    if not _valid_index(submitted_answer, option_count):
        return False
    return submitted_answer == question.correct_answer


def score_question(question, submitted_answer):
    """
    Score one question.

    Returns:
        dict: {'correct': bool, 'points_earned': int}
    """
    correct = is_answer_correct(question, submitted_answer)
    return {
        'correct': correct,
        'points_earned': question.points if correct else 0,
    }


def score_answers(questions, answers):
    """
    Score a full submission.

    Args:
        questions: iterable of Question objects
        answers: dict of question id (str) -> submitted answer; missing ids score 0

    Returns:
        dict with points_earned, points_possible, score (0-100), correct_count
        and a per-question ``results`` list
    """
    answers = answers or {}
    results = []
    points_earned = 0
    points_possible = 0
    correct_count = 0

    for question in questions:
        question_id = str(question.id)
        submitted = answers.get(question_id)
        outcome = score_question(question, submitted)

        points_possible += question.points
        points_earned += outcome['points_earned']
        if outcome['correct']:
            correct_count += 1

        results.append({
            'question_id': question_id,
            'submitted_answer': submitted,
            'correct': outcome['correct'],
            'points_earned': outcome['points_earned'],
            'points_possible': question.points,
        })

    return {
        'points_earned': points_earned,
        'points_possible': points_possible,
        'score': percentage(points_earned, points_possible),
        'correct_count': correct_count,
        'total_questions': len(results),
        'results': results,
    }
