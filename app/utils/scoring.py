"""
Scoring Engine for PL Predictor

Awards points for a predicted score against a final score:
    5 points: exact score
    2 points: correct outcome (home win / away win / draw), wrong score
    0 points: incorrect outcome

Pure functions, no database access. Persisting results is the job of
app/utils/score_processor.py.
"""

from collections import namedtuple

EXACT_SCORE_POINTS = 5
CORRECT_OUTCOME_POINTS = 2
INCORRECT_POINTS = 0

MIN_PREDICTED_SCORE = 0
MAX_PREDICTED_SCORE = 20

HOME_WIN = "home_win"
AWAY_WIN = "away_win"
DRAW = "draw"

ScoringResult = namedtuple("ScoringResult", ["points", "reason"])


def get_match_outcome(home_score, away_score):
    """Determine the outcome of a match from its scores"""
    if home_score > away_score:
        return HOME_WIN
    if away_score > home_score:
        return AWAY_WIN
    return DRAW


def _predicted_scores(prediction):
    if isinstance(prediction, (tuple, list)):
        return prediction[0], prediction[1]
    return prediction.predicted_home_score, prediction.predicted_away_score


def _final_scores(final_score):
    if isinstance(final_score, (tuple, list)):
        home, away = final_score[0], final_score[1]
    else:
        home, away = final_score.home_score, final_score.away_score

    if home is None or away is None:
        raise ValueError("Match must have final scores to calculate points")
    return home, away


def calculate_points(prediction, final_score):
    """
    Calculate points for a single prediction.

    Args:
        prediction: object with predicted_home_score/predicted_away_score,
            or a (home, away) tuple
        final_score: object with home_score/away_score (e.g. a Match),
            or a (home, away) tuple

    Returns:
        ScoringResult(points, reason) with reason one of
        "exact_score", "correct_outcome", "incorrect"

    Raises:
        ValueError: if the final score is incomplete
    """
    actual_home, actual_away = _final_scores(final_score)
    predicted_home, predicted_away = _predicted_scores(prediction)

    # Exact score is checked first so it wins the reason label
    if predicted_home == actual_home and predicted_away == actual_away:
        return ScoringResult(EXACT_SCORE_POINTS, "exact_score")

    if get_match_outcome(predicted_home, predicted_away) == get_match_outcome(
        actual_home, actual_away
    ):
        return ScoringResult(CORRECT_OUTCOME_POINTS, "correct_outcome")

    return ScoringResult(INCORRECT_POINTS, "incorrect")


def calculate_batch_points(predictions, final_score):
    """Calculate points for several predictions against one final score"""
    return [
        (prediction.id, calculate_points(prediction, final_score))
        for prediction in predictions
    ]


def validate_prediction_scores(home_score, away_score):
    """Scores must be integers between 0 and 20 inclusive"""

    def _valid(score):
        return (
            isinstance(score, int)
            and not isinstance(score, bool)
            and MIN_PREDICTED_SCORE <= score <= MAX_PREDICTED_SCORE
        )

    return _valid(home_score) and _valid(away_score)
