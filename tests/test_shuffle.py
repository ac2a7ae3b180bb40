# FILE: tests/test_shuffle.py

import random

from attempt_engine.models.activities import Question
from attempt_engine.models.settings import CaseSettings, ExamSettings
from attempt_engine.services.shuffle import ShuffleEngine, to_original_choices


def questions(count, deleted=()):
    return [
        Question(
            id=f"q{n}",
            activity_id="a1",
            choices=["a", "b", "c", "d", "e"][: 2 + n % 4],
            correct_answers=[0],
            is_deleted=f"q{n}" in deleted,
        )
        for n in range(count)
    ]


def test_fisher_yates_is_a_permutation():
    """Shuffle returns a new list with the same elements"""
    engine = ShuffleEngine(random.Random(1))
    items = list(range(20))

    shuffled = engine.fisher_yates(items)

    assert sorted(shuffled) == items
    assert items == list(range(20))


def test_exam_map_samples_and_skips_deleted():
    engine = ShuffleEngine(random.Random(3))
    settings = ExamSettings(questions_to_show=4)

    shuffle_map = engine.exam_map(questions(8, deleted={"q2", "q5"}), settings)

    assert len(shuffle_map.question_order) == 4
    assert "q2" not in shuffle_map.question_order
    assert "q5" not in shuffle_map.question_order
    assert set(shuffle_map.choice_shuffles) == set(shuffle_map.question_order)


def test_choice_shuffles_are_permutations_of_original_indices():
    engine = ShuffleEngine(random.Random(5))
    bank = questions(6)
    shuffle_map = engine.exam_map(bank, ExamSettings())

    sizes = {q.id: len(q.choices) for q in bank}
    for question_id, permutation in shuffle_map.choice_shuffles.items():
        assert sorted(permutation) == list(range(sizes[question_id]))


def test_identity_when_flags_disabled():
    engine = ShuffleEngine(random.Random(5))
    settings = ExamSettings(shuffle_questions=False, shuffle_choices=False)

    shuffle_map = engine.exam_map(questions(4), settings)

    assert shuffle_map.question_order == ["q0", "q1", "q2", "q3"]
    assert shuffle_map.choice_shuffles["q1"] == [0, 1, 2]


def test_same_seed_same_map():
    first = ShuffleEngine(random.Random(11)).exam_map(questions(10), ExamSettings())
    second = ShuffleEngine(random.Random(11)).exam_map(questions(10), ExamSettings())

    assert first == second


def test_case_map_keeps_configured_order():
    settings = CaseSettings.model_validate({
        "scenarios": [{"id": f"s{n}", "title": f"S{n}"} for n in range(4)],
        "numCasesToShow": 3,
    })

    shuffle_map = ShuffleEngine().case_map(settings)

    assert shuffle_map.question_order == ["s0", "s1", "s2"]


def test_keywords_cover_every_combination_before_repeating():
    engine = ShuffleEngine(random.Random(2))

    pairs = engine.assign_keywords(["a", "b"], ["x", "y"], 6)
    first_round = {(p.keyword_1, p.keyword_2) for p in pairs[:4]}

    assert len(pairs) == 6
    assert first_round == {("a", "x"), ("a", "y"), ("b", "x"), ("b", "y")}


def test_keywords_empty_pool():
    assert ShuffleEngine().assign_keywords([], ["x"], 3) == []


def test_to_original_choices():
    """permutation[i] is the original index shown at position i"""
    assert to_original_choices([2, 0, 3, 1], [0, 3]) == [2, 1]
