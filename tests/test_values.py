import pytest

from kniffel.errors import ValidationError
from kniffel.services.sheets.values import (
    ALL_FIELDS,
    Discipline,
    Field,
    KniffelScores,
    ScoreValue,
    dice_count_of,
    dice_value,
    discipline_of,
    toggled_fixed,
    toggled_stroke,
    validate_value,
)


def test_catalog_has_thirteen_fields_in_three_disciplines():
    assert len(ALL_FIELDS) == 13
    assert discipline_of(Field.FOURS) is Discipline.UPPER
    assert discipline_of(Field.FULL_HOUSE) is Discipline.FIXED
    assert discipline_of(Field.KNIFFEL) is Discipline.FIXED
    assert discipline_of(Field.CHANCE) is Discipline.FREE
    assert discipline_of(Field.THREE_OF_A_KIND) is Discipline.FREE


def test_fixed_toggle_cycles_between_constant_and_empty():
    cell = ScoreValue.empty()
    cell = toggled_fixed(Field.FULL_HOUSE, cell)
    assert cell == ScoreValue.numeric(25)
    cell = toggled_fixed(Field.FULL_HOUSE, cell)
    assert cell.is_empty
    cell = toggled_fixed(Field.FULL_HOUSE, cell)
    assert cell.points == 25


def test_fixed_toggle_on_struck_cell_sets_constant():
    assert toggled_fixed(Field.LARGE_STRAIGHT, ScoreValue.struck()) == ScoreValue.numeric(40)


def test_fixed_toggle_rejects_other_fields():
    with pytest.raises(ValidationError):
        toggled_fixed(Field.CHANCE, ScoreValue.empty())


def test_stroke_clears_number_and_both_contribute_zero():
    numeric = ScoreValue.numeric(18)
    struck = toggled_stroke(numeric)
    assert struck.stroke and struck.points is None
    assert struck.contribution == 0

    cleared = toggled_stroke(struck)
    assert cleared.is_empty
    assert cleared.contribution == 0
    # same contribution, different states
    assert struck != cleared


def test_number_and_stroke_cannot_coexist():
    with pytest.raises(ValidationError):
        ScoreValue(points=5, stroke=True)


def test_dice_value_and_back():
    assert dice_value(Field.FIVES, 3) == ScoreValue.numeric(15)
    assert dice_count_of(Field.FIVES, ScoreValue.numeric(15)) == 3
    # zero dice is a number, not a stroke
    zero = dice_value(Field.SIXES, 0)
    assert zero.is_numeric and not zero.stroke and zero.contribution == 0


@pytest.mark.parametrize('count', [-1, 6, True, '3'])
def test_dice_value_rejects_bad_counts(count):
    with pytest.raises(ValidationError):
        dice_value(Field.TWOS, count)


def test_dice_value_only_for_upper_fields():
    with pytest.raises(ValidationError):
        dice_value(Field.CHANCE, 2)


@pytest.mark.parametrize('field, points', [
    (Field.THREES, 7),      # not a multiple of the face
    (Field.ONES, 6),        # more than five dice
    (Field.FULL_HOUSE, 20),
    (Field.KNIFFEL, 0),
    (Field.CHANCE, -1),
])
def test_validate_value_rejects_illegal_numbers(field, points):
    with pytest.raises(ValidationError):
        validate_value(field, ScoreValue.numeric(points))


@pytest.mark.parametrize('field, points', [
    (Field.SIXES, 30),
    (Field.ONES, 0),
    (Field.SMALL_STRAIGHT, 30),
    (Field.FOUR_OF_A_KIND, 99),
])
def test_validate_value_accepts_legal_numbers(field, points):
    assert validate_value(field, ScoreValue.numeric(points)).points == points


def test_from_json_wire_forms():
    assert ScoreValue.from_json(None).is_empty
    assert ScoreValue.from_json('stroke').stroke
    assert ScoreValue.from_json(12).points == 12
    for bad in (True, 1.5, 'twelve', [3]):
        with pytest.raises(ValidationError):
            ScoreValue.from_json(bad)


def test_scores_dict_keeps_every_field():
    scores = KniffelScores().with_value(Field.CHANCE, ScoreValue.numeric(21)).with_value(Field.ONES, ScoreValue.struck())
    data = scores.to_dict()
    assert set(data) == {f.value for f in ALL_FIELDS}
    assert data['chance'] == 21
    assert data['ones'] == 'stroke'
    assert data['twos'] is None
    assert KniffelScores.from_dict(data) == scores


def test_scores_from_dict_rejects_unknown_fields():
    with pytest.raises(ValidationError):
        KniffelScores.from_dict({'yahtzee': 50})


def test_unknown_field_name():
    with pytest.raises(ValidationError):
        Field.parse('sevens')
