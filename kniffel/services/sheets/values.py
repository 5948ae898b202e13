"""Score values and the field catalog of a Kniffel scoresheet."""

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Dict, Iterator, Optional, Tuple

from kniffel.errors import ValidationError


class Field(str, Enum):
    ONES = 'ones'
    TWOS = 'twos'
    THREES = 'threes'
    FOURS = 'fours'
    FIVES = 'fives'
    SIXES = 'sixes'
    THREE_OF_A_KIND = 'three_of_a_kind'
    FOUR_OF_A_KIND = 'four_of_a_kind'
    FULL_HOUSE = 'full_house'
    SMALL_STRAIGHT = 'small_straight'
    LARGE_STRAIGHT = 'large_straight'
    KNIFFEL = 'kniffel'
    CHANCE = 'chance'

    @classmethod
    def parse(cls, raw) -> 'Field':
        if isinstance(raw, cls):
            return raw
        try:
            return cls(raw)
        except ValueError:
            raise ValidationError(f'Unknown field: {raw!r}') from None


class Discipline(Enum):
    """How a field accepts values."""
    UPPER = 'upper'   # dice count x face value
    FIXED = 'fixed'   # toggles between empty and one constant
    FREE = 'free'     # any non-negative integer


UPPER_FIELDS: Tuple[Field, ...] = (
    Field.ONES, Field.TWOS, Field.THREES, Field.FOURS, Field.FIVES, Field.SIXES,
)
LOWER_FIELDS: Tuple[Field, ...] = (
    Field.THREE_OF_A_KIND,
    Field.FOUR_OF_A_KIND,
    Field.FULL_HOUSE,
    Field.SMALL_STRAIGHT,
    Field.LARGE_STRAIGHT,
    Field.KNIFFEL,
    Field.CHANCE,
)
ALL_FIELDS: Tuple[Field, ...] = UPPER_FIELDS + LOWER_FIELDS

FACE_VALUES: Dict[Field, int] = {f: i + 1 for i, f in enumerate(UPPER_FIELDS)}
FIXED_POINTS: Dict[Field, int] = {
    Field.FULL_HOUSE: 25,
    Field.SMALL_STRAIGHT: 30,
    Field.LARGE_STRAIGHT: 40,
    Field.KNIFFEL: 50,
}
MAX_DICE = 5
STROKE = 'stroke'


def discipline_of(f: Field) -> Discipline:
    if f in FACE_VALUES:
        return Discipline.UPPER
    if f in FIXED_POINTS:
        return Discipline.FIXED
    return Discipline.FREE


@dataclass(frozen=True)
class ScoreValue:
    """One cell: empty, a number, or a stroke (deliberately forfeited)."""
    points: Optional[int] = None
    stroke: bool = False

    def __post_init__(self):
        if self.stroke and self.points is not None:
            raise ValidationError('A cell cannot hold a number and a stroke')

    @classmethod
    def empty(cls) -> 'ScoreValue':
        return cls()

    @classmethod
    def numeric(cls, points: int) -> 'ScoreValue':
        return cls(points=points)

    @classmethod
    def struck(cls) -> 'ScoreValue':
        return cls(stroke=True)

    @property
    def is_empty(self) -> bool:
        return self.points is None and not self.stroke

    @property
    def is_numeric(self) -> bool:
        return self.points is not None

    @property
    def contribution(self) -> int:
        return self.points or 0

    def to_json(self):
        if self.stroke:
            return STROKE
        return self.points

    @classmethod
    def from_json(cls, raw) -> 'ScoreValue':
        if raw is None:
            return cls.empty()
        if raw == STROKE:
            return cls.struck()
        # bool is an int subclass; True must not become 1
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValidationError(f'Invalid score value: {raw!r}')
        return cls.numeric(raw)


EMPTY = ScoreValue.empty()


def validate_value(f: Field, value: ScoreValue) -> ScoreValue:
    """Check a numeric value against the field's discipline.

    Empty and stroke are legal for every field.
    """
    if not value.is_numeric:
        return value
    points = value.points
    if points < 0:
        raise ValidationError(f'{f.value} cannot be negative')
    discipline = discipline_of(f)
    if discipline is Discipline.UPPER:
        face = FACE_VALUES[f]
        if points % face or points // face > MAX_DICE:
            raise ValidationError(
                f'{f.value} must be a dice count between 0 and {MAX_DICE} times {face}, got {points}'
            )
    elif discipline is Discipline.FIXED:
        if points != FIXED_POINTS[f]:
            raise ValidationError(f'{f.value} can only hold {FIXED_POINTS[f]}, got {points}')
    return value


def dice_value(f: Field, dice_count: int) -> ScoreValue:
    """Value of an upper field for a number of matching dice."""
    if discipline_of(f) is not Discipline.UPPER:
        raise ValidationError(f'{f.value} is not an upper-section field')
    if isinstance(dice_count, bool) or not isinstance(dice_count, int):
        raise ValidationError(f'Invalid dice count: {dice_count!r}')
    if not 0 <= dice_count <= MAX_DICE:
        raise ValidationError(f'Dice count must be between 0 and {MAX_DICE}')
    return ScoreValue.numeric(dice_count * FACE_VALUES[f])


def dice_count_of(f: Field, value: ScoreValue) -> Optional[int]:
    if discipline_of(f) is not Discipline.UPPER or not value.is_numeric:
        return None
    return value.points // FACE_VALUES[f]


def toggled_fixed(f: Field, current: ScoreValue) -> ScoreValue:
    """Fixed-point toggle: a set cell goes empty, anything else gets the constant."""
    if discipline_of(f) is not Discipline.FIXED:
        raise ValidationError(f'{f.value} is not a fixed-point field')
    if current.is_numeric:
        return EMPTY
    return ScoreValue.numeric(FIXED_POINTS[f])


def toggled_stroke(current: ScoreValue) -> ScoreValue:
    # turning the stroke on drops any number in the cell
    if current.stroke:
        return EMPTY
    return ScoreValue.struck()


@dataclass(frozen=True)
class KniffelScores:
    """The 13 cells of one player's column."""
    ones: ScoreValue = EMPTY
    twos: ScoreValue = EMPTY
    threes: ScoreValue = EMPTY
    fours: ScoreValue = EMPTY
    fives: ScoreValue = EMPTY
    sixes: ScoreValue = EMPTY
    three_of_a_kind: ScoreValue = EMPTY
    four_of_a_kind: ScoreValue = EMPTY
    full_house: ScoreValue = EMPTY
    small_straight: ScoreValue = EMPTY
    large_straight: ScoreValue = EMPTY
    kniffel: ScoreValue = EMPTY
    chance: ScoreValue = EMPTY

    def get(self, f: Field) -> ScoreValue:
        return getattr(self, Field.parse(f).value)

    def with_value(self, f: Field, value: ScoreValue) -> 'KniffelScores':
        return replace(self, **{Field.parse(f).value: value})

    def items(self) -> Iterator[Tuple[Field, ScoreValue]]:
        for f in ALL_FIELDS:
            yield f, getattr(self, f.value)

    def to_dict(self):
        return {f.value: v.to_json() for f, v in self.items()}

    @classmethod
    def from_dict(cls, data) -> 'KniffelScores':
        data = data or {}
        known = {fl.name for fl in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValidationError(f'Unknown fields: {", ".join(sorted(unknown))}')
        values = {}
        for name, raw in data.items():
            f = Field(name)
            values[name] = validate_value(f, ScoreValue.from_json(raw))
        return cls(**values)
