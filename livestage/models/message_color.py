"""Colour palette shared by host messages and message presets."""
import enum


class MessageColor(str, enum.Enum):
    """Colour tag shown behind a host message."""
    AMBER = 'amber'
    BLUE = 'blue'
    GREEN = 'green'
    RED = 'red'
    PURPLE = 'purple'
    GRAY = 'gray'

    @classmethod
    def values(cls):
        return [color.value for color in cls]

    @classmethod
    def is_valid(cls, value):
        return value in cls.values()


DEFAULT_MESSAGE_COLOR = MessageColor.AMBER.value
