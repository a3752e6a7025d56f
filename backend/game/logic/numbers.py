"""Spoken Vietnamese form of called numbers, sent alongside every draw."""

DRAW_MIN = 1
DRAW_MAX = 90

_DIGITS = ("không", "một", "hai", "ba", "bốn", "năm", "sáu", "bảy", "tám", "chín", "mười")


def number_to_words(number: int) -> str:
    """Spell out 0-99 the way a lô tô caller reads it.

    Teens use "mười", tens use "mươi", and the units 1, 4 and 5 take their
    colloquial forms after a tens word ("mốt", "tư", "lăm").
    """
    if not 0 <= number <= 99:  # noqa: PLR2004
        return ""
    if number <= 10:  # noqa: PLR2004
        return _DIGITS[number]

    tens, unit = divmod(number, 10)
    if tens == 1:
        if unit == 5:  # noqa: PLR2004
            return "mười lăm"
        return f"mười {_DIGITS[unit]}"

    words = f"{_DIGITS[tens]} mươi"
    if unit == 0:
        return words
    if unit == 1:
        return f"{words} mốt"
    if unit == 4:  # noqa: PLR2004
        return f"{words} tư"
    if unit == 5:  # noqa: PLR2004
        return f"{words} lăm"
    return f"{words} {_DIGITS[unit]}"
