from typing import Optional

NEVER_UPDATED = "Курсы ещё не обновлялись"
PREFIX = "Попытка обновления:"


def format_elapsed(seconds: Optional[int]) -> str:
    """Подпись "сколько прошло" с последнего успешного обновления"""
    if seconds is None:
        return NEVER_UPDATED
    if seconds < 60:
        return f"{PREFIX} {seconds} сек. назад"
    if seconds < 3600:
        return f"{PREFIX} {seconds // 60} мин. назад"
    if seconds < 86_400:
        return f"{PREFIX} {seconds // 3600} ч. назад"
    return f"{PREFIX} {seconds // 86_400} дн. назад"
