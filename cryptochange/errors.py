"""
Исключения конвертера
"""


class ConverterError(Exception):
    """Базовая ошибка конвертера"""


class ParseError(ConverterError):
    """Не удалось разобрать число: '{text}'"""

    def __init__(self, text):
        self.text = text
        super().__init__(f"Не удалось разобрать число: '{text}'")


class FetchError(ConverterError):
    """Ошибка при обращении к API курсов: {reason}"""

    def __init__(self, reason: str, status_code: int = None):
        self.reason = str(reason)
        self.status_code = status_code
        super().__init__(f"Ошибка при обращении к API курсов: {self.reason}")


class PersistenceError(ConverterError):
    """Хранилище недоступно: {operation} ({reason})"""

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = str(reason)
        super().__init__(f"Хранилище недоступно: {operation} ({self.reason})")


class ValidationError(ConverterError):
    """Некорректное значение настройки {field}: {value}"""

    def __init__(self, field: str, value):
        self.field = field
        self.value = value
        super().__init__(f"Некорректное значение {field}: {value} (должно быть > 0)")
