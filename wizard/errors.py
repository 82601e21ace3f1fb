# wizard/errors.py
"""
Ошибки мастера. Ни одна из них не роняет обработчик вебхука:
router ловит их и превращает в тост / подсказку в сообщении.
"""


class WizardError(Exception):
    """База: message: текст, который можно показать пользователю."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class NotFound(WizardError):
    """Сессия протухла / узел локации или категория исчезли посреди шага."""


class ValidationFailure(WizardError):
    """Значение вне допустимых вариантов поля или текст не разобрался."""


class SubmitBlocked(WizardError):
    """Попытка создать тикет, пока есть незаполненные поля."""

    def __init__(self, message: str = "", missing: str | None = None):
        super().__init__(message)
        self.missing = missing
