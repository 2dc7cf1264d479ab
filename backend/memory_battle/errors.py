"""Ошибки игрового сервера."""


class GameError(Exception):
    """Базовая ошибка; message уходит клиенту в ERROR."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProtocolError(GameError):
    """Невалидный JSON или неизвестный type — логируем и отбрасываем без ответа."""


class ValidationError(GameError):
    """Действие отклонено: ответ ERROR отправителю, состояние не меняется."""


class CapacityError(ValidationError):
    """Комната уже заполнена."""
