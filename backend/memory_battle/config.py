"""Конфигурация приложения."""
import os
from collections.abc import Mapping
from functools import lru_cache


def build_config(env: Mapping[str, str]):
    """Собрать конфиг из словаря переменных окружения (в тестах — из своего)."""
    return type("Config", (), {
        "debug": env.get("DEBUG", "0").lower() in ("1", "true", "yes"),
        "allowed_origins": env.get("ALLOWED_ORIGINS", "*").split(","),
        "host": env.get("HOST", "0.0.0.0"),
        "port": int(env.get("PORT", "3001")),
        # Длительность хода и окно предупреждения (секунды)
        "turn_time_limit": int(env.get("TURN_TIME_LIMIT", "30")),
        "warning_threshold": int(env.get("WARNING_THRESHOLD", "10")),
        # Паузы для анимации клиентов (секунды)
        "match_check_delay": float(env.get("MATCH_CHECK_DELAY", "0.8")),
        "auto_start_delay": float(env.get("AUTO_START_DELAY", "2.0")),
        "tick_interval": float(env.get("TICK_INTERVAL", "1.0")),
        # Закрывать соединение без сообщений дольше N секунд; 0 — не закрывать
        "idle_timeout": float(env.get("IDLE_TIMEOUT", "90")),
    })()


@lru_cache
def get_config():
    return build_config(os.environ)
