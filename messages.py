# messages.py
from typing import Dict

DEFAULT_LANGUAGE = "en"
SUPPORTED_LANGUAGES = ("en", "ru")

MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "generic_error": "Sorry, I encountered an error. Please try again later.",
        "no_data": "No data received. Please send your question again.",
        "empty_question": "Please enter a question.",
        "invalid_request": "Sorry, I couldn't read your request. Please try again.",
        "rate_limit": "The AI service is receiving too many requests right now. Please try again in a few minutes.",
        "service_unavailable": "The AI service is temporarily unavailable. Please try again later.",
        "timeout": "The AI service took too long to respond. Please try again.",
        "config_error": "The chat is not configured yet. Please contact the site owner.",
        "no_answer": "Sorry, I couldn't come up with an answer to that. Please rephrase your question.",
        "hourly_limit": "You have reached the limit of {limit} questions per hour. Please try again later.",
        "daily_limit": "You have reached the limit of {limit} questions per day. Please come back tomorrow.",
        "use_post": "Use POST to ask a question.",
    },
    "ru": {
        "generic_error": "Извините, произошла ошибка. Пожалуйста, попробуйте позже.",
        "no_data": "Данные не получены. Пожалуйста, отправьте вопрос ещё раз.",
        "empty_question": "Пожалуйста, введите вопрос.",
        "invalid_request": "Извините, не удалось прочитать запрос. Попробуйте ещё раз.",
        "rate_limit": "Сервис ИИ сейчас перегружен запросами. Попробуйте через несколько минут.",
        "service_unavailable": "Сервис ИИ временно недоступен. Пожалуйста, попробуйте позже.",
        "timeout": "Сервис ИИ слишком долго не отвечал. Попробуйте ещё раз.",
        "config_error": "Чат ещё не настроен. Пожалуйста, свяжитесь с владельцем сайта.",
        "no_answer": "Извините, не получилось ответить на этот вопрос. Попробуйте переформулировать его.",
        "hourly_limit": "Вы достигли лимита в {limit} вопросов в час. Пожалуйста, попробуйте позже.",
        "daily_limit": "Вы достигли лимита в {limit} вопросов в день. Пожалуйста, возвращайтесь завтра.",
        "use_post": "Используйте POST, чтобы задать вопрос.",
    },
}


def normalize_language(language) -> str:
    if isinstance(language, str) and language.strip().lower() in SUPPORTED_LANGUAGES:
        return language.strip().lower()
    return DEFAULT_LANGUAGE


def get_message(key: str, language: str = DEFAULT_LANGUAGE, **kwargs) -> str:
    table = MESSAGES[normalize_language(language)]
    text = table.get(key, table["generic_error"])
    return text.format(**kwargs) if kwargs else text
