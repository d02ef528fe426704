"""
PIMS Meet Bot

Telegram бот знакомств: регистрация профиля, встречи-кредиты и подбор
партнёра по категории (дружба, сотворчество, отношения).
"""

__version__ = "1.0.0"
