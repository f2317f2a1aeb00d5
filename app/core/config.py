# app/core/config.py
import pathlib
import logging
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

logger = logging.getLogger("app.core.config")  # Logger for this module

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent.parent

class Settings(BaseSettings):
    PROJECT_NAME: str = "Memory Trip Backend"
    API_V1_STR: str = "/api/v1"
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'memory_trip.db'}"

    # Remote backend that renders images, runs the AI text calls and hosts online games
    AI_BACKEND_URL: str = "http://localhost:8080"
    AI_REQUEST_TIMEOUT_SECONDS: float = 90.0
    # "backend" sends every call to AI_BACKEND_URL, "gemini" answers the text calls locally via Gemini
    AI_TEXT_PROVIDER: str = "backend"
    # Please set your Gemini API Key in the .env file
    GEMINI_API_KEY: str = "YOUR_GEMINI_API_KEY_HERE"
    GEMINI_MODEL_NAME: str = "gemini-1.5-flash-latest"

    TURN_DURATION_SECONDS: int = 60
    SYNC_POLL_INTERVAL_SECONDS: float = 3.0
    TIMER_CHECK_INTERVAL_SECONDS: float = 0.5
    TIMER_WARNING_CHECK_INTERVAL_SECONDS: float = 1.0
    TIMER_WARNING_THRESHOLD_SECONDS: int = 10

    GALLERY_MAX_TRIPS: int = 20

    MAX_ONLINE_PLAYERS: int = 4
    MIN_PLAYERS_TO_START: int = 2

    AI_PERSONAS: List[str] = [
        "The Whimsical Artist",
        "The Chaos Agent",
        "The Gloomy Poet",
        "The Sci-Fi Nerd",
        "The Culinary Enthusiast",
    ]
    DEFAULT_AI_PERSONA: str = "The Whimsical Artist"
    TRIP_SUMMARY_FALLBACK: str = "The AI traveler was too tired to write a journal entry for this trip."

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

@lru_cache()
def get_settings():
    settings_instance = Settings()
    logger.info(f"AI backend set to: {settings_instance.AI_BACKEND_URL} (text provider: {settings_instance.AI_TEXT_PROVIDER})")
    return settings_instance

settings = get_settings()
