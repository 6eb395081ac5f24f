from pydantic import BaseModel, ValidationError, Field, field_validator

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class SettingsSchema(BaseModel):
    rest_timer_seconds: int = Field(90, gt=0)
    drill_duration_seconds: int = Field(15, gt=0)
    drill_countdown_seconds: int = Field(5, gt=0)
    tick_interval_ms: int = Field(100, ge=10, le=1000)
    sound_enabled: bool = True
    sound_command: str = ""
    notifications_enabled: bool = True
    notification_webhook_url: str | bool = ""
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if value.upper() not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(LOG_LEVELS)}")
        return value.upper()


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
