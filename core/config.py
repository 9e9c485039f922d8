from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    environment: str = Field("development", alias="ENVIRONMENT")
    port: int = Field(8000, alias="PORT")

    base_url: Optional[str] = Field(None, alias="BASE_URL")

    database_url: str = Field(..., alias="DATABASE_URL")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    gcp_project_id: Optional[str] = Field(None, alias="GCP_PROJECT_ID")

    telegram_bot_token: Optional[str] = Field(None, alias="TELEGRAM_BOT_TOKEN")
    telegram_webhook_secret: Optional[str] = Field(None, alias="TELEGRAM_WEBHOOK_SECRET")
    telegram_bot_username: str = Field("iqromaxbot", alias="TELEGRAM_BOT_USERNAME")
    telegram_api_base: str = Field("https://api.telegram.org", alias="TELEGRAM_API_BASE")

    directory_base_url: Optional[str] = Field(None, alias="DIRECTORY_BASE_URL")
    directory_service_key: Optional[str] = Field(None, alias="DIRECTORY_SERVICE_KEY")

    sms_gateway_url: str = Field("https://notify.eskiz.uz", alias="SMS_GATEWAY_URL")
    sms_gateway_email: Optional[str] = Field(None, alias="SMS_GATEWAY_EMAIL")
    sms_gateway_password: Optional[str] = Field(None, alias="SMS_GATEWAY_PASSWORD")
    sms_sender: str = Field("4546", alias="SMS_SENDER")
    sms_accepted_statuses: str = Field("waiting,success", alias="SMS_ACCEPTED_STATUSES")

    otp_ttl_seconds: int = Field(180, alias="OTP_TTL_SECONDS")
    otp_max_attempts: int = Field(5, alias="OTP_MAX_ATTEMPTS")
    sms_rate_limit_seconds: int = Field(60, alias="SMS_RATE_LIMIT_SECONDS")
    dispatch_timeout_seconds: float = Field(5.0, alias="DISPATCH_TIMEOUT_SECONDS")
    default_country_code: str = Field("998", alias="DEFAULT_COUNTRY_CODE")
    session_retention_hours: int = Field(24, alias="SESSION_RETENTION_HOURS")

    rate_limit_window_seconds: int = Field(60, alias="RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_max: int = Field(30, alias="RATE_LIMIT_MAX")

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        case_sensitive=True,
    )

    @property
    def public_base_url(self) -> str:
        if self.base_url:
            return self.base_url.rstrip("/")

        if self.environment.lower() in {"prod", "production"}:
            raise RuntimeError("BASE_URL is required when ENVIRONMENT=production")

        return f"http://localhost:{self.port}"

    @property
    def accepted_sms_statuses(self) -> frozenset[str]:
        return frozenset(
            item.strip().lower()
            for item in self.sms_accepted_statuses.split(",")
            if item.strip()
        )

    def validate_runtime(self) -> None:
        _ = self.public_base_url

    def require_telegram(self) -> tuple[str, str]:
        missing: list[str] = []
        if not self.telegram_bot_token:
            missing.append("TELEGRAM_BOT_TOKEN")
        if not self.telegram_webhook_secret:
            missing.append("TELEGRAM_WEBHOOK_SECRET")

        if missing:
            raise RuntimeError(f"Telegram config missing: {', '.join(missing)}")

        return (self.telegram_bot_token, self.telegram_webhook_secret)

    def require_directory(self) -> tuple[str, str]:
        missing: list[str] = []
        if not self.directory_base_url:
            missing.append("DIRECTORY_BASE_URL")
        if not self.directory_service_key:
            missing.append("DIRECTORY_SERVICE_KEY")

        if missing:
            raise RuntimeError(f"Directory config missing: {', '.join(missing)}")

        return (self.directory_base_url, self.directory_service_key)

    def require_sms(self) -> tuple[str, str, str, str]:
        missing: list[str] = []
        if not self.sms_gateway_url:
            missing.append("SMS_GATEWAY_URL")
        if not self.sms_gateway_email:
            missing.append("SMS_GATEWAY_EMAIL")
        if not self.sms_gateway_password:
            missing.append("SMS_GATEWAY_PASSWORD")
        if not self.sms_sender:
            missing.append("SMS_SENDER")

        if missing:
            raise RuntimeError(f"SMS gateway config missing: {', '.join(missing)}")

        return (
            self.sms_gateway_url,
            self.sms_gateway_email,
            self.sms_gateway_password,
            self.sms_sender,
        )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

settings = Settings()
