from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    sqlalchemy_database_url: str = "sqlite:///./hospital.db"
    secret_key: str = "hospital_management_secret_key_change_me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 24 * 60
    upload_dir: str = "uploads"
    prescription_dir: str = "prescriptions"
    max_upload_size: int = 5 * 1024 * 1024
    log_file: str = "logs/app.log"
    log_level: str = "INFO"
    default_admin_email: str = "admin@hospital.com"
    default_admin_password: str = "admin123"

    model_config = {
        "env_file": ".env",
        "extra": "forbid"
    }

settings = Settings()
