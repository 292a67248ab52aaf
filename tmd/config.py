import os


class Settings:
    """應用程式配置設定"""

    # 資料庫設定
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./tmd.db")

    # Session 設定
    SECRET_KEY: str = os.getenv("SECRET_KEY", "your-super-secret-key-change-this-in-production")
    SESSION_COOKIE: str = os.getenv("SESSION_COOKIE", "tmd_session")
    SESSION_MAX_AGE: int = int(os.getenv("SESSION_MAX_AGE", "28800"))  # 8 小時

    # 應用設定
    APP_NAME: str = os.getenv("APP_NAME", "TMD System")
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"
    TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Ho_Chi_Minh")

    # 預設管理員帳號（資料庫沒有任何管理員時建立）
    DEFAULT_ADMIN_USERNAME: str = os.getenv("DEFAULT_ADMIN_USERNAME", "admin")
    DEFAULT_ADMIN_PASSWORD: str = os.getenv("DEFAULT_ADMIN_PASSWORD", "admin123")
    DEFAULT_ADMIN_FULL_NAME: str = os.getenv("DEFAULT_ADMIN_FULL_NAME", "System Administrator")

    # 檔案上傳設定
    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "uploads")
    MAX_PHOTO_SIZE: int = int(os.getenv("MAX_PHOTO_SIZE", "10485760"))  # 10MB
    ALLOWED_PHOTO_EXTENSIONS: list = os.getenv("ALLOWED_PHOTO_EXTENSIONS", "jpg,jpeg,png").split(",")
    MAX_LOGO_SIZE: int = int(os.getenv("MAX_LOGO_SIZE", "5242880"))  # 5MB
    ALLOWED_LOGO_EXTENSIONS: list = os.getenv("ALLOWED_LOGO_EXTENSIONS", "jpg,jpeg,png,gif,svg").split(",")
    MAX_LAYOUT_BACKUPS: int = int(os.getenv("MAX_LAYOUT_BACKUPS", "20"))  # 每個版面保留的備份數
    MAX_DOCUMENT_SIZE: int = int(os.getenv("MAX_DOCUMENT_SIZE", "10485760"))
    ALLOWED_DOCUMENT_EXTENSIONS: list = os.getenv("ALLOWED_DOCUMENT_EXTENSIONS", "jpg,jpeg,png,pdf").split(",")

    # 地址反查設定
    REVERSE_GEOCODING_ENABLED: bool = os.getenv("REVERSE_GEOCODING_ENABLED", "True").lower() == "true"
    NOMINATIM_URL: str = os.getenv("NOMINATIM_URL", "https://nominatim.openstreetmap.org/reverse")
    GEOCODING_USER_AGENT: str = os.getenv("GEOCODING_USER_AGENT", "TMDSystem/1.0")
    GEOCODING_TIMEOUT: float = float(os.getenv("GEOCODING_TIMEOUT", "5"))

    # 申請自動拒絕設定
    ENABLE_SCHEDULER: bool = os.getenv("ENABLE_SCHEDULER", "True").lower() == "true"
    AUTO_REJECT_DAYS: int = int(os.getenv("AUTO_REJECT_DAYS", "3"))
    AUTO_REJECT_INTERVAL_MINUTES: int = int(os.getenv("AUTO_REJECT_INTERVAL_MINUTES", "60"))

    # 查詢上限
    AUDIT_LOG_LIMIT: int = int(os.getenv("AUDIT_LOG_LIMIT", "1000"))
    LOGIN_HISTORY_LIMIT: int = int(os.getenv("LOGIN_HISTORY_LIMIT", "1000"))

    # 部署設定
    PORT: int = int(os.getenv("PORT", "8000"))
    HOST: str = os.getenv("HOST", "0.0.0.0")

    # 日誌設定
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # API 設定
    API_VERSION: str = os.getenv("API_VERSION", "v1")
    API_PREFIX: str = f"/api/{API_VERSION}"

    @property
    def database_url(self) -> str:
        """獲取資料庫 URL（postgres:// 轉為 SQLAlchemy 可用格式）"""
        url = self.DATABASE_URL
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        return url

    @property
    def is_production(self) -> bool:
        """檢查是否為生產環境"""
        return not self.DEBUG

    def validate_required_settings(self) -> list:
        """驗證必要設定"""
        missing = []

        if not self.DATABASE_URL:
            missing.append("DATABASE_URL")

        if not self.SECRET_KEY or self.SECRET_KEY == "your-super-secret-key-change-this-in-production":
            missing.append("SECRET_KEY")

        return missing

    def get_scheduler_config(self) -> dict:
        """獲取排程器配置"""
        return {
            "auto_reject": {
                "enabled": self.ENABLE_SCHEDULER,
                "interval_minutes": self.AUTO_REJECT_INTERVAL_MINUTES,
                "days": self.AUTO_REJECT_DAYS
            }
        }

    def get_logging_config(self) -> dict:
        """獲取日誌配置"""
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": self.LOG_FORMAT,
                },
            },
            "handlers": {
                "default": {
                    "formatter": "default",
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {
                "level": self.LOG_LEVEL,
                "handlers": ["default"],
            },
        }


# 全域設定實例
settings = Settings()
