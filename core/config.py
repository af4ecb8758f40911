from decouple import config, Csv

class Settings:
    # Database Configuration
    DATABASE_URL: str = config("DATABASE_URL", default="sqlite:///./fulfillment.db")
    DATABASE_ECHO: bool = config("DATABASE_ECHO", default=False, cast=bool)

    # Security Configuration
    SECRET_KEY: str = config("SECRET_KEY", default="your-secret-key-here-change-in-production")
    ALGORITHM: str = config("ALGORITHM", default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = config("ACCESS_TOKEN_EXPIRE_MINUTES", default=30, cast=int)

    # Commission & Earnings Configuration (percentages)
    DEFAULT_COMMISSION_RATE: float = config("DEFAULT_COMMISSION_RATE", default=10.0, cast=float)
    DELIVERY_EARNINGS_RATE: float = config("DELIVERY_EARNINGS_RATE", default=80.0, cast=float)

    # Delivery Configuration
    ESTIMATED_DELIVERY_HOURS: int = config("ESTIMATED_DELIVERY_HOURS", default=24, cast=int)
    DEFAULT_AGENT_ZONE_ID: int = config("DEFAULT_AGENT_ZONE_ID", default=1, cast=int)

    # Storage Configuration
    UPLOAD_DIR: str = config("UPLOAD_DIR", default="uploads")
    MAX_UPLOAD_SIZE: int = config("MAX_UPLOAD_SIZE", default=10 * 1024 * 1024, cast=int)

    # URL Configuration
    CORS_ORIGINS: list = config(
        "CORS_ORIGINS",
        default="http://localhost:3000,http://localhost:5173",
        cast=Csv()
    )

    # Environment
    ENVIRONMENT: str = config("ENVIRONMENT", default="development")
    DEBUG: bool = config("DEBUG", default=True, cast=bool)

    # Logging
    LOG_LEVEL: str = config("LOG_LEVEL", default="INFO")

settings = Settings()
