from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./degreeplan.db"
    jwt_secret: str = "change_me_in_production"
    environment: str = "development"
    log_level: str = "INFO"

    # Planner limits
    max_credits: int = 120
    max_semesters: int = 15
    default_semester_count: int = 12
    max_plans_per_user: int = 3
    max_course_credits: float = 100

    # Editing sessions idle longer than this are evicted from the registry
    session_idle_seconds: float = 1800
    max_open_sessions: int = 1000

    store_timeout_seconds: float = 5.0
    optimistic_concurrency: bool = False
    # JSON object of grade symbol -> points, e.g. {"A": 4.0, "A-": 3.7}
    grade_scale: dict[str, float] | None = None
    # Symbols of grade_scale that enter the GPA; defaults to all of them
    gpa_countable_grades: list[str] | None = None

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
