from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# Conversation tokens (signed identities handed out by /auth/token)
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")

	# Fallback identity when a caller does not send one (shared demo account)
	default_user_id: str = Field(default="kakao_default", validation_alias="DEFAULT_USER_ID")
	default_level: int = Field(default=3, ge=1, le=10, validation_alias="DEFAULT_LEVEL")
	default_topic: str = Field(default="toeic", validation_alias="DEFAULT_TOPIC")

	# Placement flow
	assessment_question_count: int = Field(default=5, ge=1, validation_alias="ASSESSMENT_QUESTION_COUNT")
	# Idle expiry for unfinished placements (0 keeps them forever)
	assessment_idle_expiry_minutes: int = Field(default=0, ge=0, validation_alias="ASSESSMENT_IDLE_EXPIRY_MINUTES")

	# Practice progression: "outcome" moves the level on every graded answer,
	# "streak" offers a promotion after a run of correct answers
	progression_policy: str = Field(default="outcome", validation_alias="PROGRESSION_POLICY")
	promotion_streak: int = Field(default=5, ge=1, validation_alias="PROMOTION_STREAK")
	recent_exclude_count: int = Field(default=20, ge=0, validation_alias="RECENT_EXCLUDE_COUNT")

	# Conversation state store
	conversation_state_ttl_minutes: int = Field(default=30, ge=0, validation_alias="CONVERSATION_STATE_TTL_MINUTES")
	# "Today" summaries use this local offset (KST by default)
	summary_utc_offset_hours: int = Field(default=9, validation_alias="SUMMARY_UTC_OFFSET_HOURS")

	cleanup_interval_seconds: int = Field(default=3600, ge=0, validation_alias="CLEANUP_INTERVAL_SECONDS")
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
