from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# Auth configuration (bearer JWTs backed by auth_sessions rows)
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	user_session_days: int = Field(default=28, validation_alias="USER_SESSION_DAYS")
	admin_session_hours: int = Field(default=24, validation_alias="ADMIN_SESSION_HOURS")

	# OTP login
	otp_ttl_minutes: int = Field(default=10, validation_alias="OTP_TTL_MINUTES")
	# Users verified within this window may log in again without a new code
	otp_login_grace_days: int = Field(default=28, validation_alias="OTP_LOGIN_GRACE_DAYS")

	# Twilio delivery; WhatsApp is tried first when both whatsapp fields are set
	twilio_account_sid: str | None = Field(default=None, validation_alias="TWILIO_ACCOUNT_SID")
	twilio_auth_token: str | None = Field(default=None, validation_alias="TWILIO_AUTH_TOKEN")
	twilio_phone_number: str | None = Field(default=None, validation_alias="TWILIO_PHONE_NUMBER")
	twilio_whatsapp_number: str | None = Field(default=None, validation_alias="TWILIO_WHATSAPP_NUMBER")
	twilio_whatsapp_template_sid: str | None = Field(default=None, validation_alias="TWILIO_WHATSAPP_TEMPLATE_SID")
	twilio_base_url: str = Field(default="https://api.twilio.com/2010-04-01", validation_alias="TWILIO_BASE_URL")

	# Paystack
	paystack_secret_key: str | None = Field(default=None, validation_alias="PAYSTACK_SECRET_KEY")
	paystack_base_url: str = Field(default="https://api.paystack.co", validation_alias="PAYSTACK_BASE_URL")
	# Public site URL used to build the payment callback
	app_url: str | None = Field(default=None, validation_alias="APP_URL")
	# Membership price in kobo
	default_membership_price: int = Field(default=5000, validation_alias="DEFAULT_MEMBERSHIP_PRICE")

	# Seeding
	seed_admin_username: str | None = Field(default=None, validation_alias="SEED_ADMIN_USERNAME")
	seed_admin_password: str | None = Field(default=None, validation_alias="SEED_ADMIN_PASSWORD")
	seed_default_iq_grades: bool = Field(default=True, validation_alias="SEED_DEFAULT_IQ_GRADES")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
