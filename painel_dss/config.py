import os

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "painel_dss")
# Batch writes run in a transaction; needs a replica set or mongos.
MONGO_TRANSACTIONS = os.getenv("MONGO_TRANSACTIONS", "false").lower() in ("1", "true", "yes")

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 12)))

# Seeded into the administrator collection when it is empty.
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

ALERT_EMAIL_TO = os.getenv("ALERT_EMAIL_TO", "seguranca@example.com")
REPORT_EMAIL_TO = os.getenv("REPORT_EMAIL_TO", ALERT_EMAIL_TO)

MAILTO_MAX_LENGTH = int(os.getenv("MAILTO_MAX_LENGTH", "2000"))
TIMEZONE = os.getenv("PAINEL_TIMEZONE", "America/Sao_Paulo")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

COL_EMPLOYEES = "employee"
COL_REGISTRATIONS = "registration"
COL_ADMINISTRATORS = "administrator"
COL_NOTIFICATIONS = "notification"
